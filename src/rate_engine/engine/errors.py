"""
Typed pricing failures.

Every failure is a configuration or request defect, never a transient
fault, so nothing in the engine retries. Callers translate these into
user-facing messages using ``code``.
"""
from typing import Any, Optional


class PricingError(Exception):
    """Base class for every failure raised by the rate engine."""

    code = "PRICING_ERROR"

    def __init__(self, message: str, meta: Optional[dict[str, Any]] = None):
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "meta": self.meta}


class NoActiveRateTableError(PricingError):
    code = "NO_ACTIVE_RATE_TABLE"

    def __init__(self, carrier_code: str, zone_code: str, service_type: str, as_of):
        super().__init__(
            f"No active pricing table for {carrier_code}/{zone_code}/{service_type} "
            f"as of {as_of:%Y-%m-%d %H:%M}",
            {"carrier_code": carrier_code, "zone_code": zone_code,
             "service_type": service_type, "as_of": as_of.isoformat()},
        )


class AmbiguousRateTableError(PricingError):
    code = "AMBIGUOUS_RATE_TABLE"

    def __init__(self, carrier_code: str, zone_code: str, service_type: str,
                 version: int, table_ids: list[int]):
        super().__init__(
            f"Tables {table_ids} are all current at version {version} for "
            f"{carrier_code}/{zone_code}/{service_type}",
            {"carrier_code": carrier_code, "zone_code": zone_code,
             "service_type": service_type, "version": version, "table_ids": table_ids},
        )


class MissingDimensionsError(PricingError):
    code = "MISSING_DIMENSIONS"

    def __init__(self, pricing_model: str):
        super().__init__(
            f"Pricing model '{pricing_model}' requires package dimensions",
            {"pricing_model": pricing_model},
        )


class NoMatchingTierError(PricingError):
    code = "NO_MATCHING_TIER"

    def __init__(self, table_id: int, weight, reason: str = "no pricing rule covers this weight"):
        super().__init__(
            f"Table {table_id}: {reason} ({weight} kg)",
            {"table_id": table_id, "weight_kg": str(weight)},
        )


class ServiceNotAvailableError(PricingError):
    code = "SERVICE_NOT_AVAILABLE"

    def __init__(self, service_code: str, carrier_code: str, zone_code: str, reason: str):
        super().__init__(
            f"Service '{service_code}' is not available for {carrier_code} in {zone_code}: {reason}",
            {"service_code": service_code, "carrier_code": carrier_code, "zone_code": zone_code},
        )


class ServiceTierNotFoundError(PricingError):
    code = "SERVICE_TIER_NOT_FOUND"

    def __init__(self, service_code: str, table_id: int):
        super().__init__(
            f"No tier of service '{service_code}' matches in table {table_id} "
            "and the service has no default price",
            {"service_code": service_code, "table_id": table_id},
        )


class CarrierNotAvailableError(PricingError):
    code = "CARRIER_NOT_AVAILABLE"

    def __init__(self, carrier_code: str, reason: str):
        super().__init__(
            f"Carrier '{carrier_code}' cannot take this shipment: {reason}",
            {"carrier_code": carrier_code},
        )


class NoCarrierAvailableError(PricingError):
    code = "NO_CARRIER_AVAILABLE"

    def __init__(self, zone_code: str, failures: Optional[dict[str, str]] = None):
        super().__init__(
            f"No carrier could price a shipment to zone {zone_code}",
            {"zone_code": zone_code, "failures": failures or {}},
        )


class PromotionUsageLimitError(PricingError):
    code = "PROMOTION_USAGE_LIMIT"

    def __init__(self, promotion_id: int, usage_limit: int):
        super().__init__(
            f"Promotion {promotion_id} already reached its usage limit of {usage_limit}",
            {"promotion_id": promotion_id, "usage_limit": usage_limit},
        )


class InvalidRateConfigError(PricingError):
    """Raised at load time; carries every problem found, not just the first."""

    code = "INVALID_RATE_CONFIG"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        summary = self.errors[0] if len(self.errors) == 1 else f"{len(self.errors)} problems"
        super().__init__(f"Invalid rate configuration: {summary}", {"errors": self.errors})
