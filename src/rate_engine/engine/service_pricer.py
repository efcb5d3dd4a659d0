"""
Additional service pricing (COD, insurance, SMS notice, Saturday delivery...).

Each requested service is priced from the table's active override when one
exists, falling back field by field to the carrier's catalog entry. Every
requested code is validated before anything is priced, so a bad request
never yields a partial result.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

from .entities import AdditionalService, AdditionalServicePrice, PricingTable, ServicePricingType
from .errors import ServiceNotAvailableError, ServiceTierNotFoundError
from .money import D, ZERO, clamp, percent_of, q4

logger = logging.getLogger(__name__)


@dataclass
class ServiceCharge:
    code: str
    name: str
    price: D


@dataclass
class ServicePricing:
    lines: list[ServiceCharge] = field(default_factory=list)

    @property
    def total(self) -> D:
        return q4(sum((line.price for line in self.lines), ZERO))


@dataclass(frozen=True)
class ServiceContext:
    """Shipment facts a service price may depend on."""
    base_price: D
    billable_weight: D
    declared_value: D
    package_count: int


def _flat_price(service: AdditionalService, override: Optional[AdditionalServicePrice]) -> Optional[D]:
    if override is not None and override.price is not None:
        return override.price
    return service.default_price


def _price_fixed(service, override, ctx: ServiceContext, table_id: int) -> D:
    return _flat_price(service, override) or ZERO


def _price_percentage(service, override, ctx: ServiceContext, table_id: int) -> D:
    rate = override.percentage_rate if override is not None and override.percentage_rate is not None else None
    if rate is None:
        rate = service.percentage_rate
    # no rate anywhere charges nothing; the min clamp may still apply
    if rate is None:
        return ZERO
    return percent_of(ctx.base_price, rate)


def _price_per_package(service, override, ctx: ServiceContext, table_id: int) -> D:
    return (_flat_price(service, override) or ZERO) * ctx.package_count


def _price_tier_based(service, override, ctx: ServiceContext, table_id: int) -> D:
    if override is not None:
        for tier in override.weight_tiers:
            if tier.matches(ctx.billable_weight):
                return tier.price
        for tier in override.value_tiers:
            if tier.matches(ctx.declared_value):
                if tier.rate is not None and tier.rate > 0:
                    return percent_of(ctx.declared_value, tier.rate)
                return tier.price if tier.price is not None else ZERO
    flat = _flat_price(service, override)
    if flat is None:
        raise ServiceTierNotFoundError(service.code, table_id)
    return flat


PRICING_TYPES: dict[ServicePricingType, Callable[..., D]] = {
    ServicePricingType.FIXED: _price_fixed,
    ServicePricingType.PERCENTAGE: _price_percentage,
    ServicePricingType.PER_PACKAGE: _price_per_package,
    ServicePricingType.TIER_BASED: _price_tier_based,
}


def _bounds(service: AdditionalService, override: Optional[AdditionalServicePrice]):
    minimum = override.min_price if override is not None and override.min_price is not None else service.min_price
    maximum = override.max_price if override is not None and override.max_price is not None else service.max_price
    return minimum, maximum


def validate_services(
    requested: Iterable[str],
    catalog: Mapping[str, AdditionalService],
    carrier_code: str,
    zone_code: str,
) -> list[AdditionalService]:
    """Resolve every requested code against the carrier catalog or raise."""
    resolved = []
    for code in requested:
        service = catalog.get(code)
        if service is None:
            raise ServiceNotAvailableError(code, carrier_code, zone_code, "not offered by carrier")
        if not service.is_active:
            raise ServiceNotAvailableError(code, carrier_code, zone_code, "service is inactive")
        if not service.supports_zone(zone_code):
            raise ServiceNotAvailableError(code, carrier_code, zone_code, "zone not supported")
        resolved.append(service)
    return resolved


def price_services(
    requested: Iterable[str],
    catalog: Mapping[str, AdditionalService],
    table: PricingTable,
    ctx: ServiceContext,
) -> ServicePricing:
    """Price the requested services for one shipment against one table."""
    services = validate_services(list(dict.fromkeys(requested)), catalog, table.carrier_code, table.zone_code)

    result = ServicePricing()
    for service in services:
        override = table.service_price_for(service.code)
        raw = PRICING_TYPES[service.pricing_type](service, override, ctx, table.id)
        price = q4(clamp(raw, *_bounds(service, override)))
        logger.debug("Service %s priced at %s (%s, override=%s)", service.code, price,
                     service.pricing_type.value, override is not None)
        result.lines.append(ServiceCharge(code=service.code, name=service.name, price=price))
    return result
