"""
Rate configuration entities.

Everything here is a read-only snapshot of what the pricing administrators
configured: carriers, zones, versioned pricing tables with their tier rules
and service price overrides, customer contracts and promotions.

Cross-entity links are plain ID fields (``table_id``, ``base_table_id``,
``pricing_table_id``...) resolved through ``RateSnapshot``; nothing here holds
a live reference to another entity except a table owning its rules and
service prices.

Structured JSON columns (tiers, custom rules, promotion config) are parsed
with ``from_dict`` classmethods that raise ``ValueError`` on malformed input,
so bad configuration is rejected at load time rather than during pricing.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .money import D, ZERO, to_decimal, to_optional_decimal


# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

class ZoneType(str, Enum):
    LOCAL = "local"
    NATIONAL = "national"
    INTERNATIONAL = "international"


class ServiceLevel(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"
    ECONOMY = "economy"
    PREMIUM = "premium"


class PricingModel(str, Enum):
    WEIGHT = "weight"
    VOLUMETRIC = "volumetric"
    HYBRID = "hybrid"


class CalculationMethod(str, Enum):
    FIXED = "fixed"
    PER_KG = "per_kg"
    PER_KG_STEP = "per_kg_step"
    PERCENTAGE = "percentage"


class ServiceKind(str, Enum):
    COD = "cod"
    INSURANCE = "insurance"
    SMS = "sms"
    EMAIL = "email"
    SATURDAY = "saturday"
    RETURN = "return"
    FRAGILE = "fragile"
    PRIORITY = "priority"
    PICKUP = "pickup"
    SIGNATURE = "signature"


class ServicePricingType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PER_PACKAGE = "per_package"
    TIER_BASED = "tier_based"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    VOLUME = "volume"
    CUSTOM_RULES = "custom_rules"


class VolumePeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class AmountType(str, Enum):
    """How a discount value is read: as a percentage or as a money amount."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromotionDiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"
    BUY_X_GET_Y = "buy_x_get_y"
    TIER_DISCOUNT = "tier_discount"


class TargetType(str, Enum):
    ALL = "all"
    CARRIER = "carrier"
    ZONE = "zone"
    SERVICE_TYPE = "service_type"
    CUSTOMER = "customer"
    CUSTOMER_GROUP = "customer_group"


class UsageLimitType(str, Enum):
    TOTAL = "total"
    PER_CUSTOMER = "per_customer"
    PER_DAY = "per_day"


def parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{field_name} must be one of: {allowed} (got {value!r})") from None


def parse_datetime(value, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"{field_name} must be an ISO date or datetime (got {value!r})") from None


def parse_optional_datetime(value, field_name: str) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return parse_datetime(value, field_name)


def parse_flag(data: Mapping[str, Any], field_name: str, default: bool) -> bool:
    """A JSON boolean; strings such as ``"false"`` are rejected, not coerced."""
    value = data.get(field_name, default)
    if not isinstance(value, bool):
        raise ValueError(f"{field_name} must be true or false (got {value!r})")
    return value


def _check_keys(data: Mapping[str, Any], allowed: set[str], what: str):
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object, got {type(data).__name__}")
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"{what} has unknown keys: {unknown}")


def _within(value: D, lower: D, upper: Optional[D]) -> bool:
    return value >= lower and (upper is None or value <= upper)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dimensions:
    """Package (or bound) dimensions in centimetres."""
    length_cm: D
    width_cm: D
    height_cm: D

    @property
    def volume_cm3(self) -> D:
        return self.length_cm * self.width_cm * self.height_cm

    def fits_within(self, bound: "Dimensions") -> bool:
        return (self.length_cm <= bound.length_cm
                and self.width_cm <= bound.width_cm
                and self.height_cm <= bound.height_cm)

    def at_least(self, bound: "Dimensions") -> bool:
        return (self.length_cm >= bound.length_cm
                and self.width_cm >= bound.width_cm
                and self.height_cm >= bound.height_cm)

    @classmethod
    def parse(cls, text: str) -> "Dimensions":
        """Parse ``"64x38x41"`` (length x width x height)."""
        parts = [p for p in re.split(r"\s*[xX×]\s*", str(text).strip()) if p]
        if len(parts) != 3:
            raise ValueError(f"dimensions must look like LxWxH (got {text!r})")
        length, width, height = (to_decimal(p, "dimension") for p in parts)
        return cls(length, width, height)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Dimensions":
        _check_keys(data, {"length", "width", "height"}, "dimensions")
        return cls(
            to_decimal(data.get("length"), "length"),
            to_decimal(data.get("width"), "width"),
            to_decimal(data.get("height"), "height"),
        )

    def __str__(self) -> str:
        return f"{self.length_cm}x{self.width_cm}x{self.height_cm}"


# ---------------------------------------------------------------------------
# Carriers & zones
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Carrier:
    code: str
    name: str
    supported_zones: tuple[str, ...] = ()
    max_weight_kg: Optional[D] = None
    max_dimensions: Optional[Dimensions] = None
    is_active: bool = True

    def supports_zone(self, zone_code: str) -> bool:
        return zone_code in self.supported_zones

    def can_handle_weight(self, weight_kg: D) -> bool:
        return self.max_weight_kg is None or weight_kg <= self.max_weight_kg

    def can_handle_dimensions(self, dimensions: Optional[Dimensions]) -> bool:
        if self.max_dimensions is None or dimensions is None:
            return True
        return dimensions.fits_within(self.max_dimensions)


@dataclass(frozen=True)
class PricingZone:
    code: str
    name: str
    zone_type: ZoneType
    countries: tuple[str, ...] = ()
    postal_code_patterns: tuple[str, ...] = ()
    is_active: bool = True

    def has_country(self, country_code: str) -> bool:
        return country_code.upper() in self.countries

    def matches_postal_code(self, postal_code: str) -> bool:
        return any(re.match(pattern, postal_code) for pattern in self.postal_code_patterns)


# ---------------------------------------------------------------------------
# Tables & tier rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingRule:
    """One weight (and optionally dimension) bracket of a pricing table."""
    id: int
    table_id: int
    weight_from: D
    calculation_method: CalculationMethod
    price: D
    weight_to: Optional[D] = None
    name: str = ""
    dimensions_from: Optional[Dimensions] = None
    dimensions_to: Optional[Dimensions] = None
    price_per_kg: Optional[D] = None
    weight_step: Optional[D] = None
    min_price: Optional[D] = None
    max_price: Optional[D] = None
    tax_rate_override: Optional[D] = None
    sort_order: int = 0
    is_active: bool = True

    @property
    def has_dimension_bounds(self) -> bool:
        return self.dimensions_from is not None or self.dimensions_to is not None

    def matches_weight(self, weight_kg: D) -> bool:
        return _within(weight_kg, self.weight_from, self.weight_to)

    def matches_dimensions(self, dimensions: Optional[Dimensions]) -> bool:
        if not self.has_dimension_bounds:
            return True
        if dimensions is None:
            return False
        if self.dimensions_from is not None and not dimensions.at_least(self.dimensions_from):
            return False
        if self.dimensions_to is not None and not dimensions.fits_within(self.dimensions_to):
            return False
        return True

    def describe(self) -> str:
        upper = f"{self.weight_to}" if self.weight_to is not None else "∞"
        label = self.name or f"rule {self.id}"
        return f"{label} [{self.weight_from}–{upper} kg, {self.calculation_method.value}]"


@dataclass(frozen=True)
class WeightTier:
    weight_from: D
    price: D
    weight_to: Optional[D] = None

    def matches(self, weight_kg: D) -> bool:
        return _within(weight_kg, self.weight_from, self.weight_to)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WeightTier":
        _check_keys(data, {"weight_from", "weight_to", "price"}, "weight tier")
        if "price" not in data:
            raise ValueError("weight tier needs a price")
        return cls(
            weight_from=to_decimal(data.get("weight_from", 0), "weight_from"),
            weight_to=to_optional_decimal(data.get("weight_to"), "weight_to"),
            price=to_decimal(data["price"], "price"),
        )


@dataclass(frozen=True)
class ValueTier:
    """Declared-value bracket; ``rate`` (a percentage) wins over ``price``."""
    value_from: D
    value_to: Optional[D] = None
    price: Optional[D] = None
    rate: Optional[D] = None

    def matches(self, declared_value: D) -> bool:
        return _within(declared_value, self.value_from, self.value_to)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValueTier":
        _check_keys(data, {"value_from", "value_to", "price", "rate"}, "value tier")
        tier = cls(
            value_from=to_decimal(data.get("value_from", 0), "value_from"),
            value_to=to_optional_decimal(data.get("value_to"), "value_to"),
            price=to_optional_decimal(data.get("price"), "price"),
            rate=to_optional_decimal(data.get("rate"), "rate"),
        )
        if tier.price is None and tier.rate is None:
            raise ValueError("value tier needs a price or a rate")
        return tier


@dataclass(frozen=True)
class AdditionalService:
    """Carrier-level catalog entry for an optional service."""
    carrier_code: str
    code: str
    name: str
    service_type: ServiceKind
    pricing_type: ServicePricingType
    default_price: Optional[D] = None
    min_price: Optional[D] = None
    max_price: Optional[D] = None
    percentage_rate: Optional[D] = None
    supported_zones: Optional[tuple[str, ...]] = None
    is_active: bool = True

    def supports_zone(self, zone_code: str) -> bool:
        return self.supported_zones is None or zone_code in self.supported_zones


@dataclass(frozen=True)
class AdditionalServicePrice:
    """Per-table override of one catalog service."""
    table_id: int
    service_code: str
    price: Optional[D] = None
    percentage_rate: Optional[D] = None
    min_price: Optional[D] = None
    max_price: Optional[D] = None
    weight_tiers: tuple[WeightTier, ...] = ()
    value_tiers: tuple[ValueTier, ...] = ()
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdditionalServicePrice":
        _check_keys(data, {
            "table_id", "service_code", "price", "percentage_rate", "min_price",
            "max_price", "weight_tiers", "value_tiers", "is_active",
        }, "service price")
        for required in ("table_id", "service_code"):
            if data.get(required) in (None, ""):
                raise ValueError(f"service price needs {required}")
        return cls(
            table_id=int(data["table_id"]),
            service_code=str(data["service_code"]).strip(),
            price=to_optional_decimal(data.get("price"), "price"),
            percentage_rate=to_optional_decimal(data.get("percentage_rate"), "percentage_rate"),
            min_price=to_optional_decimal(data.get("min_price"), "min_price"),
            max_price=to_optional_decimal(data.get("max_price"), "max_price"),
            weight_tiers=tuple(WeightTier.from_dict(t) for t in data.get("weight_tiers") or []),
            value_tiers=tuple(ValueTier.from_dict(t) for t in data.get("value_tiers") or []),
            is_active=parse_flag(data, "is_active", True),
        )


@dataclass(frozen=True)
class PricingTable:
    """A versioned, effective-dated rate sheet for (carrier, zone, service type)."""
    id: int
    carrier_code: str
    zone_code: str
    service_type: ServiceLevel
    pricing_model: PricingModel
    currency: str
    effective_from: datetime
    effective_until: Optional[datetime] = None
    version: int = 1
    name: str = ""
    base_price: D = ZERO
    min_weight_kg: D = ZERO
    max_weight_kg: Optional[D] = None
    min_dimensions: Optional[Dimensions] = None
    max_dimensions: Optional[Dimensions] = None
    volumetric_divisor: Optional[D] = None
    tax_rate: Optional[D] = None
    is_active: bool = True
    rules: tuple[PricingRule, ...] = ()
    service_prices: Mapping[str, AdditionalServicePrice] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.carrier_code, self.zone_code, self.service_type.value)

    def is_current(self, as_of: datetime) -> bool:
        return (self.is_active
                and self.effective_from <= as_of
                and (self.effective_until is None or as_of <= self.effective_until))

    def can_handle_weight(self, weight_kg: D) -> bool:
        return _within(weight_kg, self.min_weight_kg, self.max_weight_kg)

    def can_handle_dimensions(self, dimensions: Optional[Dimensions]) -> bool:
        if dimensions is None:
            return True
        if self.min_dimensions is not None and not dimensions.at_least(self.min_dimensions):
            return False
        if self.max_dimensions is not None and not dimensions.fits_within(self.max_dimensions):
            return False
        return True

    def service_price_for(self, service_code: str) -> Optional[AdditionalServicePrice]:
        override = self.service_prices.get(service_code)
        if override is not None and override.is_active:
            return override
        return None


# ---------------------------------------------------------------------------
# Customer contracts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VolumeTier:
    min_shipments: int
    discount_percent: D
    max_shipments: Optional[int] = None

    def matches(self, shipment_count: int) -> bool:
        return shipment_count >= self.min_shipments and (
            self.max_shipments is None or shipment_count <= self.max_shipments
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VolumeTier":
        _check_keys(data, {"min_shipments", "max_shipments", "discount_percent"}, "volume tier")
        max_shipments = data.get("max_shipments")
        return cls(
            min_shipments=int(data.get("min_shipments", 0)),
            max_shipments=int(max_shipments) if max_shipments is not None else None,
            discount_percent=to_decimal(data.get("discount_percent"), "discount_percent"),
        )


@dataclass(frozen=True)
class RuleCondition:
    """Conditions of a custom contract rule; every set field must hold."""
    min_subtotal: Optional[D] = None
    max_subtotal: Optional[D] = None
    min_weight_kg: Optional[D] = None
    max_weight_kg: Optional[D] = None
    carrier_codes: Optional[tuple[str, ...]] = None
    zone_codes: Optional[tuple[str, ...]] = None
    service_types: Optional[tuple[str, ...]] = None
    requires_services: Optional[tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleCondition":
        _check_keys(data, {
            "min_subtotal", "max_subtotal", "min_weight_kg", "max_weight_kg",
            "carrier_codes", "zone_codes", "service_types", "requires_services",
        }, "rule condition")

        def codes(key):
            value = data.get(key)
            return tuple(str(v) for v in value) if value is not None else None

        return cls(
            min_subtotal=to_optional_decimal(data.get("min_subtotal"), "min_subtotal"),
            max_subtotal=to_optional_decimal(data.get("max_subtotal"), "max_subtotal"),
            min_weight_kg=to_optional_decimal(data.get("min_weight_kg"), "min_weight_kg"),
            max_weight_kg=to_optional_decimal(data.get("max_weight_kg"), "max_weight_kg"),
            carrier_codes=codes("carrier_codes"),
            zone_codes=codes("zone_codes"),
            service_types=codes("service_types"),
            requires_services=codes("requires_services"),
        )


@dataclass(frozen=True)
class RuleDiscount:
    type: AmountType
    value: D

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleDiscount":
        _check_keys(data, {"type", "value"}, "rule discount")
        return cls(
            type=parse_enum(AmountType, data.get("type", "percentage"), "discount type"),
            value=to_decimal(data.get("value"), "discount value"),
        )


@dataclass(frozen=True)
class CustomRule:
    condition: RuleCondition
    discount: RuleDiscount
    name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomRule":
        _check_keys(data, {"name", "condition", "discount"}, "custom rule")
        if "discount" not in data:
            raise ValueError("custom rule needs a discount")
        return cls(
            name=str(data.get("name") or ""),
            condition=RuleCondition.from_dict(data.get("condition") or {}),
            discount=RuleDiscount.from_dict(data["discount"]),
        )


@dataclass(frozen=True)
class CustomerPricing:
    """A customer's negotiated contract on top of one base pricing table."""
    id: int
    customer_id: int
    base_table_id: int
    discount_type: DiscountType
    effective_from: datetime
    effective_until: Optional[datetime] = None
    name: str = ""
    base_discount: Optional[D] = None
    fixed_discount: Optional[D] = None
    minimum_order_value: Optional[D] = None
    maximum_order_value: Optional[D] = None
    volume_tiers: tuple[VolumeTier, ...] = ()
    volume_period: VolumePeriod = VolumePeriod.MONTHLY
    custom_rules: tuple[CustomRule, ...] = ()
    service_discounts: Mapping[str, D] = field(default_factory=dict)
    free_shipping_threshold: Optional[D] = None
    tax_rate_override: Optional[D] = None
    currency_override: Optional[str] = None
    is_active: bool = True

    def is_currently_active(self, as_of: datetime) -> bool:
        return (self.is_active
                and self.effective_from <= as_of
                and (self.effective_until is None or as_of <= self.effective_until))

    def qualifies_for_pricing(self, order_value: D) -> bool:
        if self.minimum_order_value is not None and order_value < self.minimum_order_value:
            return False
        if self.maximum_order_value is not None and order_value > self.maximum_order_value:
            return False
        return True

    FIELDS = {
        "id", "customer_id", "base_table_id", "name", "discount_type", "base_discount",
        "fixed_discount", "minimum_order_value", "maximum_order_value", "volume_tiers",
        "volume_period", "custom_rules", "service_discounts", "free_shipping_threshold",
        "tax_rate_override", "currency_override", "effective_from", "effective_until",
        "is_active",
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomerPricing":
        _check_keys(data, cls.FIELDS, "customer pricing")
        for required in ("id", "customer_id", "base_table_id", "discount_type", "effective_from"):
            if data.get(required) in (None, ""):
                raise ValueError(f"customer pricing needs {required}")
        service_discounts = data.get("service_discounts") or {}
        if not isinstance(service_discounts, Mapping):
            raise ValueError(f"service_discounts must be an object (got {service_discounts!r})")
        currency = data.get("currency_override")
        if currency is not None and len(str(currency)) != 3:
            raise ValueError(f"currency_override must be a 3-letter code (got {currency!r})")
        return cls(
            id=int(data["id"]),
            customer_id=int(data["customer_id"]),
            base_table_id=int(data["base_table_id"]),
            name=str(data.get("name") or ""),
            discount_type=parse_enum(DiscountType, data["discount_type"], "discount_type"),
            base_discount=to_optional_decimal(data.get("base_discount"), "base_discount"),
            fixed_discount=to_optional_decimal(data.get("fixed_discount"), "fixed_discount"),
            minimum_order_value=to_optional_decimal(data.get("minimum_order_value"), "minimum_order_value"),
            maximum_order_value=to_optional_decimal(data.get("maximum_order_value"), "maximum_order_value"),
            volume_tiers=tuple(VolumeTier.from_dict(t) for t in data.get("volume_tiers") or []),
            volume_period=parse_enum(VolumePeriod, data.get("volume_period") or "monthly", "volume_period"),
            custom_rules=tuple(CustomRule.from_dict(r) for r in data.get("custom_rules") or []),
            service_discounts={
                str(code): to_decimal(pct, f"service_discounts.{code}")
                for code, pct in service_discounts.items()
            },
            free_shipping_threshold=to_optional_decimal(data.get("free_shipping_threshold"), "free_shipping_threshold"),
            tax_rate_override=to_optional_decimal(data.get("tax_rate_override"), "tax_rate_override"),
            currency_override=str(currency).upper() if currency else None,
            effective_from=parse_datetime(data["effective_from"], "effective_from"),
            effective_until=parse_optional_datetime(data.get("effective_until"), "effective_until"),
            is_active=parse_flag(data, "is_active", True),
        )

    def to_dict(self) -> dict:
        """JSON-ready representation, the inverse of ``from_dict``."""
        def num(value):
            return str(value) if value is not None else None

        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "base_table_id": self.base_table_id,
            "name": self.name,
            "discount_type": self.discount_type.value,
            "base_discount": num(self.base_discount),
            "fixed_discount": num(self.fixed_discount),
            "minimum_order_value": num(self.minimum_order_value),
            "maximum_order_value": num(self.maximum_order_value),
            "volume_tiers": [
                {"min_shipments": t.min_shipments, "max_shipments": t.max_shipments,
                 "discount_percent": str(t.discount_percent)}
                for t in self.volume_tiers
            ],
            "volume_period": self.volume_period.value,
            "custom_rules": [_custom_rule_to_dict(r) for r in self.custom_rules],
            "service_discounts": {code: str(pct) for code, pct in self.service_discounts.items()},
            "free_shipping_threshold": num(self.free_shipping_threshold),
            "tax_rate_override": num(self.tax_rate_override),
            "currency_override": self.currency_override,
            "effective_from": self.effective_from.isoformat(),
            "effective_until": self.effective_until.isoformat() if self.effective_until else None,
            "is_active": self.is_active,
        }


def _custom_rule_to_dict(rule: CustomRule) -> dict:
    condition = {}
    for key, value in vars(rule.condition).items():
        if value is None:
            continue
        condition[key] = list(value) if isinstance(value, tuple) else str(value)
    return {
        "name": rule.name,
        "condition": condition,
        "discount": {"type": rule.discount.type.value, "value": str(rule.discount.value)},
    }


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BuyXGetYConfig:
    buy_quantity: int = 1
    get_quantity: int = 1
    discount_percent: D = D("100")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BuyXGetYConfig":
        _check_keys(data, {"buy_quantity", "get_quantity", "discount_percent"}, "buy_x_get_y config")
        config = cls(
            buy_quantity=int(data.get("buy_quantity", 1)),
            get_quantity=int(data.get("get_quantity", 1)),
            discount_percent=to_decimal(data.get("discount_percent", 100), "discount_percent"),
        )
        if config.buy_quantity < 1:
            raise ValueError("buy_quantity must be at least 1")
        return config


@dataclass(frozen=True)
class PromotionTier:
    min_value: D
    value: D
    max_value: Optional[D] = None
    type: AmountType = AmountType.PERCENTAGE

    def matches(self, order_value: D) -> bool:
        return _within(order_value, self.min_value, self.max_value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromotionTier":
        _check_keys(data, {"min_value", "max_value", "type", "value"}, "promotion tier")
        return cls(
            min_value=to_decimal(data.get("min_value", 0), "min_value"),
            max_value=to_optional_decimal(data.get("max_value"), "max_value"),
            type=parse_enum(AmountType, data.get("type", "percentage"), "tier type"),
            value=to_decimal(data.get("value", 0), "tier value"),
        )


@dataclass
class PromotionalPricing:
    """
    A time-boxed discount campaign.

    Mutable on purpose: ``usage_count`` is the one field a committed
    redemption changes (see ``increment_usage``).
    """
    id: int
    name: str
    discount_type: PromotionDiscountType
    valid_from: datetime
    valid_until: Optional[datetime] = None
    discount_value: D = ZERO
    pricing_table_id: Optional[int] = None
    customer_pricing_id: Optional[int] = None
    promo_code: Optional[str] = None
    minimum_order_value: Optional[D] = None
    maximum_discount_amount: Optional[D] = None
    target_type: TargetType = TargetType.ALL
    target_values: Optional[tuple[str, ...]] = None
    usage_limit: Optional[int] = None
    usage_limit_type: UsageLimitType = UsageLimitType.TOTAL
    usage_count: int = 0
    priority: int = 1
    stackable: bool = False
    is_active: bool = True
    buy_x_get_y: Optional[BuyXGetYConfig] = None
    tiers: tuple[PromotionTier, ...] = ()

    @property
    def is_global(self) -> bool:
        return self.pricing_table_id is None and self.customer_pricing_id is None

    def is_within_window(self, as_of: datetime) -> bool:
        return self.valid_from <= as_of and (self.valid_until is None or as_of <= self.valid_until)

    def has_usage_left(self, used: Optional[int] = None) -> bool:
        """``used`` is the caller's counter for per-customer/per-day limits."""
        if self.usage_limit is None:
            return True
        if self.usage_limit_type == UsageLimitType.TOTAL or used is None:
            used = self.usage_count if self.usage_limit_type == UsageLimitType.TOTAL else 0
        return used < self.usage_limit

    def is_currently_valid(self, as_of: datetime, used: Optional[int] = None) -> bool:
        return self.is_active and self.is_within_window(as_of) and self.has_usage_left(used)

    def qualifies_order(self, order_value: D) -> bool:
        return self.minimum_order_value is None or order_value >= self.minimum_order_value

    def matches_target(self, context: Mapping[TargetType, set[str]]) -> bool:
        """``context`` maps every target type to the shipment's values for it."""
        if self.target_type == TargetType.ALL:
            return True
        if self.target_values is None:
            return True
        return bool(context.get(self.target_type, set()) & set(self.target_values))

    def accepts_code(self, promo_code: Optional[str]) -> bool:
        return self.promo_code is None or self.promo_code == promo_code

    def increment_usage(self) -> None:
        self.usage_count += 1

    FIELDS = {
        "id", "name", "pricing_table_id", "customer_pricing_id", "promo_code",
        "discount_type", "discount_value", "minimum_order_value", "maximum_discount_amount",
        "target_type", "target_values", "valid_from", "valid_until", "usage_limit",
        "usage_limit_type", "usage_count", "priority", "stackable", "is_active", "config",
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromotionalPricing":
        _check_keys(data, cls.FIELDS, "promotion")
        for required in ("id", "name", "discount_type", "valid_from"):
            if data.get(required) in (None, ""):
                raise ValueError(f"promotion needs {required}")
        discount_type = parse_enum(PromotionDiscountType, data["discount_type"], "discount_type")
        config = data.get("config") or {}
        _check_keys(config, {"buy_x_get_y", "tiers"}, "promotion config")
        buy_x_get_y = None
        if discount_type == PromotionDiscountType.BUY_X_GET_Y:
            buy_x_get_y = BuyXGetYConfig.from_dict(config.get("buy_x_get_y") or {})
        tiers = tuple(PromotionTier.from_dict(t) for t in config.get("tiers") or [])
        if discount_type == PromotionDiscountType.TIER_DISCOUNT and not tiers:
            raise ValueError("tier_discount promotion needs config.tiers")

        usage_limit = data.get("usage_limit")
        usage_count = int(data.get("usage_count") or 0)
        limit_type = parse_enum(UsageLimitType, data.get("usage_limit_type") or "total", "usage_limit_type")
        if usage_limit is not None and limit_type == UsageLimitType.TOTAL and usage_count > int(usage_limit):
            raise ValueError(f"usage_count {usage_count} exceeds usage_limit {usage_limit}")
        target_values = data.get("target_values")
        code = data.get("promo_code")
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            pricing_table_id=int(data["pricing_table_id"]) if data.get("pricing_table_id") is not None else None,
            customer_pricing_id=int(data["customer_pricing_id"]) if data.get("customer_pricing_id") is not None else None,
            promo_code=str(code) if code else None,
            discount_type=discount_type,
            discount_value=to_decimal(data.get("discount_value", 0), "discount_value"),
            minimum_order_value=to_optional_decimal(data.get("minimum_order_value"), "minimum_order_value"),
            maximum_discount_amount=to_optional_decimal(data.get("maximum_discount_amount"), "maximum_discount_amount"),
            target_type=parse_enum(TargetType, data.get("target_type") or "all", "target_type"),
            target_values=tuple(str(v) for v in target_values) if target_values is not None else None,
            valid_from=parse_datetime(data["valid_from"], "valid_from"),
            valid_until=parse_optional_datetime(data.get("valid_until"), "valid_until"),
            usage_limit=int(usage_limit) if usage_limit is not None else None,
            usage_limit_type=limit_type,
            usage_count=usage_count,
            priority=int(data.get("priority", 1)),
            stackable=parse_flag(data, "stackable", False),
            is_active=parse_flag(data, "is_active", True),
            buy_x_get_y=buy_x_get_y,
            tiers=tiers,
        )


__all__ = [
    "AdditionalService", "AdditionalServicePrice", "AmountType", "BuyXGetYConfig",
    "CalculationMethod", "Carrier", "CustomRule", "CustomerPricing",
    "Dimensions", "DiscountType", "PricingModel", "PricingRule", "PricingTable",
    "PricingZone", "PromotionDiscountType", "PromotionTier", "PromotionalPricing",
    "RuleCondition", "RuleDiscount", "ServiceKind", "ServiceLevel", "ServicePricingType",
    "TargetType", "UsageLimitType", "ValueTier", "VolumePeriod", "VolumeTier",
    "WeightTier", "ZoneType", "parse_datetime", "parse_enum", "parse_optional_datetime",
]
