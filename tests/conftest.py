import os
import sys
from datetime import datetime
from decimal import Decimal as D

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from rate_engine.config.settings import SAMPLE_DATA_DIR, Settings
from rate_engine.engine import PricingEngine, RateSnapshot, Shipment
from rate_engine.engine.entities import (
    AdditionalService, Carrier, CustomerPricing, Dimensions, DiscountType, PricingModel,
    PricingRule, PricingTable, PricingZone, PromotionalPricing, PromotionDiscountType,
    CalculationMethod, ServiceKind, ServiceLevel, ServicePricingType, TargetType, ZoneType,
)

T0 = datetime(2026, 1, 1)
AS_OF = datetime(2026, 7, 15, 12, 0)


def make_rule(id=1, table_id=1, weight_from="0", weight_to=None, method=CalculationMethod.FIXED,
              price="12.50", **kwargs) -> PricingRule:
    for key in ("price_per_kg", "weight_step", "min_price", "max_price", "tax_rate_override"):
        if kwargs.get(key) is not None:
            kwargs[key] = D(kwargs[key])
    return PricingRule(
        id=id,
        table_id=table_id,
        weight_from=D(weight_from),
        weight_to=D(weight_to) if weight_to is not None else None,
        calculation_method=method,
        price=D(price),
        **kwargs,
    )


def make_table(id=1, carrier_code="INPOST", zone_code="DOMESTIC", service_type=ServiceLevel.STANDARD,
               pricing_model=PricingModel.WEIGHT, rules=(), **kwargs) -> PricingTable:
    kwargs.setdefault("currency", "PLN")
    kwargs.setdefault("effective_from", T0)
    kwargs.setdefault("tax_rate", D("23"))
    return PricingTable(
        id=id,
        carrier_code=carrier_code,
        zone_code=zone_code,
        service_type=service_type,
        pricing_model=pricing_model,
        rules=tuple(rules),
        **kwargs,
    )


def make_service(code, pricing_type, carrier_code="INPOST", kind=ServiceKind.SMS, **kwargs) -> AdditionalService:
    for key in ("default_price", "min_price", "max_price", "percentage_rate"):
        if kwargs.get(key) is not None:
            kwargs[key] = D(kwargs[key])
    return AdditionalService(
        carrier_code=carrier_code,
        code=code,
        name=kwargs.pop("name", code.title()),
        service_type=kind,
        pricing_type=pricing_type,
        **kwargs,
    )


def make_promotion(id, discount_type=PromotionDiscountType.PERCENTAGE, discount_value="10", **kwargs) -> PromotionalPricing:
    kwargs.setdefault("name", f"Promo {id}")
    kwargs.setdefault("valid_from", T0)
    return PromotionalPricing(
        id=id,
        discount_type=discount_type,
        discount_value=D(discount_value),
        **kwargs,
    )


def shipment(weight="3", carrier_code="INPOST", zone_code="DOMESTIC",
             service_type=ServiceLevel.STANDARD, **kwargs) -> Shipment:
    return Shipment(
        carrier_code=carrier_code,
        zone_code=zone_code,
        service_type=service_type,
        weight_kg=D(weight),
        **kwargs,
    )


def build_snapshot() -> RateSnapshot:
    """INPOST and DHL serving Poland; SUMMER10 and a loyalty promotion."""
    inpost_table = make_table(
        id=1, name="InPost standard", base_price=D("10.00"), max_weight_kg=D("25"),
        rules=[
            make_rule(id=1, table_id=1, weight_from="0", weight_to="5", price="12.50", sort_order=1),
            make_rule(id=2, table_id=1, weight_from="0", weight_to="25", method=CalculationMethod.PER_KG,
                      price="10.00", price_per_kg="2.00", sort_order=2),
        ],
    )
    dhl_table = make_table(
        id=2, carrier_code="DHL", name="DHL parcel",
        rules=[make_rule(id=3, table_id=2, weight_to="70", method=CalculationMethod.PER_KG,
                         price="15.00", price_per_kg="1.00")],
    )
    return RateSnapshot.build(
        carriers=[
            Carrier("INPOST", "InPost", ("DOMESTIC",), D("25"), Dimensions(D("64"), D("38"), D("41"))),
            Carrier("DHL", "DHL Express", ("DOMESTIC", "EU_WEST"), D("70")),
        ],
        zones=[
            PricingZone("DOMESTIC", "Poland", ZoneType.NATIONAL, ("PL",)),
            PricingZone("EU_WEST", "Western Europe", ZoneType.INTERNATIONAL, ("DE", "FR")),
        ],
        tables=[inpost_table, dhl_table],
        services=[
            make_service("COD", ServicePricingType.PERCENTAGE, kind=ServiceKind.COD,
                         default_price="3.00", min_price="3.00", max_price="50.00", percentage_rate="1.5"),
            make_service("SMS", ServicePricingType.FIXED, default_price="0.50"),
            make_service("SATURDAY", ServicePricingType.FIXED, kind=ServiceKind.SATURDAY,
                         default_price="15.00", supported_zones=("EU_WEST",)),
            make_service("SMS", ServicePricingType.FIXED, carrier_code="DHL", default_price="1.00"),
        ],
        customer_pricing=[
            CustomerPricing(
                id=1, customer_id=1001, base_table_id=1, name="Kwiaciarnia", effective_from=T0,
                discount_type=DiscountType.PERCENTAGE, base_discount=D("10"),
                minimum_order_value=D("20.00"),
            ),
            CustomerPricing(
                id=2, customer_id=2002, base_table_id=1, name="Export desk", effective_from=T0,
                discount_type=DiscountType.PERCENTAGE, base_discount=D("0"),
                tax_rate_override=D("8"), currency_override="EUR",
            ),
        ],
        promotions=[
            make_promotion(1, name="Summer sale", promo_code="SUMMER10", priority=5, stackable=False,
                           valid_from=datetime(2026, 6, 1), valid_until=datetime(2026, 8, 31, 23, 59)),
            make_promotion(2, name="Loyalty bonus", discount_value="5", stackable=True,
                           target_type=TargetType.CUSTOMER_GROUP, target_values=("loyalty",)),
        ],
    )


@pytest.fixture
def snapshot():
    return build_snapshot()


@pytest.fixture
def settings(tmp_path):
    return Settings(project_root=tmp_path, data_dir=SAMPLE_DATA_DIR, audit_log=tmp_path / "audit.jsonl")


@pytest.fixture
def engine(settings, snapshot):
    return PricingEngine(settings, snapshot=snapshot)
