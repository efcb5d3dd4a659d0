from datetime import datetime
from decimal import Decimal as D

import pytest

from rate_engine.engine.entities import (
    AmountType, CustomRule, CustomerPricing, DiscountType, RuleCondition, RuleDiscount, VolumePeriod, VolumeTier,
)
from rate_engine.engine.models import VolumeStats
from rate_engine.policy.custom_rules import CustomRuleEvaluator, RuleContext
from rate_engine.policy.customer_discount import CustomerDiscountEngine

from conftest import AS_OF, T0


def contract(discount_type=DiscountType.PERCENTAGE, **kwargs):
    kwargs.setdefault("effective_from", T0)
    return CustomerPricing(id=1, customer_id=1001, base_table_id=1, discount_type=discount_type, **kwargs)


def rule_ctx(subtotal="24.00", weight="7", services=()):
    return RuleContext(subtotal=D(subtotal), weight_kg=D(weight), carrier_code="INPOST",
                       zone_code="DOMESTIC", service_type="standard", services=frozenset(services))


@pytest.fixture
def discounts():
    return CustomerDiscountEngine()


def compute(discounts, c, ctx=None, base="24.00", service_prices=None, **kwargs):
    return discounts.compute(c, ctx or rule_ctx(), D(base), service_prices or {}, AS_OF, **kwargs)


def test_percentage_discount(discounts):
    result = compute(discounts, contract(base_discount=D("10"), minimum_order_value=D("20.00")))
    assert result.amount == D("2.40")
    assert result.applied
    assert result.customer_pricing_id == 1


def test_no_contract_is_zero(discounts):
    result = compute(discounts, None)
    assert result.amount == 0
    assert not result.applied


def test_below_minimum_order_is_zero_not_error(discounts):
    result = compute(discounts, contract(base_discount=D("10"), minimum_order_value=D("30.00")))
    assert result.amount == 0
    assert not result.applied


def test_above_maximum_order_is_zero(discounts):
    assert compute(discounts, contract(base_discount=D("10"), maximum_order_value=D("20.00"))).amount == 0


@pytest.mark.parametrize("kwargs", [
    {"is_active": False},
    {"effective_until": datetime(2026, 6, 30)},
    {"effective_from": datetime(2026, 8, 1)},
])
def test_inactive_or_out_of_window_contract(discounts, kwargs):
    assert compute(discounts, contract(base_discount=D("10"), **kwargs)).amount == 0


def test_fixed_discount_capped_at_subtotal(discounts):
    assert compute(discounts, contract(DiscountType.FIXED, fixed_discount=D("5.00"))).amount == D("5.00")
    assert compute(discounts, contract(DiscountType.FIXED, fixed_discount=D("50.00"))).amount == D("24.00")


class TestVolume:

    @pytest.fixture
    def volume_contract(self):
        return contract(
            DiscountType.VOLUME,
            volume_period=VolumePeriod.MONTHLY,
            volume_tiers=(
                VolumeTier(100, D("5"), 499),
                VolumeTier(500, D("8"), 999),
                VolumeTier(1000, D("12")),
            ),
        )

    def test_highest_reached_tier(self, discounts, volume_contract):
        stats = VolumeStats(VolumePeriod.MONTHLY, 600)
        assert compute(discounts, volume_contract, volume_stats=stats).amount == D("1.92")

        stats = VolumeStats(VolumePeriod.MONTHLY, 5000)
        assert compute(discounts, volume_contract, volume_stats=stats).amount == D("2.88")

    def test_below_first_tier(self, discounts, volume_contract):
        assert compute(discounts, volume_contract, volume_stats=VolumeStats(VolumePeriod.MONTHLY, 50)).amount == 0

    def test_missing_or_mismatched_stats(self, discounts, volume_contract):
        assert compute(discounts, volume_contract).amount == 0
        stats = VolumeStats(VolumePeriod.YEARLY, 5000)
        assert compute(discounts, volume_contract, volume_stats=stats).amount == 0


class TestCustomRules:

    @pytest.fixture
    def rules_contract(self):
        return contract(
            DiscountType.CUSTOM_RULES,
            custom_rules=(
                CustomRule(RuleCondition(min_weight_kg=D("10")), RuleDiscount(AmountType.PERCENTAGE, D("15")),
                           name="Heavy parcels"),
                CustomRule(RuleCondition(requires_services=("COD",)), RuleDiscount(AmountType.FIXED, D("2.00")),
                           name="COD orders"),
            ),
        )

    def test_first_matching_rule_wins(self, discounts, rules_contract):
        result = compute(discounts, rules_contract, rule_ctx(weight="12", services=["COD"]))
        assert result.amount == D("3.60")
        assert any("Heavy parcels" in t for t in result.traces)

    def test_later_rule_when_earlier_fails(self, discounts, rules_contract):
        assert compute(discounts, rules_contract, rule_ctx(weight="3", services=["COD"])).amount == D("2.00")

    def test_no_rule_matches(self, discounts, rules_contract):
        assert compute(discounts, rules_contract, rule_ctx(weight="3")).amount == 0

    def test_condition_fields(self):
        evaluator = CustomRuleEvaluator()
        condition = RuleCondition(carrier_codes=("DHL",))
        assert evaluator.match_condition(condition, rule_ctx()) is None
        condition = RuleCondition(zone_codes=("DOMESTIC",), service_types=("standard",), max_subtotal=D("30"))
        assert evaluator.match_condition(condition, rule_ctx()) == [
            "subtotal<=30", "zone=DOMESTIC", "service_type=standard",
        ]
        assert evaluator.match_condition(RuleCondition(), rule_ctx()) == []


def test_service_discounts_reduce_service_lines(discounts):
    c = contract(base_discount=D("10"), service_discounts={"COD": D("50")})
    result = compute(discounts, c, base="21.00", service_prices={"COD": D("3.00")})
    assert result.amount == D("2.40") + D("1.50")


def test_free_shipping_threshold_raises_discount_to_base_price(discounts):
    c = contract(base_discount=D("10"), free_shipping_threshold=D("20.00"))
    assert compute(discounts, c, base="12.50").amount == D("12.50")
    # threshold not reached
    assert compute(discounts, c, rule_ctx(subtotal="15.00"), base="12.50").amount == D("1.50")


def test_total_is_capped_at_subtotal(discounts):
    c = contract(base_discount=D("100"), service_discounts={"COD": D("50")})
    assert compute(discounts, c, service_prices={"COD": D("3.00")}).amount == D("24.00")
