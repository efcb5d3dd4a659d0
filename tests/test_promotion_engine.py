from datetime import datetime
from decimal import Decimal as D

import pytest

from rate_engine.engine.entities import (
    AmountType, BuyXGetYConfig, PromotionDiscountType, PromotionTier, TargetType, UsageLimitType,
)
from rate_engine.engine.errors import PromotionUsageLimitError
from rate_engine.engine.models import UsageCounters
from rate_engine.policy.promotion_engine import PromotionContext, PromotionEngine

from conftest import AS_OF, make_promotion


def context(subtotal="40.00", shipping="30.00", **kwargs):
    kwargs.setdefault("carrier_code", "INPOST")
    kwargs.setdefault("zone_code", "DOMESTIC")
    kwargs.setdefault("service_type", "standard")
    kwargs.setdefault("as_of", AS_OF)
    kwargs.setdefault("table_id", 1)
    return PromotionContext(subtotal=D(subtotal), shipping_amount=D(shipping), **kwargs)


@pytest.fixture
def promotions():
    return PromotionEngine()


class TestDiscountTypes:

    def test_percentage(self, promotions):
        result = promotions.compute([make_promotion(1, discount_value="10")], context())
        assert result.total == D("4.00")
        assert result.promotion_ids == [1]

    def test_fixed_amount_capped_at_subtotal(self, promotions):
        promo = make_promotion(1, PromotionDiscountType.FIXED_AMOUNT, "50.00")
        assert promotions.compute([promo], context()).total == D("40.00")

    def test_free_shipping_is_the_shipping_amount(self, promotions):
        promo = make_promotion(1, PromotionDiscountType.FREE_SHIPPING, "0")
        assert promotions.compute([promo], context()).total == D("30.00")

    def test_buy_x_get_y(self, promotions):
        promo = make_promotion(1, PromotionDiscountType.BUY_X_GET_Y, "0",
                               buy_x_get_y=BuyXGetYConfig(buy_quantity=2, get_quantity=1))
        assert promotions.compute([promo], context(subtotal="30.00", package_count=3)).total == D("10.00")
        half = make_promotion(2, PromotionDiscountType.BUY_X_GET_Y, "0",
                              buy_x_get_y=BuyXGetYConfig(2, 1, D("50")))
        assert promotions.compute([half], context(subtotal="40.00", package_count=4)).total == D("10.00")

    def test_buy_x_get_y_single_package_gets_nothing(self, promotions):
        promo = make_promotion(1, PromotionDiscountType.BUY_X_GET_Y, "0",
                               buy_x_get_y=BuyXGetYConfig(buy_quantity=2, get_quantity=1))
        result = promotions.compute([promo], context(package_count=1))
        assert result.total == 0
        assert result.applied == []

    def test_tier_discount(self, promotions):
        tiers = (
            PromotionTier(D("0"), D("5"), D("50")),
            PromotionTier(D("50"), D("10"), D("100")),
            PromotionTier(D("100"), D("25.00"), type=AmountType.FIXED),
        )
        promo = make_promotion(1, PromotionDiscountType.TIER_DISCOUNT, "0", tiers=tiers)
        assert promotions.compute([promo], context(subtotal="40.00")).total == D("2.00")
        assert promotions.compute([promo], context(subtotal="80.00")).total == D("8.00")
        assert promotions.compute([promo], context(subtotal="150.00")).total == D("25.00")

    def test_maximum_discount_amount(self, promotions):
        promo = make_promotion(1, discount_value="50", maximum_discount_amount=D("5.00"))
        assert promotions.compute([promo], context()).total == D("5.00")


class TestEligibility:

    def test_window_and_active_flag(self, promotions):
        promos = [
            make_promotion(1, valid_until=datetime(2026, 6, 30)),
            make_promotion(2, valid_from=datetime(2026, 8, 1)),
            make_promotion(3, is_active=False),
        ]
        assert promotions.compute(promos, context()).applied == []

    def test_total_usage_limit(self, promotions):
        exhausted = make_promotion(1, usage_limit=10, usage_count=10)
        assert promotions.compute([exhausted], context()).applied == []

    def test_per_customer_limit_uses_counters(self, promotions):
        promo = make_promotion(1, usage_limit=1, usage_limit_type=UsageLimitType.PER_CUSTOMER)
        usage = UsageCounters()
        ctx = context(customer_id=1001)
        assert promotions.compute([promo], ctx, usage).promotion_ids == [1]
        usage.record(1, 1001, AS_OF.date())
        assert promotions.compute([promo], ctx, usage).applied == []
        # another customer is unaffected
        assert promotions.compute([promo], context(customer_id=1002), usage).promotion_ids == [1]

    def test_per_day_limit(self, promotions):
        promo = make_promotion(1, usage_limit=2, usage_limit_type=UsageLimitType.PER_DAY)
        usage = UsageCounters(per_day={(1, AS_OF.date()): 2})
        assert promotions.compute([promo], context(), usage).applied == []
        tomorrow = context(as_of=datetime(2026, 7, 16, 9, 0))
        assert promotions.compute([promo], tomorrow, usage).promotion_ids == [1]

    @pytest.mark.parametrize("target_type,values,matches", [
        (TargetType.CARRIER, ("INPOST",), True),
        (TargetType.CARRIER, ("DHL",), False),
        (TargetType.ZONE, ("EU_WEST",), False),
        (TargetType.SERVICE_TYPE, ("standard", "express"), True),
        (TargetType.CUSTOMER, ("1001",), True),
        (TargetType.CUSTOMER_GROUP, ("vip",), False),
    ])
    def test_targeting(self, promotions, target_type, values, matches):
        promo = make_promotion(1, target_type=target_type, target_values=values)
        result = promotions.compute([promo], context(customer_id=1001, customer_groups=frozenset({"loyalty"})))
        assert bool(result.applied) is matches

    def test_minimum_order_value(self, promotions):
        promo = make_promotion(1, minimum_order_value=D("50.00"))
        assert promotions.compute([promo], context(subtotal="40.00")).applied == []
        assert promotions.compute([promo], context(subtotal="50.00")).promotion_ids == [1]

    def test_promo_code_gate(self, promotions):
        promo = make_promotion(1, promo_code="SUMMER10")
        assert promotions.compute([promo], context()).applied == []
        assert promotions.compute([promo], context(promo_code="WINTER")).applied == []
        assert promotions.compute([promo], context(promo_code="SUMMER10")).promotion_ids == [1]

    def test_scoped_promotions(self, promotions):
        promos = [
            make_promotion(1, pricing_table_id=1, stackable=True),
            make_promotion(2, pricing_table_id=2, stackable=True),
            make_promotion(3, customer_pricing_id=7, stackable=True),
            make_promotion(4, stackable=True),
        ]
        assert promotions.compute(promos, context()).promotion_ids == [1, 4]
        assert promotions.compute(promos, context(customer_pricing_id=7)).promotion_ids == [1, 3, 4]


class TestStacking:

    def test_non_stackable_excludes_the_rest(self, promotions):
        promos = [
            make_promotion(1, discount_value="5", stackable=True, priority=9),
            make_promotion(2, discount_value="10", stackable=False, priority=3),
        ]
        result = promotions.compute(promos, context())
        assert result.promotion_ids == [2]
        assert result.total == D("4.00")

    def test_highest_priority_non_stackable_wins_ties_to_lowest_id(self, promotions):
        promos = [
            make_promotion(3, discount_value="20", priority=5),
            make_promotion(2, discount_value="10", priority=5),
            make_promotion(1, discount_value="30", priority=1),
        ]
        assert promotions.compute(promos, context()).promotion_ids == [2]

    def test_all_stackable_apply_and_sum(self, promotions):
        promos = [
            make_promotion(1, discount_value="5", stackable=True),
            make_promotion(2, PromotionDiscountType.FIXED_AMOUNT, "3.00", stackable=True, priority=2),
        ]
        result = promotions.compute(promos, context())
        assert result.promotion_ids == [2, 1]
        assert result.total == D("5.00")

    def test_stacked_total_clamped_to_subtotal(self, promotions):
        promos = [
            make_promotion(1, PromotionDiscountType.FIXED_AMOUNT, "30.00", stackable=True),
            make_promotion(2, PromotionDiscountType.FIXED_AMOUNT, "30.00", stackable=True),
            make_promotion(3, PromotionDiscountType.FIXED_AMOUNT, "5.00", stackable=True),
        ]
        result = promotions.compute(promos, context())
        assert result.total == D("40.00")
        # later promotions absorb the cap
        assert [(a.promotion_id, a.amount) for a in result.applied] == [(1, D("30.00")), (2, D("10.00"))]
        assert sum(a.amount for a in result.applied) == result.total
        assert "Promo 3 skipped, order already fully discounted" in result.traces

    def test_compute_does_not_touch_usage(self, promotions):
        promo = make_promotion(1, usage_limit=5)
        promotions.compute([promo], context())
        assert promo.usage_count == 0


class TestCommit:

    def test_increments_counters(self, promotions):
        promo = make_promotion(1, usage_limit=5, usage_count=2)
        usage = UsageCounters()
        assert promotions.commit({1: promo}, [1, 1], 1001, AS_OF, usage) == [1]
        assert promo.usage_count == 3
        assert usage.customer_uses(1, 1001) == 1
        assert usage.day_uses(1, AS_OF.date()) == 1

    def test_limit_reached_at_commit_moves_nothing(self, promotions):
        open_promo = make_promotion(1, usage_limit=5)
        full_promo = make_promotion(2, usage_limit=1, usage_count=1)
        with pytest.raises(PromotionUsageLimitError) as exc:
            promotions.commit({1: open_promo, 2: full_promo}, [1, 2], 1001, AS_OF)
        assert exc.value.meta == {"promotion_id": 2, "usage_limit": 1}
        assert open_promo.usage_count == 0
