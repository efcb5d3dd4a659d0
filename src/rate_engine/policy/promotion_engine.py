"""
Promotion Engine - Selects eligible promotions and computes their discount.

``compute`` is a pure price check and never touches usage counters;
``commit`` records a redemption once the caller has accepted the quote.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from ..engine.entities import (
    AmountType, PromotionDiscountType, PromotionalPricing, TargetType, UsageLimitType,
)
from ..engine.errors import PromotionUsageLimitError
from ..engine.models import UsageCounters
from ..engine.money import D, ZERO, percent_of, q4

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionContext:
    """Everything a promotion may be gated or computed on."""
    carrier_code: str
    zone_code: str
    service_type: str
    subtotal: D
    shipping_amount: D
    as_of: datetime
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    customer_pricing_id: Optional[int] = None
    customer_groups: frozenset[str] = frozenset()
    package_count: int = 1
    promo_code: Optional[str] = None

    def target_values(self) -> dict[TargetType, set[str]]:
        return {
            TargetType.CARRIER: {self.carrier_code},
            TargetType.ZONE: {self.zone_code},
            TargetType.SERVICE_TYPE: {self.service_type},
            TargetType.CUSTOMER: {str(self.customer_id)} if self.customer_id is not None else set(),
            TargetType.CUSTOMER_GROUP: set(self.customer_groups),
        }


@dataclass
class AppliedPromotion:
    promotion_id: int
    name: str
    amount: D


@dataclass
class PromotionResult:
    applied: list[AppliedPromotion] = field(default_factory=list)
    total: D = ZERO
    traces: list[str] = field(default_factory=list)

    @property
    def promotion_ids(self) -> list[int]:
        return [a.promotion_id for a in self.applied]


def _percentage(promo: PromotionalPricing, ctx: PromotionContext) -> D:
    return percent_of(ctx.subtotal, promo.discount_value)


def _fixed_amount(promo: PromotionalPricing, ctx: PromotionContext) -> D:
    return min(promo.discount_value, ctx.subtotal)


def _free_shipping(promo: PromotionalPricing, ctx: PromotionContext) -> D:
    return min(ctx.shipping_amount, ctx.subtotal)


def _buy_x_get_y(promo: PromotionalPricing, ctx: PromotionContext) -> D:
    config = promo.buy_x_get_y
    quantity = ctx.package_count
    if config is None or quantity <= 0:
        return ZERO
    free_units = min((quantity // config.buy_quantity) * config.get_quantity, quantity)
    unit_price = ctx.subtotal / quantity
    return percent_of(unit_price * free_units, config.discount_percent)


def _tier_discount(promo: PromotionalPricing, ctx: PromotionContext) -> D:
    for tier in promo.tiers:
        if tier.matches(ctx.subtotal):
            if tier.type == AmountType.PERCENTAGE:
                return percent_of(ctx.subtotal, tier.value)
            return min(tier.value, ctx.subtotal)
    return ZERO


DISCOUNT_TYPES: dict[PromotionDiscountType, Callable[[PromotionalPricing, PromotionContext], D]] = {
    PromotionDiscountType.PERCENTAGE: _percentage,
    PromotionDiscountType.FIXED_AMOUNT: _fixed_amount,
    PromotionDiscountType.FREE_SHIPPING: _free_shipping,
    PromotionDiscountType.BUY_X_GET_Y: _buy_x_get_y,
    PromotionDiscountType.TIER_DISCOUNT: _tier_discount,
}


class PromotionEngine:

    def __init__(self, discount_types: Optional[dict] = None):
        self.discount_types = discount_types or DISCOUNT_TYPES

    @staticmethod
    def candidates(
        promotions: Iterable[PromotionalPricing],
        table_id: Optional[int],
        customer_pricing_id: Optional[int],
    ) -> list[PromotionalPricing]:
        """Global promotions plus those scoped to this table or this contract."""
        found = []
        for promo in promotions:
            if promo.is_global:
                found.append(promo)
            elif table_id is not None and promo.pricing_table_id == table_id:
                found.append(promo)
            elif customer_pricing_id is not None and promo.customer_pricing_id == customer_pricing_id:
                found.append(promo)
        return found

    @staticmethod
    def usage_for(promo: PromotionalPricing, ctx: PromotionContext, usage: Optional[UsageCounters]) -> Optional[int]:
        if usage is None or promo.usage_limit_type == UsageLimitType.TOTAL:
            return None
        if promo.usage_limit_type == UsageLimitType.PER_CUSTOMER:
            return usage.customer_uses(promo.id, ctx.customer_id)
        return usage.day_uses(promo.id, ctx.as_of.date())

    def eligible(
        self,
        candidates: Iterable[PromotionalPricing],
        ctx: PromotionContext,
        usage: Optional[UsageCounters] = None,
    ) -> tuple[list[PromotionalPricing], list[str]]:
        keep, traces = [], []
        target_values = ctx.target_values()
        for promo in candidates:
            if not promo.is_currently_valid(ctx.as_of, self.usage_for(promo, ctx, usage)):
                traces.append(f"Promotion {promo.id} not valid now or out of uses")
                continue
            if not promo.matches_target(target_values):
                traces.append(f"Promotion {promo.id} targets another {promo.target_type.value}")
                continue
            if not promo.qualifies_order(ctx.subtotal):
                traces.append(f"Promotion {promo.id} needs order value {promo.minimum_order_value}")
                continue
            if not promo.accepts_code(ctx.promo_code):
                traces.append(f"Promotion {promo.id} requires a promo code")
                continue
            keep.append(promo)
        return keep, traces

    @staticmethod
    def select(eligible: list[PromotionalPricing]) -> list[PromotionalPricing]:
        """
        Resolve stacking.

        Any non-stackable candidate excludes every other promotion; the
        highest priority one wins, ties going to the lowest id. Otherwise
        every stackable candidate applies.
        """
        exclusive = [p for p in eligible if not p.stackable]
        if exclusive:
            return [min(exclusive, key=lambda p: (-p.priority, p.id))]
        return sorted(eligible, key=lambda p: (-p.priority, p.id))

    def discount_for(self, promo: PromotionalPricing, ctx: PromotionContext) -> D:
        amount = max(ZERO, self.discount_types[promo.discount_type](promo, ctx))
        if promo.maximum_discount_amount is not None:
            amount = min(amount, promo.maximum_discount_amount)
        return q4(amount)

    def compute(
        self,
        promotions: Iterable[PromotionalPricing],
        ctx: PromotionContext,
        usage: Optional[UsageCounters] = None,
    ) -> PromotionResult:
        """
        Compute the promotional discount for ``ctx.subtotal``.

        Each applied promotion is computed against the same subtotal. Once
        the running sum reaches the subtotal, later (lower priority)
        promotions are trimmed so the applied amounts add up to ``total``.
        """
        result = PromotionResult()
        pool = self.candidates(promotions, ctx.table_id, ctx.customer_pricing_id)
        eligible, result.traces = self.eligible(pool, ctx, usage)
        if not eligible:
            return result

        chosen = self.select(eligible)
        if len(chosen) < len(eligible):
            result.traces.append(
                f"Non-stackable promotion {chosen[0].id} excludes "
                f"{len(eligible) - 1} other eligible promotion(s)"
            )

        total = ZERO
        for promo in chosen:
            amount = self.discount_for(promo, ctx)
            if amount <= 0:
                result.traces.append(f"{promo.name} gives no discount on this order")
                continue
            remaining = ctx.subtotal - total
            if amount > remaining:
                if remaining <= 0:
                    result.traces.append(f"{promo.name} skipped, order already fully discounted")
                    continue
                result.traces.append(f"{promo.name} trimmed from {amount} to {q4(remaining)}")
                amount = q4(remaining)
            result.applied.append(AppliedPromotion(promo.id, promo.name, amount))
            result.traces.append(f"{promo.name} ({promo.discount_type.value}) gives {amount}")
            total += amount

        result.total = q4(total)
        return result

    def commit(
        self,
        promotions_by_id: Mapping[int, PromotionalPricing],
        promotion_ids: Iterable[int],
        customer_id: Optional[int],
        as_of: datetime,
        usage: Optional[UsageCounters] = None,
    ) -> list[int]:
        """
        Record one redemption of each applied promotion.

        Checks every total-limited promotion first so that either all
        counters move or none do.
        """
        ids = list(dict.fromkeys(promotion_ids))
        promos = [promotions_by_id[pid] for pid in ids]
        for promo in promos:
            if (promo.usage_limit is not None
                    and promo.usage_limit_type == UsageLimitType.TOTAL
                    and promo.usage_count >= promo.usage_limit):
                raise PromotionUsageLimitError(promo.id, promo.usage_limit)

        for promo in promos:
            promo.increment_usage()
            if usage is not None:
                usage.record(promo.id, customer_id, as_of.date())
            logger.info("Promotion %s redeemed (%s uses)", promo.id, promo.usage_count)
        return ids
