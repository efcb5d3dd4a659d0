"""
Customer Discount Engine - Applies a customer's negotiated contract.

An absent, inactive, expired or out-of-range contract is a zero discount,
never an error.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..engine.entities import CustomerPricing, DiscountType
from ..engine.models import VolumeStats
from ..engine.money import D, ZERO, percent_of, q4
from .custom_rules import CustomRuleEvaluator, RuleContext

logger = logging.getLogger(__name__)


@dataclass
class CustomerDiscount:
    amount: D = ZERO
    customer_pricing_id: Optional[int] = None
    applied: bool = False
    traces: list[str] = field(default_factory=list)


class CustomerDiscountEngine:

    def __init__(self, rule_evaluator: Optional[CustomRuleEvaluator] = None):
        self.rule_evaluator = rule_evaluator or CustomRuleEvaluator()
        self.strategies: dict[DiscountType, Callable] = {
            DiscountType.PERCENTAGE: self._percentage,
            DiscountType.FIXED: self._fixed,
            DiscountType.VOLUME: self._volume,
            DiscountType.CUSTOM_RULES: self._custom_rules,
        }

    def _percentage(self, contract, ctx, volume_stats, traces) -> D:
        amount = percent_of(ctx.subtotal, contract.base_discount or ZERO)
        traces.append(f"{contract.base_discount or 0}% contract discount")
        return amount

    def _fixed(self, contract, ctx, volume_stats, traces) -> D:
        amount = min(contract.fixed_discount or ZERO, ctx.subtotal)
        traces.append(f"Fixed contract discount {contract.fixed_discount or 0}")
        return amount

    def _volume(self, contract, ctx, volume_stats: Optional[VolumeStats], traces) -> D:
        if volume_stats is None:
            traces.append("No volume statistics supplied")
            return ZERO
        if volume_stats.period != contract.volume_period:
            traces.append(
                f"Volume statistics are {volume_stats.period.value}, "
                f"contract counts {contract.volume_period.value}"
            )
            return ZERO
        reached = [t for t in contract.volume_tiers if volume_stats.shipment_count >= t.min_shipments]
        if not reached:
            traces.append(f"{volume_stats.shipment_count} shipments reach no volume tier")
            return ZERO
        tier = max(reached, key=lambda t: t.min_shipments)
        traces.append(
            f"{volume_stats.shipment_count} shipments reach tier ≥{tier.min_shipments}: "
            f"{tier.discount_percent}%"
        )
        return percent_of(ctx.subtotal, tier.discount_percent)

    def _custom_rules(self, contract, ctx, volume_stats, traces) -> D:
        matched = self.rule_evaluator.evaluate(contract.custom_rules, ctx)
        if matched is None:
            traces.append("No custom rule matched")
            return ZERO
        traces.append(f"Custom rule '{matched.rule.name}' matched ({matched.match_reason})")
        return matched.amount

    def compute(
        self,
        contract: Optional[CustomerPricing],
        ctx: RuleContext,
        base_price: D,
        service_prices: dict[str, D],
        as_of: datetime,
        volume_stats: Optional[VolumeStats] = None,
    ) -> CustomerDiscount:
        """
        Compute the total contract discount for one shipment.

        ``ctx.subtotal`` is base price plus services. ``service_prices``
        maps each priced service code to its line amount, for the
        contract's per-service percentages.
        """
        if contract is None:
            return CustomerDiscount()

        result = CustomerDiscount(customer_pricing_id=contract.id)
        if not contract.is_currently_active(as_of):
            result.traces.append(f"Contract {contract.id} is not active on {as_of:%Y-%m-%d}")
            return result
        if not contract.qualifies_for_pricing(ctx.subtotal):
            result.traces.append(f"Subtotal {ctx.subtotal} is outside contract {contract.id} order range")
            return result

        amount = self.strategies[contract.discount_type](contract, ctx, volume_stats, result.traces)

        for code, pct in contract.service_discounts.items():
            if code in service_prices:
                service_cut = percent_of(service_prices[code], pct)
                result.traces.append(f"{pct}% off service {code}: {q4(service_cut)}")
                amount += service_cut

        threshold = contract.free_shipping_threshold
        if threshold is not None and ctx.subtotal >= threshold and amount < base_price:
            result.traces.append(f"Subtotal reached free-shipping threshold {threshold}")
            amount = base_price

        result.amount = q4(min(max(ZERO, amount), ctx.subtotal))
        result.applied = True
        logger.debug("Contract %s discount %s", contract.id, result.amount)
        return result
