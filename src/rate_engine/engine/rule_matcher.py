"""
Rule Matcher - Selects a table's weight bracket and prices the shipment.

Used by the pricing engine to turn a billable weight into the base
shipping price before services, discounts and tax.
"""
from dataclasses import dataclass, field
from decimal import ROUND_CEILING
from typing import Callable, Optional

from .entities import CalculationMethod, Dimensions, PricingRule, PricingTable
from .errors import NoMatchingTierError
from .money import D, ONE, ZERO, clamp, q4


@dataclass
class TierPrice:
    """The base price produced by one matched rule."""
    rule: PricingRule
    raw_price: D
    price: D
    tax_rate_override: Optional[D]
    traces: list[str] = field(default_factory=list)


def _fixed(rule: PricingRule, weight: D) -> D:
    return rule.price


def _per_kg(rule: PricingRule, weight: D) -> D:
    excess = max(ZERO, weight - rule.weight_from)
    return rule.price + excess * (rule.price_per_kg or ZERO)


def _per_kg_step(rule: PricingRule, weight: D) -> D:
    step = rule.weight_step or ONE
    excess = max(ZERO, weight - rule.weight_from)
    steps = (excess / step).to_integral_value(rounding=ROUND_CEILING)
    return rule.price + steps * (rule.price_per_kg or ZERO) * step


def _percentage(rule: PricingRule, weight: D) -> D:
    return rule.price * weight / D("100")


CALCULATION_METHODS: dict[CalculationMethod, Callable[[PricingRule, D], D]] = {
    CalculationMethod.FIXED: _fixed,
    CalculationMethod.PER_KG: _per_kg,
    CalculationMethod.PER_KG_STEP: _per_kg_step,
    CalculationMethod.PERCENTAGE: _percentage,
}


class RuleMatcher:
    """
    Matches a billable weight (and dimensions) against a table's rules.

    Only active rules are considered. When several match, the lowest
    ``sort_order`` wins, then the lowest ``weight_from``, then the lowest id.
    """

    def __init__(self, methods: Optional[dict] = None):
        self.methods = methods or CALCULATION_METHODS

    def find_matching_rules(
        self,
        table: PricingTable,
        weight: D,
        dimensions: Optional[Dimensions] = None,
    ) -> list[PricingRule]:
        """Return every matching rule, best candidate first."""
        matched = [
            rule for rule in table.rules
            if rule.is_active
            and rule.matches_weight(weight)
            and rule.matches_dimensions(dimensions)
        ]
        matched.sort(key=lambda r: (r.sort_order, r.weight_from, r.id))
        return matched

    def select_rule(
        self,
        table: PricingTable,
        weight: D,
        dimensions: Optional[Dimensions] = None,
    ) -> PricingRule:
        if not table.can_handle_weight(weight):
            upper = table.max_weight_kg if table.max_weight_kg is not None else "∞"
            raise NoMatchingTierError(
                table.id, weight, f"weight outside table range {table.min_weight_kg}–{upper} kg"
            )
        if not table.can_handle_dimensions(dimensions):
            raise NoMatchingTierError(table.id, weight, f"dimensions {dimensions} outside table range")
        matched = self.find_matching_rules(table, weight, dimensions)
        if not matched:
            raise NoMatchingTierError(table.id, weight)
        return matched[0]

    def apply_rule_to_weight(self, rule: PricingRule, weight: D) -> TierPrice:
        """
        Apply a single rule's calculation method, then its min/max clamp.

        Returns a TierPrice whose ``traces`` describe each step.
        """
        traces = []
        raw = self.methods[rule.calculation_method](rule, weight)
        traces.append(f"{rule.describe()} on {weight} kg gives {q4(raw)}")

        clamped = clamp(raw, rule.min_price, rule.max_price)
        if clamped != raw:
            traces.append(f"Clamped to [{rule.min_price}, {rule.max_price}]: {q4(raw)} → {q4(clamped)}")

        return TierPrice(
            rule=rule,
            raw_price=raw,
            price=q4(clamped),
            tax_rate_override=rule.tax_rate_override,
            traces=traces,
        )

    def price(self, table: PricingTable, weight: D, dimensions: Optional[Dimensions] = None) -> TierPrice:
        """Select the bracket for ``weight`` and compute the base price."""
        return self.apply_rule_to_weight(self.select_rule(table, weight, dimensions), weight)
