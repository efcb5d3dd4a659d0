"""
Custom Rules - Evaluates a contract's ordered custom discount rules.
"""
from dataclasses import dataclass, field
from typing import Optional

from ..engine.entities import AmountType, CustomRule, RuleCondition
from ..engine.money import D, ZERO, percent_of


@dataclass(frozen=True)
class RuleContext:
    """Shipment facts a custom rule condition can test."""
    subtotal: D
    weight_kg: D
    carrier_code: str
    zone_code: str
    service_type: str
    services: frozenset[str] = frozenset()


@dataclass
class MatchedCustomRule:
    rule: CustomRule
    amount: D
    match_reason: str
    reasons: list[str] = field(default_factory=list)


class CustomRuleEvaluator:
    """
    Evaluates custom rules in their configured order.

    The first rule whose condition holds wins; a rule with an empty
    condition always matches.
    """

    def match_condition(self, condition: RuleCondition, ctx: RuleContext) -> Optional[list[str]]:
        """Return the match reasons, or None when any condition fails."""
        reasons = []

        if condition.min_subtotal is not None:
            if ctx.subtotal < condition.min_subtotal:
                return None
            reasons.append(f"subtotal>={condition.min_subtotal}")

        if condition.max_subtotal is not None:
            if ctx.subtotal > condition.max_subtotal:
                return None
            reasons.append(f"subtotal<={condition.max_subtotal}")

        if condition.min_weight_kg is not None:
            if ctx.weight_kg < condition.min_weight_kg:
                return None
            reasons.append(f"weight>={condition.min_weight_kg}")

        if condition.max_weight_kg is not None:
            if ctx.weight_kg > condition.max_weight_kg:
                return None
            reasons.append(f"weight<={condition.max_weight_kg}")

        if condition.carrier_codes is not None:
            if ctx.carrier_code not in condition.carrier_codes:
                return None
            reasons.append(f"carrier={ctx.carrier_code}")

        if condition.zone_codes is not None:
            if ctx.zone_code not in condition.zone_codes:
                return None
            reasons.append(f"zone={ctx.zone_code}")

        if condition.service_types is not None:
            if ctx.service_type not in condition.service_types:
                return None
            reasons.append(f"service_type={ctx.service_type}")

        if condition.requires_services is not None:
            missing = set(condition.requires_services) - ctx.services
            if missing:
                return None
            reasons.append(f"services={','.join(condition.requires_services)}")

        return reasons

    def evaluate(self, rules: tuple[CustomRule, ...], ctx: RuleContext) -> Optional[MatchedCustomRule]:
        for rule in rules:
            reasons = self.match_condition(rule.condition, ctx)
            if reasons is None:
                continue
            if rule.discount.type == AmountType.PERCENTAGE:
                amount = percent_of(ctx.subtotal, rule.discount.value)
            else:
                amount = min(rule.discount.value, ctx.subtotal)
            return MatchedCustomRule(
                rule=rule,
                amount=max(ZERO, amount),
                match_reason=", ".join(reasons) if reasons else "default",
                reasons=reasons,
            )
        return None
