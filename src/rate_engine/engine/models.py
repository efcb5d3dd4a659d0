"""
Request and result models for the rate engine.

Uses dataclasses for structured, type-safe data representation.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .entities import Dimensions, ServiceLevel, VolumePeriod
from .money import D, ZERO


@dataclass
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class Shipment:
    """What is being shipped, where, and how fast."""
    carrier_code: str
    zone_code: str
    service_type: ServiceLevel
    weight_kg: D
    dimensions: Optional[Dimensions] = None
    declared_value: D = ZERO
    package_count: int = 1


@dataclass(frozen=True)
class VolumeStats:
    """Caller-supplied shipment volume of one customer over one period."""
    period: VolumePeriod
    shipment_count: int
    total_value: D = ZERO


@dataclass
class UsageCounters:
    """
    Caller-owned promotion usage counters.

    ``per_customer`` is keyed by (promotion id, customer id), ``per_day`` by
    (promotion id, date). Persisting them is the caller's job.
    """
    per_customer: dict[tuple[int, int], int] = field(default_factory=dict)
    per_day: dict[tuple[int, date], int] = field(default_factory=dict)

    def customer_uses(self, promotion_id: int, customer_id: Optional[int]) -> int:
        if customer_id is None:
            return 0
        return self.per_customer.get((promotion_id, customer_id), 0)

    def day_uses(self, promotion_id: int, day: date) -> int:
        return self.per_day.get((promotion_id, day), 0)

    def record(self, promotion_id: int, customer_id: Optional[int], day: date):
        if customer_id is not None:
            key = (promotion_id, customer_id)
            self.per_customer[key] = self.per_customer.get(key, 0) + 1
        self.per_day[(promotion_id, day)] = self.per_day.get((promotion_id, day), 0) + 1


@dataclass
class QuoteLine:
    """A single line of an itemized quote; discounts are negative."""
    kind: str  # "base", "service", "customer_discount", "promotion", "tax"
    code: str
    description: str
    amount: D

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "code": self.code,
            "description": self.description,
            "amount": str(self.amount),
        }


@dataclass
class Quote:
    """Complete result of a rate calculation."""
    carrier_code: str
    zone_code: str
    service_type: ServiceLevel
    table_id: int
    currency: str
    billable_weight_kg: D
    base_price: D = ZERO
    services_total: D = ZERO
    customer_discount: D = ZERO
    promotional_discount: D = ZERO
    total_before_tax: D = ZERO
    tax_rate: D = ZERO
    tax_amount: D = ZERO
    grand_total: D = ZERO
    lines: list[QuoteLine] = field(default_factory=list)
    applied_promotion_ids: list[int] = field(default_factory=list)
    customer_id: Optional[int] = None
    customer_pricing_id: Optional[int] = None
    as_of: Optional[datetime] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the quote-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a quote-level warning."""
        self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable quote trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def lines_of(self, kind: str) -> list[QuoteLine]:
        return [line for line in self.lines if line.kind == kind]

    def to_dict(self) -> dict:
        """JSON-ready representation; amounts are rendered as strings."""
        return {
            "carrier_code": self.carrier_code,
            "zone_code": self.zone_code,
            "service_type": self.service_type.value,
            "table_id": self.table_id,
            "currency": self.currency,
            "billable_weight_kg": str(self.billable_weight_kg),
            "base_price": str(self.base_price),
            "services_total": str(self.services_total),
            "customer_discount": str(self.customer_discount),
            "promotional_discount": str(self.promotional_discount),
            "total_before_tax": str(self.total_before_tax),
            "tax_rate": str(self.tax_rate),
            "tax_amount": str(self.tax_amount),
            "grand_total": str(self.grand_total),
            "lines": [line.to_dict() for line in self.lines],
            "applied_promotion_ids": list(self.applied_promotion_ids),
            "customer_id": self.customer_id,
            "customer_pricing_id": self.customer_pricing_id,
            "as_of": self.as_of.isoformat() if self.as_of else None,
            "warnings": list(self.warnings),
            "trace": [
                {"step": t.step, "description": t.description, "value": t.value}
                for t in self.trace
            ],
        }
