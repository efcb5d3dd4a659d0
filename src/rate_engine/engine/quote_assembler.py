"""Combine the priced components into an itemized, taxed quote."""
from datetime import datetime
from typing import Optional

from .billable_weight import BillableWeight
from .entities import CustomerPricing, PricingTable
from .models import Quote, QuoteLine, Shipment
from .money import ZERO, percent_of, q4
from .rule_matcher import TierPrice
from .service_pricer import ServicePricing
from ..policy.customer_discount import CustomerDiscount
from ..policy.promotion_engine import PromotionResult


def effective_tax_rate(contract: Optional[CustomerPricing], tier: TierPrice,
                       table: PricingTable, as_of: datetime):
    """Active contract override, then rule override, then table rate, then zero."""
    if contract is not None and contract.is_currently_active(as_of) and contract.tax_rate_override is not None:
        return contract.tax_rate_override, "contract"
    if tier.tax_rate_override is not None:
        return tier.tax_rate_override, "rule"
    if table.tax_rate is not None:
        return table.tax_rate, "table"
    return ZERO, "none"


def quote_currency(contract: Optional[CustomerPricing], table: PricingTable, as_of: datetime) -> str:
    if contract is not None and contract.is_currently_active(as_of) and contract.currency_override:
        return contract.currency_override
    return table.currency


def assemble_quote(
    shipment: Shipment,
    table: PricingTable,
    weight: BillableWeight,
    tier: TierPrice,
    services: ServicePricing,
    customer_discount: CustomerDiscount,
    promotions: PromotionResult,
    contract: Optional[CustomerPricing],
    as_of: datetime,
    customer_id: Optional[int] = None,
) -> Quote:
    quote = Quote(
        carrier_code=shipment.carrier_code,
        zone_code=shipment.zone_code,
        service_type=shipment.service_type,
        table_id=table.id,
        currency=quote_currency(contract, table, as_of),
        billable_weight_kg=q4(weight.billable),
        customer_id=customer_id,
        customer_pricing_id=customer_discount.customer_pricing_id if customer_discount.applied else None,
        as_of=as_of,
    )

    quote.base_price = tier.price
    quote.lines.append(QuoteLine("base", str(tier.rule.id), tier.rule.name or "Shipping", tier.price))

    for charge in services.lines:
        quote.lines.append(QuoteLine("service", charge.code, charge.name, charge.price))
    quote.services_total = services.total

    quote.customer_discount = customer_discount.amount
    if customer_discount.amount > 0:
        quote.lines.append(QuoteLine(
            "customer_discount", str(customer_discount.customer_pricing_id),
            contract.name if contract and contract.name else "Customer discount",
            -customer_discount.amount,
        ))

    quote.promotional_discount = promotions.total
    for applied in promotions.applied:
        quote.lines.append(QuoteLine("promotion", str(applied.promotion_id), applied.name, -applied.amount))
    quote.applied_promotion_ids = promotions.promotion_ids

    total = max(ZERO, quote.base_price + quote.services_total
                - quote.customer_discount - quote.promotional_discount)
    quote.total_before_tax = q4(total)

    rate, source = effective_tax_rate(contract, tier, table, as_of)
    quote.tax_rate = rate
    quote.tax_amount = q4(percent_of(quote.total_before_tax, rate))
    quote.lines.append(QuoteLine("tax", source, f"Tax {rate}%", quote.tax_amount))
    quote.grand_total = q4(quote.total_before_tax + quote.tax_amount)
    return quote
