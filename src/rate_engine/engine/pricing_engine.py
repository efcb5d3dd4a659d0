"""
Pricing Engine - Shipping rate resolution with traceability.

Pipeline for one quote:
1. Check the carrier can take the shipment at all
2. Resolve the single current pricing table for (carrier, zone, service type)
3. Compute billable weight from the table's pricing model
4. Match the weight bracket and compute the base price
5. Price requested additional services
6. Apply the customer's contract discount
7. Apply eligible promotions to what is left
8. Add tax and assemble the itemized quote
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from ..config.settings import Settings, get_settings
from ..policy.custom_rules import RuleContext
from ..policy.customer_discount import CustomerDiscountEngine
from ..policy.promotion_engine import PromotionContext, PromotionEngine
from .billable_weight import calculate_billable_weight
from .entities import Carrier, Dimensions
from .errors import CarrierNotAvailableError, NoCarrierAvailableError, PricingError
from .models import Quote, Shipment, UsageCounters, VolumeStats
from .money import D, ZERO, q4
from .quote_assembler import assemble_quote
from .rule_matcher import RuleMatcher
from .service_pricer import ServiceContext, price_services
from .snapshot import RateSnapshot
from .table_resolver import resolve_table

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Core pricing engine over one immutable ``RateSnapshot``.

    Quoting never mutates anything; ``commit`` is the only operation that
    records promotion usage.
    """

    def __init__(self, settings: Optional[Settings] = None, snapshot: Optional[RateSnapshot] = None):
        """Initialize engine with a snapshot, loading one from the data directory if none is given."""
        self.settings = settings or get_settings()
        self.snapshot = snapshot if snapshot is not None else self._load_snapshot()
        self.rule_matcher = RuleMatcher()
        self.discount_engine = CustomerDiscountEngine()
        self.promotion_engine = PromotionEngine()

    def _load_snapshot(self) -> RateSnapshot:
        from ..data.snapshot_loader import SnapshotLoader
        return SnapshotLoader(self.settings.data_dir).load()

    def reload_data(self):
        """Reload all rate configuration from disk."""
        self.snapshot = self._load_snapshot()
        logger.info("Reloaded rate data from %s", self.settings.data_dir)

    # ------------------------------------------------------------------
    # Carrier checks
    # ------------------------------------------------------------------

    def _check_carrier(self, carrier: Optional[Carrier], shipment: Shipment) -> Carrier:
        code = shipment.carrier_code
        if carrier is None:
            raise CarrierNotAvailableError(code, "unknown carrier")
        if not carrier.is_active:
            raise CarrierNotAvailableError(code, "carrier is inactive")
        if not carrier.supports_zone(shipment.zone_code):
            raise CarrierNotAvailableError(code, f"zone {shipment.zone_code} not served")
        if not carrier.can_handle_weight(shipment.weight_kg):
            raise CarrierNotAvailableError(code, f"{shipment.weight_kg} kg exceeds {carrier.max_weight_kg} kg limit")
        if not carrier.can_handle_dimensions(shipment.dimensions):
            raise CarrierNotAvailableError(code, f"{shipment.dimensions} exceeds {carrier.max_dimensions} cm limit")
        return carrier

    def available_carriers(self, zone_code: str, weight_kg: D,
                           dimensions: Optional[Dimensions] = None) -> list[Carrier]:
        """Active carriers serving the zone that can take this weight and size."""
        return sorted(
            (c for c in self.snapshot.carriers.values()
             if c.is_active
             and c.supports_zone(zone_code)
             and c.can_handle_weight(weight_kg)
             and c.can_handle_dimensions(dimensions)),
            key=lambda c: c.code,
        )

    # ------------------------------------------------------------------
    # Quoting
    # ------------------------------------------------------------------

    def quote(
        self,
        shipment: Shipment,
        customer_id: Optional[int] = None,
        requested_services: Iterable[str] = (),
        promo_code: Optional[str] = None,
        as_of: Optional[datetime] = None,
        *,
        usage: Optional[UsageCounters] = None,
        volume_stats: Optional[VolumeStats] = None,
        customer_groups: Iterable[str] = (),
    ) -> Quote:
        """
        Price one shipment with full traceability.

        Raises a PricingError subclass when configuration cannot price the
        shipment; absent or disqualified discounts simply price at zero.
        """
        as_of = as_of or datetime.now()
        requested_services = list(requested_services)
        try:
            quote = self._quote(shipment, customer_id, requested_services, promo_code, as_of,
                                usage, volume_stats, frozenset(customer_groups))
        except PricingError as e:
            logger.error("Quote failed for %s/%s/%s: %s", shipment.carrier_code,
                         shipment.zone_code, shipment.service_type.value, e)
            raise

        logger.info("Quote %s/%s/%s %s kg → %s %s", quote.carrier_code, quote.zone_code,
                    quote.service_type.value, quote.billable_weight_kg, quote.grand_total, quote.currency)
        return quote

    def _quote(self, shipment, customer_id, requested_services, promo_code, as_of,
               usage, volume_stats, customer_groups) -> Quote:
        snapshot = self.snapshot
        self._check_carrier(snapshot.carriers.get(shipment.carrier_code), shipment)

        table = resolve_table(snapshot.tables.values(), shipment.carrier_code,
                              shipment.zone_code, shipment.service_type, as_of)

        weight = calculate_billable_weight(
            shipment.weight_kg, shipment.dimensions, table.pricing_model,
            table.volumetric_divisor or self.settings.default_volumetric_divisor,
        )
        tier = self.rule_matcher.price(table, weight.billable, shipment.dimensions)

        services = price_services(
            requested_services, snapshot.services_for(shipment.carrier_code), table,
            ServiceContext(
                base_price=tier.price,
                billable_weight=weight.billable,
                declared_value=shipment.declared_value,
                package_count=shipment.package_count,
            ),
        )
        subtotal = q4(tier.price + services.total)

        contract = snapshot.contract_for(customer_id, table.id)
        discount = self.discount_engine.compute(
            contract,
            RuleContext(
                subtotal=subtotal,
                weight_kg=weight.billable,
                carrier_code=shipment.carrier_code,
                zone_code=shipment.zone_code,
                service_type=shipment.service_type.value,
                services=frozenset(requested_services),
            ),
            base_price=tier.price,
            service_prices={line.code: line.price for line in services.lines},
            as_of=as_of,
            volume_stats=volume_stats,
        )

        promotions = self.promotion_engine.compute(
            snapshot.promotions.values(),
            PromotionContext(
                carrier_code=shipment.carrier_code,
                zone_code=shipment.zone_code,
                service_type=shipment.service_type.value,
                subtotal=max(subtotal - discount.amount, ZERO),
                shipping_amount=tier.price,
                as_of=as_of,
                table_id=table.id,
                customer_id=customer_id,
                customer_pricing_id=contract.id if contract is not None and contract.is_currently_active(as_of) else None,
                customer_groups=customer_groups,
                package_count=shipment.package_count,
                promo_code=promo_code,
            ),
            usage,
        )

        quote = assemble_quote(shipment, table, weight, tier, services, discount, promotions,
                               contract, as_of, customer_id)

        quote.add_trace("Table", f"{table.name or 'Pricing table'} v{table.version}", str(table.id))
        quote.add_trace("Billable Weight",
                        f"actual {weight.actual} kg, volumetric {weight.volumetric if weight.volumetric is not None else '-'} kg",
                        f"{q4(weight.billable)} kg ({weight.basis})")
        for message in tier.traces:
            quote.add_trace("Rule Applied", message)
        for line in services.lines:
            quote.add_trace("Service", line.name, str(line.price))
        for message in discount.traces:
            quote.add_trace("Customer Discount", message)
        for message in promotions.traces:
            quote.add_trace("Promotion", message)
        quote.add_trace("Tax", f"{quote.tax_rate}% on {quote.total_before_tax}", str(quote.tax_amount))
        quote.add_trace("Total", "Payable", f"{quote.grand_total} {quote.currency}")

        if contract is not None and not discount.applied:
            quote.add_warning(f"Customer pricing {contract.id} did not apply")
        if weight.basis == "volumetric":
            quote.add_warning("Priced on volumetric weight")
        return quote

    def commit(self, quote: Quote, usage: Optional[UsageCounters] = None) -> list[int]:
        """
        Record promotion usage for an accepted quote.

        Call once per shipment; committing the same quote twice counts twice.
        """
        if not quote.applied_promotion_ids:
            return []
        return self.promotion_engine.commit(
            self.snapshot.promotions, quote.applied_promotion_ids,
            quote.customer_id, quote.as_of or datetime.now(), usage,
        )

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def _compare(self, shipment: Shipment, customer_id=None, requested_services=(), promo_code=None,
                 as_of=None, *, usage=None, volume_stats=None,
                 customer_groups=()) -> tuple[list[Quote], dict[str, str]]:
        as_of = as_of or datetime.now()
        quotes, failures = [], {}
        for code in sorted(self.snapshot.carriers):
            try:
                quotes.append(self._quote(
                    replace(shipment, carrier_code=code), customer_id, list(requested_services),
                    promo_code, as_of, usage, volume_stats, frozenset(customer_groups),
                ))
            except PricingError as e:
                logger.warning("Skipping carrier %s: %s", code, e.message)
                failures[code] = e.message
        quotes.sort(key=lambda q: (q.grand_total, q.carrier_code))
        return quotes, failures

    def compare_across_carriers(self, shipment: Shipment, **kwargs) -> list[Quote]:
        """
        Quote the shipment with every carrier, cheapest first.

        ``shipment.carrier_code`` is ignored; carriers that cannot price
        the shipment are logged and skipped.
        """
        quotes, _ = self._compare(shipment, **kwargs)
        return quotes

    def best_price(self, shipment: Shipment, **kwargs) -> Quote:
        quotes, failures = self._compare(shipment, **kwargs)
        if not quotes:
            raise NoCarrierAvailableError(shipment.zone_code, failures)
        return quotes[0]
