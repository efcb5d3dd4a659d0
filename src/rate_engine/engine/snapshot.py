"""
In-memory snapshot of rate configuration.

The engine never fetches anything itself: callers (or ``SnapshotLoader``)
build one snapshot, and every quote resolves ID references through it.
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .entities import (
    AdditionalService, Carrier, CustomerPricing, PricingTable, PricingZone, PromotionalPricing,
)
from .errors import InvalidRateConfigError


@dataclass
class RateSnapshot:
    carriers: dict[str, Carrier] = field(default_factory=dict)
    zones: dict[str, PricingZone] = field(default_factory=dict)
    tables: dict[int, PricingTable] = field(default_factory=dict)
    services: dict[str, dict[str, AdditionalService]] = field(default_factory=dict)
    customer_pricing: dict[int, CustomerPricing] = field(default_factory=dict)
    promotions: dict[int, PromotionalPricing] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        carriers: Iterable[Carrier] = (),
        zones: Iterable[PricingZone] = (),
        tables: Iterable[PricingTable] = (),
        services: Iterable[AdditionalService] = (),
        customer_pricing: Iterable[CustomerPricing] = (),
        promotions: Iterable[PromotionalPricing] = (),
    ) -> "RateSnapshot":
        """Index entity lists by ID, rejecting duplicates and dangling references."""
        snapshot = cls()
        errors = []

        def put(index: dict, key, value, what: str):
            if key in index:
                errors.append(f"duplicate {what} {key!r}")
            index[key] = value

        for carrier in carriers:
            put(snapshot.carriers, carrier.code, carrier, "carrier")
        for zone in zones:
            put(snapshot.zones, zone.code, zone, "zone")
        for table in tables:
            put(snapshot.tables, table.id, table, "pricing table")
            if table.carrier_code not in snapshot.carriers:
                errors.append(f"pricing table {table.id}: unknown carrier {table.carrier_code!r}")
            if table.zone_code not in snapshot.zones:
                errors.append(f"pricing table {table.id}: unknown zone {table.zone_code!r}")
        for service in services:
            put(snapshot.services.setdefault(service.carrier_code, {}), service.code, service,
                f"service of {service.carrier_code}")

        contract_keys = {}
        for contract in customer_pricing:
            put(snapshot.customer_pricing, contract.id, contract, "customer pricing")
            if contract.base_table_id not in snapshot.tables:
                errors.append(f"customer pricing {contract.id}: unknown base table {contract.base_table_id}")
            key = (contract.customer_id, contract.base_table_id)
            if key in contract_keys:
                errors.append(
                    f"customer pricing {contract.id}: customer {contract.customer_id} already has "
                    f"contract {contract_keys[key]} on table {contract.base_table_id}"
                )
            contract_keys[key] = contract.id

        for promo in promotions:
            put(snapshot.promotions, promo.id, promo, "promotion")

        if errors:
            raise InvalidRateConfigError(errors)
        return snapshot

    def services_for(self, carrier_code: str) -> dict[str, AdditionalService]:
        return self.services.get(carrier_code, {})

    def contract_for(self, customer_id: Optional[int], table_id: int) -> Optional[CustomerPricing]:
        if customer_id is None:
            return None
        for contract in self.customer_pricing.values():
            if contract.customer_id == customer_id and contract.base_table_id == table_id:
                return contract
        return None

    def contracts_of(self, customer_id: int) -> list[CustomerPricing]:
        return [c for c in self.customer_pricing.values() if c.customer_id == customer_id]

    def replace_contract(self, contract: CustomerPricing):
        """Swap in an updated contract; used by the mutation layer only."""
        self.customer_pricing[contract.id] = contract
