"""
Snapshot Loader - Reads and validates rate configuration from a data directory.

Flat sheets are CSV (read with pandas); nested structures live in JSON:

    carriers.csv              code, name, supported_zones, max_weight_kg, max_dimensions, is_active
    zones.csv                 code, name, zone_type, countries, postal_code_patterns, is_active
    pricing_tables.csv        id, carrier_code, zone_code, service_type, pricing_model, ...
    pricing_rules.csv         id, table_id, weight_from, weight_to, calculation_method, price, ...
    additional_services.csv   carrier_code, code, name, service_type, pricing_type, ...
    service_prices.json       per-table service overrides with weight/value tiers
    customer_pricing.json     customer contracts
    promotions.json           promotions with their typed config

List cells are pipe-separated (``DOMESTIC|EU_WEST``), dimensions are
``LxWxH`` in cm, dates are ISO. Every problem is collected with its file
and line before ``InvalidRateConfigError`` is raised.
"""
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

from ..engine.entities import (
    AdditionalService, AdditionalServicePrice, CalculationMethod, Carrier, CustomerPricing,
    Dimensions, PricingModel, PricingRule, PricingTable, PricingZone, PromotionalPricing,
    ServiceKind, ServiceLevel, ServicePricingType, ZoneType, parse_datetime, parse_enum,
    parse_optional_datetime,
)
from ..engine.errors import InvalidRateConfigError
from ..engine.money import ZERO, to_decimal, to_optional_decimal
from ..engine.snapshot import RateSnapshot

logger = logging.getLogger(__name__)

REQUIRED_SHEETS = ('carriers.csv', 'zones.csv', 'pricing_tables.csv', 'pricing_rules.csv')


def parse_bool(value: str, default: bool = True) -> bool:
    """Parse a boolean from a CSV cell; blank means ``default``."""
    if not value or value.strip() == '':
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_str(value: str) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if not value or value.strip() == '':
        return None
    return value.strip()


def parse_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in (value or '').split('|') if part.strip())


def parse_optional_list(value: str) -> Optional[tuple[str, ...]]:
    return parse_list(value) if parse_optional_str(value) else None


def parse_optional_dimensions(value: str) -> Optional[Dimensions]:
    text = parse_optional_str(value)
    return Dimensions.parse(text) if text else None


def parse_optional_int(value: str) -> Optional[int]:
    text = parse_optional_str(value)
    return int(text) if text else None


def require(row: dict, column: str) -> str:
    value = parse_optional_str(row.get(column, ''))
    if value is None:
        raise ValueError(f"{column} is required")
    return value


# ---------------------------------------------------------------------------
# Row parsers (one per sheet)
# ---------------------------------------------------------------------------

def parse_carrier(row: dict) -> Carrier:
    return Carrier(
        code=require(row, 'code'),
        name=parse_optional_str(row.get('name', '')) or row['code'],
        supported_zones=parse_list(row.get('supported_zones', '')),
        max_weight_kg=to_optional_decimal(row.get('max_weight_kg'), 'max_weight_kg'),
        max_dimensions=parse_optional_dimensions(row.get('max_dimensions', '')),
        is_active=parse_bool(row.get('is_active', '')),
    )


def parse_zone(row: dict) -> PricingZone:
    return PricingZone(
        code=require(row, 'code'),
        name=parse_optional_str(row.get('name', '')) or row['code'],
        zone_type=parse_enum(ZoneType, require(row, 'zone_type'), 'zone_type'),
        countries=tuple(c.upper() for c in parse_list(row.get('countries', ''))),
        postal_code_patterns=parse_list(row.get('postal_code_patterns', '')),
        is_active=parse_bool(row.get('is_active', '')),
    )


def parse_rule(row: dict) -> PricingRule:
    rule = PricingRule(
        id=int(require(row, 'id')),
        table_id=int(require(row, 'table_id')),
        name=parse_optional_str(row.get('name', '')) or '',
        weight_from=to_decimal(parse_optional_str(row.get('weight_from', '')) or '0', 'weight_from'),
        weight_to=to_optional_decimal(row.get('weight_to'), 'weight_to'),
        dimensions_from=parse_optional_dimensions(row.get('dimensions_from', '')),
        dimensions_to=parse_optional_dimensions(row.get('dimensions_to', '')),
        calculation_method=parse_enum(CalculationMethod, require(row, 'calculation_method'), 'calculation_method'),
        price=to_decimal(require(row, 'price'), 'price'),
        price_per_kg=to_optional_decimal(row.get('price_per_kg'), 'price_per_kg'),
        weight_step=to_optional_decimal(row.get('weight_step'), 'weight_step'),
        min_price=to_optional_decimal(row.get('min_price'), 'min_price'),
        max_price=to_optional_decimal(row.get('max_price'), 'max_price'),
        tax_rate_override=to_optional_decimal(row.get('tax_rate_override'), 'tax_rate_override'),
        sort_order=parse_optional_int(row.get('sort_order', '')) or 0,
        is_active=parse_bool(row.get('is_active', '')),
    )
    if rule.weight_to is not None and rule.weight_to < rule.weight_from:
        raise ValueError(f"weight_to {rule.weight_to} is below weight_from {rule.weight_from}")
    if rule.weight_step is not None and rule.weight_step <= 0:
        raise ValueError("weight_step must be positive")
    if rule.min_price is not None and rule.max_price is not None and rule.min_price > rule.max_price:
        raise ValueError("min_price is above max_price")
    return rule


def parse_table(row: dict, rules: tuple, service_prices: dict) -> PricingTable:
    currency = require(row, 'currency').upper()
    if len(currency) != 3:
        raise ValueError(f"currency must be a 3-letter code (got {currency!r})")
    table = PricingTable(
        id=int(require(row, 'id')),
        carrier_code=require(row, 'carrier_code'),
        zone_code=require(row, 'zone_code'),
        service_type=parse_enum(ServiceLevel, require(row, 'service_type'), 'service_type'),
        pricing_model=parse_enum(PricingModel, require(row, 'pricing_model'), 'pricing_model'),
        name=parse_optional_str(row.get('name', '')) or '',
        base_price=to_optional_decimal(row.get('base_price'), 'base_price') or ZERO,
        min_weight_kg=to_optional_decimal(row.get('min_weight_kg'), 'min_weight_kg') or ZERO,
        max_weight_kg=to_optional_decimal(row.get('max_weight_kg'), 'max_weight_kg'),
        min_dimensions=parse_optional_dimensions(row.get('min_dimensions', '')),
        max_dimensions=parse_optional_dimensions(row.get('max_dimensions', '')),
        volumetric_divisor=to_optional_decimal(row.get('volumetric_divisor'), 'volumetric_divisor'),
        currency=currency,
        tax_rate=to_optional_decimal(row.get('tax_rate'), 'tax_rate'),
        effective_from=parse_datetime(require(row, 'effective_from'), 'effective_from'),
        effective_until=parse_optional_datetime(row.get('effective_until'), 'effective_until'),
        version=parse_optional_int(row.get('version', '')) or 1,
        is_active=parse_bool(row.get('is_active', '')),
        rules=rules,
        service_prices=service_prices,
    )
    if table.effective_until is not None and table.effective_until < table.effective_from:
        raise ValueError("effective_until is before effective_from")
    if table.volumetric_divisor is not None and table.volumetric_divisor <= 0:
        raise ValueError("volumetric_divisor must be positive")
    return table


def parse_service(row: dict) -> AdditionalService:
    return AdditionalService(
        carrier_code=require(row, 'carrier_code'),
        code=require(row, 'code'),
        name=parse_optional_str(row.get('name', '')) or row['code'],
        service_type=parse_enum(ServiceKind, require(row, 'service_type'), 'service_type'),
        pricing_type=parse_enum(ServicePricingType, require(row, 'pricing_type'), 'pricing_type'),
        default_price=to_optional_decimal(row.get('default_price'), 'default_price'),
        min_price=to_optional_decimal(row.get('min_price'), 'min_price'),
        max_price=to_optional_decimal(row.get('max_price'), 'max_price'),
        percentage_rate=to_optional_decimal(row.get('percentage_rate'), 'percentage_rate'),
        supported_zones=parse_optional_list(row.get('supported_zones', '')),
        is_active=parse_bool(row.get('is_active', '')),
    )


class SnapshotLoader:
    """Builds a validated ``RateSnapshot`` from one data directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.errors: list[str] = []

    def _load_csv(self, filename: str) -> pd.DataFrame:
        path = self.data_dir / filename
        if not path.exists():
            if filename in REQUIRED_SHEETS:
                self.errors.append(f"{filename}: file not found in {self.data_dir}")
            return pd.DataFrame()
        df = pd.read_csv(path, dtype=str).fillna('')
        # Strip all strings and headers
        df.columns = [c.strip() for c in df.columns]
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        return df

    def _load_json(self, filename: str) -> list:
        path = self.data_dir / filename
        if not path.exists():
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.errors.append(f"{filename}: invalid JSON ({e})")
            return []
        if not isinstance(data, list):
            self.errors.append(f"{filename}: top level must be a list")
            return []
        return data

    def _parse_rows(self, filename: str, parser: Callable[[dict], object]) -> list:
        parsed = []
        df = self._load_csv(filename)
        for line_num, row in enumerate(df.to_dict(orient='records'), start=2):  # +2 for header row
            try:
                parsed.append((line_num, row, parser(row)))
            except (ValueError, KeyError) as e:
                self.errors.append(f"{filename} line {line_num}: {e}")
        return parsed

    def _parse_documents(self, filename: str, parser: Callable[[dict], object]) -> list:
        parsed = []
        for index, item in enumerate(self._load_json(filename)):
            try:
                parsed.append(parser(item))
            except (ValueError, TypeError) as e:
                self.errors.append(f"{filename} item {index}: {e}")
        return parsed

    def load(self) -> RateSnapshot:
        """Load every sheet and document, raising InvalidRateConfigError on any problem."""
        self.errors = []

        carriers = [c for _, _, c in self._parse_rows('carriers.csv', parse_carrier)]
        zones = [z for _, _, z in self._parse_rows('zones.csv', parse_zone)]
        services = [s for _, _, s in self._parse_rows('additional_services.csv', parse_service)]

        rules_by_table = defaultdict(list)
        for _, _, rule in self._parse_rows('pricing_rules.csv', parse_rule):
            rules_by_table[rule.table_id].append(rule)

        prices_by_table = defaultdict(dict)
        for price in self._parse_documents('service_prices.json', AdditionalServicePrice.from_dict):
            if price.service_code in prices_by_table[price.table_id]:
                self.errors.append(
                    f"service_prices.json: duplicate override of {price.service_code} in table {price.table_id}"
                )
            prices_by_table[price.table_id][price.service_code] = price

        tables = []
        table_ids = set()
        for line_num, row in enumerate(self._load_csv('pricing_tables.csv').to_dict(orient='records'), start=2):
            try:
                table_id = int(require(row, 'id'))
                table = parse_table(
                    row,
                    tuple(sorted(rules_by_table.get(table_id, []), key=lambda r: (r.sort_order, r.id))),
                    dict(prices_by_table.get(table_id, {})),
                )
            except (ValueError, KeyError) as e:
                self.errors.append(f"pricing_tables.csv line {line_num}: {e}")
                continue
            table_ids.add(table.id)
            tables.append(table)

        for table_id in sorted(set(rules_by_table) - table_ids):
            self.errors.append(f"pricing_rules.csv: rules reference unknown table {table_id}")
        for table_id in sorted(set(prices_by_table) - table_ids):
            self.errors.append(f"service_prices.json: overrides reference unknown table {table_id}")

        contracts = self._parse_documents('customer_pricing.json', CustomerPricing.from_dict)
        promotions = self._parse_documents('promotions.json', PromotionalPricing.from_dict)

        if self.errors:
            raise InvalidRateConfigError(self.errors)

        snapshot = RateSnapshot.build(
            carriers=carriers, zones=zones, tables=tables, services=services,
            customer_pricing=contracts, promotions=promotions,
        )
        logger.info(
            "Loaded %d carriers, %d zones, %d tables, %d contracts, %d promotions from %s",
            len(snapshot.carriers), len(snapshot.zones), len(snapshot.tables),
            len(snapshot.customer_pricing), len(snapshot.promotions), self.data_dir,
        )
        return snapshot


def validate_data_dir(data_dir: Path) -> tuple[bool, list[str]]:
    """
    Validate a data directory without keeping the snapshot.

    Returns (success, errors).
    """
    try:
        SnapshotLoader(data_dir).load()
    except InvalidRateConfigError as e:
        return False, e.errors
    return True, []
