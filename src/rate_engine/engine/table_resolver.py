"""Pick the one pricing table in force for a (carrier, zone, service type)."""
import logging
from datetime import datetime
from typing import Iterable, Optional

from .entities import PricingTable, ServiceLevel
from .errors import AmbiguousRateTableError, NoActiveRateTableError

logger = logging.getLogger(__name__)


def resolve_table(
    tables: Iterable[PricingTable],
    carrier_code: str,
    zone_code: str,
    service_type: ServiceLevel,
    as_of: Optional[datetime] = None,
) -> PricingTable:
    """
    Return the current table with the highest version.

    A table is current when it is active and ``as_of`` lies inside its
    effective window (an open ``effective_until`` never expires).
    """
    as_of = as_of or datetime.now()

    current = [
        t for t in tables
        if t.carrier_code == carrier_code
        and t.zone_code == zone_code
        and t.service_type == service_type
        and t.is_current(as_of)
    ]
    if not current:
        raise NoActiveRateTableError(carrier_code, zone_code, service_type.value, as_of)

    top_version = max(t.version for t in current)
    winners = sorted((t for t in current if t.version == top_version), key=lambda t: t.id)
    if len(winners) > 1:
        raise AmbiguousRateTableError(
            carrier_code, zone_code, service_type.value, top_version, [t.id for t in winners]
        )

    table = winners[0]
    logger.debug("Resolved table %s (v%s) for %s/%s/%s", table.id, table.version,
                 carrier_code, zone_code, service_type.value)
    return table
