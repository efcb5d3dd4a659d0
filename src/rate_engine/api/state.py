"""
Shared API state: one engine, one usage counter store, one contract service.
"""
import logging
from pathlib import Path
from typing import Optional

from ..config.settings import SAMPLE_DATA_DIR, Settings, get_settings
from ..engine import PricingEngine, UsageCounters
from ..services.audit_trail import AuditTrail
from ..services.customer_pricing_service import CustomerPricingService

logger = logging.getLogger(__name__)


def contracts_path(settings: Settings) -> Optional[Path]:
    """File that contract edits are saved to; the bundled sample data is never written."""
    if settings.data_dir.resolve() == SAMPLE_DATA_DIR.resolve():
        return None
    return settings.data_dir / 'customer_pricing.json'


settings = get_settings()
engine = PricingEngine(settings)

# Promotion usage per customer/day; in-process only
usage = UsageCounters()

customer_pricing_service = CustomerPricingService(
    snapshot=engine.snapshot,
    audit=AuditTrail(settings.audit_log),
    json_path=contracts_path(settings),
)
if customer_pricing_service.json_path is None:
    logger.warning("Serving bundled sample data; contract edits are kept in memory only")


def get_engine() -> PricingEngine:
    return engine


def get_usage() -> UsageCounters:
    return usage


def get_customer_pricing_service() -> CustomerPricingService:
    return customer_pricing_service
