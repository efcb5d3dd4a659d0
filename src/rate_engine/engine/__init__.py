"""Engine subpackage - core rate computation and resolution."""
from .errors import PricingError
from .models import Quote, QuoteLine, Shipment, UsageCounters, VolumeStats
from .pricing_engine import PricingEngine
from .snapshot import RateSnapshot

__all__ = [
    'PricingEngine', 'PricingError', 'Quote', 'QuoteLine', 'RateSnapshot',
    'Shipment', 'UsageCounters', 'VolumeStats',
]
