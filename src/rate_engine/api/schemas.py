"""
Pydantic request models for the rate API.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..engine.entities import Dimensions, ServiceLevel, VolumePeriod
from ..engine.models import Shipment, VolumeStats


class DimensionsIn(BaseModel):
    length: Decimal = Field(gt=0)
    width: Decimal = Field(gt=0)
    height: Decimal = Field(gt=0)


class ShipmentIn(BaseModel):
    """Request model for one shipment."""
    carrier_code: str = ""
    zone_code: str
    service_type: ServiceLevel = ServiceLevel.STANDARD
    weight_kg: Decimal = Field(gt=0)
    dimensions: Optional[DimensionsIn] = None
    declared_value: Decimal = Field(default=Decimal("0"), ge=0)
    package_count: int = Field(default=1, ge=1)

    def to_shipment(self) -> Shipment:
        dims = None
        if self.dimensions is not None:
            dims = Dimensions(self.dimensions.length, self.dimensions.width, self.dimensions.height)
        return Shipment(
            carrier_code=self.carrier_code,
            zone_code=self.zone_code,
            service_type=self.service_type,
            weight_kg=self.weight_kg,
            dimensions=dims,
            declared_value=self.declared_value,
            package_count=self.package_count,
        )


class VolumeStatsIn(BaseModel):
    period: VolumePeriod
    shipment_count: int = Field(ge=0)
    total_value: Decimal = Decimal("0")


class QuoteRequest(BaseModel):
    """Request model for quoting, comparing and committing."""
    shipment: ShipmentIn
    customer_id: Optional[int] = None
    services: list[str] = []
    promo_code: Optional[str] = None
    as_of: Optional[datetime] = None
    customer_groups: list[str] = []
    volume_stats: Optional[VolumeStatsIn] = None

    def engine_kwargs(self) -> dict:
        stats = None
        if self.volume_stats is not None:
            stats = VolumeStats(self.volume_stats.period, self.volume_stats.shipment_count,
                                self.volume_stats.total_value)
        return {
            "customer_id": self.customer_id,
            "requested_services": self.services,
            "promo_code": self.promo_code,
            "as_of": self.as_of,
            "volume_stats": stats,
            "customer_groups": self.customer_groups,
        }


class CustomerPricingUpdate(BaseModel):
    """Request model for updating a contract; unset fields are left alone."""
    name: Optional[str] = None
    discount_type: Optional[str] = None
    base_discount: Optional[Decimal] = None
    fixed_discount: Optional[Decimal] = None
    minimum_order_value: Optional[Decimal] = None
    maximum_order_value: Optional[Decimal] = None
    volume_tiers: Optional[list[dict]] = None
    volume_period: Optional[str] = None
    custom_rules: Optional[list[dict]] = None
    service_discounts: Optional[dict[str, Decimal]] = None
    free_shipping_threshold: Optional[Decimal] = None
    tax_rate_override: Optional[Decimal] = None
    currency_override: Optional[str] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    is_active: Optional[bool] = None

    # Audit metadata, not contract fields
    actor: Optional[str] = None
    reason: Optional[str] = None

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True, exclude={"actor", "reason"}, mode="json")
        return data
