"""
Billable weight: the weight a carrier actually charges for.

Volumetric weight is ``L x W x H / divisor`` (cm³ per kg). Weight-priced
tables ignore it, volumetric tables use it alone and hybrid tables charge
the larger of the two.
"""
from dataclasses import dataclass
from typing import Optional

from .entities import Dimensions, PricingModel
from .errors import MissingDimensionsError
from .money import D

DEFAULT_VOLUMETRIC_DIVISOR = D("5000")


@dataclass(frozen=True)
class BillableWeight:
    actual: D
    volumetric: Optional[D]
    billable: D
    basis: str  # "actual" or "volumetric"


def volumetric_weight(dimensions: Dimensions, divisor: D) -> D:
    if divisor <= 0:
        raise ValueError(f"volumetric divisor must be positive, got {divisor}")
    return dimensions.volume_cm3 / divisor


def calculate_billable_weight(
    weight_kg: D,
    dimensions: Optional[Dimensions],
    pricing_model: PricingModel,
    divisor: Optional[D] = None,
) -> BillableWeight:
    """
    Compute the billable weight for one shipment against one table's model.

    Raises MissingDimensionsError when the model needs dimensions and
    none were given.
    """
    if pricing_model == PricingModel.WEIGHT:
        return BillableWeight(actual=weight_kg, volumetric=None, billable=weight_kg, basis="actual")

    if dimensions is None:
        raise MissingDimensionsError(pricing_model.value)

    volumetric = volumetric_weight(dimensions, divisor or DEFAULT_VOLUMETRIC_DIVISOR)

    if pricing_model == PricingModel.VOLUMETRIC:
        return BillableWeight(actual=weight_kg, volumetric=volumetric, billable=volumetric, basis="volumetric")

    # hybrid
    if volumetric > weight_kg:
        return BillableWeight(actual=weight_kg, volumetric=volumetric, billable=volumetric, basis="volumetric")
    return BillableWeight(actual=weight_kg, volumetric=volumetric, billable=weight_kg, basis="actual")
