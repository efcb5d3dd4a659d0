"""
Customer Pricing API - FastAPI router for contract management.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..services.customer_pricing_service import CustomerPricingService
from .schemas import CustomerPricingUpdate
from .state import get_customer_pricing_service

router = APIRouter(prefix="/api/customer-pricing", tags=["customer-pricing"])


@router.get("")
async def list_contracts(
    customer_id: Optional[int] = None,
    include_inactive: bool = True,
    service: CustomerPricingService = Depends(get_customer_pricing_service),
):
    """List customer contracts."""
    return [c.to_dict() for c in service.list_contracts(customer_id, include_inactive)]


@router.get("/stats")
async def get_stats(service: CustomerPricingService = Depends(get_customer_pricing_service)):
    """Get contract statistics."""
    return service.get_stats()


@router.get("/{contract_id}")
async def get_contract(contract_id: int, service: CustomerPricingService = Depends(get_customer_pricing_service)):
    """Get a single contract by ID."""
    contract = service.get_contract(contract_id)
    if not contract:
        raise HTTPException(status_code=404, detail=f"Customer pricing {contract_id} not found")
    return contract.to_dict()


@router.get("/{contract_id}/history")
async def get_history(contract_id: int, service: CustomerPricingService = Depends(get_customer_pricing_service)):
    """Audit entries for one contract, oldest first."""
    return [entry.to_dict() for entry in service.audit.entries(contract_id)]


@router.patch("/{contract_id}")
async def update_contract(
    contract_id: int,
    update: CustomerPricingUpdate,
    service: CustomerPricingService = Depends(get_customer_pricing_service),
):
    """Update a contract; the change is audited."""
    if not service.get_contract(contract_id):
        raise HTTPException(status_code=404, detail=f"Customer pricing {contract_id} not found")
    try:
        contract = service.update_contract(contract_id, update.changes(), actor=update.actor, reason=update.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return contract.to_dict()
