"""
Customer Pricing Service - Create, change and retire customer contracts.

Every successful change is written back to the snapshot (and to
customer_pricing.json when a path is given) and then appended to the
audit trail.
"""
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..engine.entities import CustomerPricing, DiscountType
from ..engine.snapshot import RateSnapshot
from .audit_trail import AuditAction, AuditTrail

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of contract validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    contract: Optional[CustomerPricing] = None


class CustomerPricingService:
    """Service for managing customer pricing contracts."""

    def __init__(self, snapshot: RateSnapshot, audit: AuditTrail, json_path: Optional[Path] = None):
        self.snapshot = snapshot
        self.audit = audit
        self.json_path = json_path

    def list_contracts(self, customer_id: Optional[int] = None, include_inactive: bool = True) -> list[CustomerPricing]:
        contracts = sorted(self.snapshot.customer_pricing.values(), key=lambda c: c.id)
        if customer_id is not None:
            contracts = [c for c in contracts if c.customer_id == customer_id]
        if not include_inactive:
            contracts = [c for c in contracts if c.is_active]
        return contracts

    def get_contract(self, contract_id: int) -> Optional[CustomerPricing]:
        return self.snapshot.customer_pricing.get(contract_id)

    def _require(self, contract_id: int) -> CustomerPricing:
        contract = self.get_contract(contract_id)
        if contract is None:
            raise ValueError(f"Customer pricing {contract_id} not found")
        return contract

    def validate(self, data: dict, contract_id: Optional[int] = None) -> ValidationResult:
        """Validate a full contract document before saving."""
        result = ValidationResult(valid=True)
        try:
            contract = CustomerPricing.from_dict(data)
        except (ValueError, TypeError) as e:
            return ValidationResult(valid=False, errors=[str(e)])

        if contract.base_table_id not in self.snapshot.tables:
            result.errors.append(f"Base table {contract.base_table_id} does not exist")

        for other in self.snapshot.customer_pricing.values():
            if other.id == contract_id:
                continue
            if other.id == contract.id:
                result.errors.append(f"Customer pricing {contract.id} already exists")
            elif (other.customer_id, other.base_table_id) == (contract.customer_id, contract.base_table_id):
                result.errors.append(
                    f"Customer {contract.customer_id} already has contract {other.id} "
                    f"on table {contract.base_table_id}"
                )

        if contract.effective_until is not None and contract.effective_until < contract.effective_from:
            result.errors.append("Effective until must be after effective from")

        if contract.discount_type == DiscountType.PERCENTAGE and contract.base_discount is None:
            result.errors.append("Percentage contracts need base_discount")
        if contract.discount_type == DiscountType.FIXED and contract.fixed_discount is None:
            result.errors.append("Fixed contracts need fixed_discount")
        if contract.discount_type == DiscountType.VOLUME and not contract.volume_tiers:
            result.errors.append("Volume contracts need volume_tiers")
        if contract.discount_type == DiscountType.CUSTOM_RULES and not contract.custom_rules:
            result.errors.append("Custom rule contracts need custom_rules")

        # Warnings do not block saving
        if contract.effective_until is not None and contract.effective_until < datetime.now():
            result.warnings.append("Contract has expired (effective until is in the past)")
        if contract.base_discount is not None and contract.base_discount > 50:
            result.warnings.append(f"Discount of {contract.base_discount}% is unusually high")

        result.valid = not result.errors
        result.contract = contract if result.valid else None
        return result

    def _save(self, contract: CustomerPricing, old: Optional[CustomerPricing], action: AuditAction,
              actor: Optional[str], reason: Optional[str]) -> CustomerPricing:
        self.snapshot.replace_contract(contract)
        self._write_contracts()
        self.audit.record(
            contract.id, action,
            old_values=old.to_dict() if old else None,
            new_values=contract.to_dict(),
            actor=actor, reason=reason,
        )
        return contract

    def _write_contracts(self):
        """Write contracts back to JSON."""
        if self.json_path is None:
            return
        with open(self.json_path, 'w', encoding='utf-8') as f:
            json.dump([c.to_dict() for c in self.list_contracts()], f, indent=2, ensure_ascii=False)

    def create_contract(self, data: dict, actor: Optional[str] = None, reason: Optional[str] = None) -> CustomerPricing:
        data = dict(data)
        if data.get('id') is None:
            data['id'] = max(self.snapshot.customer_pricing, default=0) + 1
        result = self.validate(data)
        if not result.valid:
            raise ValueError("; ".join(result.errors))
        return self._save(result.contract, None, AuditAction.CREATED, actor, reason)

    def update_contract(self, contract_id: int, updates: dict, actor: Optional[str] = None,
                        reason: Optional[str] = None) -> CustomerPricing:
        """
        Apply a partial update.

        The audit action follows what changed: toggling ``is_active`` is an
        activation or deactivation, pushing ``effective_until`` later is a
        renewal, anything else is an update.
        """
        old = self._require(contract_id)
        if 'id' in updates and int(updates['id']) != contract_id:
            raise ValueError("Contract id cannot be changed")
        result = self.validate({**old.to_dict(), **updates}, contract_id=contract_id)
        if not result.valid:
            raise ValueError("; ".join(result.errors))
        new = result.contract

        if new.is_active != old.is_active:
            action = AuditAction.ACTIVATED if new.is_active else AuditAction.DEACTIVATED
        elif old.effective_until is not None and (
                new.effective_until is None or new.effective_until > old.effective_until):
            action = AuditAction.RENEWED
        else:
            action = AuditAction.UPDATED
        return self._save(new, old, action, actor, reason)

    def activate(self, contract_id: int, actor: Optional[str] = None, reason: Optional[str] = None) -> CustomerPricing:
        return self.update_contract(contract_id, {'is_active': True}, actor, reason)

    def deactivate(self, contract_id: int, actor: Optional[str] = None, reason: Optional[str] = None) -> CustomerPricing:
        return self.update_contract(contract_id, {'is_active': False}, actor, reason)

    def renew(self, contract_id: int, until: Optional[datetime], actor: Optional[str] = None,
              reason: Optional[str] = None) -> CustomerPricing:
        return self.update_contract(
            contract_id, {'effective_until': until.isoformat() if until else None}, actor, reason
        )

    def expire(self, contract_id: int, as_of: Optional[datetime] = None, actor: Optional[str] = None,
               reason: Optional[str] = None) -> CustomerPricing:
        """End the contract now (or at ``as_of``) without deactivating it."""
        old = self._require(contract_id)
        as_of = as_of or datetime.now()
        if as_of < old.effective_from:
            raise ValueError("Cannot expire a contract before it starts")
        return self._save(replace(old, effective_until=as_of), old, AuditAction.EXPIRED, actor, reason)

    def delete_contract(self, contract_id: int, actor: Optional[str] = None, reason: Optional[str] = None) -> bool:
        old = self._require(contract_id)
        del self.snapshot.customer_pricing[contract_id]
        self._write_contracts()
        self.audit.record(contract_id, AuditAction.DELETED, old_values=old.to_dict(),
                          actor=actor, reason=reason)
        return True

    def get_stats(self) -> dict:
        """Get statistics about contracts."""
        contracts = self.list_contracts()
        now = datetime.now()
        by_type = {}
        for c in contracts:
            by_type[c.discount_type.value] = by_type.get(c.discount_type.value, 0) + 1
        return {
            'total': len(contracts),
            'active': sum(1 for c in contracts if c.is_currently_active(now)),
            'inactive': sum(1 for c in contracts if not c.is_active),
            'expired': sum(1 for c in contracts if c.effective_until is not None and c.effective_until < now),
            'by_type': by_type,
        }
