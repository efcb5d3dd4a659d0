"""
Audit Trail - Append-only record of customer pricing changes.

Entries are JSON lines; nothing here updates or deletes an entry, and
the pricing path never reads them.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    RENEWED = "renewed"
    DELETED = "deleted"


@dataclass(frozen=True)
class CustomerPricingAudit:
    id: int
    customer_pricing_id: int
    action: AuditAction
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    actor: Optional[str] = None
    reason: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CustomerPricingAudit":
        return cls(**{**data, "action": AuditAction(data["action"])})

    def changed_fields(self) -> list[str]:
        old, new = self.old_values or {}, self.new_values or {}
        return sorted(k for k in set(old) | set(new) if old.get(k) != new.get(k))


class AuditTrail:
    """Writes ``CustomerPricingAudit`` entries to a JSON-lines file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._next_id = self._count_entries() + 1

    def _count_entries(self) -> int:
        if not self.path.exists():
            return 0
        with open(self.path, 'r', encoding='utf-8') as f:
            return sum(1 for line in f if line.strip())

    def record(
        self,
        customer_pricing_id: int,
        action: AuditAction,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CustomerPricingAudit:
        entry = CustomerPricingAudit(
            id=self._next_id,
            customer_pricing_id=customer_pricing_id,
            action=action,
            old_values=old_values,
            new_values=new_values,
            actor=actor,
            reason=reason,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        self._next_id += 1
        logger.info("Audit %s: customer pricing %s %s by %s", entry.id, customer_pricing_id,
                    action.value, actor or "system")
        return entry

    def entries(self, customer_pricing_id: Optional[int] = None) -> list[CustomerPricingAudit]:
        """History for administrators; oldest first."""
        if not self.path.exists():
            return []
        found = []
        with open(self.path, 'r', encoding='utf-8') as f:
            for line in f:
                if not line.strip():
                    continue
                entry = CustomerPricingAudit.from_dict(json.loads(line))
                if customer_pricing_id is None or entry.customer_pricing_id == customer_pricing_id:
                    found.append(entry)
        return found
