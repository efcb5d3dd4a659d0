import json
from datetime import datetime
from decimal import Decimal as D

import pytest

from rate_engine.engine.entities import CustomerPricing, DiscountType
from rate_engine.services.audit_trail import AuditAction, AuditTrail
from rate_engine.services.customer_pricing_service import CustomerPricingService


@pytest.fixture
def audit(tmp_path):
    return AuditTrail(tmp_path / "audit.jsonl")


@pytest.fixture
def service(snapshot, audit, tmp_path):
    return CustomerPricingService(snapshot, audit, json_path=tmp_path / "customer_pricing.json")


NEW_CONTRACT = {
    "customer_id": 3003,
    "base_table_id": 2,
    "name": "Hurtownia Nova",
    "discount_type": "fixed",
    "fixed_discount": "5.00",
    "effective_from": "2026-01-01",
}


class TestValidation:

    def test_valid_contract(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10})
        assert result.valid
        assert result.contract.fixed_discount == D("5.00")

    def test_unknown_table_and_missing_amount(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10, "base_table_id": 99, "discount_type": "percentage"})
        assert not result.valid
        assert "Base table 99 does not exist" in result.errors
        assert "Percentage contracts need base_discount" in result.errors

    def test_one_contract_per_customer_and_table(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10, "customer_id": 1001, "base_table_id": 1})
        assert result.errors == ["Customer 1001 already has contract 1 on table 1"]

    def test_malformed_document(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10, "discount_type": "rebate"})
        assert not result.valid
        assert result.errors[0].startswith("discount_type must be one of")

    def test_inverted_window(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10, "effective_until": "2025-06-30"})
        assert "Effective until must be after effective from" in result.errors

    def test_high_discount_only_warns(self, service):
        result = service.validate({**NEW_CONTRACT, "id": 10, "discount_type": "percentage", "base_discount": "60"})
        assert result.valid
        assert result.warnings == ["Discount of 60% is unusually high"]


class TestMutations:

    def test_create_assigns_next_id_and_audits(self, service, audit, snapshot):
        contract = service.create_contract(NEW_CONTRACT, actor="anna", reason="new wholesale account")

        assert contract.id == 3
        assert snapshot.customer_pricing[3] is contract
        [entry] = audit.entries(3)
        assert entry.action == AuditAction.CREATED
        assert entry.old_values is None
        assert entry.new_values["fixed_discount"] == "5.00"
        assert entry.actor == "anna"

    def test_create_rejects_invalid(self, service, audit):
        with pytest.raises(ValueError, match="already has contract 1"):
            service.create_contract({**NEW_CONTRACT, "customer_id": 1001, "base_table_id": 1})
        assert audit.entries() == []

    def test_update_records_old_and_new_values(self, service, audit):
        contract = service.update_contract(1, {"base_discount": "12"}, actor="anna")
        assert contract.base_discount == D("12")

        [entry] = audit.entries(1)
        assert entry.action == AuditAction.UPDATED
        assert entry.changed_fields() == ["base_discount"]
        assert (entry.old_values["base_discount"], entry.new_values["base_discount"]) == ("10", "12")

    def test_update_cannot_change_id(self, service):
        with pytest.raises(ValueError):
            service.update_contract(1, {"id": 5})

    def test_update_unknown_contract(self, service):
        with pytest.raises(ValueError, match="not found"):
            service.update_contract(77, {"base_discount": "1"})

    def test_deactivate_and_activate(self, service, audit):
        assert service.deactivate(1).is_active is False
        assert service.activate(1).is_active is True
        assert [e.action for e in audit.entries(1)] == [AuditAction.DEACTIVATED, AuditAction.ACTIVATED]

    def test_expire_then_renew(self, service, audit):
        expired = service.expire(1, as_of=datetime(2026, 7, 1))
        assert expired.effective_until == datetime(2026, 7, 1)

        renewed = service.renew(1, datetime(2027, 12, 31))
        assert renewed.effective_until == datetime(2027, 12, 31)
        assert [e.action for e in audit.entries(1)] == [AuditAction.EXPIRED, AuditAction.RENEWED]

    def test_expire_before_start(self, service):
        with pytest.raises(ValueError):
            service.expire(1, as_of=datetime(2025, 1, 1))

    def test_delete(self, service, audit):
        assert service.delete_contract(2, actor="anna", reason="account closed")
        assert service.get_contract(2) is None
        [entry] = audit.entries(2)
        assert entry.action == AuditAction.DELETED
        assert entry.new_values is None

    def test_changes_are_written_back_to_json(self, service, tmp_path):
        service.update_contract(2, {"tax_rate_override": "5"})
        saved = json.loads((tmp_path / "customer_pricing.json").read_text(encoding="utf-8"))
        assert [c["id"] for c in saved] == [1, 2]
        reloaded = CustomerPricing.from_dict(saved[1])
        assert reloaded.tax_rate_override == D("5")
        assert reloaded.currency_override == "EUR"


def test_listing_and_stats(service):
    assert [c.id for c in service.list_contracts()] == [1, 2]
    assert [c.id for c in service.list_contracts(customer_id=2002)] == [2]
    service.deactivate(2)
    assert [c.id for c in service.list_contracts(include_inactive=False)] == [1]

    stats = service.get_stats()
    assert stats["total"] == 2
    assert stats["inactive"] == 1
    assert stats["by_type"] == {DiscountType.PERCENTAGE.value: 2}


def test_audit_ids_continue_across_instances(tmp_path):
    path = tmp_path / "audit.jsonl"
    AuditTrail(path).record(1, AuditAction.CREATED, new_values={"id": 1})
    entry = AuditTrail(path).record(1, AuditAction.UPDATED, old_values={"id": 1}, new_values={"id": 1})
    assert entry.id == 2
    assert [e.id for e in AuditTrail(path).entries()] == [1, 2]
