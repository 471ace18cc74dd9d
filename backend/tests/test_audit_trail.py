# Overview: Pytest coverage for audit immutability and all-or-nothing transactions.

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from ledger.models import AuditLogEntry, AuditLogImmutableError, InventoryItem
from ledger.services import audit_service, inventory_service
from ledger.validation import InternalLedgerError


class TestAuditImmutability:
    def test_entries_cannot_be_updated(self, db_session, location, item):
        entry = db_session.query(AuditLogEntry).first()
        entry.reason = "rewritten"
        with pytest.raises(AuditLogImmutableError):
            db_session.commit()
        db_session.rollback()

        db_session.expire_all()
        assert db_session.query(AuditLogEntry).first().reason == "Item created"

    def test_entries_cannot_be_deleted(self, db_session, location, item):
        entry = db_session.query(AuditLogEntry).first()
        db_session.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            db_session.commit()
        db_session.rollback()
        assert db_session.query(AuditLogEntry).count() == 1

    def test_decimals_are_stored_as_strings(self, db_session, location, item):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("-0.0001"), "Scale drift", "CORRECTION")
        entry = db_session.query(AuditLogEntry).filter_by(action="QUANTITY_ADJUSTMENT").one()
        assert entry.old_data["quantity"] == "1000.0000"
        assert entry.new_data["quantity"] == "999.9999"

    def test_unknown_action_is_rejected(self, db_session, location):
        with pytest.raises(ValueError):
            audit_service.record(location_id=location.id, entity_type="InventoryItem", entity_id=1, action="TELEPORT")


class TestAtomicity:
    def test_failed_audit_write_rolls_back_the_mutation(self, db_session, location, second_room, item, monkeypatch):
        def _boom(**kwargs):
            raise OperationalError("INSERT INTO audit_log_entries", {}, Exception("disk I/O error"))

        monkeypatch.setattr(audit_service, "record", _boom)

        with pytest.raises(InternalLedgerError) as exc_info:
            inventory_service.move_item(location.id, item.id, second_room.id)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert exc_info.value.status_code == 500
        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).room_id != second_room.id

    def test_failed_split_leaves_no_children(self, db_session, location, item, monkeypatch):
        def _boom(**kwargs):
            raise OperationalError("INSERT INTO audit_log_entries", {}, Exception("locked"))

        monkeypatch.setattr(audit_service, "record", _boom)

        with pytest.raises(InternalLedgerError):
            inventory_service.split_item(location.id, item.id, [Decimal("100")], "Packaging")

        db_session.expire_all()
        assert db_session.query(InventoryItem).count() == 1
        assert db_session.get(InventoryItem, item.id).quantity == Decimal("1000")

    def test_every_mutation_writes_exactly_one_item_entry(self, db_session, location, second_room, item):
        inventory_service.move_item(location.id, item.id, second_room.id)
        inventory_service.adjust_quantity(location.id, item.id, Decimal("5"), "Recount", "GAIN")

        entries, total = audit_service.list_entries(location.id, entity_type="InventoryItem", entity_id=item.id)
        assert total == 3
        assert [e.action for e in entries] == ["QUANTITY_ADJUSTMENT", "ROOM_MOVE", "ITEM_CREATED"]
