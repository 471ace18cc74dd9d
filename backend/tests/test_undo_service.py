# Overview: Pytest coverage for allow-listed undo of room moves and quantity adjustments.

from decimal import Decimal

import pytest

from ledger.models import AuditLogEntry, InventoryItem
from ledger.services import inventory_service, sales_service, undo_service
from ledger.time_utils import utcnow
from ledger.validation import ConflictError, NotFoundError, NotUndoableError, ValidationError


def _last_entry(db_session, action):
    return db_session.query(AuditLogEntry).filter_by(action=action).order_by(AuditLogEntry.id.desc()).first()


class TestUndoRoomMove:
    def test_restores_prior_room(self, db_session, location, room, second_room, item):
        inventory_service.move_item(location.id, item.id, second_room.id)
        entry = _last_entry(db_session, "ROOM_MOVE")

        result = undo_service.undo_operation(location.id, entry.id, "Moved by mistake", actor_user_id=7)

        assert result.item.room_id == room.id
        assert result.undo_entry.action == "UNDO"
        assert result.undo_entry.undone_entry_id == entry.id
        assert result.undo_entry.actor_user_id == 7
        # old/new swapped
        assert result.undo_entry.old_data == entry.new_data
        assert result.undo_entry.new_data == entry.old_data

    def test_prior_room_deleted_is_conflict(self, db_session, location, room, second_room, item):
        inventory_service.move_item(location.id, item.id, second_room.id)
        entry = _last_entry(db_session, "ROOM_MOVE")
        room.deleted_at = utcnow()
        db_session.commit()

        with pytest.raises(ConflictError):
            undo_service.undo_operation(location.id, entry.id, "Undo")


class TestUndoAdjustment:
    def test_restores_exact_prior_quantity_after_unrelated_mutations(
        self, db_session, location, second_room, item
    ):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("-123.4567"), "Spill", "LOSS")
        entry = _last_entry(db_session, "QUANTITY_ADJUSTMENT")
        inventory_service.move_item(location.id, item.id, second_room.id)

        result = undo_service.undo_operation(location.id, entry.id, "Spill was a miscount")

        assert result.item.quantity == Decimal("1000")
        assert result.item.room_id == second_room.id

    def test_same_entry_can_be_undone_twice(self, db_session, location, item):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("10"), "Recount", "GAIN")
        entry = _last_entry(db_session, "QUANTITY_ADJUSTMENT")

        undo_service.undo_operation(location.id, entry.id, "First")
        result = undo_service.undo_operation(location.id, entry.id, "Second")

        assert result.item.quantity == Decimal("1000")
        assert db_session.query(AuditLogEntry).filter_by(action="UNDO").count() == 2

    def test_tombstoned_item_is_conflict(self, db_session, location, item):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("10"), "Recount", "GAIN")
        entry = _last_entry(db_session, "QUANTITY_ADJUSTMENT")
        inventory_service.destroy_item(location.id, item.id, "Recall")

        with pytest.raises(ConflictError):
            undo_service.undo_operation(location.id, entry.id, "Undo")


class TestUndoRejections:
    @pytest.mark.parametrize("action", ["SPLIT", "DESTROY", "ITEM_CREATED"])
    def test_irreversible_actions(self, db_session, location, item, action):
        if action == "SPLIT":
            inventory_service.split_item(location.id, item.id, [Decimal("10")], "Packaging")
        elif action == "DESTROY":
            inventory_service.destroy_item(location.id, item.id, "Mold", amount=Decimal("5"))
        entry = _last_entry(db_session, action)

        with pytest.raises(NotUndoableError):
            undo_service.undo_operation(location.id, entry.id, "Undo")

        db_session.expire_all()
        assert db_session.query(AuditLogEntry).filter_by(action="UNDO").count() == 0

    def test_sale_is_not_undoable(self, db_session, location, item):
        sales_service.create_sale(location.id, [{"inventory_item_id": item.id, "quantity": 1, "unit_price_cents": 100}])
        entry = _last_entry(db_session, "SALE")
        with pytest.raises(NotUndoableError):
            undo_service.undo_operation(location.id, entry.id, "Undo")

    def test_undo_entry_is_not_undoable(self, db_session, location, item):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("10"), "Recount", "GAIN")
        undo_service.undo_operation(location.id, _last_entry(db_session, "QUANTITY_ADJUSTMENT").id, "Undo")
        with pytest.raises(NotUndoableError):
            undo_service.undo_operation(location.id, _last_entry(db_session, "UNDO").id, "Redo")

    def test_foreign_entry_is_not_found(self, db_session, location, other_location, item):
        inventory_service.adjust_quantity(location.id, item.id, Decimal("10"), "Recount", "GAIN")
        entry = _last_entry(db_session, "QUANTITY_ADJUSTMENT")
        with pytest.raises(NotFoundError):
            undo_service.undo_operation(other_location.id, entry.id, "Undo")

    def test_missing_entry_is_not_found(self, db_session, location):
        with pytest.raises(NotFoundError):
            undo_service.undo_operation(location.id, 999999, "Undo")

    def test_reason_is_required(self, db_session, location):
        with pytest.raises(ValidationError):
            undo_service.undo_operation(location.id, 1, "")

    def test_quantity_is_untouched_by_rejected_undo(self, db_session, location, item):
        inventory_service.split_item(location.id, item.id, [Decimal("10")], "Packaging")
        entry = _last_entry(db_session, "SPLIT")
        with pytest.raises(NotUndoableError):
            undo_service.undo_operation(location.id, entry.id, "Undo")
        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == Decimal("990")
