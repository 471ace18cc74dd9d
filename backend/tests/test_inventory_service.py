# Overview: Pytest coverage for move, adjust, split and item creation in the ledger engine.

"""
Ledger Operations Tests

Covers the quantity-changing transitions that keep their source item:
- create_item / move_item / adjust_quantity / split_item
- location scoping (foreign rows are "not found")
- conservation of active quantity under split
- audit entries written in the same transaction
"""

from decimal import Decimal

import pytest

from ledger.models import AuditLogEntry, InventoryAdjustment, InventoryItem
from ledger.services import inventory_service
from ledger.validation import (
    NegativeResultError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)


def _audit_actions(db_session, item_id):
    return [
        e.action
        for e in db_session.query(AuditLogEntry)
        .filter_by(entity_type="InventoryItem", entity_id=item_id)
        .order_by(AuditLogEntry.id)
        .all()
    ]


class TestCreateItem:
    def test_create_item_assigns_barcode_and_audits(self, db_session, location, item):
        assert len(item.barcode) == 16
        assert item.quantity == Decimal("1000")
        assert _audit_actions(db_session, item.id) == ["ITEM_CREATED"]

    def test_create_item_rejects_foreign_room(self, db_session, location, foreign_room, dry_type):
        with pytest.raises(NotFoundError):
            inventory_service.create_item(
                location.id, inventory_type_id=dry_type.id, room_id=foreign_room.id, quantity=10
            )

    def test_create_item_rejects_negative_quantity(self, db_session, location, room, dry_type):
        with pytest.raises(ValidationError):
            inventory_service.create_item(location.id, inventory_type_id=dry_type.id, room_id=room.id, quantity=-1)


class TestMoveItem:
    def test_move_updates_room_and_records_old_and_new(self, db_session, location, room, second_room, item):
        moved = inventory_service.move_item(location.id, item.id, second_room.id, reason="Drying")

        assert moved.room_id == second_room.id
        entry = db_session.query(AuditLogEntry).filter_by(action="ROOM_MOVE", entity_id=item.id).one()
        assert entry.old_data == {"room_id": room.id, "room_name": "Vault"}
        assert entry.new_data == {"room_id": second_room.id, "room_name": "Drying Room"}
        assert entry.reason == "Drying"

    def test_move_to_foreign_room_is_not_found(self, db_session, location, foreign_room, item):
        with pytest.raises(NotFoundError):
            inventory_service.move_item(location.id, item.id, foreign_room.id)

    def test_move_from_other_location_is_not_found(self, db_session, other_location, foreign_room, item):
        with pytest.raises(NotFoundError):
            inventory_service.move_item(other_location.id, item.id, foreign_room.id)

    def test_move_to_deleted_room_is_not_found(self, db_session, location, second_room, item):
        from ledger.time_utils import utcnow
        second_room.deleted_at = utcnow()
        db_session.commit()

        with pytest.raises(NotFoundError):
            inventory_service.move_item(location.id, item.id, second_room.id)


class TestAdjustQuantity:
    def test_positive_adjustment(self, db_session, location, item):
        result = inventory_service.adjust_quantity(location.id, item.id, Decimal("50"), "Recount", "GAIN")

        assert result.item.quantity == Decimal("1050")
        assert result.red_flag is False
        assert result.warning is None
        assert result.adjustment.previous_quantity == Decimal("1000")
        assert result.adjustment.new_quantity == Decimal("1050")

    def test_adjustment_below_zero_is_conflict_and_changes_nothing(self, db_session, location, item):
        with pytest.raises(NegativeResultError):
            inventory_service.adjust_quantity(location.id, item.id, Decimal("-1001"), "Loss", "LOSS")

        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == Decimal("1000")
        assert db_session.query(InventoryAdjustment).count() == 0
        assert _audit_actions(db_session, item.id) == ["ITEM_CREATED"]

    def test_large_adjustment_is_red_flagged(self, db_session, location, item):
        result = inventory_service.adjust_quantity(location.id, item.id, Decimal("-200"), "Theft", "LOSS")

        assert result.red_flag is True
        assert result.adjustment.is_red_flag is True
        assert "10" in result.warning

    def test_usable_weight_scales_with_quantity(self, db_session, location, room, dry_type, make_item):
        item = make_item(location, room, dry_type, Decimal("100"), usable_weight=Decimal("80"))
        result = inventory_service.adjust_quantity(location.id, item.id, Decimal("-50"), "Loss", "LOSS")

        assert result.item.quantity == Decimal("50")
        assert result.item.usable_weight == Decimal("40")

    def test_zero_delta_is_rejected(self, db_session, location, item):
        with pytest.raises(ValidationError):
            inventory_service.adjust_quantity(location.id, item.id, 0, "Nothing", "CORRECTION")

    def test_reason_is_required(self, db_session, location, item):
        with pytest.raises(ValidationError):
            inventory_service.adjust_quantity(location.id, item.id, 5, "  ", "CORRECTION")


class TestSplitItem:
    def test_split_example(self, db_session, location, item):
        """1000g split into [300, 300] leaves 400 on the parent; then -450 fails and +50 flags."""
        result = inventory_service.split_item(location.id, item.id, [Decimal("300"), Decimal("300")], "Packaging")

        assert result.parent.quantity == Decimal("400")
        assert [c.quantity for c in result.children] == [Decimal("300"), Decimal("300")]
        assert [c.sublot_identifier for c in result.children] == [f"{item.barcode}-1", f"{item.barcode}-2"]
        assert len({c.barcode for c in result.children} | {item.barcode}) == 3

        with pytest.raises(NegativeResultError):
            inventory_service.adjust_quantity(location.id, item.id, Decimal("-450"), "Recount", "CORRECTION")

        adjusted = inventory_service.adjust_quantity(location.id, item.id, Decimal("50"), "Recount", "CORRECTION")
        assert adjusted.item.quantity == Decimal("450")
        assert adjusted.red_flag is True

    def test_split_conserves_active_quantity(self, db_session, location, item):
        before = inventory_service.get_active_quantity(location.id)
        inventory_service.split_item(
            location.id, item.id, [{"quantity": "250.5"}, {"quantity": "100.25"}], "Packaging"
        )
        assert inventory_service.get_active_quantity(location.id) == before

    def test_split_of_sublot_extends_identifier(self, db_session, location, item):
        first = inventory_service.split_item(location.id, item.id, [Decimal("100")], "Packaging")
        child = first.children[0]
        second = inventory_service.split_item(location.id, child.id, [Decimal("40"), Decimal("30")], "Packaging")

        assert [c.sublot_identifier for c in second.children] == [
            f"{item.barcode}-1-1",
            f"{item.barcode}-1-2",
        ]

    def test_split_over_parent_is_rejected(self, db_session, location, item):
        with pytest.raises(OverAllocationError):
            inventory_service.split_item(location.id, item.id, [Decimal("600"), Decimal("401")], "Packaging")

        db_session.expire_all()
        assert db_session.query(InventoryItem).count() == 1

    def test_split_parts_must_be_positive(self, db_session, location, item):
        with pytest.raises(ValidationError):
            inventory_service.split_item(location.id, item.id, [Decimal("0")], "Packaging")

    def test_split_parts_can_target_other_rooms(self, db_session, location, second_room, item):
        result = inventory_service.split_item(
            location.id, item.id, [{"quantity": 100, "room_id": second_room.id}], "Packaging"
        )
        assert result.children[0].room_id == second_room.id

    def test_split_distributes_usable_weight(self, db_session, location, room, dry_type, make_item):
        item = make_item(location, room, dry_type, Decimal("100"), usable_weight=Decimal("50"))
        result = inventory_service.split_item(location.id, item.id, [Decimal("40")], "Packaging")

        assert result.children[0].usable_weight == Decimal("20")
        assert result.parent.usable_weight == Decimal("30")

    def test_split_records_lineage(self, db_session, location, item):
        result = inventory_service.split_item(location.id, item.id, [Decimal("10"), Decimal("20")], "Packaging")

        data = result.split.to_dict()
        assert data["parent_inventory_item_id"] == item.id
        assert [line["quantity"] for line in data["lines"]] == ["10.0000", "20.0000"]
        page = inventory_service.list_splits(location.id)
        assert page["total"] == 1


class TestReads:
    def test_get_item_is_location_scoped(self, db_session, location, other_location, item):
        assert inventory_service.get_item(location.id, item.id).id == item.id
        with pytest.raises(NotFoundError):
            inventory_service.get_item(other_location.id, item.id)

    def test_list_adjustments_paginates(self, db_session, location, item):
        for delta in (1, 2, 3):
            inventory_service.adjust_quantity(location.id, item.id, delta, "Recount", "GAIN")

        page = inventory_service.list_adjustments(location.id, page=1, limit=2)
        assert page["total"] == 3
        assert page["pages"] == 2
        assert len(page["items"]) == 2

    def test_list_audit_entries_newest_first(self, db_session, location, second_room, item):
        inventory_service.move_item(location.id, item.id, second_room.id)
        entries = inventory_service.list_audit_entries(location.id, item.id)
        assert [e.action for e in entries] == ["ROOM_MOVE", "ITEM_CREATED"]

    def test_list_items_filters_by_room_and_hides_tombstones(self, db_session, location, room, second_room, dry_type, item, make_item):
        other = make_item(location, second_room, dry_type, Decimal("5"))
        gone = make_item(location, room, dry_type, Decimal("1"))
        inventory_service.destroy_item(location.id, gone.id, "Recall")

        active_dry = inventory_service.list_items(location.id, inventory_type_id=dry_type.id)
        assert [i.id for i in active_dry] == [item.id, other.id]
        assert [i.id for i in inventory_service.list_items(location.id, room_id=second_room.id)] == [other.id]
        assert gone.id in [i.id for i in inventory_service.list_items(location.id, include_deleted=True)]

    def test_list_combinations(self, db_session, location, room, dry_type, make_item):
        a = make_item(location, room, dry_type, Decimal("2"))
        b = make_item(location, room, dry_type, Decimal("3"))
        inventory_service.combine_items(location.id, [a.id, b.id], "Consolidate")

        page = inventory_service.list_combinations(location.id)
        assert page["total"] == 1
        assert page["items"][0].location_id == location.id
