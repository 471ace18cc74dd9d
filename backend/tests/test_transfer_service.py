# Overview: Pytest coverage for inter-location transfers (ship, dispatch, receive, reject).

"""
Transfer Tests

- shipping decrements every source or nothing
- receiving creates new items at the destination; rejecting restores sources
- quantity in transit reappears in exactly one place
- only the sender dispatches and only the receiver receives
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from ledger.models import AuditLogEntry, InventoryItem, Location, Transfer, TransferItem
from ledger.services import inventory_service, transfer_service
from ledger.time_utils import utcnow
from ledger.validation import (
    ConflictError,
    InsufficientQuantityError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def stock(db_session, location, room, dry_type, make_item):
    a = make_item(location, room, dry_type, Decimal("100"), usable_weight=Decimal("80"), product_name="Blue Dream")
    b = make_item(location, room, dry_type, Decimal("20"))
    return a, b


@pytest.fixture
def shipped(db_session, location, other_location, stock):
    a, b = stock
    return transfer_service.create_transfer(location.id, other_location.id, [
        {"inventory_item_id": a.id, "quantity": 40},
        {"inventory_item_id": b.id, "quantity": "5.5"},
    ], actor_user_id=4)


def _quantities(db_session, *items):
    db_session.expire_all()
    return [db_session.get(InventoryItem, i.id).quantity for i in items]


class TestCreateTransfer:
    def test_create_decrements_sources(self, db_session, location, other_location, stock, shipped):
        a, b = stock

        assert shipped.status == "PENDING"
        assert shipped.manifest_number == f"TRF-{location.id:03d}-000001"
        assert shipped.receiver_location_id == other_location.id
        assert _quantities(db_session, a, b) == [Decimal("60"), Decimal("14.5")]
        # usable weight travels with its share of the quantity
        assert db_session.get(InventoryItem, a.id).usable_weight == Decimal("48")
        line = db_session.query(TransferItem).filter_by(inventory_item_id=a.id).one()
        assert line.usable_weight == Decimal("32")
        assert db_session.query(AuditLogEntry).filter_by(action="TRANSFER_OUT").count() == 2

    def test_insufficient_line_fails_whole_transfer(self, db_session, location, other_location, stock):
        a, b = stock
        with pytest.raises(InsufficientQuantityError) as exc_info:
            transfer_service.create_transfer(location.id, other_location.id, [
                {"inventory_item_id": a.id, "quantity": 10},
                {"inventory_item_id": b.id, "quantity": 15},
                {"inventory_item_id": b.id, "quantity": 15},
            ])

        assert exc_info.value.details["items"] == [
            {"inventory_item_id": b.id, "available": "20.0000", "requested": "30.0000"},
        ]
        assert _quantities(db_session, a, b) == [Decimal("100"), Decimal("20")]
        assert db_session.query(Transfer).count() == 0

    def test_same_location_is_rejected(self, db_session, location, stock):
        a, _ = stock
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(location.id, location.id, [{"inventory_item_id": a.id, "quantity": 1}])

    def test_unknown_destination_is_not_found(self, db_session, location, stock):
        a, _ = stock
        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(location.id, 987654, [{"inventory_item_id": a.id, "quantity": 1}])

    def test_foreign_item_is_not_found(self, db_session, location, other_location, foreign_room, dry_type, make_item):
        theirs = make_item(other_location, foreign_room, dry_type, Decimal("10"))
        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(location.id, other_location.id, [
                {"inventory_item_id": theirs.id, "quantity": 1},
            ])

    @pytest.mark.parametrize("items", [[], [None], [{"inventory_item_id": 1, "quantity": 0}], [{"quantity": 1}]])
    def test_invalid_lines_are_rejected(self, db_session, location, other_location, items):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(location.id, other_location.id, items)


class TestReceiveTransfer:
    def test_receive_creates_items_at_destination(
        self, db_session, location, other_location, foreign_room, stock, shipped
    ):
        before = inventory_service.get_active_quantity(location.id) + inventory_service.get_active_quantity(other_location.id)

        received = transfer_service.receive_transfer(
            other_location.id, shipped.id, "RECEIVED", room_id=foreign_room.id, actor_user_id=8,
        )

        assert received.status == "RECEIVED"
        assert received.received_at is not None
        assert received.received_by_user_id == 8
        arrived = inventory_service.list_items(other_location.id)
        assert sorted(i.quantity for i in arrived) == [Decimal("5.5"), Decimal("40")]
        assert all(i.room_id == foreign_room.id for i in arrived)
        blue = next(i for i in arrived if i.product_name == "Blue Dream")
        assert blue.usable_weight == Decimal("32")
        assert all(line.received_inventory_item_id for line in received.items)

        after = inventory_service.get_active_quantity(location.id) + inventory_service.get_active_quantity(other_location.id)
        assert after == before + Decimal("45.5")
        entries = db_session.query(AuditLogEntry).filter_by(action="TRANSFER_IN", entity_type="InventoryItem").all()
        assert {e.location_id for e in entries} == {other_location.id}

    def test_reject_restores_sources(self, db_session, location, other_location, stock, shipped):
        a, b = stock

        rejected = transfer_service.receive_transfer(
            other_location.id, shipped.id, "REJECTED", rejection_reason="Manifest mismatch",
        )

        assert rejected.status == "REJECTED"
        assert rejected.rejection_reason == "Manifest mismatch"
        assert _quantities(db_session, a, b) == [Decimal("100"), Decimal("20")]
        assert db_session.get(InventoryItem, a.id).usable_weight == Decimal("80")
        assert inventory_service.list_items(other_location.id) == []
        assert db_session.query(AuditLogEntry).filter_by(
            action="TRANSFER_REJECT", entity_type="InventoryItem", location_id=location.id
        ).count() == 2

    def test_closed_transfer_cannot_be_received_again(self, db_session, other_location, foreign_room, shipped):
        transfer_service.receive_transfer(other_location.id, shipped.id, "RECEIVED", room_id=foreign_room.id)
        with pytest.raises(ConflictError):
            transfer_service.receive_transfer(
                other_location.id, shipped.id, "REJECTED", rejection_reason="Changed our mind",
            )
        assert len(inventory_service.list_items(other_location.id)) == 2

    def test_sender_cannot_receive(self, db_session, location, room, shipped):
        with pytest.raises(NotFoundError):
            transfer_service.receive_transfer(location.id, shipped.id, "RECEIVED", room_id=room.id)

    def test_receiving_room_must_belong_to_receiver(self, db_session, location, other_location, room, stock, shipped):
        with pytest.raises(NotFoundError):
            transfer_service.receive_transfer(other_location.id, shipped.id, "RECEIVED", room_id=room.id)
        db_session.expire_all()
        assert db_session.get(Transfer, shipped.id).status == "PENDING"

    def test_reject_with_tombstoned_source_is_conflict(self, db_session, location, other_location, stock, shipped):
        a, _ = stock
        inventory_service.destroy_item(location.id, a.id, "Recall")
        with pytest.raises(ConflictError):
            transfer_service.receive_transfer(other_location.id, shipped.id, "REJECTED", rejection_reason="Damaged")

    @pytest.mark.parametrize("kwargs", [
        {"status": "LOST"},
        {"status": "RECEIVED"},
        {"status": "REJECTED"},
    ])
    def test_receive_arguments_are_validated(self, db_session, other_location, shipped, kwargs):
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(other_location.id, shipped.id, **kwargs)


class TestDispatchAndReads:
    def test_dispatch_then_receive(self, db_session, location, other_location, foreign_room, shipped):
        dispatched = transfer_service.dispatch_transfer(location.id, shipped.id)
        assert dispatched.status == "IN_TRANSIT"
        assert dispatched.dispatched_at is not None

        with pytest.raises(ConflictError):
            transfer_service.dispatch_transfer(location.id, shipped.id)

        received = transfer_service.receive_transfer(other_location.id, shipped.id, "RECEIVED", room_id=foreign_room.id)
        assert received.status == "RECEIVED"

    def test_receiver_cannot_dispatch(self, db_session, other_location, shipped):
        with pytest.raises(NotFoundError):
            transfer_service.dispatch_transfer(other_location.id, shipped.id)

    def test_both_ends_can_read(self, db_session, location, other_location, shipped):
        assert transfer_service.get_transfer(location.id, shipped.id).id == shipped.id
        assert transfer_service.get_transfer(other_location.id, shipped.id).id == shipped.id
        assert transfer_service.list_transfers(location.id)["total"] == 1
        assert transfer_service.list_transfers(other_location.id, status="RECEIVED")["total"] == 0

    def test_third_location_cannot_read(self, db_session, shipped):
        outsider = Location(name="Location C", license_number="LIC-C-001", is_active=True)
        db_session.add(outsider)
        db_session.commit()
        with pytest.raises(NotFoundError):
            transfer_service.get_transfer(outsider.id, shipped.id)

    def test_pending_and_overdue(self, db_session, location, other_location, stock):
        a, b = stock
        late = transfer_service.create_transfer(
            location.id, other_location.id, [{"inventory_item_id": a.id, "quantity": 1}],
            estimated_arrival=utcnow() - timedelta(days=1),
        )
        on_time = transfer_service.create_transfer(
            location.id, other_location.id, [{"inventory_item_id": b.id, "quantity": 1}],
            estimated_arrival=utcnow() + timedelta(days=1),
        )

        assert [t.id for t in transfer_service.get_pending_transfers(other_location.id)] == [late.id, on_time.id]
        assert [t.id for t in transfer_service.get_overdue_transfers(other_location.id)] == [late.id]
        assert transfer_service.get_pending_transfers(location.id) == []
