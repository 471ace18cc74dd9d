# Overview: Pytest coverage for optimistic version checks against a writer that races the ledger.

"""
Concurrent Writer Tests

A second writer commits a change to the same inventory row after the ledger
operation has read it but before it flushes. The version check must reject
the stale write: the operation fails with InternalLedgerError and nothing it
did is persisted.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ledger.models import AuditLogEntry, InventoryAdjustment, InventoryItem, Sale
from ledger.services import inventory_service, sales_service
from ledger.validation import InternalLedgerError


def _race(db_session, item_id, quantity):
    """Bump the row the way another session's committed write would."""
    db_session.execute(
        update(InventoryItem.__table__)
        .where(InventoryItem.__table__.c.id == item_id)
        .values(quantity=quantity, version_id=InventoryItem.__table__.c.version_id + 1)
    )


class TestStaleWrites:
    def test_adjustment_against_stale_read_is_rejected(self, db_session, location, item, monkeypatch):
        real_check = inventory_service.ensure_non_negative_result

        def _check_then_race(current, delta):
            real_check(current, delta)
            _race(db_session, item.id, Decimal("100"))

        monkeypatch.setattr(inventory_service, "ensure_non_negative_result", _check_then_race)

        # 1000 - 600 passes against the stale read but would be negative against 100
        with pytest.raises(InternalLedgerError) as exc_info:
            inventory_service.adjust_quantity(location.id, item.id, Decimal("-600"), "Recount", "LOSS")

        assert isinstance(exc_info.value.__cause__, StaleDataError)
        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == Decimal("1000")
        assert db_session.query(InventoryAdjustment).count() == 0
        assert db_session.query(AuditLogEntry).filter_by(action="QUANTITY_ADJUSTMENT").count() == 0

    def test_sale_against_stale_read_is_rejected(self, db_session, location, item, monkeypatch):
        real_next = sales_service.next_document_number

        def _number_then_race(location_id, document_type, prefix, pad=6):
            number = real_next(location_id, document_type, prefix, pad)
            _race(db_session, item.id, Decimal("1"))
            return number

        monkeypatch.setattr(sales_service, "next_document_number", _number_then_race)

        with pytest.raises(InternalLedgerError):
            sales_service.create_sale(location.id, [
                {"inventory_item_id": item.id, "quantity": 500, "unit_price_cents": 100},
            ])

        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == Decimal("1000")
        assert db_session.query(Sale).count() == 0
        assert db_session.query(AuditLogEntry).filter_by(action="SALE").count() == 0

    def test_unraced_adjustment_bumps_version(self, db_session, location, item):
        before = item.version_id
        inventory_service.adjust_quantity(location.id, item.id, Decimal("-600"), "Recount", "LOSS")

        db_session.expire_all()
        reloaded = db_session.get(InventoryItem, item.id)
        assert reloaded.quantity == Decimal("400")
        assert reloaded.version_id == before + 1
