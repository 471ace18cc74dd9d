# Overview: Service-layer operations for undo; compensating actions driven by recorded audit entries.

"""
Undo Service - single-level compensating actions

Only the transitions listed in INVERSE_TRANSITIONS can be undone. Each
inverse writes the recorded old_value back verbatim; nothing is recomputed
from deltas, so later unrelated mutations do not change what is restored.

Split, combine, destroy, lot creation, conversions and sales are
irreversible here. An UNDO entry is itself not undoable, and undoing the
same entry twice simply writes the same old state again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import AuditLogEntry, InventoryItem, Room
from ..validation import ConflictError, NotFoundError, NotUndoableError, ValidationError
from . import audit_service
from .concurrency import lock_for_update, run_atomic

logger = logging.getLogger(__name__)


@dataclass
class UndoResult:
    item: InventoryItem
    undo_entry: AuditLogEntry
    undone_entry_id: int
    message: str

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "inventory_item": self.item.to_dict(),
            "undo_entry": self.undo_entry.to_dict(),
            "undone_entry_id": self.undone_entry_id,
        }


def _restore_room(location_id: int, item: InventoryItem, old_value: dict) -> str:
    room_id = old_value.get("room_id")
    room = (
        db.session.query(Room)
        .filter(Room.id == room_id, Room.location_id == location_id)
        .first()
    )
    if not room or room.deleted_at is not None:
        raise ConflictError("Previous room is no longer active", details={"room_id": room_id})
    item.room_id = room.id
    return "Room move reverted"


def _restore_quantity(location_id: int, item: InventoryItem, old_value: dict) -> str:
    quantity = old_value.get("quantity")
    if quantity is None:
        raise ConflictError("Audit entry has no recorded quantity")
    item.quantity = Decimal(quantity)
    usable = old_value.get("usable_weight")
    item.usable_weight = Decimal(usable) if usable is not None else None
    return "Quantity adjustment reverted"


INVERSE_TRANSITIONS = {
    audit_service.ROOM_MOVE: _restore_room,
    audit_service.QUANTITY_ADJUSTMENT: _restore_quantity,
}


def undo_operation(
    location_id: int,
    audit_entry_id: int,
    reason: str,
    actor_user_id: int | None = None,
) -> UndoResult:
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required", details={"field": "reason"})

    def _op() -> UndoResult:
        entry = audit_service.get_entry(location_id, audit_entry_id)
        if not entry:
            raise NotFoundError("Operation not found", details={"audit_entry_id": audit_entry_id})

        inverse = INVERSE_TRANSITIONS.get(entry.action)
        if inverse is None or entry.entity_type != "InventoryItem":
            raise NotUndoableError(
                f'Operation "{entry.action}" cannot be undone',
                details={"action": entry.action, "undoable_actions": sorted(INVERSE_TRANSITIONS)},
            )

        item = lock_for_update(
            db.session.query(InventoryItem).filter(
                InventoryItem.id == entry.entity_id,
                InventoryItem.location_id == location_id,
            )
        ).first()
        if not item:
            raise NotFoundError("Inventory item not found", details={"inventory_item_id": entry.entity_id})
        if item.deleted_at is not None:
            raise ConflictError(
                "Inventory item is no longer active",
                details={"inventory_item_id": item.id},
            )

        message = inverse(location_id, item, entry.old_data)
        db.session.flush()

        undo_entry = audit_service.record(
            location_id=location_id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            action=audit_service.UNDO,
            old_value=entry.new_data,
            new_value=entry.old_data,
            reason=str(reason).strip(),
            actor_user_id=actor_user_id,
            undone_entry_id=entry.id,
        )
        return UndoResult(item=item, undo_entry=undo_entry, undone_entry_id=entry.id, message=message)

    result = run_atomic(_op, operation="undo_operation")
    logger.info("Undid audit entry %s on item %s", result.undone_entry_id, result.item.id)
    return result
