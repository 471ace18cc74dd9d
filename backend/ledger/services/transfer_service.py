# Overview: Service-layer operations for inter-location transfers; ships, receives and rejects manifests.

"""
Transfer Service - moving inventory between licensed locations

LIFECYCLE:
1. PENDING: manifest created; source items decremented (TRANSFER_OUT)
2. IN_TRANSIT: sender dispatched the shipment
3. RECEIVED: receiver created one new item per line in its own room (TRANSFER_IN)
4. REJECTED: receiver refused; every line went back to its source item (TRANSFER_REJECT)

Quantity in transit lives only on the manifest lines, so active quantity at
the sender drops on create and reappears at exactly one place on receive or
reject.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import InventoryItem, Location, Transfer, TransferItem
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    InsufficientQuantityError,
    NotFoundError,
    ValidationError,
    ensure_positive,
    format_quantity,
)
from . import audit_service
from .concurrency import lock_for_update, run_atomic
from .identifier_service import next_document_number
from .inventory_service import _get_active_room, _new_item, _paginate, _scale, quantity_snapshot

logger = logging.getLogger(__name__)


TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_REJECTED = "REJECTED"

OPEN_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT)
RECEIVE_OUTCOMES = (TRANSFER_STATUS_RECEIVED, TRANSFER_STATUS_REJECTED)

ZERO = Decimal("0")


def _normalize_arrival(value) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError("estimated_arrival must be a datetime", details={"field": "estimated_arrival"})
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _aggregate_lines(items: list[dict]) -> dict[int, Decimal]:
    if not items:
        raise ValidationError("A transfer needs at least one item", details={"field": "items"})

    requested: dict[int, Decimal] = {}
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each transfer line must be an object", details={"field": f"items[{index}]"})
        item_id = raw.get("inventory_item_id")
        if item_id is None:
            raise ValidationError("inventory_item_id is required", details={"field": f"items[{index}].inventory_item_id"})
        quantity = ensure_positive(raw.get("quantity"), f"items[{index}].quantity")
        requested[item_id] = requested.get(item_id, ZERO) + quantity
    return requested


def _get_transfer_locked(transfer_id: int, *, receiver_location_id: int | None = None,
                         sender_location_id: int | None = None) -> Transfer:
    q = db.session.query(Transfer).filter(Transfer.id == transfer_id)
    if receiver_location_id is not None:
        q = q.filter(Transfer.receiver_location_id == receiver_location_id)
    if sender_location_id is not None:
        q = q.filter(Transfer.sender_location_id == sender_location_id)
    transfer = lock_for_update(q).first()
    if not transfer:
        raise NotFoundError("Transfer not found", details={"transfer_id": transfer_id})
    return transfer


# =============================================================================
# Shipping
# =============================================================================

def create_transfer(
    location_id: int,
    destination_location_id: int,
    items: list[dict],
    estimated_arrival: datetime | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Transfer:
    """
    Ship quantities of one or more items to another location.

    items: [{"inventory_item_id", "quantity"}]. Lines for the same item are
    merged and checked together; nothing is decremented unless every item
    has enough.
    """
    if destination_location_id == location_id:
        raise ValidationError(
            "Cannot transfer to the same location",
            details={"field": "destination_location_id"},
        )
    requested = _aggregate_lines(items)
    arrival = _normalize_arrival(estimated_arrival)

    def _op() -> Transfer:
        destination = db.session.get(Location, destination_location_id)
        if not destination or not destination.is_active:
            raise NotFoundError(
                "Destination location not found",
                details={"destination_location_id": destination_location_id},
            )

        ids = sorted(requested)
        locked = {
            item.id: item
            for item in lock_for_update(
                db.session.query(InventoryItem)
                .filter(
                    InventoryItem.id.in_(ids),
                    InventoryItem.location_id == location_id,
                    InventoryItem.deleted_at.is_(None),
                )
                .order_by(InventoryItem.id)
            ).all()
        }
        missing = [item_id for item_id in ids if item_id not in locked]
        if missing:
            raise NotFoundError(
                f"Inventory item {missing[0]} not found",
                details={"missing_inventory_item_ids": missing},
            )

        insufficient = []
        for item_id in ids:
            available = Decimal(locked[item_id].quantity)
            if requested[item_id] > available:
                insufficient.append({
                    "inventory_item_id": item_id,
                    "available": format_quantity(available),
                    "requested": format_quantity(requested[item_id]),
                })
        if insufficient:
            raise InsufficientQuantityError(
                "Insufficient quantity to create transfer",
                details={"items": insufficient},
            )

        transfer = Transfer(
            manifest_number=next_document_number(location_id, "TRANSFER", "TRF"),
            sender_location_id=location_id,
            receiver_location_id=destination_location_id,
            status=TRANSFER_STATUS_PENDING,
            estimated_arrival=arrival,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        for item_id in ids:
            item = locked[item_id]
            previous = Decimal(item.quantity)
            old_value = quantity_snapshot(item)
            share = _scale(item.usable_weight, requested[item_id], previous)

            db.session.add(TransferItem(
                transfer_id=transfer.id,
                inventory_item_id=item.id,
                quantity=requested[item_id],
                usable_weight=share,
            ))
            if share is not None:
                item.usable_weight = max(Decimal(item.usable_weight) - share, ZERO)
            item.quantity = previous - requested[item_id]
            db.session.flush()

            audit_service.record(
                location_id=location_id,
                entity_type="InventoryItem",
                entity_id=item.id,
                action=audit_service.TRANSFER_OUT,
                old_value=old_value,
                new_value={
                    **quantity_snapshot(item),
                    "transfer_id": transfer.id,
                    "manifest_number": transfer.manifest_number,
                    "receiver_location_id": destination_location_id,
                },
                reason=f"Transfer {transfer.manifest_number}",
                actor_user_id=actor_user_id,
            )
        return transfer

    transfer = run_atomic(_op, operation="create_transfer")
    logger.info(
        "Transfer %s created: %s items to location %s",
        transfer.manifest_number,
        len(requested),
        transfer.receiver_location_id,
    )
    return transfer


def dispatch_transfer(location_id: int, transfer_id: int, actor_user_id: int | None = None) -> Transfer:
    """Sender marks a pending manifest as on the road."""

    def _op() -> Transfer:
        transfer = _get_transfer_locked(transfer_id, sender_location_id=location_id)
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise ConflictError(
                f"Transfer cannot be dispatched in {transfer.status} status",
                details={"status": transfer.status},
            )
        transfer.status = TRANSFER_STATUS_IN_TRANSIT
        transfer.dispatched_at = utcnow()
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="Transfer",
            entity_id=transfer.id,
            action=audit_service.TRANSFER_DISPATCH,
            old_value={"status": TRANSFER_STATUS_PENDING},
            new_value={"status": TRANSFER_STATUS_IN_TRANSIT},
            actor_user_id=actor_user_id,
        )
        return transfer

    transfer = run_atomic(_op, operation="dispatch_transfer")
    logger.info("Transfer %s dispatched", transfer.manifest_number)
    return transfer


# =============================================================================
# Receiving
# =============================================================================

def _receive_lines(transfer: Transfer, room_id: int, actor_user_id: int | None) -> list[dict]:
    location_id = transfer.receiver_location_id
    _get_active_room(location_id, room_id, message="Receiving room not found")

    received = []
    for line in transfer.items:
        source = line.inventory_item
        item = _new_item(
            location_id=location_id,
            inventory_type_id=source.inventory_type_id,
            room_id=room_id,
            quantity=Decimal(line.quantity),
            usable_weight=line.usable_weight,
            product_name=source.product_name,
        )
        line.received_inventory_item_id = item.id
        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.TRANSFER_IN,
            new_value={
                **quantity_snapshot(item),
                "transfer_id": transfer.id,
                "manifest_number": transfer.manifest_number,
                "source_inventory_item_id": source.id,
                "sender_location_id": transfer.sender_location_id,
            },
            reason=f"Transfer {transfer.manifest_number}",
            actor_user_id=actor_user_id,
        )
        received.append({"inventory_item_id": item.id, "quantity": format_quantity(item.quantity)})
    return received


def _return_lines(transfer: Transfer, reason: str, actor_user_id: int | None) -> list[dict]:
    location_id = transfer.sender_location_id
    restore = {line.inventory_item_id: line for line in transfer.items}
    ids = sorted(restore)
    items = lock_for_update(
        db.session.query(InventoryItem)
        .filter(InventoryItem.id.in_(ids), InventoryItem.location_id == location_id)
        .order_by(InventoryItem.id)
    ).all()
    inactive = [item.id for item in items if item.deleted_at is not None]
    if inactive or len(items) != len(ids):
        raise ConflictError(
            "Transfer cannot be rejected: a source item is no longer active",
            details={"inventory_item_ids": inactive},
        )

    returned = []
    for item in items:
        line = restore[item.id]
        old_value = quantity_snapshot(item)
        if line.usable_weight is not None:
            item.usable_weight = Decimal(item.usable_weight or ZERO) + Decimal(line.usable_weight)
        item.quantity = Decimal(item.quantity) + Decimal(line.quantity)
        db.session.flush()
        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.TRANSFER_REJECT,
            old_value=old_value,
            new_value={**quantity_snapshot(item), "transfer_id": transfer.id},
            reason=reason,
            actor_user_id=actor_user_id,
        )
        returned.append({"inventory_item_id": item.id, "quantity": format_quantity(line.quantity)})
    return returned


def receive_transfer(
    location_id: int,
    transfer_id: int,
    status: str,
    room_id: int | None = None,
    notes: str | None = None,
    rejection_reason: str | None = None,
    actor_user_id: int | None = None,
) -> Transfer:
    """
    Receiver accepts (status RECEIVED, into room_id) or refuses (REJECTED) a manifest.

    Only the destination location sees the manifest here; anyone else gets
    NotFoundError. A closed manifest is a ConflictError.
    """
    if status not in RECEIVE_OUTCOMES:
        raise ValidationError(
            "status must be RECEIVED or REJECTED",
            details={"field": "status", "allowed": list(RECEIVE_OUTCOMES)},
        )
    if status == TRANSFER_STATUS_RECEIVED and room_id is None:
        raise ValidationError("room_id is required to receive a transfer", details={"field": "room_id"})
    if status == TRANSFER_STATUS_REJECTED and (not rejection_reason or not str(rejection_reason).strip()):
        raise ValidationError("rejection_reason is required", details={"field": "rejection_reason"})

    def _op() -> Transfer:
        transfer = _get_transfer_locked(transfer_id, receiver_location_id=location_id)
        if transfer.status not in OPEN_STATUSES:
            raise ConflictError(
                f"Transfer cannot be received in {transfer.status} status",
                details={"status": transfer.status},
            )
        previous_status = transfer.status

        if status == TRANSFER_STATUS_RECEIVED:
            lines = _receive_lines(transfer, room_id, actor_user_id)
            action = audit_service.TRANSFER_IN
            transfer.received_at = utcnow()
        else:
            transfer.rejection_reason = str(rejection_reason).strip()
            lines = _return_lines(transfer, transfer.rejection_reason, actor_user_id)
            action = audit_service.TRANSFER_REJECT

        transfer.status = status
        transfer.received_by_user_id = actor_user_id
        if notes:
            transfer.notes = notes
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="Transfer",
            entity_id=transfer.id,
            action=action,
            old_value={"status": previous_status},
            new_value={"status": status, "items": lines},
            reason=transfer.rejection_reason,
            actor_user_id=actor_user_id,
        )
        return transfer

    transfer = run_atomic(_op, operation="receive_transfer")
    logger.info("Transfer %s %s by location %s", transfer.manifest_number, transfer.status.lower(), location_id)
    return transfer


# =============================================================================
# Reads
# =============================================================================

def get_transfer(location_id: int, transfer_id: int) -> Transfer:
    """Visible to the sending and the receiving location."""
    transfer = (
        db.session.query(Transfer)
        .filter(
            Transfer.id == transfer_id,
            or_(Transfer.sender_location_id == location_id, Transfer.receiver_location_id == location_id),
        )
        .first()
    )
    if not transfer:
        raise NotFoundError("Transfer not found", details={"transfer_id": transfer_id})
    return transfer


def list_transfers(location_id: int, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    q = db.session.query(Transfer).filter(
        or_(Transfer.sender_location_id == location_id, Transfer.receiver_location_id == location_id)
    )
    if status:
        q = q.filter(Transfer.status == status)
    return _paginate(q, Transfer.id, page, limit)


def get_pending_transfers(location_id: int) -> list[Transfer]:
    """Open manifests addressed to this location, soonest arrival first."""
    return (
        db.session.query(Transfer)
        .filter(
            Transfer.receiver_location_id == location_id,
            Transfer.status.in_(OPEN_STATUSES),
        )
        .order_by(Transfer.estimated_arrival, Transfer.id)
        .all()
    )


def get_overdue_transfers(location_id: int) -> list[Transfer]:
    return (
        db.session.query(Transfer)
        .filter(
            Transfer.receiver_location_id == location_id,
            Transfer.status.in_(OPEN_STATUSES),
            Transfer.estimated_arrival.isnot(None),
            Transfer.estimated_arrival < utcnow(),
        )
        .order_by(Transfer.estimated_arrival, Transfer.id)
        .all()
    )
