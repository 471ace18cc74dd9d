# Overview: Service-layer operations for the audit trail; appends entries inside the caller's transaction.

from __future__ import annotations

import json
import logging
from decimal import Decimal

from ..extensions import db
from ..models import AuditLogEntry

logger = logging.getLogger(__name__)


ROOM_MOVE = "ROOM_MOVE"
QUANTITY_ADJUSTMENT = "QUANTITY_ADJUSTMENT"
SPLIT = "SPLIT"
COMBINE = "COMBINE"
DESTROY = "DESTROY"
CREATE_LOT = "CREATE_LOT"
UNDO = "UNDO"
ITEM_CREATED = "ITEM_CREATED"
CONVERSION = "CONVERSION"
SALE = "SALE"
SALE_VOID = "SALE_VOID"
REFUND = "REFUND"
TRANSFER_OUT = "TRANSFER_OUT"
TRANSFER_IN = "TRANSFER_IN"
TRANSFER_REJECT = "TRANSFER_REJECT"
TRANSFER_DISPATCH = "TRANSFER_DISPATCH"

ACTIONS = {
    ROOM_MOVE, QUANTITY_ADJUSTMENT, SPLIT, COMBINE, DESTROY, CREATE_LOT,
    UNDO, ITEM_CREATED, CONVERSION, SALE, SALE_VOID, REFUND,
    TRANSFER_OUT, TRANSFER_IN, TRANSFER_REJECT, TRANSFER_DISPATCH,
}


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(value: dict | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=_json_default, sort_keys=True)


def record(
    *,
    location_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    old_value: dict | None = None,
    new_value: dict | None = None,
    reason: str | None = None,
    actor_user_id: int | None = None,
    undone_entry_id: int | None = None,
) -> AuditLogEntry:
    """
    Append one audit entry to the current transaction and flush it.

    Never commits: the entry lands or disappears together with the mutation
    it describes. Any failure propagates to the enclosing run_atomic.
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}")

    entry = AuditLogEntry(
        location_id=location_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=_dumps(old_value),
        new_value=_dumps(new_value),
        reason=reason,
        actor_user_id=actor_user_id,
        undone_entry_id=undone_entry_id,
    )
    db.session.add(entry)
    db.session.flush()
    logger.debug("Audit %s recorded for %s#%s", action, entity_type, entity_id)
    return entry


def get_entry(location_id: int, entry_id: int) -> AuditLogEntry | None:
    return (
        db.session.query(AuditLogEntry)
        .filter_by(id=entry_id, location_id=location_id)
        .first()
    )


def list_entries(
    location_id: int,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLogEntry], int]:
    """Newest first. Returns (entries, total)."""
    q = db.session.query(AuditLogEntry).filter(AuditLogEntry.location_id == location_id)
    if entity_type:
        q = q.filter(AuditLogEntry.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditLogEntry.entity_id == entity_id)
    if action:
        q = q.filter(AuditLogEntry.action == action)

    total = q.count()
    page = max(page, 1)
    limit = max(min(limit, 200), 1)
    entries = (
        q.order_by(AuditLogEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return entries, total
