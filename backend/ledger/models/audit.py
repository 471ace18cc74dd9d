from __future__ import annotations

import json

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLogImmutableError(RuntimeError):
    """Raised when something tries to update or delete an audit entry."""


class AuditLogEntry(db.Model):
    """
    Append-only record of one ledger state transition.

    INVARIANTS:
    - Written inside the same DB transaction as the mutation it describes
    - Never updated or deleted (enforced by the mapper guards below)
    - old_value/new_value are JSON snapshots holding every field the undo
      coordinator needs; quantities are stored as decimal strings
    - UNDO entries point at the entry they reversed via undone_entry_id
    """
    __tablename__ = "audit_log_entries"
    __table_args__ = (
        db.Index("ix_audit_log_location_occurred", "location_id", "occurred_at"),
        db.Index("ix_audit_log_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)  # InventoryItem, Lot, Sale
    entity_id = db.Column(db.Integer, nullable=False)

    action = db.Column(db.String(32), nullable=False, index=True)

    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    undone_entry_id = db.Column(db.Integer, db.ForeignKey("audit_log_entries.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def old_data(self) -> dict:
        return json.loads(self.old_value) if self.old_value else {}

    @property
    def new_data(self) -> dict:
        return json.loads(self.new_value) if self.new_value else {}

    def __repr__(self) -> str:
        return f"<AuditLogEntry id={self.id} action={self.action} {self.entity_type}#{self.entity_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "old_value": self.old_data,
            "new_value": self.new_data,
            "reason": self.reason,
            "actor_user_id": self.actor_user_id,
            "undone_entry_id": self.undone_entry_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"audit entry {target.id} is append-only and cannot be updated")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"audit entry {target.id} is append-only and cannot be deleted")


class IdentifierSequence(db.Model):
    """
    Atomic per-location counters.

    WHY: Barcodes (sequence strategy) and sale document numbers must never
    collide under concurrent writers, so they come from a locked counter
    rather than time + random.
    """
    __tablename__ = "identifier_sequences"
    __table_args__ = (
        db.UniqueConstraint("location_id", "sequence_name", name="uq_identifier_sequences_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    sequence_name = db.Column(db.String(32), nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
