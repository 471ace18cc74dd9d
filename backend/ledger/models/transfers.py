from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_quantity
from .inventory import QUANTITY


class Transfer(db.Model):
    """
    Manifest moving inventory from one location to another.

    LIFECYCLE:
    - PENDING: created by create_transfer; source items already decremented
    - IN_TRANSIT: dispatched by the sender
    - RECEIVED: destination created one new item per line
    - REJECTED: every line's quantity went back to its source item

    Both locations may read a transfer; only the receiver may receive it.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.Index("ix_transfers_receiver_status", "receiver_location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "TRF-001-000042", numbered per sending location
    manifest_number = db.Column(db.String(64), nullable=False, unique=True)

    sender_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    receiver_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    estimated_arrival = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by_user_id = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sender_location = db.relationship("Location", foreign_keys=[sender_location_id])
    receiver_location = db.relationship("Location", foreign_keys=[receiver_location_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "manifest_number": self.manifest_number,
            "sender_location_id": self.sender_location_id,
            "receiver_location_id": self.receiver_location_id,
            "status": self.status,
            "estimated_arrival": to_utc_z(self.estimated_arrival),
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "dispatched_at": to_utc_z(self.dispatched_at),
            "received_by_user_id": self.received_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransferItem(db.Model):
    """One source item on a manifest and, once received, the item it became."""
    __tablename__ = "transfer_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False)
    # Share of the source's usable weight that travels with the quantity
    usable_weight = db.Column(QUANTITY, nullable=True)

    received_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True)

    transfer = db.relationship(
        "Transfer",
        backref=db.backref("items", lazy=True, order_by="TransferItem.id"),
    )
    inventory_item = db.relationship("InventoryItem", foreign_keys=[inventory_item_id])
    received_inventory_item = db.relationship("InventoryItem", foreign_keys=[received_inventory_item_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "inventory_item_id": self.inventory_item_id,
            "quantity": format_quantity(self.quantity),
            "usable_weight": format_quantity(self.usable_weight),
            "received_inventory_item_id": self.received_inventory_item_id,
        }
