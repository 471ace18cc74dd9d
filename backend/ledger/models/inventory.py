from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_quantity

QUANTITY = db.Numeric(14, 4)


class InventoryType(db.Model):
    """
    Inventory taxonomy entry (Wet Flower, Dry Trim, Lot of Dry Flower, Waste...).

    category drives the engine's rules:
    - Waste: target type of destroy_item
    - Lot: target type of create_lot
    - Wet -> Dry -> Extraction -> FinishedGoods: allowed conversion chain
    """
    __tablename__ = "inventory_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(32), nullable=False, index=True)
    unit = db.Column(db.String(16), nullable=False, default="grams")

    is_source = db.Column(db.Boolean, nullable=False, default=False)
    is_waste = db.Column(db.Boolean, nullable=False, default=False)
    can_convert = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<InventoryType id={self.id} name={self.name!r} category={self.category}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "is_source": self.is_source,
            "is_waste": self.is_waste,
            "can_convert": self.can_convert,
        }


class Strain(db.Model):
    __tablename__ = "strains"
    __table_args__ = (
        db.UniqueConstraint("location_id", "name", name="uq_strains_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "location_id": self.location_id, "name": self.name}


class Lot(db.Model):
    """
    Batch identity grouping several source items into one lot-typed item.

    IMMUTABLE: created once by create_lot, never updated.
    """
    __tablename__ = "lots"
    __table_args__ = (
        db.UniqueConstraint("location_id", "batch_number", name="uq_lots_location_batch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(120), nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "batch_number": self.batch_number,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryItem(db.Model):
    """
    A quantity of one material in one room of one location.

    INVARIANTS:
    - quantity >= 0 at all times
    - quantity is only changed by the ledger operations in inventory_service,
      conversion_service, sales_service and undo_service, each of which
      writes an AuditLogEntry in the same transaction
    - rows are never hard-deleted; deleted_at is a tombstone. Tombstoned rows
      are excluded from active-quantity queries and cannot be mutated again

    SUBLOTS:
    Items produced by a split carry sublot_identifier "{base}-{n}" where base
    is the parent's sublot identifier (or barcode when it has none).
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_location_room", "location_id", "room_id"),
        db.Index(
            "ix_inventory_items_active",
            "location_id",
            "inventory_type_id",
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(64), nullable=False, unique=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False, index=True)
    inventory_type_id = db.Column(db.Integer, db.ForeignKey("inventory_types.id"), nullable=False, index=True)
    strain_id = db.Column(db.Integer, db.ForeignKey("strains.id"), nullable=True, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=True)
    sublot_identifier = db.Column(db.String(128), nullable=True, index=True)

    # Grams or units, depending on inventory_type.unit
    quantity = db.Column(QUANTITY, nullable=False, default=0)
    usable_weight = db.Column(QUANTITY, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    inventory_type = db.relationship("InventoryType")
    room = db.relationship("Room")
    strain = db.relationship("Strain")
    lot = db.relationship("Lot", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} barcode={self.barcode!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "location_id": self.location_id,
            "room_id": self.room_id,
            "inventory_type_id": self.inventory_type_id,
            "strain_id": self.strain_id,
            "lot_id": self.lot_id,
            "product_name": self.product_name,
            "sublot_identifier": self.sublot_identifier,
            "quantity": format_quantity(self.quantity),
            "usable_weight": format_quantity(self.usable_weight),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "version_id": self.version_id,
        }


class InventoryAdjustment(db.Model):
    """Per-adjustment record kept alongside the QUANTITY_ADJUSTMENT audit entry."""
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.Index("ix_inventory_adjustments_location_created", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    adjustment_quantity = db.Column(QUANTITY, nullable=False)
    previous_quantity = db.Column(QUANTITY, nullable=False)
    new_quantity = db.Column(QUANTITY, nullable=False)

    adjustment_type = db.Column(db.String(32), nullable=False)  # CORRECTION, LOSS, GAIN, ...
    reason = db.Column(db.String(255), nullable=False)
    is_red_flag = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "inventory_item_id": self.inventory_item_id,
            "adjustment_quantity": format_quantity(self.adjustment_quantity),
            "previous_quantity": format_quantity(self.previous_quantity),
            "new_quantity": format_quantity(self.new_quantity),
            "adjustment_type": self.adjustment_type,
            "reason": self.reason,
            "is_red_flag": self.is_red_flag,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# LINEAGE RECORDS (created once, never mutated)
# =============================================================================

class InventorySplit(db.Model):
    __tablename__ = "inventory_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    parent_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent_inventory_item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "parent_inventory_item_id": self.parent_inventory_item_id,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class InventorySplitLine(db.Model):
    __tablename__ = "inventory_split_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    split_id = db.Column(db.Integer, db.ForeignKey("inventory_splits.id"), nullable=False, index=True)
    child_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False)

    split = db.relationship("InventorySplit", backref=db.backref("lines", lazy=True, order_by="InventorySplitLine.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "split_id": self.split_id,
            "child_inventory_item_id": self.child_inventory_item_id,
            "quantity": format_quantity(self.quantity),
        }


class InventoryCombination(db.Model):
    __tablename__ = "inventory_combinations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    target_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    target_inventory_item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "target_inventory_item_id": self.target_inventory_item_id,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "sources": [source.to_dict() for source in self.sources],
        }


class InventoryCombinationSource(db.Model):
    __tablename__ = "inventory_combination_sources"
    __table_args__ = (
        db.UniqueConstraint("combination_id", "source_inventory_item_id", name="uq_combination_sources_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    combination_id = db.Column(db.Integer, db.ForeignKey("inventory_combinations.id"), nullable=False, index=True)
    source_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False)

    combination = db.relationship(
        "InventoryCombination",
        backref=db.backref("sources", lazy=True, order_by="InventoryCombinationSource.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "combination_id": self.combination_id,
            "source_inventory_item_id": self.source_inventory_item_id,
            "quantity": format_quantity(self.quantity),
        }
