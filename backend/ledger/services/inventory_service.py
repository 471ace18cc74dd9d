# Overview: Service-layer operations for inventory; every quantity-changing ledger transition lives here.

"""
Inventory Service - move, adjust, split, combine, destroy and lot creation

WHY: Regulated inventory must be reconstructable. Every transition below runs
as one transaction: validate, lock the touched rows, mutate, append an audit
entry, commit. A failure anywhere rolls back everything, audit included.

SCOPE: every lookup filters on the caller's location_id and on deleted_at IS
NULL. Rows outside the scope are reported as "not found".

CONSERVATION: split and combine never create or destroy material; the sum of
active quantities before and after is identical. Tombstoned sources keep
the quantity they held at the time as a historical record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    InventoryAdjustment,
    InventoryCombination,
    InventoryCombinationSource,
    InventoryItem,
    InventorySplit,
    InventorySplitLine,
    InventoryType,
    Lot,
    Room,
    Strain,
)
from ..time_utils import utcnow
from ..validation import (
    QUANTUM,
    ConflictError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
    ensure_homogeneous,
    ensure_non_negative_result,
    ensure_positive,
    ensure_split_sum_within_parent,
    format_quantity,
    is_red_flag,
    to_quantity,
)
from . import audit_service
from .concurrency import lock_for_update, run_atomic
from .identifier_service import next_barcode, sublot_base, sublot_identifier

logger = logging.getLogger(__name__)


ZERO = Decimal("0")


# =============================================================================
# Results
# =============================================================================

@dataclass
class AdjustmentResult:
    item: InventoryItem
    adjustment: InventoryAdjustment
    red_flag: bool
    audit_entry_id: int

    @property
    def warning(self) -> str | None:
        if not self.red_flag:
            return None
        threshold = current_app.config.get("RED_FLAG_THRESHOLD_PERCENT", 10)
        return f"Large adjustment detected (>{threshold}%)"

    def to_dict(self) -> dict:
        return {
            "inventory_item": self.item.to_dict(),
            "adjustment": self.adjustment.to_dict(),
            "red_flag": self.red_flag,
            "warning": self.warning,
            "audit_entry_id": self.audit_entry_id,
        }


@dataclass
class SplitResult:
    parent: InventoryItem
    children: list[InventoryItem]
    split: InventorySplit

    def to_dict(self) -> dict:
        return {
            "parent_item": self.parent.to_dict(),
            "split_items": [child.to_dict() for child in self.children],
            "split": self.split.to_dict(),
        }


@dataclass
class CombineResult:
    item: InventoryItem
    combination: InventoryCombination
    source_item_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "combined_item": self.item.to_dict(),
            "combination": self.combination.to_dict(),
            "source_item_count": len(self.source_item_ids),
        }


@dataclass
class LotResult:
    lot: Lot
    item: InventoryItem
    source_item_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "lot": self.lot.to_dict(),
            "lot_item": self.item.to_dict(),
            "source_item_count": len(self.source_item_ids),
        }


@dataclass
class DestroyResult:
    item: InventoryItem
    waste_item: InventoryItem
    destroyed_quantity: Decimal

    def to_dict(self) -> dict:
        return {
            "original_item": self.item.to_dict(),
            "waste_item": self.waste_item.to_dict(),
            "destroyed_quantity": format_quantity(self.destroyed_quantity),
        }


# =============================================================================
# Lookups (scoped, active only)
# =============================================================================

def _active_items_query(location_id: int):
    return db.session.query(InventoryItem).filter(
        InventoryItem.location_id == location_id,
        InventoryItem.deleted_at.is_(None),
    )


def _get_active_item(location_id: int, item_id: int, *, lock: bool = True) -> InventoryItem:
    q = _active_items_query(location_id).filter(InventoryItem.id == item_id)
    if lock:
        q = lock_for_update(q)
    item = q.first()
    if not item:
        raise NotFoundError("Inventory item not found", details={"inventory_item_id": item_id})
    return item


def _lock_active_items(location_id: int, item_ids: list[int]) -> list[InventoryItem]:
    """Lock every listed item in ascending id order; all must be active and in scope."""
    unique_ids = sorted(set(item_ids))
    items = (
        lock_for_update(
            _active_items_query(location_id)
            .filter(InventoryItem.id.in_(unique_ids))
            .order_by(InventoryItem.id)
        )
        .all()
    )
    if len(items) != len(unique_ids):
        found = {item.id for item in items}
        raise NotFoundError(
            "One or more inventory items not found",
            details={"missing_inventory_item_ids": [i for i in unique_ids if i not in found]},
        )
    return items


def _get_active_room(location_id: int, room_id: int, *, message: str = "Target room not found") -> Room:
    room = (
        db.session.query(Room)
        .filter(
            Room.id == room_id,
            Room.location_id == location_id,
            Room.deleted_at.is_(None),
        )
        .first()
    )
    if not room:
        raise NotFoundError(message, details={"room_id": room_id})
    return room


def _get_type_by_name(name: str) -> InventoryType:
    inventory_type = db.session.query(InventoryType).filter_by(name=name).first()
    if not inventory_type:
        raise NotFoundError(f'Inventory type "{name}" not found', details={"inventory_type": name})
    return inventory_type


def _require_reason(reason: str | None) -> str:
    if reason is None or not str(reason).strip():
        raise ValidationError("reason is required", details={"field": "reason"})
    return str(reason).strip()


def _scale(value: Decimal | None, numerator: Decimal, denominator: Decimal) -> Decimal | None:
    """value * numerator / denominator, quantised; None stays None."""
    if value is None:
        return None
    if denominator == 0:
        return value
    return (Decimal(value) * numerator / denominator).quantize(QUANTUM)


def _sum_usable(items: list[InventoryItem]) -> Decimal | None:
    total = sum((Decimal(item.usable_weight) for item in items if item.usable_weight is not None), ZERO)
    return total if total > 0 else None


def quantity_snapshot(item: InventoryItem) -> dict:
    return {
        "quantity": format_quantity(item.quantity),
        "usable_weight": format_quantity(item.usable_weight),
    }


def _new_item(
    *,
    location_id: int,
    inventory_type_id: int,
    room_id: int,
    quantity: Decimal,
    usable_weight: Decimal | None = None,
    strain_id: int | None = None,
    lot_id: int | None = None,
    sublot_id: str | None = None,
    product_name: str | None = None,
) -> InventoryItem:
    item = InventoryItem(
        barcode=next_barcode(location_id),
        location_id=location_id,
        inventory_type_id=inventory_type_id,
        room_id=room_id,
        quantity=quantity,
        usable_weight=usable_weight,
        strain_id=strain_id,
        lot_id=lot_id,
        sublot_identifier=sublot_id,
        product_name=product_name,
    )
    db.session.add(item)
    db.session.flush()
    return item


# =============================================================================
# Creation
# =============================================================================

def create_item(
    location_id: int,
    *,
    inventory_type_id: int,
    room_id: int,
    quantity,
    usable_weight=None,
    strain_id: int | None = None,
    product_name: str | None = None,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> InventoryItem:
    """Register a new item with a fresh barcode (intake, harvest, receiving)."""
    qty = to_quantity(quantity)
    if qty < 0:
        raise ValidationError("quantity must not be negative", details={"field": "quantity"})
    usable = to_quantity(usable_weight, "usable_weight") if usable_weight is not None else None
    if usable is not None and (usable < 0 or usable > qty):
        raise ValidationError(
            "usable_weight must be between zero and quantity",
            details={"field": "usable_weight"},
        )

    def _op() -> InventoryItem:
        inventory_type = db.session.get(InventoryType, inventory_type_id)
        if not inventory_type:
            raise NotFoundError("Inventory type not found", details={"inventory_type_id": inventory_type_id})
        room = _get_active_room(location_id, room_id, message="Room not found")
        if strain_id is not None:
            strain = db.session.query(Strain).filter_by(id=strain_id, location_id=location_id).first()
            if not strain:
                raise NotFoundError("Strain not found", details={"strain_id": strain_id})

        item = _new_item(
            location_id=location_id,
            inventory_type_id=inventory_type.id,
            room_id=room.id,
            quantity=qty,
            usable_weight=usable,
            strain_id=strain_id,
            product_name=product_name,
        )
        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.ITEM_CREATED,
            old_value=None,
            new_value={
                "barcode": item.barcode,
                "inventory_type_id": inventory_type.id,
                "room_id": room.id,
                **quantity_snapshot(item),
            },
            reason=reason or "Item created",
            actor_user_id=actor_user_id,
        )
        return item

    item = run_atomic(_op, operation="create_item")
    logger.info("Created item %s (%s) with quantity %s", item.id, item.barcode, format_quantity(item.quantity))
    return item


# =============================================================================
# Transitions
# =============================================================================

def move_item(
    location_id: int,
    item_id: int,
    target_room_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> InventoryItem:
    def _op() -> InventoryItem:
        item = _get_active_item(location_id, item_id)
        target_room = _get_active_room(location_id, target_room_id)
        old_room = item.room

        old_value = {"room_id": item.room_id, "room_name": old_room.name if old_room else None}
        item.room_id = target_room.id
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.ROOM_MOVE,
            old_value=old_value,
            new_value={"room_id": target_room.id, "room_name": target_room.name},
            reason=reason or "Room movement",
            actor_user_id=actor_user_id,
        )
        return item

    item = run_atomic(_op, operation="move_item")
    logger.info("Moved item %s to room %s", item.id, item.room_id)
    return item


def adjust_quantity(
    location_id: int,
    item_id: int,
    delta,
    reason: str,
    adjustment_type: str = "CORRECTION",
    actor_user_id: int | None = None,
) -> AdjustmentResult:
    """
    Apply a signed quantity change.

    Raises NegativeResultError (a ConflictError) if the result would be
    negative. Changes larger than RED_FLAG_THRESHOLD_PERCENT of the current
    quantity are flagged but still applied.
    """
    amount = to_quantity(delta, "delta")
    if amount == 0:
        raise ValidationError("delta must be non-zero", details={"field": "delta"})
    reason = _require_reason(reason)
    if not adjustment_type:
        raise ValidationError("adjustment_type is required", details={"field": "adjustment_type"})
    threshold = current_app.config.get("RED_FLAG_THRESHOLD_PERCENT", 10)

    def _op() -> AdjustmentResult:
        item = _get_active_item(location_id, item_id)
        previous = Decimal(item.quantity)
        ensure_non_negative_result(previous, amount)

        new_quantity = previous + amount
        red_flag = is_red_flag(previous, amount, threshold)
        old_value = quantity_snapshot(item)

        item.usable_weight = _scale(item.usable_weight, new_quantity, previous)
        item.quantity = new_quantity

        adjustment = InventoryAdjustment(
            location_id=location_id,
            inventory_item_id=item.id,
            adjustment_quantity=amount,
            previous_quantity=previous,
            new_quantity=new_quantity,
            adjustment_type=adjustment_type,
            reason=reason,
            is_red_flag=red_flag,
            created_by_user_id=actor_user_id,
        )
        db.session.add(adjustment)
        db.session.flush()

        entry = audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.QUANTITY_ADJUSTMENT,
            old_value=old_value,
            new_value=quantity_snapshot(item),
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return AdjustmentResult(item=item, adjustment=adjustment, red_flag=red_flag, audit_entry_id=entry.id)

    result = run_atomic(_op, operation="adjust_quantity")
    if result.red_flag:
        logger.warning(
            "Red flag adjustment on item %s: %s -> %s",
            result.item.id,
            format_quantity(result.adjustment.previous_quantity),
            format_quantity(result.adjustment.new_quantity),
        )
    else:
        logger.info("Adjusted item %s by %s", result.item.id, format_quantity(amount))
    return result


def split_item(
    location_id: int,
    item_id: int,
    parts: list,
    reason: str,
    actor_user_id: int | None = None,
) -> SplitResult:
    """
    Split an item into N children.

    parts: list of {"quantity": ..., "room_id": optional} dicts, or bare
    quantities. Children get fresh barcodes, sublot ids "{base}-1..N" in part
    order, and a proportional share of the parent's usable weight. The parent
    keeps whatever the parts do not take.
    """
    if not parts:
        raise ValidationError("At least one split part is required", details={"field": "parts"})
    reason = _require_reason(reason)

    normalized = []
    for index, part in enumerate(parts):
        if isinstance(part, dict):
            qty = ensure_positive(part.get("quantity"), f"parts[{index}].quantity")
            room_id = part.get("room_id")
        else:
            qty = ensure_positive(part, f"parts[{index}]")
            room_id = None
        normalized.append((qty, room_id))

    def _op() -> SplitResult:
        parent = _get_active_item(location_id, item_id)
        parent_quantity = Decimal(parent.quantity)
        ensure_split_sum_within_parent([qty for qty, _ in normalized], parent_quantity)

        base = sublot_base(parent)
        children = []
        for index, (qty, room_id) in enumerate(normalized):
            if room_id is not None:
                room_id = _get_active_room(location_id, room_id).id
            children.append(
                _new_item(
                    location_id=location_id,
                    inventory_type_id=parent.inventory_type_id,
                    room_id=room_id or parent.room_id,
                    quantity=qty,
                    usable_weight=_scale(parent.usable_weight, qty, parent_quantity),
                    strain_id=parent.strain_id,
                    lot_id=parent.lot_id,
                    sublot_id=sublot_identifier(base, index),
                    product_name=parent.product_name,
                )
            )

        old_value = quantity_snapshot(parent)
        total = sum((qty for qty, _ in normalized), ZERO)
        if parent.usable_weight is not None:
            given = sum((Decimal(child.usable_weight) for child in children), ZERO)
            parent.usable_weight = max(Decimal(parent.usable_weight) - given, ZERO)
        parent.quantity = parent_quantity - total

        split = InventorySplit(
            location_id=location_id,
            parent_inventory_item_id=parent.id,
            reason=reason,
            created_by_user_id=actor_user_id,
        )
        db.session.add(split)
        db.session.flush()
        for child in children:
            db.session.add(InventorySplitLine(split_id=split.id, child_inventory_item_id=child.id, quantity=child.quantity))
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=parent.id,
            action=audit_service.SPLIT,
            old_value=old_value,
            new_value={
                **quantity_snapshot(parent),
                "split_id": split.id,
                "split_count": len(children),
                "split_item_ids": [child.id for child in children],
                "split_quantities": [format_quantity(child.quantity) for child in children],
            },
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return SplitResult(parent=parent, children=children, split=split)

    result = run_atomic(_op, operation="split_item")
    logger.info(
        "Split item %s into %s children, %s remaining",
        result.parent.id,
        len(result.children),
        format_quantity(result.parent.quantity),
    )
    return result


def combine_items(
    location_id: int,
    source_item_ids: list[int],
    reason: str,
    target_item_id: int | None = None,
    target_room_id: int | None = None,
    actor_user_id: int | None = None,
) -> CombineResult:
    """
    Merge sources into a new item, or into an existing target item.

    Sources (and the target) must share one inventory type and one room
    unless target_room_id is given. Sources are tombstoned.
    """
    if not source_item_ids:
        raise ValidationError("At least one source item is required", details={"field": "source_item_ids"})
    if len(set(source_item_ids)) != len(source_item_ids):
        raise ValidationError("Source items must be unique", details={"field": "source_item_ids"})
    if target_item_id is not None and target_item_id in source_item_ids:
        raise ValidationError("Target item cannot also be a source", details={"field": "target_item_id"})
    reason = _require_reason(reason)

    def _op() -> CombineResult:
        lock_ids = list(source_item_ids) + ([target_item_id] if target_item_id is not None else [])
        locked = {item.id: item for item in _lock_active_items(location_id, lock_ids)}
        sources = [locked[item_id] for item_id in source_item_ids]
        target = locked.get(target_item_id) if target_item_id is not None else None

        participants = sources + ([target] if target else [])
        ensure_homogeneous(participants)

        room = None
        if target_room_id is not None:
            room = _get_active_room(location_id, target_room_id)
            if target is not None and target.room_id != room.id:
                raise ValidationError(
                    "target_room_id must match the target item's room",
                    details={"target_room_id": room.id, "target_room_of_item": target.room_id},
                )
        elif len({item.room_id for item in participants}) > 1:
            raise ValidationError(
                "All items must be in the same room or specify a target room",
                details={"room_ids": sorted({item.room_id for item in participants})},
            )

        total = sum((Decimal(item.quantity) for item in sources), ZERO)
        total_usable = _sum_usable(sources)
        old_value = {
            "source_ids": [item.id for item in sources],
            "source_quantities": [{"id": item.id, "quantity": format_quantity(item.quantity)} for item in sources],
        }

        if target is not None:
            old_value["target"] = quantity_snapshot(target)
            if total_usable is not None:
                target.usable_weight = Decimal(target.usable_weight or 0) + total_usable
            target.quantity = Decimal(target.quantity) + total
            combined = target
        else:
            first = sources[0]
            combined = _new_item(
                location_id=location_id,
                inventory_type_id=first.inventory_type_id,
                room_id=room.id if room else first.room_id,
                quantity=total,
                usable_weight=total_usable,
                strain_id=first.strain_id,
                lot_id=first.lot_id,
                product_name=first.product_name,
            )

        now = utcnow()
        for item in sources:
            item.deleted_at = now

        combination = InventoryCombination(
            location_id=location_id,
            target_inventory_item_id=combined.id,
            reason=reason,
            created_by_user_id=actor_user_id,
        )
        db.session.add(combination)
        db.session.flush()
        for item in sources:
            db.session.add(
                InventoryCombinationSource(
                    combination_id=combination.id,
                    source_inventory_item_id=item.id,
                    quantity=item.quantity,
                )
            )
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=combined.id,
            action=audit_service.COMBINE,
            old_value=old_value,
            new_value={
                "combined_id": combined.id,
                "combination_id": combination.id,
                "total_quantity": format_quantity(total),
                **quantity_snapshot(combined),
            },
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return CombineResult(item=combined, combination=combination, source_item_ids=[item.id for item in sources])

    result = run_atomic(_op, operation="combine_items")
    logger.info("Combined %s items into item %s", len(result.source_item_ids), result.item.id)
    return result


def destroy_item(
    location_id: int,
    item_id: int,
    reason: str,
    amount=None,
    destruction_method: str | None = None,
    actor_user_id: int | None = None,
) -> DestroyResult:
    """
    Move material to a new waste-typed item in the same room.

    amount defaults to the whole quantity. A full destruction tombstones the
    source; a partial one reduces it.
    """
    reason = _require_reason(reason)
    requested = ensure_positive(amount, "amount") if amount is not None else None
    waste_type_name = current_app.config.get("WASTE_TYPE_NAME", "Waste")

    def _op() -> DestroyResult:
        item = _get_active_item(location_id, item_id)
        current = Decimal(item.quantity)
        to_destroy = requested if requested is not None else current
        if to_destroy <= 0:
            raise ConflictError("Nothing to destroy", details={"available": format_quantity(current)})
        if to_destroy > current:
            raise OverAllocationError(
                "Destruction amount exceeds available quantity",
                details={
                    "available": format_quantity(current),
                    "requested": format_quantity(to_destroy),
                },
            )

        waste_type = _get_type_by_name(waste_type_name)
        old_value = quantity_snapshot(item)

        waste_usable = _scale(item.usable_weight, to_destroy, current)
        waste_item = _new_item(
            location_id=location_id,
            inventory_type_id=waste_type.id,
            room_id=item.room_id,
            quantity=to_destroy,
            usable_weight=waste_usable,
            strain_id=item.strain_id,
        )

        if to_destroy == current:
            item.deleted_at = utcnow()
        else:
            if item.usable_weight is not None:
                item.usable_weight = max(Decimal(item.usable_weight) - waste_usable, ZERO)
            item.quantity = current - to_destroy
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=item.id,
            action=audit_service.DESTROY,
            old_value=old_value,
            new_value={
                **quantity_snapshot(item),
                "destroyed_quantity": format_quantity(to_destroy),
                "waste_item_id": waste_item.id,
                "method": destruction_method,
                "tombstoned": item.deleted_at is not None,
            },
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return DestroyResult(item=item, waste_item=waste_item, destroyed_quantity=to_destroy)

    result = run_atomic(_op, operation="destroy_item")
    logger.info(
        "Destroyed %s of item %s into waste item %s",
        format_quantity(result.destroyed_quantity),
        result.item.id,
        result.waste_item.id,
    )
    return result


def create_lot(
    location_id: int,
    source_item_ids: list[int],
    lot_name: str,
    target_room_id: int,
    lot_type: str | None = None,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> LotResult:
    """
    Group sources into a new Lot and one lot-typed item holding their total.

    lot_type names an InventoryType in the Lot category; it defaults to
    DEFAULT_LOT_TYPE. Sources are tombstoned.
    """
    if not source_item_ids:
        raise ValidationError("At least one source item is required", details={"field": "source_item_ids"})
    if len(set(source_item_ids)) != len(source_item_ids):
        raise ValidationError("Source items must be unique", details={"field": "source_item_ids"})
    if not lot_name or not str(lot_name).strip():
        raise ValidationError("lot_name is required", details={"field": "lot_name"})
    lot_name = str(lot_name).strip()
    type_name = lot_type or current_app.config.get("DEFAULT_LOT_TYPE", "Lot of Dry Flower")

    def _op() -> LotResult:
        sources = _lock_active_items(location_id, source_item_ids)
        room = _get_active_room(location_id, target_room_id)

        lot_inventory_type = _get_type_by_name(type_name)
        if lot_inventory_type.category != "Lot":
            raise ValidationError(
                f'Inventory type "{type_name}" is not a lot type',
                details={"inventory_type": type_name, "category": lot_inventory_type.category},
            )

        existing = db.session.query(Lot).filter_by(location_id=location_id, batch_number=lot_name).first()
        if existing:
            raise ConflictError("Lot name already in use", details={"lot_name": lot_name, "lot_id": existing.id})

        total = sum((Decimal(item.quantity) for item in sources), ZERO)
        old_value = {
            "source_ids": [item.id for item in sources],
            "source_quantities": [{"id": item.id, "quantity": format_quantity(item.quantity)} for item in sources],
        }

        lot = Lot(location_id=location_id, batch_number=lot_name, created_by_user_id=actor_user_id)
        db.session.add(lot)
        db.session.flush()

        first = sources[0]
        same_strain = len({item.strain_id for item in sources}) == 1
        lot_item = _new_item(
            location_id=location_id,
            inventory_type_id=lot_inventory_type.id,
            room_id=room.id,
            quantity=total,
            usable_weight=_sum_usable(sources),
            strain_id=first.strain_id if same_strain else None,
            lot_id=lot.id,
        )

        now = utcnow()
        for item in sources:
            item.deleted_at = now
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="Lot",
            entity_id=lot.id,
            action=audit_service.CREATE_LOT,
            old_value=old_value,
            new_value={
                "lot_id": lot.id,
                "lot_item_id": lot_item.id,
                "total_quantity": format_quantity(total),
            },
            reason=reason or "Lot creation from inventory items",
            actor_user_id=actor_user_id,
        )
        return LotResult(lot=lot, item=lot_item, source_item_ids=[item.id for item in sources])

    result = run_atomic(_op, operation="create_lot")
    logger.info("Created lot %s (%s) from %s items", result.lot.id, result.lot.batch_number, len(result.source_item_ids))
    return result


# =============================================================================
# Reads
# =============================================================================

def get_item(location_id: int, item_id: int, *, include_deleted: bool = False) -> InventoryItem:
    q = db.session.query(InventoryItem).filter(
        InventoryItem.id == item_id,
        InventoryItem.location_id == location_id,
    )
    if not include_deleted:
        q = q.filter(InventoryItem.deleted_at.is_(None))
    item = q.first()
    if not item:
        raise NotFoundError("Inventory item not found", details={"inventory_item_id": item_id})
    return item


def list_items(
    location_id: int,
    *,
    room_id: int | None = None,
    inventory_type_id: int | None = None,
    include_deleted: bool = False,
) -> list[InventoryItem]:
    q = db.session.query(InventoryItem).filter(InventoryItem.location_id == location_id)
    if not include_deleted:
        q = q.filter(InventoryItem.deleted_at.is_(None))
    if room_id is not None:
        q = q.filter(InventoryItem.room_id == room_id)
    if inventory_type_id is not None:
        q = q.filter(InventoryItem.inventory_type_id == inventory_type_id)
    return q.order_by(InventoryItem.id).all()


def get_active_quantity(
    location_id: int,
    *,
    inventory_type_id: int | None = None,
    room_id: int | None = None,
) -> Decimal:
    """Sum of quantity over active (non-tombstoned) items in scope."""
    q = db.session.query(func.coalesce(func.sum(InventoryItem.quantity), 0)).filter(
        InventoryItem.location_id == location_id,
        InventoryItem.deleted_at.is_(None),
    )
    if inventory_type_id is not None:
        q = q.filter(InventoryItem.inventory_type_id == inventory_type_id)
    if room_id is not None:
        q = q.filter(InventoryItem.room_id == room_id)
    return Decimal(str(q.scalar() or 0)).quantize(QUANTUM)


def _paginate(q, order_column, page: int, limit: int):
    page = max(page, 1)
    limit = max(min(limit, 200), 1)
    total = q.count()
    rows = q.order_by(order_column.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


def list_adjustments(location_id: int, page: int = 1, limit: int = 50) -> dict:
    q = db.session.query(InventoryAdjustment).filter(InventoryAdjustment.location_id == location_id)
    return _paginate(q, InventoryAdjustment.id, page, limit)


def list_splits(location_id: int, page: int = 1, limit: int = 50) -> dict:
    q = db.session.query(InventorySplit).filter(InventorySplit.location_id == location_id)
    return _paginate(q, InventorySplit.id, page, limit)


def list_combinations(location_id: int, page: int = 1, limit: int = 50) -> dict:
    q = db.session.query(InventoryCombination).filter(InventoryCombination.location_id == location_id)
    return _paginate(q, InventoryCombination.id, page, limit)


def list_audit_entries(location_id: int, item_id: int, page: int = 1, limit: int = 50):
    """Audit history of one item, newest first."""
    entries, _ = audit_service.list_entries(
        location_id,
        entity_type="InventoryItem",
        entity_id=item_id,
        page=page,
        limit=limit,
    )
    return entries
