# Overview: Service-layer operations for conversions; turns material of one stage into the next.

"""
Conversion Service - Wet -> Dry -> Extraction -> FinishedGoods

The source item is reduced by the input weight and a new output item is
created in the target room. Weight lost in processing (input - output) is
reported, not tracked as a separate item.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import AuditLogEntry, InventoryItem, InventoryType, Strain
from ..validation import (
    NotFoundError,
    ValidationError,
    ensure_positive,
    ensure_sufficient,
    format_quantity,
    to_quantity,
)
from . import audit_service
from .concurrency import run_atomic
from .inventory_service import _get_active_item, _get_active_room, _new_item, _scale, quantity_snapshot

logger = logging.getLogger(__name__)


WET_TO_DRY = "WET_TO_DRY"
DRY_TO_EXTRACTION = "DRY_TO_EXTRACTION"
EXTRACTION_TO_FINISHED = "EXTRACTION_TO_FINISHED"

# source category -> (output category, conversion type)
CONVERSION_PATHS = {
    "Wet": ("Dry", WET_TO_DRY),
    "Dry": ("Extraction", DRY_TO_EXTRACTION),
    "Extraction": ("FinishedGoods", EXTRACTION_TO_FINISHED),
}


@dataclass
class ConversionResult:
    source: InventoryItem
    output: InventoryItem
    conversion_type: str
    input_quantity: Decimal
    output_quantity: Decimal

    @property
    def material_loss(self) -> Decimal:
        return self.input_quantity - self.output_quantity

    @property
    def loss_percentage(self) -> Decimal:
        return (self.material_loss / self.input_quantity * 100).quantize(Decimal("0.01"))

    def to_dict(self) -> dict:
        return {
            "conversion_type": self.conversion_type,
            "source_item": self.source.to_dict(),
            "output_item": self.output.to_dict(),
            "input_quantity": format_quantity(self.input_quantity),
            "output_quantity": format_quantity(self.output_quantity),
            "material_loss": format_quantity(self.material_loss),
            "loss_percentage": str(self.loss_percentage),
        }


def convert_item(
    location_id: int,
    source_item_id: int,
    output_inventory_type_id: int,
    input_quantity,
    output_quantity,
    room_id: int,
    *,
    usable_weight=None,
    strain_id: int | None = None,
    batch_number: str | None = None,
    extraction_method: str | None = None,
    units_produced: int | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> ConversionResult:
    input_qty = ensure_positive(input_quantity, "input_quantity")
    output_qty = ensure_positive(output_quantity, "output_quantity")
    if output_qty > input_qty:
        raise ValidationError(
            "Output weight cannot exceed input weight",
            details={"input_quantity": format_quantity(input_qty), "output_quantity": format_quantity(output_qty)},
        )
    usable = to_quantity(usable_weight, "usable_weight") if usable_weight is not None else output_qty
    if usable < 0 or usable > output_qty:
        raise ValidationError(
            "usable_weight must be between zero and the output weight",
            details={"field": "usable_weight"},
        )
    if units_produced is not None and units_produced < 1:
        raise ValidationError("units_produced must be at least 1", details={"field": "units_produced"})

    def _op() -> ConversionResult:
        source = _get_active_item(location_id, source_item_id)
        source_category = source.inventory_type.category
        if source_category not in CONVERSION_PATHS or not source.inventory_type.can_convert:
            raise ValidationError(
                f"{source.inventory_type.name} inventory cannot be converted",
                details={"category": source_category},
            )
        expected_category, conversion_type = CONVERSION_PATHS[source_category]

        output_type = db.session.get(InventoryType, output_inventory_type_id)
        if not output_type:
            raise NotFoundError("Output inventory type not found", details={"inventory_type_id": output_inventory_type_id})
        if output_type.category != expected_category:
            raise ValidationError(
                f"Output inventory type must be in the {expected_category} category",
                details={"expected_category": expected_category, "category": output_type.category},
            )

        room = _get_active_room(location_id, room_id, message="Room not found")
        output_strain_id = source.strain_id
        if strain_id is not None:
            if not db.session.query(Strain).filter_by(id=strain_id, location_id=location_id).first():
                raise NotFoundError("Strain not found", details={"strain_id": strain_id})
            output_strain_id = strain_id

        current = Decimal(source.quantity)
        ensure_sufficient(current, input_qty)
        old_source = quantity_snapshot(source)

        label = batch_number or source.sublot_identifier or source.barcode
        output = _new_item(
            location_id=location_id,
            inventory_type_id=output_type.id,
            room_id=room.id,
            quantity=output_qty,
            usable_weight=usable,
            strain_id=output_strain_id,
            lot_id=source.lot_id,
            product_name=f"Conversion Output - {label}",
        )

        remaining = current - input_qty
        source.usable_weight = _scale(source.usable_weight, remaining, current)
        source.quantity = remaining
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="InventoryItem",
            entity_id=output.id,
            action=audit_service.CONVERSION,
            old_value={"source_item_id": source.id, **old_source},
            new_value={
                "conversion_type": conversion_type,
                "source_item_id": source.id,
                "source_quantity": format_quantity(source.quantity),
                "output_item_id": output.id,
                "input_quantity": format_quantity(input_qty),
                "output_quantity": format_quantity(output_qty),
                "material_loss": format_quantity(input_qty - output_qty),
                "batch_number": batch_number,
                "extraction_method": extraction_method,
                "units_produced": units_produced,
            },
            reason=notes or f"{conversion_type} conversion",
            actor_user_id=actor_user_id,
        )
        return ConversionResult(
            source=source,
            output=output,
            conversion_type=conversion_type,
            input_quantity=input_qty,
            output_quantity=output_qty,
        )

    result = run_atomic(_op, operation="convert_item")
    logger.info(
        "%s conversion: item %s -> item %s (loss %s%%)",
        result.conversion_type,
        result.source.id,
        result.output.id,
        result.loss_percentage,
    )
    return result


def list_conversions(
    location_id: int,
    conversion_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> list[dict]:
    """Conversion history from the audit trail, newest first."""
    q = db.session.query(AuditLogEntry).filter(
        AuditLogEntry.location_id == location_id,
        AuditLogEntry.action == audit_service.CONVERSION,
    )
    if conversion_type:
        # new_value is written with sort_keys and default separators
        q = q.filter(AuditLogEntry.new_value.contains(f'"conversion_type": "{conversion_type}"'))

    page = max(page, 1)
    entries = q.order_by(AuditLogEntry.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return [
        {"audit_entry_id": entry.id, "occurred_at": entry.to_dict()["occurred_at"], **entry.new_data}
        for entry in entries
    ]
