# Overview: Service-layer operations for sales; allocates inventory to sales, voids and refunds them.

"""
Sales Service - atomic sale allocation, void and refund

WHY: A sale must either take every requested quantity or nothing. All
referenced items are locked (ascending id) and checked against the
aggregated request before anything is decremented.

VOID restores each line's quantity to its source item. REFUND only moves
money; inventory is not touched.
"""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Customer, InventoryItem, InventoryType, Refund, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import (
    AlreadyVoidedError,
    ConflictError,
    InsufficientQuantityError,
    NotFoundError,
    RefundExceedsTotalError,
    ValidationError,
    ensure_positive,
    format_quantity,
)
from . import audit_service
from .concurrency import lock_for_update, run_atomic
from .identifier_service import next_document_number

logger = logging.getLogger(__name__)


STATUS_COMPLETED = "COMPLETED"
STATUS_VOIDED = "VOIDED"


def _to_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents", details={"field": field})
    if value < 0:
        raise ValidationError(f"{field} must not be negative", details={"field": field})
    return value


def _normalize_lines(items: list[dict]) -> list[dict]:
    if not items:
        raise ValidationError("A sale needs at least one item", details={"field": "items"})

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each sale line must be an object", details={"field": f"items[{index}]"})
        item_id = raw.get("inventory_item_id")
        if item_id is None:
            raise ValidationError("inventory_item_id is required", details={"field": f"items[{index}].inventory_item_id"})
        quantity = ensure_positive(raw.get("quantity"), f"items[{index}].quantity")
        unit_price = _to_cents(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents")
        discount = _to_cents(raw.get("discount_cents", 0), f"items[{index}].discount_cents")

        gross = int((quantity * unit_price).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if discount > gross:
            raise ValidationError(
                "Discount cannot exceed the line amount",
                details={"field": f"items[{index}].discount_cents", "gross_cents": gross},
            )
        lines.append({
            "line_number": index + 1,
            "inventory_item_id": item_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "discount_cents": discount,
            "line_total_cents": gross - discount,
        })
    return lines


def _get_sale_locked(location_id: int, sale_id: int) -> Sale:
    sale = lock_for_update(
        db.session.query(Sale).filter(Sale.id == sale_id, Sale.location_id == location_id)
    ).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def create_sale(
    location_id: int,
    items: list[dict],
    customer_id: int | None = None,
    actor_user_id: int | None = None,
) -> Sale:
    """
    Sell one or more inventory items in a single transaction.

    items: [{"inventory_item_id", "quantity", "unit_price_cents", "discount_cents"?}]
    Quantities for the same item on several lines are checked together.
    """
    lines = _normalize_lines(items)

    def _op() -> Sale:
        if customer_id is not None and not db.session.get(Customer, customer_id):
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        requested: dict[int, Decimal] = {}
        for line in lines:
            item_id = line["inventory_item_id"]
            requested[item_id] = requested.get(item_id, Decimal("0")) + line["quantity"]

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

        waste = [item_id for item_id in ids if locked[item_id].inventory_type.is_waste]
        if waste:
            raise ValidationError(
                "Waste inventory cannot be sold",
                details={"waste_inventory_item_ids": waste},
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
                "Insufficient quantity to complete sale",
                details={"items": insufficient},
            )

        sale = Sale(
            location_id=location_id,
            document_number=next_document_number(location_id, "SALE", "S"),
            customer_id=customer_id,
            status=STATUS_COMPLETED,
            total_cents=sum(line["line_total_cents"] for line in lines),
            created_by_user_id=actor_user_id,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(sale_id=sale.id, **line))

        for item_id in ids:
            item = locked[item_id]
            previous = Decimal(item.quantity)
            item.quantity = previous - requested[item_id]
            db.session.flush()
            audit_service.record(
                location_id=location_id,
                entity_type="InventoryItem",
                entity_id=item.id,
                action=audit_service.SALE,
                old_value={"quantity": format_quantity(previous)},
                new_value={
                    "quantity": format_quantity(item.quantity),
                    "sale_id": sale.id,
                    "document_number": sale.document_number,
                },
                reason=f"Sale {sale.document_number}",
                actor_user_id=actor_user_id,
            )
        return sale

    sale = run_atomic(_op, operation="create_sale")
    logger.info("Sale %s completed: %s lines, total %s cents", sale.document_number, len(lines), sale.total_cents)
    return sale


def void_sale(
    location_id: int,
    sale_id: int,
    reason: str,
    actor_user_id: int | None = None,
) -> Sale:
    """Void a completed sale and put every line's quantity back on its item."""
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required", details={"field": "reason"})

    def _op() -> Sale:
        sale = _get_sale_locked(location_id, sale_id)
        if sale.status == STATUS_VOIDED:
            raise AlreadyVoidedError("Sale is already voided", details={"sale_id": sale.id})

        restore: dict[int, Decimal] = {}
        for line in sale.items:
            restore[line.inventory_item_id] = restore.get(line.inventory_item_id, Decimal("0")) + Decimal(line.quantity)

        ids = sorted(restore)
        items = lock_for_update(
            db.session.query(InventoryItem)
            .filter(InventoryItem.id.in_(ids), InventoryItem.location_id == location_id)
            .order_by(InventoryItem.id)
        ).all()
        inactive = [item.id for item in items if item.deleted_at is not None]
        if inactive or len(items) != len(ids):
            raise ConflictError(
                "Sale cannot be voided: a sold item is no longer active",
                details={"inventory_item_ids": inactive},
            )

        for item in items:
            previous = Decimal(item.quantity)
            item.quantity = previous + restore[item.id]
            db.session.flush()
            audit_service.record(
                location_id=location_id,
                entity_type="InventoryItem",
                entity_id=item.id,
                action=audit_service.SALE_VOID,
                old_value={"quantity": format_quantity(previous)},
                new_value={"quantity": format_quantity(item.quantity), "sale_id": sale.id},
                reason=str(reason).strip(),
                actor_user_id=actor_user_id,
            )

        sale.status = STATUS_VOIDED
        sale.voided_at = utcnow()
        sale.voided_by_user_id = actor_user_id
        sale.void_reason = str(reason).strip()
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="Sale",
            entity_id=sale.id,
            action=audit_service.SALE_VOID,
            old_value={"status": STATUS_COMPLETED},
            new_value={
                "status": STATUS_VOIDED,
                "restored": [{"inventory_item_id": i, "quantity": format_quantity(restore[i])} for i in ids],
            },
            reason=sale.void_reason,
            actor_user_id=actor_user_id,
        )
        return sale

    sale = run_atomic(_op, operation="void_sale")
    logger.info("Sale %s voided", sale.document_number)
    return sale


def create_refund(
    location_id: int,
    sale_id: int,
    amount_cents: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Refund:
    amount = _to_cents(amount_cents, "amount_cents")
    if amount == 0:
        raise ValidationError("amount_cents must be greater than zero", details={"field": "amount_cents"})

    def _op() -> Refund:
        sale = _get_sale_locked(location_id, sale_id)
        if sale.status == STATUS_VOIDED:
            raise ConflictError("Cannot refund a voided sale", details={"sale_id": sale.id})

        already = sale.refunded_cents
        if already + amount > sale.total_cents:
            raise RefundExceedsTotalError(
                "Refund amount exceeds sale total",
                details={
                    "total_cents": sale.total_cents,
                    "refunded_cents": already,
                    "requested_cents": amount,
                },
            )

        refund = Refund(sale_id=sale.id, amount_cents=amount, reason=reason, created_by_user_id=actor_user_id)
        db.session.add(refund)
        db.session.flush()

        audit_service.record(
            location_id=location_id,
            entity_type="Sale",
            entity_id=sale.id,
            action=audit_service.REFUND,
            old_value={"refunded_cents": already},
            new_value={"refunded_cents": already + amount, "refund_id": refund.id},
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return refund

    refund = run_atomic(_op, operation="create_refund")
    logger.info("Refund %s of %s cents recorded against sale %s", refund.id, refund.amount_cents, refund.sale_id)
    return refund


# =============================================================================
# Reads and customers
# =============================================================================

def get_sale(location_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, location_id=location_id).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(location_id: int, status: str | None = None) -> list[Sale]:
    q = db.session.query(Sale).filter(Sale.location_id == location_id)
    if status:
        q = q.filter(Sale.status == status)
    return q.order_by(Sale.id.desc()).all()


def get_available_inventory(location_id: int) -> list[InventoryItem]:
    """Active, non-waste items with something left to sell."""
    return (
        db.session.query(InventoryItem)
        .join(InventoryType, InventoryItem.inventory_type_id == InventoryType.id)
        .filter(
            InventoryType.is_waste.is_(False),
            InventoryItem.location_id == location_id,
            InventoryItem.deleted_at.is_(None),
            InventoryItem.quantity > 0,
        )
        .order_by(InventoryItem.product_name, InventoryItem.id)
        .all()
    )


def create_customer(name: str, patient_card_number: str | None = None, contact_info: dict | None = None) -> Customer:
    if not name or not str(name).strip():
        raise ValidationError("name is required", details={"field": "name"})

    def _op() -> Customer:
        if patient_card_number:
            existing = db.session.query(Customer).filter_by(patient_card_number=patient_card_number).first()
            if existing:
                raise ConflictError(
                    "Patient card number already registered",
                    details={"customer_id": existing.id},
                )
        customer = Customer(
            name=str(name).strip(),
            patient_card_number=patient_card_number,
            contact_info=contact_info or {},
        )
        db.session.add(customer)
        db.session.flush()
        return customer

    return run_atomic(_op, operation="create_customer")
