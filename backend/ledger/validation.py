# Overview: Error hierarchy and pure quantity checks shared by every ledger operation.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


QUANTUM = Decimal("0.0001")


class LedgerError(Exception):
    """Base class for every error the ledger raises to its callers."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(LedgerError):
    """404: the row is missing or belongs to another location."""
    status_code = 404


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    status_code = 400


class OverAllocationError(ValidationError):
    """Split parts or a destruction amount exceed what the source holds."""


class TypeMismatchError(ValidationError):
    """Items that must share an inventory type do not."""


class RefundExceedsTotalError(ValidationError):
    """Refunds would add up to more than the sale total."""


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (e.g., not enough stock)."""
    status_code = 409


class InsufficientQuantityError(ConflictError):
    pass


class NegativeResultError(ConflictError):
    pass


class AlreadyVoidedError(ConflictError):
    pass


class NotUndoableError(ConflictError):
    pass


class InternalLedgerError(LedgerError):
    """
    500: unexpected persistence failure.

    The message stays generic; the database exception is chained as __cause__.
    """
    status_code = 500

    def __init__(self, message: str = "Internal ledger error", details: dict | None = None):
        super().__init__(message, details)


# =============================================================================
# Coercion
# =============================================================================

def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    """
    Coerce caller input to a Decimal quantised to 4 places.

    Accepts int, Decimal, float and numeric strings. Rejects bools, NaN,
    infinity and anything unparseable.
    """
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if isinstance(value, Decimal):
        qty = value
    elif isinstance(value, int):
        qty = Decimal(value)
    elif isinstance(value, float):
        # str() first so 0.1 becomes 0.1 rather than its binary expansion
        qty = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number", details={"field": field})
        try:
            qty = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", details={"field": field, "value": value})
    else:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})

    return qty.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def ensure_positive(value: Any, field: str = "quantity") -> Decimal:
    qty = to_quantity(value, field)
    if qty <= 0:
        raise ValidationError(
            f"{field} must be greater than zero",
            details={"field": field, "value": format_quantity(qty)},
        )
    return qty


def format_quantity(value: Decimal | int | None) -> str | None:
    """Render a quantity as a fixed 4-place string for JSON and to_dict()."""
    if value is None:
        return None
    return str(Decimal(value).quantize(QUANTUM, rounding=ROUND_HALF_UP))


# =============================================================================
# Quantity checks
# =============================================================================

def ensure_sufficient(current: Decimal, requested: Decimal) -> None:
    if requested > current:
        raise InsufficientQuantityError(
            "Insufficient quantity",
            details={
                "available": format_quantity(current),
                "requested": format_quantity(requested),
            },
        )


def ensure_non_negative_result(current: Decimal, delta: Decimal) -> None:
    if current + delta < 0:
        raise NegativeResultError(
            "Adjustment would result in a negative quantity",
            details={
                "available": format_quantity(current),
                "requested": format_quantity(delta),
                "result": format_quantity(current + delta),
            },
        )


def ensure_split_sum_within_parent(split_amounts: Iterable[Decimal], parent_quantity: Decimal) -> None:
    total = sum(split_amounts, Decimal("0"))
    if total > parent_quantity:
        raise OverAllocationError(
            "Split quantities exceed the parent quantity",
            details={
                "available": format_quantity(parent_quantity),
                "requested": format_quantity(total),
            },
        )


def ensure_homogeneous(items: Iterable) -> None:
    """All items must share one inventory_type_id."""
    type_ids = {item.inventory_type_id for item in items}
    if len(type_ids) > 1:
        raise TypeMismatchError(
            "All items must have the same inventory type",
            details={"inventory_type_ids": sorted(type_ids)},
        )


def is_red_flag(current: Decimal, delta: Decimal, threshold_percent: float | Decimal) -> bool:
    """
    True when |delta / current| * 100 exceeds threshold_percent.

    Any non-zero change to an empty item is a red flag.
    """
    if delta == 0:
        return False
    if current == 0:
        return True
    percent = abs(Decimal(delta) / Decimal(current)) * 100
    return percent > Decimal(str(threshold_percent))
