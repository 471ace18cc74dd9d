# Overview: Service-layer operations for identifiers; barcodes, sublot ids and per-location counters.

"""
Identifier Service - barcodes, sublot identifiers and document numbers

WHY: Barcodes are the regulator-facing identity of an item. They must be
globally unique and fixed length, so they come from a pluggable generator
rather than a timestamp plus a random suffix.

STRATEGIES (config BARCODE_STRATEGY):
- uuid: uuid4-derived, 16 uppercase hex chars by default
- sequence: location-scoped counter, zero padded to the same length

SUBLOTS: children of a split are named "{base}-{n}" (1-based) where base is
the parent's sublot identifier, or its barcode when it has none.
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import IdentifierSequence


BARCODE_SEQUENCE = "BARCODE"


class BarcodeGenerator:
    """Interface: produce one fresh barcode for a location."""

    def __init__(self, length: int = 16):
        self.length = length

    def generate(self, location_id: int) -> str:
        raise NotImplementedError


class UuidBarcodeGenerator(BarcodeGenerator):
    def generate(self, location_id: int) -> str:
        return uuid.uuid4().hex[: self.length].upper()


class SequenceBarcodeGenerator(BarcodeGenerator):
    """Six-digit location prefix followed by the location's barcode counter."""
    PREFIX_DIGITS = 6

    def generate(self, location_id: int) -> str:
        value = next_sequence_value(location_id, BARCODE_SEQUENCE)
        barcode = f"{location_id:0{self.PREFIX_DIGITS}d}{value:0{self.length - self.PREFIX_DIGITS}d}"
        if len(barcode) != self.length:
            raise ValueError(f"Barcode sequence for location {location_id} exhausted")
        return barcode


GENERATORS = {
    "uuid": UuidBarcodeGenerator,
    "sequence": SequenceBarcodeGenerator,
}


def get_barcode_generator() -> BarcodeGenerator:
    strategy = str(current_app.config.get("BARCODE_STRATEGY", "uuid")).lower()
    length = int(current_app.config.get("BARCODE_LENGTH", 16))
    try:
        generator_cls = GENERATORS[strategy]
    except KeyError:
        raise ValueError(f"Unknown BARCODE_STRATEGY {strategy!r}")
    return generator_cls(length=length)


def next_barcode(location_id: int) -> str:
    return get_barcode_generator().generate(location_id)


def sublot_base(item) -> str:
    return item.sublot_identifier or item.barcode


def sublot_identifier(base: str, index: int) -> str:
    """Sublot id for the index-th (0-based) child of a split."""
    return f"{base}-{index + 1}"


def _current_value(location_id: int, name: str) -> int:
    current = (
        db.session.query(IdentifierSequence.next_value)
        .filter_by(location_id=location_id, sequence_name=name)
        .scalar()
    )
    return current - 1


def next_sequence_value(location_id: int, name: str) -> int:
    """
    Atomically allocate the next counter value for (location, name).

    Runs in the caller's transaction. The UPDATE takes the row lock; a first
    allocation inserts the row inside a savepoint so a concurrent insert
    only loses the savepoint, not the caller's work.
    """
    if not location_id:
        raise ValueError("location_id is required")
    if not name:
        raise ValueError("sequence name is required")

    stmt = (
        update(IdentifierSequence)
        .where(
            IdentifierSequence.location_id == location_id,
            IdentifierSequence.sequence_name == name,
        )
        .values(next_value=IdentifierSequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_value(location_id, name)

    try:
        with db.session.begin_nested():
            db.session.add(IdentifierSequence(location_id=location_id, sequence_name=name, next_value=2))
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current_value(location_id, name)
    return 1


def next_document_number(location_id: int, document_type: str, prefix: str, pad: int = 6) -> str:
    """e.g. next_document_number(1, "SALE", "S") -> "S-001-000001"."""
    value = next_sequence_value(location_id, document_type)
    return f"{prefix}-{location_id:03d}-{value:0{pad}d}"
