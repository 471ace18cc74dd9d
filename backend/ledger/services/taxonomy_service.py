# Overview: Service-layer operations for the inventory type taxonomy; default seed and lookups.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryType

logger = logging.getLogger(__name__)


CATEGORIES = ["Source", "Waste", "Wet", "Dry", "Lot", "Extraction", "FinishedGoods"]

# (name, category, unit, is_source, can_convert)
DEFAULT_INVENTORY_TYPES = [
    ("Clones", "Source", "units", True, True),
    ("Seeds", "Source", "units", True, True),
    ("Waste", "Waste", "grams", False, False),
    ("Wet Flower", "Wet", "grams", False, True),
    ("Wet Trim", "Wet", "grams", False, True),
    ("Fresh Frozen Flower", "Wet", "grams", False, True),
    ("Dry Flower (Cured)", "Dry", "grams", False, True),
    ("Dry Trim", "Dry", "grams", False, True),
    ("Smalls/Shake", "Dry", "grams", False, True),
    ("Lot of Wet Flower", "Lot", "grams", False, True),
    ("Lot of Dry Flower", "Lot", "grams", False, True),
    ("Lot of Trim", "Lot", "grams", False, True),
    ("Crude Extract (Solvent)", "Extraction", "grams", False, True),
    ("Distillate", "Extraction", "ml", False, True),
    ("Rosin", "Extraction", "grams", False, True),
    ("Hash/Kief", "Extraction", "grams", False, True),
    ("Pre-Rolls", "FinishedGoods", "units", False, False),
    ("Edibles (Gummies)", "FinishedGoods", "units", False, False),
    ("Tinctures", "FinishedGoods", "ml", False, False),
]


def seed_inventory_types() -> int:
    """Insert any missing default types. Idempotent; returns how many were created."""
    existing = {name for (name,) in db.session.query(InventoryType.name).all()}
    created = 0
    for name, category, unit, is_source, can_convert in DEFAULT_INVENTORY_TYPES:
        if name in existing:
            continue
        db.session.add(InventoryType(
            name=name,
            category=category,
            unit=unit,
            is_source=is_source,
            is_waste=category == "Waste",
            can_convert=can_convert,
        ))
        created += 1
    db.session.commit()
    if created:
        logger.info("Seeded %s inventory types", created)
    return created


def list_types(category: str | None = None) -> list[InventoryType]:
    q = db.session.query(InventoryType)
    if category:
        q = q.filter(InventoryType.category == category)
    return q.order_by(InventoryType.category, InventoryType.name).all()
