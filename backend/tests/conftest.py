"""
Pytest fixtures for ledger backend tests.

Provides test database setup, two tenant locations, rooms, the inventory type
taxonomy and a 1000g starting item.
"""

from decimal import Decimal

import pytest
from ledger import create_app
from ledger.extensions import db
from ledger.models import Location, Room, InventoryType
from ledger.services import inventory_service
from ledger.services.taxonomy_service import seed_inventory_types


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes bypass the audit guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location(db_session):
    """Create Location A (first tenant)."""
    loc = Location(name="Location A - North Facility", license_number="LIC-A-001", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def other_location(db_session):
    """Create Location B (second tenant)."""
    loc = Location(name="Location B - South Facility", license_number="LIC-B-001", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def room(db_session, location):
    r = Room(location_id=location.id, name="Vault", room_type="VAULT")
    db_session.add(r)
    db_session.commit()
    return r


@pytest.fixture(scope='function')
def second_room(db_session, location):
    r = Room(location_id=location.id, name="Drying Room", room_type="DRYING")
    db_session.add(r)
    db_session.commit()
    return r


@pytest.fixture(scope='function')
def foreign_room(db_session, other_location):
    r = Room(location_id=other_location.id, name="Vault", room_type="VAULT")
    db_session.add(r)
    db_session.commit()
    return r


@pytest.fixture(scope='function')
def types(db_session):
    """Seed the default taxonomy; returns {name: InventoryType}."""
    seed_inventory_types()
    return {t.name: t for t in db_session.query(InventoryType).all()}


@pytest.fixture(scope='function')
def wet_type(types):
    return types["Wet Flower"]


@pytest.fixture(scope='function')
def dry_type(types):
    return types["Dry Flower (Cured)"]


def _create_item(location, room, inventory_type, quantity, **kwargs):
    """Helper to register an item through the ledger."""
    return inventory_service.create_item(
        location.id,
        inventory_type_id=inventory_type.id,
        room_id=room.id,
        quantity=quantity,
        **kwargs,
    )


@pytest.fixture(scope='function')
def item(db_session, location, room, dry_type):
    """1000g of dry flower in the vault."""
    return _create_item(location, room, dry_type, Decimal("1000"))


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: make_item(location, room, inventory_type, quantity, **kwargs)."""
    return _create_item
