# Overview: Pytest coverage for the Flask CLI command groups.

from decimal import Decimal

from ledger.models import AuditLogEntry, InventoryType, Location, Room, Sale
from ledger.services import inventory_service, sales_service


def test_seed_types_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-types"])
    second = runner.invoke(args=["system", "seed-types"])

    assert first.exit_code == 0
    assert "PASS" in first.output
    assert "PASS 0 inventory types created" in second.output
    assert db_session.query(InventoryType).filter_by(name="Waste", is_waste=True).count() == 1


def test_create_and_list_locations(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["locations", "create", "--name", "East Grow", "--license", "LIC-E-1"])
    assert result.exit_code == 0
    assert db_session.query(Location).filter_by(license_number="LIC-E-1").count() == 1

    duplicate = runner.invoke(args=["locations", "create", "--name", "Copy", "--license", "LIC-E-1"])
    assert duplicate.exit_code == 1
    assert "FAIL" in duplicate.output

    listing = runner.invoke(args=["locations", "list"])
    assert "East Grow" in listing.output


def test_create_room(app, db_session, location):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["rooms", "create", "--location-id", str(location.id), "--name", "Flower 1"])
    assert result.exit_code == 0
    assert db_session.query(Room).filter_by(location_id=location.id, name="Flower 1").count() == 1

    missing = runner.invoke(args=["rooms", "create", "--location-id", "999999", "--name", "Ghost"])
    assert missing.exit_code == 1


def test_history_and_undo(app, db_session, location, second_room, item):
    inventory_service.move_item(location.id, item.id, second_room.id)
    entry = db_session.query(AuditLogEntry).filter_by(action="ROOM_MOVE").one()
    runner = app.test_cli_runner()

    history = runner.invoke(args=["ledger", "history", str(item.id), "--location-id", str(location.id)])
    assert history.exit_code == 0
    assert "ROOM_MOVE" in history.output
    assert "ITEM_CREATED" in history.output

    undo = runner.invoke(args=[
        "ledger", "undo", str(entry.id), "--location-id", str(location.id), "--reason", "Wrong room",
    ])
    assert undo.exit_code == 0
    assert "Room move reverted" in undo.output


def test_undo_of_irreversible_entry_fails(app, db_session, location, item):
    inventory_service.split_item(location.id, item.id, [Decimal("1")], "Packaging")
    entry = db_session.query(AuditLogEntry).filter_by(action="SPLIT").one()
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "undo", str(entry.id), "--location-id", str(location.id), "--reason", "x"])
    assert result.exit_code == 1
    assert "cannot be undone" in result.output


def test_void_sale(app, db_session, location, item):
    sale = sales_service.create_sale(location.id, [{"inventory_item_id": item.id, "quantity": 1, "unit_price_cents": 100}])
    runner = app.test_cli_runner()

    result = runner.invoke(args=["sales", "void", str(sale.id), "--location-id", str(location.id), "--reason", "Test"])
    assert result.exit_code == 0
    db_session.expire_all()
    assert db_session.get(Sale, sale.id).status == "VOIDED"

    again = runner.invoke(args=["sales", "void", str(sale.id), "--location-id", str(location.id), "--reason", "Test"])
    assert again.exit_code == 1
    assert "already voided" in again.output
