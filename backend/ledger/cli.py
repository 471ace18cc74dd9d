# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the factory (PowerShell: $env:FLASK_APP="ledger:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables and seed the default inventory type taxonomy.
# - python -m flask system seed-types
#   Insert any missing default inventory types (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Location and room management:
# - python -m flask locations create --name "North Facility" --license "LIC-0001"
# - python -m flask locations list
# - python -m flask rooms create --location-id 1 --name "Vault" --type STORAGE
#
# Ledger inspection/repair:
# - python -m flask ledger history 42 --location-id 1
#   Print the audit trail of one inventory item, newest first.
# - python -m flask ledger undo 17 --location-id 1 --reason "Wrong room"
#   Undo a ROOM_MOVE or QUANTITY_ADJUSTMENT audit entry.
#
# Sales:
# - python -m flask sales void 5 --location-id 1 --reason "Customer returned"

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Room
from .services import inventory_service, sales_service, taxonomy_service, undo_service
from .validation import LedgerError


def _fail(exc: LedgerError):
    click.echo(f"FAIL {exc.message}")
    for key, value in exc.details.items():
        click.echo(f"     {key}: {value}")
    click.get_current_context().exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables and seed inventory types."""
    db.create_all()
    created = taxonomy_service.seed_inventory_types()
    click.echo(f"PASS Database initialized ({created} inventory types seeded)")


@system_group.command('seed-types')
@with_appcontext
def seed_types():
    """Insert any missing default inventory types."""
    created = taxonomy_service.seed_inventory_types()
    click.echo(f"PASS {created} inventory types created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the audit trail!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-types' next.")


@click.group('locations')
def locations_group():
    """Location (tenant) management commands."""


@locations_group.command('list')
@with_appcontext
def list_locations():
    """List all locations."""
    locations = db.session.query(Location).order_by(Location.id).all()

    if not locations:
        click.echo("No locations found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'License':<20} {'Active':<8} {'Rooms'}")
    click.echo("="*72)

    for location in locations:
        room_count = db.session.query(Room).filter_by(location_id=location.id, deleted_at=None).count()
        active_str = "Yes" if location.is_active else "No"
        click.echo(f"{location.id:<5} {location.name:<30} {location.license_number or '-':<20} {active_str:<8} {room_count}")

    click.echo("="*72 + "\n")


@locations_group.command('create')
@click.option('--name', required=True, help='Location name')
@click.option('--license', 'license_number', help='License number (unique)')
@with_appcontext
def create_location_cli(name, license_number):
    """Create a new location (tenant)."""
    if license_number:
        existing = db.session.query(Location).filter_by(license_number=license_number).first()
        if existing:
            click.echo(f"FAIL Location with license '{license_number}' already exists")
            click.get_current_context().exit(1)

    location = Location(name=name, license_number=license_number, is_active=True)
    db.session.add(location)
    db.session.commit()

    click.echo(f"PASS Created location: {location.name} (ID: {location.id})")


@click.group('rooms')
def rooms_group():
    """Room management commands."""


@rooms_group.command('create')
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--name', required=True, help='Room name (unique within location)')
@click.option('--type', 'room_type', help='Room type (e.g., VEG, FLOWER, DRYING, VAULT)')
@with_appcontext
def create_room_cli(location_id, name, room_type):
    """Create a room in a location."""
    location = db.session.get(Location, location_id)
    if not location:
        click.echo(f"FAIL Location {location_id} not found")
        click.get_current_context().exit(1)

    existing = db.session.query(Room).filter_by(location_id=location_id, name=name).first()
    if existing:
        click.echo(f"FAIL Room '{name}' already exists in location {location_id}")
        click.get_current_context().exit(1)

    room = Room(location_id=location_id, name=name, room_type=room_type)
    db.session.add(room)
    db.session.commit()

    click.echo(f"PASS Created room: {room.name} (ID: {room.id}, Location: {location_id})")


@click.group('ledger')
def ledger_group():
    """Audit trail inspection and undo."""


@ledger_group.command('history')
@click.argument('item_id', type=int)
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def item_history(item_id, location_id, limit):
    """Print the audit trail of one inventory item."""
    entries = inventory_service.list_audit_entries(location_id, item_id, limit=limit)
    if not entries:
        click.echo(f"No audit entries for item {item_id}.")
        return

    for entry in entries:
        data = entry.to_dict()
        click.echo(
            f"#{data['id']:<6} {data['occurred_at'] or '-':<22} {data['action']:<20} "
            f"{data['old_value']} -> {data['new_value']}  ({data['reason'] or '-'})"
        )


@ledger_group.command('undo')
@click.argument('entry_id', type=int)
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--reason', required=True, help='Reason for the undo')
@click.option('--user-id', type=int, help='Acting user ID')
@with_appcontext
def undo_entry(entry_id, location_id, reason, user_id):
    """Undo a ROOM_MOVE or QUANTITY_ADJUSTMENT audit entry."""
    try:
        result = undo_service.undo_operation(location_id, entry_id, reason, actor_user_id=user_id)
    except LedgerError as exc:
        _fail(exc)
        return
    click.echo(f"PASS {result.message} (undo entry #{result.undo_entry.id})")


@click.group('sales')
def sales_group():
    """Sale maintenance commands."""


@sales_group.command('void')
@click.argument('sale_id', type=int)
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--reason', required=True, help='Void reason')
@click.option('--user-id', type=int, help='Acting user ID')
@with_appcontext
def void_sale_cli(sale_id, location_id, reason, user_id):
    """Void a completed sale and restore its inventory."""
    try:
        sale = sales_service.void_sale(location_id, sale_id, reason, actor_user_id=user_id)
    except LedgerError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Sale {sale.document_number} voided")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(rooms_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(sales_group)
