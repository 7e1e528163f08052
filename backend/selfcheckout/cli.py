# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/selfcheckout/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stations:
# - python -m flask stations create --id KIOSK-01 --name "Front Kiosk"
#   Register a kiosk station so purchases from it are accepted.
# - python -m flask stations list [--all]
#   List stations (use --all to include deactivated ones).
#
# Inventory:
# - python -m flask inventory add-record --id inv-123 --stock 10 --primary P-1
#   Insert a stock record (also --secondary, --ref, --ref-field).
# - python -m flask inventory resolve P-1
#   Show every record matching a product id and which one is canonical.
#
# Purchase events (safety-net reconciler):
# - python -m flask events drain [--limit 50]
#   Deliver due purchase.created events.
# - python -m flask events reconcile 42
#   Run the safety-net decrement for one purchase directly.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import PurchaseEvent, product_ref_path
from .models.events import EVENT_STATUS_FAILED, EVENT_STATUS_PENDING
from .services import inventory_service, reconciler_service, station_service
from .services.errors import CheckoutError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask stations create' to add a kiosk.")


# =============================================================================
# STATION COMMANDS
# =============================================================================

@click.group('stations')
def stations_group():
    """Kiosk station registration commands."""


@stations_group.command('create')
@click.option('--id', 'station_id', required=True, help='Station ID (as configured on the kiosk)')
@click.option('--name', help='Display name')
@with_appcontext
def create_station_cli(station_id, name):
    """Register a kiosk station."""
    try:
        station = station_service.create_station(station_id, name=name)
    except (ValueError, CheckoutError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created station: {station.id} ({station.name or '-'})")


@stations_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated stations')
@with_appcontext
def list_stations_cli(include_inactive):
    """List kiosk stations."""
    stations = station_service.list_stations(include_inactive=include_inactive)

    if not stations:
        click.echo("No stations found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<20} {'Name':<30} {'Active'}")
    click.echo("="*60)

    for station in stations:
        active_str = "Yes" if station.is_active else "No"
        click.echo(f"{station.id:<20} {station.name or '-':<30} {active_str}")

    click.echo("="*60 + "\n")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory record inspection commands."""


@inventory_group.command('add-record')
@click.option('--id', 'record_id', required=True, help='Inventory record ID')
@click.option('--stock', type=int, required=True, help='Stock level')
@click.option('--primary', help='productID field value')
@click.option('--secondary', help='productId field value')
@click.option('--ref', 'ref_product_id', help='Product ID stored as a products/<id> reference')
@click.option('--ref-field', default='product', show_default=True, help='Field the reference was stored under')
@with_appcontext
def add_record_cli(record_id, stock, primary, secondary, ref_product_id, ref_field):
    """Insert an inventory record."""
    try:
        record = inventory_service.create_inventory_record(
            record_id=record_id,
            stock_level=stock,
            product_id_primary=primary,
            product_id_secondary=secondary,
            product_ref=product_ref_path(ref_product_id) if ref_product_id else None,
            product_ref_field=ref_field,
        )
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created inventory record {record.id} (stock {record.stock_level})")


@inventory_group.command('resolve')
@click.argument('product_id')
@with_appcontext
def resolve_cli(product_id):
    """Show the records a product id resolves to."""
    try:
        resolution = inventory_service.resolve_inventory_records(product_id)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'Record':<25} {'Scheme':<18} {'Score':<7} {'Stock'}")
    click.echo("="*70)

    for match in resolution.matches:
        marker = " *" if match.record.id == resolution.canonical_record.id else ""
        click.echo(
            f"{match.record.id:<25} {match.scheme.value:<18} {match.score:<7} {match.record.stock_level}{marker}"
        )

    click.echo("="*70)
    click.echo("* canonical\n")


# =============================================================================
# PURCHASE EVENT COMMANDS
# =============================================================================

@click.group('events')
def events_group():
    """purchase.created delivery commands."""


@events_group.command('drain')
@click.option('--limit', type=int, help='Max events to deliver (default: PURCHASE_EVENT_BATCH_SIZE)')
@with_appcontext
def drain_cli(limit):
    """Deliver due purchase.created events to the reconciler."""
    counts = reconciler_service.drain_purchase_events(limit=limit)
    pending = db.session.query(PurchaseEvent).filter_by(status=EVENT_STATUS_PENDING).count()
    failed = db.session.query(PurchaseEvent).filter_by(status=EVENT_STATUS_FAILED).count()

    click.echo(
        f"PASS delivered={counts['delivered']} retrying={counts['retrying']} "
        f"failed={counts['failed']} (pending total {pending}, failed total {failed})"
    )


@events_group.command('reconcile')
@click.argument('purchase_id', type=int)
@with_appcontext
def reconcile_cli(purchase_id):
    """Run the safety-net decrement for one purchase."""
    try:
        result = reconciler_service.reconcile_purchase(purchase_id)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Purchase {purchase_id}: {result.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stations_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(events_group)
