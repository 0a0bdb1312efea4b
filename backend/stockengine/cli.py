# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/stockengine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for managed schemas).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory maintenance:
# - python -m flask inventory verify-ledger [--tenant-id 1] [--repair]
#   Compare every item's on-hand with its ledger sum; --repair resets drifted counters.
# - python -m flask inventory stock --tenant-id 1 [--location-id 2]
#   Print stock levels (on hand, allocated, available, incoming, average cost).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant
from .services import inventory_service, reconciliation_service
from .validation import format_decimal


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection and repair commands."""


@inventory_group.command('verify-ledger')
@click.option('--tenant-id', type=int, help='Only check this tenant')
@click.option('--repair', is_flag=True, help='Reset drifted counters to the ledger sum')
@with_appcontext
def verify_ledger(tenant_id, repair):
    """
    Verify that every item's on-hand equals the sum of its ledger rows.

    Exits with status 1 when discrepancies remain.

    Example:
        flask inventory verify-ledger
        flask inventory verify-ledger --tenant-id 1 --repair
    """
    if tenant_id is not None and not db.session.get(Tenant, tenant_id):
        raise click.ClickException(f"Tenant {tenant_id} not found")

    found = reconciliation_service.find_discrepancies(tenant_id)
    if not found:
        click.echo("PASS Ledger and counters agree.")
        return

    click.echo(f"{'Tenant':<8} {'Location':<10} {'Product':<10} {'On hand':>14} {'Ledger':>14} {'Diff':>14}")
    for row in found:
        click.echo(
            f"{row['tenant_id']:<8} {row['location_id']:<10} {row['product_id']:<10} "
            f"{format_decimal(row['quantity_on_hand']):>14} {format_decimal(row['ledger_quantity']):>14} "
            f"{format_decimal(row['difference']):>14}"
        )

    if not repair:
        click.echo(f"FAIL {len(found)} discrepancies found. Re-run with --repair to fix.")
        raise SystemExit(1)

    repaired = reconciliation_service.repair_discrepancies(tenant_id)
    click.echo(f"PASS Repaired {len(repaired)} inventory items from the ledger.")


@inventory_group.command('stock')
@click.option('--tenant-id', type=int, required=True, help='Tenant to report on')
@click.option('--location-id', type=int, help='Filter by location')
@with_appcontext
def stock(tenant_id, location_id):
    """
    Print stock levels.

    Example:
        flask inventory stock --tenant-id 1
        flask inventory stock --tenant-id 1 --location-id 2
    """
    items = inventory_service.list_items(tenant_id, location_id=location_id)
    if not items:
        click.echo("No inventory items found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(
        f"{'Location':<10} {'Product':<10} {'On hand':>12} {'Allocated':>12} "
        f"{'Available':>12} {'Incoming':>12} {'Avg cost':>12}"
    )
    click.echo("=" * 100)
    for item in items:
        click.echo(
            f"{item.location_id:<10} {item.product_id:<10} "
            f"{format_decimal(item.quantity_on_hand):>12} {format_decimal(item.quantity_allocated):>12} "
            f"{format_decimal(item.quantity_available):>12} {format_decimal(item.quantity_incoming):>12} "
            f"{format_decimal(item.average_cost) or '-':>12}"
        )
    click.echo("=" * 100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
