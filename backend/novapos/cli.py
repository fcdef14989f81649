# Overview: Flask CLI command groups for bootstrap, catalog loading, and ledger inspection.

# backend/novapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to novapos.wsgi (PowerShell: $env:FLASK_APP="novapos.wsgi").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: tables, head-office branch, starter roster, default catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Load the default cafe catalog into an empty catalog.
# - python -m flask catalog import products.csv
#   Bulk import (header row; name,category,price,stock,description,image,barcode,batch,expiry).
# - python -m flask catalog list [--low-stock]
#
# Inventory:
# - python -m flask inventory verify
#   Check every product's stock ledger; exits 1 when any ledger is inconsistent.
# - python -m flask inventory history <product_id> --limit 20
#
# Audit:
# - python -m flask audit tail --limit 20 [--action "Sale Completed"]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .services import audit_service, branch_service, catalog_service, staff_service, stock_ledger_service
from .services.auth_service import effective_role
from .validation import ValidationError
from .time_utils import to_utc_z


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize NovaPOS: schema, head-office branch, starter roster and catalog.

    Starter roster (PIN 1234 for everyone):
    - EMP-1 Admin User  (Store Manager -> Admin)
    - EMP-2 Jane Smith  (Head Barista  -> Manager)
    - EMP-3 John Doe    (Cashier       -> Cashier)

    SECURITY: Change PINs immediately in production!
    """
    click.echo("START Initializing NovaPOS...")

    db.create_all()
    click.echo("PASS Schema ready")

    branch = branch_service.ensure_default_branch()
    click.echo(f"PASS Using branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")

    added = staff_service.seed_roster(branch.id)
    if added:
        click.echo(f"PASS Created {added} starter employees (PIN 1234)")
    else:
        click.echo("PASS Roster already populated")

    created = catalog_service.seed_catalog()
    if created:
        click.echo(f"PASS Seeded {created} catalog products")
    else:
        click.echo("PASS Catalog already populated")

    click.echo("DONE NovaPOS initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog_cli():
    """Load the default catalog into an empty catalog."""
    created = catalog_service.seed_catalog()
    if created:
        click.echo(f"PASS Seeded {created} products")
    else:
        click.echo("SKIP Catalog is not empty")


@catalog_group.command('import')
@click.argument('csv_file', type=click.File('r', encoding='utf-8-sig'))
@with_appcontext
def import_catalog_cli(csv_file):
    """Bulk import products from a CSV file."""
    try:
        result = catalog_service.import_products_csv(csv_file.read())
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Imported {len(result['created'])} products")
    for skipped in result["skipped"]:
        click.echo(f"SKIP row {skipped['row']}: {skipped['reason']}")


@catalog_group.command('list')
@click.option('--low-stock', is_flag=True, help='Only products below the low-stock threshold')
@with_appcontext
def list_catalog_cli(low_stock):
    """List products with price and stock."""
    products = catalog_service.low_stock_products() if low_stock else catalog_service.list_products()
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"\n{'ID':<12} {'Name':<28} {'Category':<12} {'Price':>12} {'Stock':>7}")
    click.echo("-" * 75)
    for p in products:
        click.echo(f"{p.id:<12} {p.name[:28]:<28} {p.category[:12]:<12} {_money(p.price_cents):>12} {p.stock:>7}")
    click.echo(f"\nTotal: {len(products)} products\n")


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection."""


@inventory_group.command('verify')
@with_appcontext
def verify_inventory_cli():
    """Check every product's ledger against the stock invariants."""
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    failures = 0
    for product in products:
        problems = stock_ledger_service.verify_history(product)
        if problems:
            failures += 1
            click.echo(f"FAIL {product.id} {product.name}")
            for problem in problems:
                click.echo(f"     - {problem}")

    if failures:
        click.echo(f"\n{failures} of {len(products)} ledgers inconsistent")
        raise SystemExit(1)
    click.echo(f"PASS {len(products)} ledgers consistent")


@inventory_group.command('history')
@click.argument('product_id')
@click.option('--limit', default=20, show_default=True, help='Max entries')
@with_appcontext
def history_cli(product_id, limit):
    """Show a product's stock ledger, newest first."""
    try:
        entries = stock_ledger_service.get_history(product_id, limit=limit)
    except stock_ledger_service.StockLedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"\n{'#':<6} {'When':<21} {'Type':<11} {'Qty':>6} {'Prev':>6} {'New':>6}  User / Note")
    click.echo("-" * 90)
    for e in entries:
        qty = f"{e.quantity:+d}" + ("*" if e.was_clamped else "")
        click.echo(
            f"{e.id:<6} {to_utc_z(e.occurred_at):<21} {e.type:<11} {qty:>6} "
            f"{e.previous_stock:>6} {e.new_stock:>6}  {e.user} / {e.note or ''}"
        )
    click.echo("\n* clamped at zero\n")


@click.group('audit')
def audit_group():
    """Audit trail inspection."""


@audit_group.command('tail')
@click.option('--limit', default=20, show_default=True, help='Number of entries')
@click.option('--action', default=None, help='Filter by action (e.g. "Sale Completed")')
@with_appcontext
def audit_tail_cli(limit, action):
    """Show the newest audit entries."""
    entries = audit_service.list_entries(limit=limit, action=action)
    if not entries:
        click.echo("No audit entries.")
        return
    for e in entries:
        click.echo(f"{to_utc_z(e.occurred_at)}  {e.user} ({e.role})  {e.action}: {e.details}")
    click.echo(f"\nShowing {len(entries)} of {audit_service.count_entries()} entries")


@click.group('staff')
def staff_group():
    """Roster inspection."""


@staff_group.command('list')
@with_appcontext
def list_staff_cli():
    """List employees with job title and effective role."""
    employees = staff_service.list_employees()
    if not employees:
        click.echo("No employees found.")
        return

    click.echo(f"\n{'ID':<10} {'Name':<22} {'Title':<16} {'Role':<8} {'Status':<12} {'Branch'}")
    click.echo("-" * 85)
    for e in employees:
        click.echo(
            f"{e.id:<10} {e.name[:22]:<22} {(e.role or '')[:16]:<16} "
            f"{effective_role(e.role).value:<8} {e.status:<12} {e.home_branch_id or '-'}"
        )
    click.echo(f"\nTotal: {len(employees)} employees\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(audit_group)
    app.cli.add_command(staff_group)
