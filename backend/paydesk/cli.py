# Overview: Flask CLI command groups for bootstrap, catalog seeding, and ledger maintenance.

# backend/paydesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Insert a small demo catalog and loyalty customers if the collections are empty.
# - python -m flask catalog list [--all]
#   List products (use --all to include unavailable ones).
#
# Sales ledger:
# - python -m flask sales reconcile-stock [--limit 100]
#   Apply pending stock decrements left behind by failed settlements.
# - python -m flask sales summary
#   Print the summary cards (transactions, paid, unpaid, total sales).

import click
from flask.cli import with_appcontext

from .extensions import db
from .formatting import format_money
from .models import Product, LoyaltyCustomer
from .services import document_store, ledger_query, stock_effects_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Database tables ready")


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

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed' for demo data.")


DEMO_PRODUCTS = [
    # name, description, price_cents, cost_cents, stock
    ("Motor Oil 1L", "Synthetic 10W-40", 45000, 32000, 24),
    ("Car Shampoo", "500ml concentrate", 18000, 9500, 40),
    ("Tire Black", "Water-based tire shine", 15000, 7000, 30),
    ("Microfiber Towel", "40x40cm", 8000, 3500, 100),
    ("Air Freshener", "Hanging, assorted scents", 5000, 1800, 60),
]

DEMO_LOYALTY_CUSTOMERS = [
    ("Juan Dela Cruz", [{"car_name": "Toyota Vios", "plate_number": "ABC 1234"}]),
    ("Maria Santos", [{"car_name": "Honda City", "plate_number": "XYZ 5678"}]),
]


@click.group('catalog')
def catalog_group():
    """Catalog inspection and seeding."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert the demo catalog and loyalty customers into empty collections."""
    if db.session.query(Product).count():
        click.echo("WARN  Products already present, skipping products...")
    else:
        for name, description, price, cost, stock in DEMO_PRODUCTS:
            db.session.add(Product(
                name=name,
                description=description,
                unit_price_cents=price,
                unit_cost_cents=cost,
                available=True,
                stock_quantity=stock,
            ))
        click.echo(f"PASS Created {len(DEMO_PRODUCTS)} products")

    if db.session.query(LoyaltyCustomer).count():
        click.echo("WARN  Loyalty customers already present, skipping...")
    else:
        for name, cars in DEMO_LOYALTY_CUSTOMERS:
            db.session.add(LoyaltyCustomer(name=name, cars=cars))
        click.echo(f"PASS Created {len(DEMO_LOYALTY_CUSTOMERS)} loyalty customers")

    db.session.commit()


@catalog_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include unavailable products')
@with_appcontext
def list_catalog(show_all):
    """List products with price and stock."""
    products = document_store.list_products()
    if not show_all:
        products = [p for p in products if p.available is not False]
    if not products:
        click.echo("No products found.")
        return
    for p in products:
        flag = "" if p.available else " (unavailable)"
        click.echo(f"{p.id:>4}  {p.name:<30} {format_money(p.unit_price_cents):>12}  stock={p.stock_quantity}{flag}")


@click.group('sales')
def sales_group():
    """Sales ledger maintenance."""


@sales_group.command('reconcile-stock')
@click.option('--limit', type=int, default=None, help='Maximum effects to process')
@with_appcontext
def reconcile_stock(limit):
    """Apply pending stock effects."""
    result = stock_effects_service.reconcile_pending_effects(limit=limit)
    click.echo(f"PASS Applied {result['applied']} stock effect(s), {result['pending']} still pending")
    if result["pending"]:
        raise click.ClickException(f"{result['pending']} stock effect(s) could not be applied")


@sales_group.command('summary')
@with_appcontext
def sales_summary():
    """Print the ledger summary cards."""
    stats = ledger_query.compute_stats(document_store.list_sale_records())
    click.echo(f"Total Transactions: {stats['total_transactions']}")
    click.echo(f"Total Sales:        {format_money(stats['total_sales_cents'])}")
    click.echo(f"Paid:               {stats['total_paid']}")
    click.echo(f"Unpaid:             {stats['total_unpaid']} (deferred {stats['total_deferred']}, voided {stats['total_voided']})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(sales_group)
