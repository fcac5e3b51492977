# Overview: Flask CLI command group for bootstrap and stock inspection.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stock <command> [options]
#
# - python -m flask stock init-db [--reset --yes]
#   Create all tables (or drop and recreate them; deletes all data).
# - python -m flask stock seed-demo
#   Idempotent demo data: one parish, two warehouses, two products, opening stock.
# - python -m flask stock level --warehouse 1 --product 1 [--as-of 2026-01-31]
#   Print the ledger-derived stock of one (warehouse, product) pair.
# - python -m flask stock levels [--warehouse 1] [--low-stock]
#   Print every positive stock level.

import click
from datetime import date
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Parish, Warehouse, Product, StockMovement
from .services import stock_service
from .validation import NotFoundError, ValidationError


@click.group('stock')
def stock_group():
    """Stock ledger bootstrap and inspection commands."""


@stock_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    """Create the schema (use migrations for existing databases)."""
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@stock_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Create demo data for local development.

    Creates (each only if missing):
    - Parish "Demo Parish" (code DEMO)
    - Warehouses MAIN and SACRISTY
    - Products CANDLE (tracked, min stock 20) and BOOKLET (tracked)
    - Opening "in" movements for both products in MAIN
    """
    parish = db.session.query(Parish).filter_by(code="DEMO").first()
    if not parish:
        parish = Parish(name="Demo Parish", code="DEMO", is_active=True)
        db.session.add(parish)
        db.session.commit()
        click.echo(f"PASS Created parish: {parish.name} (ID: {parish.id})")
    else:
        click.echo(f"PASS Using existing parish: {parish.name} (ID: {parish.id})")

    warehouses = {}
    for code, name in (("MAIN", "Main Storeroom"), ("SACRISTY", "Sacristy")):
        warehouse = db.session.query(Warehouse).filter_by(parish_id=parish.id, code=code).first()
        if not warehouse:
            warehouse = Warehouse(parish_id=parish.id, code=code, name=name)
            db.session.add(warehouse)
            db.session.commit()
            click.echo(f"PASS Created warehouse: {name} (ID: {warehouse.id})")
        warehouses[code] = warehouse

    products = {}
    for code, name, unit, min_stock in (
        ("CANDLE", "Altar candle", "pcs", Decimal("20.000")),
        ("BOOKLET", "Hymn booklet", "pcs", None),
    ):
        product = db.session.query(Product).filter_by(parish_id=parish.id, code=code).first()
        if not product:
            product = Product(
                parish_id=parish.id, code=code, name=name, unit=unit,
                tracks_stock=True, min_stock=min_stock,
            )
            db.session.add(product)
            db.session.commit()
            click.echo(f"PASS Created product: {name} (ID: {product.id})")
        products[code] = product

    main = warehouses["MAIN"]
    for code, quantity, unit_cost in (("CANDLE", "50", "1.2500"), ("BOOKLET", "30", "4.0000")):
        product = products[code]
        has_stock = db.session.query(StockMovement).filter_by(
            warehouse_id=main.id, product_id=product.id
        ).first()
        if has_stock:
            continue
        stock_service.create_movement(
            parish_id=parish.id,
            warehouse_id=main.id,
            product_id=product.id,
            movement_type="in",
            movement_date=date.today(),
            quantity=quantity,
            unit_cost=unit_cost,
            document_type="opening_balance",
            notes="Demo opening stock",
        )
        click.echo(f"PASS Opening stock: {quantity} x {product.name} in {main.name}")

    click.echo("DONE Demo data ready.")


@stock_group.command('level')
@click.option('--warehouse', 'warehouse_id', type=int, required=True, help='Warehouse ID')
@click.option('--product', 'product_id', type=int, required=True, help='Product ID')
@click.option('--as-of', 'as_of', default=None, help='Date (YYYY-MM-DD), inclusive')
@with_appcontext
def stock_level(warehouse_id, product_id, as_of):
    """Print the stock of one product in one warehouse."""
    try:
        summary = stock_service.get_stock_summary(
            warehouse_id=warehouse_id, product_id=product_id, as_of=as_of
        )
    except (NotFoundError, ValidationError) as e:
        raise click.ClickException(str(e))

    suffix = f" (as of {summary['as_of']})" if summary["as_of"] else ""
    click.echo(f"Warehouse {warehouse_id} / product {product_id}{suffix}")
    click.echo(f"  quantity:    {summary['quantity']}")
    click.echo(f"  total value: {summary['total_value']}")
    if summary["low_stock"]:
        click.echo(f"  WARN below minimum stock {summary['min_stock']}")


@stock_group.command('levels')
@click.option('--warehouse', 'warehouse_id', type=int, default=None, help='Filter by warehouse ID')
@click.option('--parish', 'parish_id', type=int, default=None, help='Filter by parish ID')
@click.option('--low-stock', is_flag=True, help='Only products below their minimum stock')
@with_appcontext
def stock_levels(warehouse_id, parish_id, low_stock):
    """List positive stock levels."""
    levels = stock_service.get_stock_levels(
        warehouse_id=warehouse_id, parish_id=parish_id, low_stock=low_stock
    )
    if not levels:
        click.echo("No stock found.")
        return

    click.echo(f"{'Warehouse':<24} {'Product':<32} {'Quantity':>14} {'Value':>14}")
    for level in levels:
        warehouse_name = level["warehouse"]["name"] if level["warehouse"] else level["warehouse_id"]
        product_name = level["product"]["name"] if level["product"] else level["product_id"]
        click.echo(
            f"{str(warehouse_name):<24} {str(product_name):<32} "
            f"{level['quantity']:>14} {level['total_value']:>14}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
