"""
Pytest fixtures for the parish stock ledger tests.

Provides an in-memory database, a parish with two warehouses, stock-tracked
and non-tracked products, and small helpers for recording movements.
"""

from datetime import date
from decimal import Decimal

import pytest
from app import create_app
from app.extensions import db
from app.models import Parish, Warehouse, Product
from app.services import stock_service


MOVEMENT_DATE = date(2026, 1, 10)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def parish(db_session):
    parish = Parish(name="St. Anne", code="STANNE", is_active=True)
    db_session.add(parish)
    db_session.commit()
    return parish


@pytest.fixture(scope='function')
def other_parish(db_session):
    parish = Parish(name="St. Joseph", code="STJOSEPH", is_active=True)
    db_session.add(parish)
    db_session.commit()
    return parish


@pytest.fixture(scope='function')
def warehouse_a(db_session, parish):
    """Main storeroom."""
    warehouse = Warehouse(parish_id=parish.id, name="Main Storeroom", code="MAIN")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_b(db_session, parish):
    """Sacristy."""
    warehouse = Warehouse(parish_id=parish.id, name="Sacristy", code="SAC")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product(db_session, parish):
    """Stock-tracked product."""
    product = Product(
        parish_id=parish.id,
        code="CANDLE",
        name="Altar candle",
        unit="pcs",
        tracks_stock=True,
        min_stock=Decimal("5.000"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session, parish):
    """Second stock-tracked product."""
    product = Product(parish_id=parish.id, code="BOOKLET", name="Hymn booklet", tracks_stock=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_product(db_session, parish):
    """Product that does not track stock (e.g. a service fee)."""
    product = Product(parish_id=parish.id, code="MASS-FEE", name="Mass intention", tracks_stock=False)
    db_session.add(product)
    db_session.commit()
    return product


def record(parish, warehouse, product, movement_type, quantity, **kwargs):
    """Helper to record a movement through the validated path."""
    kwargs.setdefault("movement_date", MOVEMENT_DATE)
    return stock_service.create_movement(
        parish_id=parish.id,
        warehouse_id=warehouse.id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        **kwargs,
    )


def stock(warehouse, product) -> Decimal:
    return stock_service.get_current_stock(warehouse.id, product.id)


def actor_headers(user_id: int = 7) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user_id)}
