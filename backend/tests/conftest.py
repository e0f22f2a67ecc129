"""
Pytest fixtures for PayDesk backend tests.

Provides an in-memory database, a clean collection state per test, a small
catalog, and a stock adjuster that records its calls.
"""

import pytest
from paydesk import create_app
from paydesk.extensions import db
from paydesk.models import Product, LoyaltyCustomer
from paydesk.services.settlement_service import OperatorContext


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_ATTEMPTS': 1,
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
def catalog(db_session):
    """
    Two sellable products and one hidden one.

    P1 = 5000 cents, P2 = 3000 cents, both with 10 in stock.
    """
    p1 = Product(name="Car Shampoo", description="500ml concentrate",
                 unit_price_cents=5000, unit_cost_cents=2500, available=True, stock_quantity=10)
    p2 = Product(name="Tire Black", description="Water-based shine",
                 unit_price_cents=3000, unit_cost_cents=1200, available=True, stock_quantity=10)
    hidden = Product(name="Discontinued Wax", description=None,
                     unit_price_cents=9900, unit_cost_cents=5000, available=False, stock_quantity=0)
    db_session.add_all([p1, p2, hidden])
    db_session.commit()
    return {"p1": p1, "p2": p2, "hidden": hidden}


@pytest.fixture(scope='function')
def loyalty_customers(db_session):
    customers = [
        LoyaltyCustomer(name="Maria Santos", cars=[{"car_name": "Honda City", "plate_number": "XYZ 5678"}]),
        LoyaltyCustomer(name="Juan Dela Cruz", cars=[]),
    ]
    db_session.add_all(customers)
    db_session.commit()
    return customers


@pytest.fixture
def operator():
    return OperatorContext(cashier_id="cashier1", display_name="Ana Reyes")


class RecordingAdjuster:
    """Stock adjuster double: records (product_id, quantity) and can fail per product."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def __call__(self, product_id, quantity):
        self.calls.append((product_id, quantity))
        if product_id in self.fail_on:
            raise RuntimeError("stock service unavailable")


@pytest.fixture
def adjuster():
    return RecordingAdjuster()


@pytest.fixture
def make_adjuster():
    """Factory for adjusters that fail on the given product ids."""
    return RecordingAdjuster
