"""
Pytest fixtures for the loan ledger backend tests.

Provides the app on an in-memory database, a clean seeded schema per test,
the Flask test client and a few domain fixtures.
"""

import pytest
from cascos import create_app
from cascos.extensions import db
from cascos.models import Customer
from cascos.services import stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEED_STOCK_ON_STARTUP': False,
        'TIMEZONE': 'America/Sao_Paulo',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test: all tables emptied, stock catalog re-seeded at zero."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        stock_service.seed_stock_items()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def customer(db_session):
    """A bar customer with no loans."""
    c = Customer(
        name="João",
        category="bar",
        address="Rua X",
        address_number="10",
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current quantity of a stock item, read straight from the database."""
    def _quantity(item_id: str) -> int:
        db_session.expire_all()
        return stock_service.get_quantity(item_id)
    return _quantity
