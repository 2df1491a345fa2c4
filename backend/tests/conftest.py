"""
Pytest fixtures for POS ledger backend tests.

Provides the Flask app on an in-memory database, a test client, and
LedgerService instances over an in-memory record store.
"""

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.services.ledger_service import LedgerPolicy, LedgerService
from posledger.services.record_store import MemoryRecordStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRACK_SUPPLIER_CREDIT': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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
def store():
    return MemoryRecordStore()


@pytest.fixture(scope='function')
def ledger(store):
    """Ledger with supplier credit tracking (the default policy)."""
    return LedgerService(store, LedgerPolicy(track_supplier_credit=True))


@pytest.fixture(scope='function')
def legacy_ledger():
    """Ledger that floors supplier debt and discards cash owed."""
    return LedgerService(MemoryRecordStore(), LedgerPolicy(track_supplier_credit=False))


@pytest.fixture(scope='function')
def supplier(ledger):
    return ledger.create_supplier(name="Acme Wholesale", phone="555-0100")


@pytest.fixture(scope='function')
def mug(ledger):
    return ledger.create_item(name="Blue Mug", code="100001", retail_price_cents=1500)


@pytest.fixture(scope='function')
def plate(ledger):
    return ledger.create_item(name="Dinner Plate", code="100002", retail_price_cents=2500)
