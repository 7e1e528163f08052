"""
Pytest fixtures for self-checkout backend tests.

Provides test database setup, station/inventory fixtures, a scriptable
payment gateway and the test client.
"""

import pytest
from selfcheckout import create_app
from selfcheckout.extensions import db
from selfcheckout.models import Station
from selfcheckout.services import gateways
from selfcheckout.services.gateways import GatewayStatus, PaymentGateway
from selfcheckout.services.inventory_service import create_inventory_record


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0,
        'SIMULATED_PAYMENTS_ENABLED': True,
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
def station(db_session):
    """Active kiosk station."""
    station = Station(id="KIOSK-01", name="Front Kiosk", is_active=True)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def retired_station(db_session):
    station = Station(id="KIOSK-OLD", name="Retired Kiosk", is_active=False)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def make_record(db_session):
    """Factory for inventory records: make_record("inv-1", 5, primary="P-1")."""
    def _make(record_id, stock, primary=None, secondary=None, ref=None, ref_field="productRef"):
        return create_inventory_record(
            record_id=record_id,
            stock_level=stock,
            product_id_primary=primary,
            product_id_secondary=secondary,
            product_ref=ref,
            product_ref_field=ref_field,
        )
    return _make


class FakeGateway(PaymentGateway):
    """
    Scriptable gateway: set `status` per payment ref; `on_status` runs inside
    get_status (before the finalizer opens its transaction).
    """

    def __init__(self, provider):
        self.provider = provider
        self.statuses = {}
        self.calls = []
        self.on_status = None

    def set_paid(self, payment_ref, amount_cents, reference=None, state="paid"):
        self.statuses[payment_ref] = GatewayStatus(
            paid=True,
            amount_minor_units=amount_cents,
            provider_state=state,
            reference=reference,
            paid_at="2026-10-19T09:30:00Z",
        )

    def set_unpaid(self, payment_ref, amount_cents, state="due"):
        self.statuses[payment_ref] = GatewayStatus(
            paid=False,
            amount_minor_units=amount_cents,
            provider_state=state,
        )

    def get_status(self, payment_ref):
        self.calls.append(payment_ref)
        if self.on_status is not None:
            hook, self.on_status = self.on_status, None
            hook(payment_ref)
        return self.statuses.get(
            payment_ref,
            GatewayStatus(paid=False, amount_minor_units=None, provider_state="not_found"),
        )


@pytest.fixture(scope='function')
def billplz(app, db_session):
    """Fresh BILLPLZ gateway registered on the app."""
    gateway = FakeGateway(gateways.PROVIDER_BILLPLZ)
    gateways.register_gateway(app, gateway)
    return gateway


@pytest.fixture(scope='function')
def stripe(app, db_session):
    gateway = FakeGateway(gateways.PROVIDER_STRIPE)
    gateways.register_gateway(app, gateway)
    return gateway
