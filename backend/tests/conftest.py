"""
Pytest fixtures for storefront backend tests.

Provides the in-memory test database, a fake payment gateway, users with
session tokens, and catalog cards with stock.
"""

from decimal import Decimal

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Card, InventoryRecord
from storefront.services import auth_service, session_service
from storefront.services.rate_limit_service import FixedWindowRateLimiter

from fakes import FakeGateway
from helpers import auth_headers


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'MERCADOPAGO_ACCESS_TOKEN': 'TEST-0000',
        'MERCADOPAGO_WEBHOOK_SECRET': None,
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
        db.session.rollback()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def rate_limiter(app):
    """Fresh in-memory limiter per test so counters never leak between tests."""
    limiter = FixedWindowRateLimiter()
    app.extensions['rate_limiter'] = limiter
    return limiter


@pytest.fixture(scope='function')
def gateway(app):
    """Fake Mercado Pago client installed as the app's gateway."""
    fake = FakeGateway()
    app.extensions['gateway_client'] = fake
    yield fake
    app.extensions.pop('gateway_client', None)


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("admin@lorcana.test", "Password123", name="Admin", is_admin=True)


@pytest.fixture(scope='function')
def customer_user(db_session):
    return auth_service.create_user("buyer@lorcana.test", "Password123", name="Buyer")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    _, token = session_service.create_session(customer_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def make_card(db_session):
    """Factory: make_card("tfc-1", "Elsa - Snow Queen", normal_stock=1)."""
    def _make_card(card_id, name, normal_stock=0, foil_stock=0, price="1000", foil_price="2500", status="approved"):
        card = Card(
            id=card_id,
            name=name,
            set_code="TFC",
            number=1,
            rarity="Rare",
            price=Decimal(price),
            foil_price=Decimal(foil_price),
            status=status,
        )
        db_session.add(card)
        db_session.add(InventoryRecord(card_id=card_id, version="normal", stock=normal_stock))
        db_session.add(InventoryRecord(card_id=card_id, version="foil", stock=foil_stock))
        db_session.commit()
        return card

    return _make_card

