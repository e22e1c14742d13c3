"""
Pytest fixtures for shop ledger backend tests.

Provides the app on an in-memory database, per-test table truncation,
profile/category/balance fixtures, and an httpx transport that routes the
async client straight into the Flask test client.
"""

import httpx
import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Profile, ROLE_OWNER
from shopledger.services import auth_service, ledger_service


ADMIN_PHONE = "9999999999"
MANAGER_PHONE = "9876543210"
OWNER_PHONE = "9123456789"
PENDING_PHONE = "8123456789"
PIN = "123456"
SERVICE_KEY = "test-service-key"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'BCRYPT_ROUNDS': 4,
    'ADMIN_PHONE': ADMIN_PHONE,
    'SERVICE_KEY': SERVICE_KEY,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def admin(db_session):
    """The admin Owner (signs up with ADMIN_PHONE, auto-approved)."""
    return auth_service.register_profile(ADMIN_PHONE, PIN, "Admin Owner")


@pytest.fixture(scope='function')
def manager(db_session, admin):
    """An approved Store Manager."""
    profile = auth_service.register_profile(MANAGER_PHONE, PIN, "Asha Manager")
    auth_service.set_approval(profile.id, True)
    return profile


@pytest.fixture(scope='function')
def second_owner(db_session, admin):
    """A second approved Owner (Owners cannot self-register, so insert directly)."""
    profile = Profile(
        phone=OWNER_PHONE,
        name="Ravi Owner",
        pin_hash=auth_service.hash_pin(PIN),
        designation=ROLE_OWNER,
        is_admin=False,
        is_approved=True,
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def pending_manager(db_session, admin):
    return auth_service.register_profile(PENDING_PHONE, PIN, "Pending Manager")


def set_balances(shop: int, bank: int):
    balance = ledger_service.get_balances()
    balance.shop_balance = shop
    balance.bank_balance = bank
    db.session.commit()
    return balance


@pytest.fixture(scope='function')
def balances(db_session):
    """Start with shop=1000, bank=500."""
    return set_balances(1000, 500)


@pytest.fixture(scope='function')
def category_149(db_session, admin):
    return ledger_service.add_category(149, actor_id=admin.id, stock=10)


@pytest.fixture(scope='function')
def category_49(db_session, admin):
    return ledger_service.add_category(49, actor_id=admin.id, stock=3)


def get_auth_token(client, phone: str, pin: str = PIN) -> str:
    """Helper to get auth token for a profile."""
    response = client.post('/api/auth/login', json={
        'phone': phone,
        'pin': pin,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, ADMIN_PHONE))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, MANAGER_PHONE))


# Only these request headers are forwarded; Host/Content-Length are rebuilt by werkzeug
_FORWARDED_HEADERS = ("authorization", "content-type", "x-service-key")


def flask_transport(flask_client) -> httpx.MockTransport:
    """httpx transport that answers requests from the Flask test client."""

    def handler(request: httpx.Request) -> httpx.Response:
        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() in _FORWARDED_HEADERS
        }
        response = flask_client.open(
            path=request.url.path,
            method=request.method,
            query_string=request.url.query.decode("ascii"),
            headers=headers,
            data=request.content,
        )
        return httpx.Response(
            response.status_code,
            headers={"Content-Type": response.headers.get("Content-Type", "application/json")},
            content=response.get_data(),
        )

    return httpx.MockTransport(handler)


def failing_transport() -> httpx.MockTransport:
    """Every request fails as if the backend were unreachable."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("backend unreachable", request=request)

    return httpx.MockTransport(handler)
