"""
Pytest fixtures for Chairbook backend tests.

Provides an in-memory database per test, two tenants with their teams and
catalogs, unaffiliated and tenant-affiliated customers, a recording notifier
transport and helpers for bearer-token requests.
"""

from datetime import timedelta

import pytest

from chairbook import create_app
from chairbook.extensions import db
from chairbook.models import Service, Tenant
from chairbook.models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN
from chairbook.services import session_service
from chairbook.services.auth_service import create_profile
from chairbook.time_utils import utcnow


PASSWORD = "Password123"
HOST_A = "http://shop-a.chairbook.app"
HOST_B = "http://shop-b.chairbook.app"


class RecordingTransport:
    """Notifier transport that keeps every published message."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def publish(self, channel, message):
        if self.fail:
            raise ConnectionError("realtime backend unreachable")
        self.messages.append((channel, message))

    def events(self, channel=None):
        return [m["event"] for c, m in self.messages if channel is None or c == channel]


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def app(transport):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'BCRYPT_ROUNDS': 4,
        'NOTIFIER_SYNCHRONOUS': True,
        'CANCELLATION_BUFFER_MINUTES': 120,
    }, notifier_transport=transport)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Test client without a cookie jar; tests pass bearer tokens or cookies explicitly."""
    return app.test_client(use_cookies=False)


@pytest.fixture()
def db_session(app):
    return db.session


def _tenant(slug, name):
    tenant = Tenant(slug=slug, display_name=name, subscription_status="active")
    db.session.add(tenant)
    db.session.commit()
    return tenant


def _profile(email, role, tenant=None, **kwargs):
    return create_profile(
        email=email,
        password=PASSWORD,
        full_name=kwargs.pop("full_name", email.split("@")[0].title()),
        role=role,
        tenant_id=tenant.id if tenant is not None else None,
        **kwargs,
    )


def _service(tenant, name, price_cents, duration_min):
    service = Service(tenant_id=tenant.id, name=name, price_cents=price_cents, duration_min=duration_min, is_active=True)
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture()
def tenant_a(app):
    return _tenant("shop-a", "Shop A")


@pytest.fixture()
def tenant_b(app):
    return _tenant("shop-b", "Shop B")


@pytest.fixture()
def owner_a(tenant_a):
    return _profile("owner@shop-a.test", ROLE_OWNER, tenant_a, is_active_barber=True)


@pytest.fixture()
def staff_a(tenant_a):
    return _profile("staff@shop-a.test", ROLE_STAFF, tenant_a, is_active_barber=True)


@pytest.fixture()
def kiosk_a(tenant_a):
    return _profile("kiosk@shop-a.test", ROLE_KIOSK, tenant_a)


@pytest.fixture()
def owner_b(tenant_b):
    return _profile("owner@shop-b.test", ROLE_OWNER, tenant_b, is_active_barber=True)


@pytest.fixture()
def staff_b(tenant_b):
    return _profile("staff@shop-b.test", ROLE_STAFF, tenant_b, is_active_barber=True)


@pytest.fixture()
def super_admin(app):
    return _profile("root@chairbook.test", ROLE_SUPER_ADMIN)


@pytest.fixture()
def customer(app):
    """Unaffiliated customer (can book at any shop)."""
    return _profile("client@example.test", ROLE_CUSTOMER, full_name="Carla Client")


@pytest.fixture()
def customer_b(tenant_b):
    """Customer affiliated with tenant B only."""
    return _profile("regular@shop-b.test", ROLE_CUSTOMER, tenant_b)


@pytest.fixture()
def haircut_a(tenant_a):
    return _service(tenant_a, "Haircut", 2500, 30)


@pytest.fixture()
def premium_a(tenant_a):
    return _service(tenant_a, "Premium Grooming", 20000, 60)


@pytest.fixture()
def haircut_b(tenant_b):
    return _service(tenant_b, "Haircut", 3000, 30)


def in_hours(hours: float):
    return utcnow() + timedelta(hours=hours)


def issue_token(profile) -> str:
    """Start a session for a profile and return its access token."""
    _, issued = session_service.create_session(profile.id)
    return issued.access_token


def issue_tokens(profile):
    _, issued = session_service.create_session(profile.id)
    return issued


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(profile) -> dict:
    return auth_headers(issue_token(profile))


def set_cookie_values(response) -> dict:
    """Map cookie name -> value for every Set-Cookie header on a response."""
    cookies = {}
    for header in response.headers.getlist("Set-Cookie"):
        name, _, rest = header.partition("=")
        cookies[name] = rest.split(";", 1)[0]
    return cookies
