"""
Shared pytest fixtures for the Release Quality Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant rows (AI provider "local")
    - auth_headers / other_auth_headers: X-Tenant-ID headers for the API
"""

import pytest

from qahub import create_app
from qahub.models import db as _db
from qahub.models.tenant import Tenant
from qahub.services import event_store


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Tenants ──────────────────────────────────────────────────────────────


def make_tenant(name: str, slug: str, *, provider: str | None = "local", is_active: bool = True) -> Tenant:
    settings = {"ai_config": {"provider": provider}} if provider else {}
    t = Tenant(name=name, slug=slug, is_active=is_active, settings=settings)
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def tenant():
    return make_tenant("Acme QA", "acme-qa")


@pytest.fixture()
def other_tenant():
    return make_tenant("Beta QA", "beta-qa")


@pytest.fixture()
def auth_headers(tenant):
    return {"X-Tenant-ID": str(tenant.id), "X-User-ID": "qa-lead"}


@pytest.fixture()
def other_auth_headers(other_tenant):
    return {"X-Tenant-ID": str(other_tenant.id), "X-User-ID": "intruder"}


@pytest.fixture()
def captured_events():
    """Collect every published DomainEvent for the duration of a test."""
    seen = []

    def _capture(event):
        seen.append(event)

    event_store.subscribe("*")(_capture)
    yield seen
    event_store.unsubscribe("*", _capture)
