"""Pytest configuration and fixtures."""

import json
import os

# Settings are read once at import time; configure before importing crux
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ANON_KEY"] = "test-anon-key"
os.environ["SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["FRONTEND_URL"] = "https://app.example.com"
os.environ["BASE_DOMAIN"] = "https://reviews.example.com"

import httpx
import pytest
from fastapi.testclient import TestClient

import crux.models  # noqa: F401
from crux.api.deps import get_email_service
from crux.core.policies import Caller, PolicySession
from crux.core.security import create_access_token, get_password_hash
from crux.core.tenancy import resolve_caller
from crux.database import Base, SessionLocal, engine
from crux.models import AuthUser, Profile, Tenant, UserRole
from crux.services.email_service import EmailService

PASSWORD = "password123"
_password_hash = None


def password_hash() -> str:
    # bcrypt is slow; hash the shared test password once
    global _password_hash
    if _password_hash is None:
        _password_hash = get_password_hash(PASSWORD)
    return _password_hash


@pytest.fixture(scope="function")
def db():
    """
    Fresh in-memory database per test.

    All sessions (fixtures and app) share the one StaticPool connection,
    so fixture data must be committed before requests are made.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_tenant(db):
    counter = {"n": 0}

    def _make(**overrides) -> Tenant:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "name": f"Tenant {n}",
            "slug": f"tenant-{n}",
            "business_name": f"Business {n}",
            "google_review_url": f"https://g.page/r/business-{n}/review",
            "plan_type": "basic",
            "status": "active",
        }
        values.update(overrides)
        tenant = Tenant(**values)
        db.add(tenant)
        db.commit()
        return tenant

    return _make


@pytest.fixture
def make_user(db):
    def _make(email: str, role: str = UserRole.USER.value, tenant: Tenant = None) -> Profile:
        auth_user = AuthUser(email=email, hashed_password=password_hash(), user_metadata={})
        db.add(auth_user)
        db.flush()
        profile = Profile(
            id=auth_user.id,
            email=email,
            role=role,
            tenant_id=tenant.id if tenant is not None else None,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def session_for(db):
    """PolicySession acting as the given profile (or a Caller)."""
    def _session(who) -> PolicySession:
        if isinstance(who, Caller):
            return PolicySession(db, who)
        return PolicySession(db, resolve_caller(db, who.id, who.email))

    return _session


@pytest.fixture
def tenant_a(make_tenant):
    return make_tenant(name="Acme", slug="acme")


@pytest.fixture
def tenant_b(make_tenant):
    return make_tenant(name="Globex", slug="globex")


@pytest.fixture
def super_admin(make_user):
    return make_user("root@platform.example.com", UserRole.SUPER_ADMIN.value)


@pytest.fixture
def admin_a(make_user, tenant_a):
    return make_user("admin@acme.example.com", UserRole.TENANT_ADMIN.value, tenant_a)


@pytest.fixture
def user_a(make_user, tenant_a):
    return make_user("staff@acme.example.com", UserRole.USER.value, tenant_a)


@pytest.fixture
def admin_b(make_user, tenant_b):
    return make_user("admin@globex.example.com", UserRole.TENANT_ADMIN.value, tenant_b)


@pytest.fixture
def sent_emails():
    """Requests captured by the Resend mock transport."""
    return []


@pytest.fixture
def email_service(sent_emails):
    def handler(request: httpx.Request) -> httpx.Response:
        sent_emails.append(json.loads(request.content))
        return httpx.Response(200, json={"id": f"msg_{len(sent_emails)}"})

    return EmailService(api_key="re_test", sender="Crux <noreply@test>", transport=httpx.MockTransport(handler))


@pytest.fixture
def client(db, email_service):
    from crux.main import app

    app.dependency_overrides[get_email_service] = lambda: email_service
    with TestClient(app) as test_client:
        yield test_client
        # App shutdown disposes the engine, which closes the shared connection
        db.rollback()
        db.close()
    app.dependency_overrides.clear()


def auth_headers(profile) -> dict:
    token = create_access_token({"sub": profile.id, "email": profile.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers
