# jobbridge/conftest.py
import os

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("ENV", "test")

import pytest
from sqlalchemy import insert

from jobbridge.core import admin_auth, auth, database, identity_provider
from jobbridge.core.config import settings
from jobbridge.models.user import utc_now


TEST_JWT_SECRET = "test-secret-key-for-jobbridge-hs256"


@pytest.fixture(scope="function", autouse=True)
def test_database(tmp_path):
    """
    Fresh SQLite database per test.

    A file database (not :memory:) so admin checks running in worker
    threads each get their own connection.
    """
    engine = database.init_engine(f"sqlite:///{tmp_path / 'jobbridge-test.db'}")
    database.create_all_tables()
    yield engine
    database.drop_all_tables()
    engine.dispose()


@pytest.fixture(scope="function", autouse=True)
def auth_settings(monkeypatch):
    """Header auth + HS256 tokens, no admin emails, no identity provider."""
    monkeypatch.setattr(settings, "ALLOW_HEADER_AUTH", True)
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    monkeypatch.setattr(settings, "SUPABASE_SERVICE_ROLE_KEY", None)
    monkeypatch.setattr(settings, "SUPABASE_JWKS_URL", None)
    monkeypatch.setattr(settings, "ADMIN_EMAILS", None)
    monkeypatch.setattr(settings, "ADMIN_EMAIL_PATTERN", None)
    admin_auth.reset_admin_policy()
    identity_provider.set_metadata_provider_for_tests(None)
    auth.set_jwks_provider_for_tests(None)
    yield
    admin_auth.reset_admin_policy()
    identity_provider.set_metadata_provider_for_tests(None)
    auth.set_jwks_provider_for_tests(None)


@pytest.fixture
def make_user():
    """Insert a user row directly. Returns the user id."""

    def _make_user(user_id="user_1", email=None, tier=None, role=None, count=0, reset_date=None):
        with database.get_db_session() as session:
            session.execute(
                insert(database.users).values(
                    id=user_id,
                    email=email,
                    subscription_tier=tier,
                    role=role,
                    monthly_application_count=count,
                    application_count_reset_date=reset_date,
                    created_at=utc_now(),
                )
            )
        return user_id

    return _make_user


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from jobbridge.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Header-auth identity for TestClient requests."""

    def _headers(user_id: str, email: str = None) -> dict:
        headers = {"X-User-Id": user_id}
        if email:
            headers["X-User-Email"] = email
        return headers

    return _headers
