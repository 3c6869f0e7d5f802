"""Admin endpoints: 401/403 contract, tier changes, admin grants."""

import asyncio

import pytest

from jobbridge.core.admin_auth import reset_admin_policy
from jobbridge.core.config import settings
from jobbridge.core.identity_provider import set_metadata_provider_for_tests
from jobbridge.features.users.service import get_user, user_has_role


@pytest.fixture
def admin_email(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "boss@jobbridge.io")
    reset_admin_policy()
    return "boss@jobbridge.io"


def test_no_identity_is_401(client):
    resp = client.get("/api/admin/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_non_admin_gets_generic_403(client, make_user, auth_headers):
    make_user("u1", email="someone@example.com")
    resp = client.get("/api/admin/me", headers=auth_headers("u1", "someone@example.com"))
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"]["code"] == "admin_required"
    assert body["error"]["message"] == "Admin access required"


def test_listed_email_is_admin(client, admin_email, auth_headers):
    resp = client.get("/api/admin/me", headers=auth_headers("boss", admin_email))
    assert resp.status_code == 200
    assert resp.json() == {"id": "boss", "email": admin_email, "isAdmin": True, "grantedBy": "email_list"}


def test_pattern_is_admin(client, monkeypatch, auth_headers):
    monkeypatch.setattr(settings, "ADMIN_EMAIL_PATTERN", r".*@jobbridge-admin\.com$")
    reset_admin_policy()
    resp = client.get("/api/admin/me", headers=auth_headers("ops", "ops@jobbridge-admin.com"))
    assert resp.status_code == 200
    assert resp.json()["grantedBy"] == "email_pattern"


def test_metadata_error_is_403_not_500(client, make_user, auth_headers):
    make_user("u1", email="someone@example.com")

    async def provider(user_id):
        raise ConnectionError("identity provider unreachable")

    set_metadata_provider_for_tests(provider)
    resp = client.get("/api/admin/me", headers=auth_headers("u1", "someone@example.com"))
    assert resp.status_code == 403


def test_slow_checks_time_out_to_403(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_PROBE_TIMEOUT_SECONDS", 0.1)
    monkeypatch.setattr(settings, "ADMIN_PROBE_GRACE_SECONDS", 0.05)
    make_user("u1", email="someone@example.com")

    async def provider(user_id):
        await asyncio.sleep(5)

    set_metadata_provider_for_tests(provider)
    resp = client.get("/api/admin/me", headers=auth_headers("u1", "someone@example.com"))
    assert resp.status_code == 403


def test_get_user(client, admin_email, make_user, auth_headers):
    make_user("u1", email="someone@example.com", tier="pro", count=3)
    resp = client.get("/api/admin/users/u1", headers=auth_headers("boss", admin_email))
    assert resp.status_code == 200
    body = resp.json()
    assert body["subscriptionTier"] == "pro"
    assert body["monthlyApplicationCount"] == 3


def test_get_missing_user_is_404(client, admin_email, auth_headers):
    resp = client.get("/api/admin/users/ghost", headers=auth_headers("boss", admin_email))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_set_tier(client, admin_email, make_user, auth_headers):
    make_user("u1", tier="free")
    resp = client.put("/api/admin/users/u1/tier", json={"tier": "enterprise"}, headers=auth_headers("boss", admin_email))
    assert resp.status_code == 200
    assert get_user("u1").subscription_tier == "enterprise"


def test_set_tier_rejects_unknown_tier(client, admin_email, make_user, auth_headers):
    make_user("u1", tier="free")
    resp = client.put("/api/admin/users/u1/tier", json={"tier": "platinum"}, headers=auth_headers("boss", admin_email))
    assert resp.status_code == 422
    assert get_user("u1").subscription_tier == "free"


def test_non_admin_cannot_change_tier(client, make_user, auth_headers):
    make_user("u1", tier="free")
    resp = client.put("/api/admin/users/u1/tier", json={"tier": "pro"}, headers=auth_headers("u1"))
    assert resp.status_code == 403
    assert get_user("u1").subscription_tier == "free"


def test_grant_admin_makes_user_admin(client, admin_email, make_user, auth_headers):
    make_user("u1", email="someone@example.com")
    resp = client.post("/api/admin/users/u1/admin", headers=auth_headers("boss", admin_email))
    assert resp.status_code == 200
    assert resp.json()["role"] == "admin"
    assert user_has_role("u1", "admin")

    me = client.get("/api/admin/me", headers=auth_headers("u1", "someone@example.com"))
    assert me.status_code == 200
    assert me.json()["grantedBy"] in {"stored_role", "role_assignment"}
