"""
Caller identity from Supabase access tokens.

Goals:
- HS256 tokens signed with the project secret are accepted.
- RS256 tokens verify offline against an injected JWKS (no network).
- Expired, tampered or wrong-audience tokens resolve to no identity.
- Header identity only when ALLOW_HEADER_AUTH is set.
"""
import asyncio
import base64
import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from starlette.requests import Request

from jobbridge.core.admin_auth import require_admin, reset_admin_policy
from jobbridge.core.auth import create_test_jwt, set_jwks_provider_for_tests
from jobbridge.core.config import settings
from jobbridge.features.users.service import get_user


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _b64url_int(val: int) -> str:
    return base64.urlsafe_b64encode(val.to_bytes((val.bit_length() + 7) // 8, "big")).rstrip(b"=").decode("ascii")


def generate_rsa_material():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    pub_numbers = key.public_key().public_numbers()
    jwks = {
        "keys": [
            {
                "kid": "test-kid",
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "n": _b64url_int(pub_numbers.n),
                "e": _b64url_int(pub_numbers.e),
            }
        ]
    }
    return private_pem, jwks


@pytest.fixture(scope="session")
def rsa_material():
    return generate_rsa_material()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# HS256
# ---------------------------------------------------------------------------

class TestHs256Tokens:
    def test_valid_token_resolves_identity(self, client):
        token = create_test_jwt(sub="jwt_user", email="jwt@example.com")
        resp = client.get("/api/subscription/status", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["tier"] == "free"
        assert get_user("jwt_user").email == "jwt@example.com"

    def test_expired_token_is_401(self, client):
        token = create_test_jwt(sub="jwt_user", exp_minutes=-5)
        assert client.get("/api/subscription/status", headers=_bearer(token)).status_code == 401

    def test_wrong_secret_is_401(self, client):
        token = create_test_jwt(sub="jwt_user", secret="not-the-project-secret-at-all-000")
        assert client.get("/api/subscription/status", headers=_bearer(token)).status_code == 401

    def test_wrong_audience_is_401(self, client):
        token = create_test_jwt(sub="jwt_user", audience="someone-else")
        assert client.get("/api/subscription/status", headers=_bearer(token)).status_code == 401

    def test_invalid_token_does_not_fall_back_to_headers(self, client):
        headers = {"Authorization": "Bearer garbage", "X-User-Id": "header_user"}
        assert client.get("/api/subscription/status", headers=headers).status_code == 401


# ---------------------------------------------------------------------------
# RS256 via JWKS
# ---------------------------------------------------------------------------

class TestJwksTokens:
    @pytest.fixture(autouse=True)
    def jwks_settings(self, monkeypatch, rsa_material):
        _, jwks = rsa_material
        calls = []

        def provider(jwks_url):
            calls.append(jwks_url)
            return jwks

        monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)
        monkeypatch.setattr(settings, "SUPABASE_URL", "https://project.supabase.test")
        set_jwks_provider_for_tests(provider)
        return calls

    def test_rs256_token_verifies_against_jwks(self, client, rsa_material, jwks_settings):
        private_key, _ = rsa_material
        token = create_test_jwt(sub="rs_user", algorithm="RS256", private_key=private_key, kid="test-kid")
        resp = client.get("/api/subscription/status", headers=_bearer(token))
        assert resp.status_code == 200
        assert jwks_settings == ["https://project.supabase.test/auth/v1/.well-known/jwks.json"]

    def test_jwks_is_cached(self, client, rsa_material, jwks_settings):
        private_key, _ = rsa_material
        token = create_test_jwt(sub="rs_user", algorithm="RS256", private_key=private_key, kid="test-kid")
        client.get("/api/subscription/status", headers=_bearer(token))
        client.get("/api/subscription/status", headers=_bearer(token))
        assert len(jwks_settings) == 1

    def test_unknown_kid_is_401(self, client, rsa_material):
        private_key, _ = rsa_material
        token = create_test_jwt(sub="rs_user", algorithm="RS256", private_key=private_key, kid="other-kid")
        assert client.get("/api/subscription/status", headers=_bearer(token)).status_code == 401

    def test_hs256_token_rejected_in_jwks_mode(self, client):
        token = create_test_jwt(sub="rs_user", kid="test-kid")
        assert client.get("/api/subscription/status", headers=_bearer(token)).status_code == 401

    @pytest.mark.asyncio
    async def test_slow_jwks_fetch_does_not_stall_admin_requests(self, monkeypatch, rsa_material):
        private_key, jwks = rsa_material

        def slow_provider(jwks_url):
            time.sleep(0.4)
            return jwks

        set_jwks_provider_for_tests(slow_provider)
        monkeypatch.setattr(settings, "ADMIN_EMAILS", "boss@jobbridge.io")
        reset_admin_policy()

        token = create_test_jwt(
            sub="boss", email="boss@jobbridge.io", algorithm="RS256", private_key=private_key, kid="test-kid"
        )
        request = Request({
            "type": "http",
            "method": "GET",
            "path": "/api/admin/me",
            "headers": [(b"authorization", f"Bearer {token}".encode())],
        })

        gaps = []

        async def ticker():
            loop = asyncio.get_running_loop()
            last = loop.time()
            while True:
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        ticks = asyncio.create_task(ticker())
        try:
            actor = await require_admin(request)
        finally:
            ticks.cancel()

        assert actor.actor_id == "boss"
        assert actor.granted_by == "email_list"
        assert len(gaps) > 5
        assert max(gaps) < 0.2


# ---------------------------------------------------------------------------
# Header identity
# ---------------------------------------------------------------------------

def test_header_identity_when_enabled(client, auth_headers):
    resp = client.get("/api/subscription/status", headers=auth_headers("header_user"))
    assert resp.status_code == 200


def test_header_identity_ignored_when_disabled(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_HEADER_AUTH", False)
    resp = client.get("/api/subscription/status", headers=auth_headers("header_user"))
    assert resp.status_code == 401
