"""
Caller identity resolution.

Validates Supabase access tokens (JWT) and extracts the user id and email.
Falls back to X-User-Id / X-User-Email headers when ALLOW_HEADER_AUTH is set
(tests and local development).

Verification:
- HS256 with SUPABASE_JWT_SECRET when configured
- RS256/ES256 against the project JWKS otherwise (cached for 10 minutes)

Testing:
- create_test_jwt() signs tokens locally
- set_jwks_provider_for_tests() replaces the JWKS fetch (no network)
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from fastapi import Request

from jobbridge.core.config import settings
from jobbridge.core.errors import AuthenticationError

logger = logging.getLogger("jobbridge")

JWKS_TTL_SECONDS = 600

_jwks_provider_override: Optional[Callable[[str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, Dict[str, Any]] = {}
_jwks_fetched_at: Dict[str, float] = {}


@dataclass(frozen=True)
class Identity:
    """The authenticated caller."""
    user_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)
    auth_mechanism: str = "jwt"


def set_jwks_provider_for_tests(provider: Optional[Callable[[str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()
    _jwks_fetched_at.clear()


def resolve_jwks_url() -> Optional[str]:
    if settings.SUPABASE_JWKS_URL:
        return settings.SUPABASE_JWKS_URL
    if settings.SUPABASE_URL:
        return f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"
    return None


def _default_fetch_jwks(jwks_url: str) -> Dict[str, Any]:
    response = httpx.get(
        jwks_url,
        headers={"Accept": "application/json"},
        timeout=settings.SUPABASE_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()


def get_jwks(jwks_url: str) -> Dict[str, Any]:
    """Fetch JWKS using override (tests) or HTTP. Cached per URL for JWKS_TTL_SECONDS."""
    fetched_at = _jwks_fetched_at.get(jwks_url)
    if fetched_at is not None and (time.monotonic() - fetched_at) < JWKS_TTL_SECONDS:
        return _jwks_cache[jwks_url]

    if _jwks_provider_override:
        jwks = _jwks_provider_override(jwks_url)
    else:
        jwks = _default_fetch_jwks(jwks_url)

    _jwks_cache[jwks_url] = jwks
    _jwks_fetched_at[jwks_url] = time.monotonic()
    return jwks


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Raises jwt.PyJWTError on an invalid token.
    """
    secret = settings.SUPABASE_JWT_SECRET
    audience = settings.SUPABASE_AUDIENCE
    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(audience), "require": ["sub", "exp"]}

    if secret:
        return jwt.decode(token, secret, algorithms=["HS256"], audience=audience, options=options)

    jwks_url = resolve_jwks_url()
    if not jwks_url:
        raise jwt.PyJWTError("SUPABASE_JWT_SECRET or SUPABASE_URL must be configured")

    header = jwt.get_unverified_header(token)
    kid = header.get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")

    matching_key = None
    for key in get_jwks(jwks_url).get("keys", []):
        if key.get("kid") == kid:
            matching_key = key
            break
    if not matching_key:
        raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")

    algorithm = matching_key.get("alg") or header.get("alg") or "RS256"
    public_key = jwt.PyJWK.from_json(json.dumps(matching_key), algorithm=algorithm).key
    return jwt.decode(token, public_key, algorithms=[algorithm], audience=audience, options=options)


def _identity_from_headers(request: Request) -> Optional[Identity]:
    if not settings.ALLOW_HEADER_AUTH:
        return None
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        return None
    email = request.headers.get("X-User-Email", "").strip() or None
    return Identity(user_id=user_id, email=email, auth_mechanism="header")


def resolve_identity(request: Request) -> Optional[Identity]:
    """
    Resolve the caller without raising.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (only when ALLOW_HEADER_AUTH)

    An invalid bearer token resolves to None; it never falls through to the
    header path.
    """
    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached

    identity: Optional[Identity] = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            try:
                claims = verify_access_token(token)
                identity = Identity(user_id=claims["sub"], email=claims.get("email"), claims=claims)
            except jwt.PyJWTError as e:
                logger.info(f"[auth] token rejected: {e}")
            except httpx.HTTPError as e:
                logger.warning(f"[auth] JWKS fetch failed: {e}")
    else:
        identity = _identity_from_headers(request)

    if identity is not None:
        request.state.identity = identity
    return identity


def _upsert_user(identity: Identity) -> None:
    from jobbridge.features.users.service import get_or_create_user
    try:
        get_or_create_user(identity.user_id, identity.email)
    except Exception as e:
        # Auth must not fail because the user row could not be written
        logger.warning(f"[auth] failed to upsert user {identity.user_id}: {e}")


def get_optional_identity(request: Request) -> Optional[Identity]:
    """FastAPI dependency: the caller's identity or None."""
    identity = resolve_identity(request)
    if identity is not None:
        _upsert_user(identity)
    return identity


def get_current_identity(request: Request) -> Identity:
    """
    FastAPI dependency: require an authenticated caller.

    Raises:
        AuthenticationError (401): no resolvable identity
    """
    identity = get_optional_identity(request)
    if identity is None:
        raise AuthenticationError("Authentication required")
    return identity


# ============================================================================
# Test Helpers (deterministic, no network)
# ============================================================================

def create_test_jwt(
    sub: str = "test_user_123",
    email: Optional[str] = "test@example.com",
    exp_minutes: int = 60,
    secret: str = "test-secret-key-for-jobbridge-hs256",
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    audience: Optional[str] = "authenticated",
    app_metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed Supabase-shaped access token for tests.
    Supports HS256 (default) and RS256 (for JWKS-based tests).
    """
    now = int(time.time())
    payload: Dict[str, Any] = {
        "sub": sub,
        "iat": now,
        "exp": now + (exp_minutes * 60),
        "role": "authenticated",
        "app_metadata": app_metadata or {},
        "user_metadata": {},
    }
    if email:
        payload["email"] = email
    if audience:
        payload["aud"] = audience

    headers = {"kid": kid} if kid else None
    key = private_key if algorithm == "RS256" and private_key else secret
    return jwt.encode(payload, key, algorithm=algorithm, headers=headers)
