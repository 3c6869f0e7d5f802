"""
Identity provider (Supabase Auth) admin client.

Reads per-user app_metadata / user_metadata through the admin API
(GET /auth/v1/admin/users/{id}) using the service role key. The HTTP client
is created lazily and shared for the life of the process.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from jobbridge.core.config import settings

logger = logging.getLogger("jobbridge")

_client: Optional[httpx.AsyncClient] = None
_metadata_override: Optional[Callable[[str], Awaitable[Optional["UserMetadata"]]]] = None


@dataclass(frozen=True)
class UserMetadata:
    user_id: str
    app_metadata: Dict[str, Any] = field(default_factory=dict)
    user_metadata: Dict[str, Any] = field(default_factory=dict)


def set_metadata_provider_for_tests(provider: Optional[Callable[[str], Awaitable[Optional[UserMetadata]]]]) -> None:
    """Replace the admin API lookup with an async callable (no network)."""
    global _metadata_override
    _metadata_override = provider


def is_configured() -> bool:
    return bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY)


def get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        key = settings.SUPABASE_SERVICE_ROLE_KEY or ""
        _client = httpx.AsyncClient(
            base_url=f"{(settings.SUPABASE_URL or '').rstrip('/')}/auth/v1",
            headers={"apikey": key, "Authorization": f"Bearer {key}"},
            timeout=settings.SUPABASE_TIMEOUT_SECONDS,
        )
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def fetch_user_metadata(user_id: str) -> Optional[UserMetadata]:
    """
    Fetch a user's metadata from the identity provider.

    Returns None when the provider is not configured or does not know the
    user. Transport and server errors raise httpx.HTTPError.
    """
    if _metadata_override is not None:
        return await _metadata_override(user_id)
    if not is_configured():
        return None

    response = await get_client().get(f"/admin/users/{user_id}")
    if response.status_code == 404:
        return None
    response.raise_for_status()
    body = response.json()
    # Some API versions wrap the user object
    user = body.get("user", body) if isinstance(body, dict) else {}
    return UserMetadata(
        user_id=user_id,
        app_metadata=user.get("app_metadata") or {},
        user_metadata=user.get("user_metadata") or {},
    )


def _grants_admin(meta: Any) -> bool:
    if not isinstance(meta, dict):
        return False
    if meta.get("role") == "admin" or meta.get("is_admin") is True or meta.get("isAdmin") is True:
        return True
    user_roles = meta.get("roles")
    return isinstance(user_roles, (list, tuple)) and "admin" in user_roles


def metadata_grants_admin(metadata: Optional[UserMetadata]) -> bool:
    """Admin flag in either app-level or user-level metadata."""
    if metadata is None:
        return False
    return _grants_admin(metadata.app_metadata) or _grants_admin(metadata.user_metadata)
