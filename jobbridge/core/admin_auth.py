"""
Admin authorization.

A caller is admin when any one source says so (checked cheapest first):
1. Email listed in ADMIN_EMAILS
2. Email matches ADMIN_EMAIL_PATTERN
3. Concurrent probes, bounded by ADMIN_PROBE_TIMEOUT_SECONDS:
   - users.role == "admin"
   - an "admin" row in user_roles
   - admin flag in the identity provider's app/user metadata
   After the timeout, one short ADMIN_PROBE_GRACE_SECONDS wait collects
   stragglers; anything still running is cancelled.

Failure semantics:
- No identity -> 401
- Identity but no grant -> 403 with a generic message
- Probe errors count as "not granted" and never surface as 500
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Pattern, Sequence, Tuple

from fastapi import Request

from jobbridge.core.auth import Identity, resolve_identity
from jobbridge.core.config import Settings, settings, split_csv
from jobbridge.core.errors import AdminRequiredError, AuthenticationError
from jobbridge.core.identity_provider import fetch_user_metadata, metadata_grants_admin

logger = logging.getLogger("jobbridge")


class CheckOutcome(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True)
class AdminEmailPolicy:
    """Admin email list and pattern, parsed once from configuration."""
    emails: frozenset = frozenset()
    pattern: Optional[Pattern[str]] = None

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AdminEmailPolicy":
        pattern = None
        raw_pattern = (cfg.ADMIN_EMAIL_PATTERN or "").strip()
        if raw_pattern:
            try:
                pattern = re.compile(raw_pattern)
            except re.error as e:
                logger.error(f"[admin] invalid ADMIN_EMAIL_PATTERN ignored: {e}")
        return cls(
            emails=frozenset(email.lower() for email in split_csv(cfg.ADMIN_EMAILS)),
            pattern=pattern,
        )

    def email_listed(self, email: Optional[str]) -> bool:
        return bool(email) and email.lower() in self.emails

    def email_matches_pattern(self, email: Optional[str]) -> bool:
        return bool(email) and self.pattern is not None and self.pattern.search(email) is not None

    def check(self, email: Optional[str]) -> Optional[str]:
        """Name of the email rule granting admin, or None."""
        if self.email_listed(email):
            return "email_list"
        if self.email_matches_pattern(email):
            return "email_pattern"
        return None


@dataclass
class AdminActor:
    """An authenticated admin."""
    actor_id: str
    actor_email: Optional[str] = None
    granted_by: str = "unknown"
    auth_mechanism: str = "jwt"


@dataclass(frozen=True)
class AdminDecision:
    granted: bool
    source: Optional[str] = None
    outcomes: Dict[str, CheckOutcome] = field(default_factory=dict)


AdminCheck = Callable[[Identity, AdminEmailPolicy], Awaitable[CheckOutcome]]

_policy: Optional[AdminEmailPolicy] = None


def get_admin_policy() -> AdminEmailPolicy:
    """Process-wide admin email policy (built on first use)."""
    global _policy
    if _policy is None:
        _policy = AdminEmailPolicy.from_settings(settings)
    return _policy


def reset_admin_policy() -> None:
    """Drop the cached policy so the next call re-reads settings (tests)."""
    global _policy
    _policy = None


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

async def check_stored_role(identity: Identity, policy: AdminEmailPolicy) -> CheckOutcome:
    from jobbridge.features.users.service import ADMIN_ROLE, get_user

    user = await asyncio.to_thread(get_user, identity.user_id)
    if user is None:
        return CheckOutcome.DENIED
    if user.role == ADMIN_ROLE:
        return CheckOutcome.GRANTED
    # Tokens without an email claim: apply the email rules to the stored email
    if not identity.email and policy.check(user.email):
        return CheckOutcome.GRANTED
    return CheckOutcome.DENIED


async def check_role_assignment(identity: Identity, policy: AdminEmailPolicy) -> CheckOutcome:
    from jobbridge.features.users.service import ADMIN_ROLE, user_has_role

    has_role = await asyncio.to_thread(user_has_role, identity.user_id, ADMIN_ROLE)
    return CheckOutcome.GRANTED if has_role else CheckOutcome.DENIED


async def check_identity_metadata(identity: Identity, policy: AdminEmailPolicy) -> CheckOutcome:
    metadata = await fetch_user_metadata(identity.user_id)
    return CheckOutcome.GRANTED if metadata_grants_admin(metadata) else CheckOutcome.DENIED


DEFAULT_CHECKS: Tuple[Tuple[str, AdminCheck], ...] = (
    ("stored_role", check_stored_role),
    ("role_assignment", check_role_assignment),
    ("identity_metadata", check_identity_metadata),
)


async def _run_check(name: str, check: AdminCheck, identity: Identity, policy: AdminEmailPolicy) -> CheckOutcome:
    try:
        return await check(identity, policy)
    except Exception as e:
        logger.warning(
            "[admin] check failed",
            extra={"user_id": identity.user_id, "check": name, "error": type(e).__name__},
        )
        return CheckOutcome.ERROR


async def _collect(
    pending: set,
    names: Dict[asyncio.Task, str],
    outcomes: Dict[str, CheckOutcome],
    budget: float,
) -> Optional[str]:
    """Wait up to budget seconds; return the first granting check's name."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(0.0, budget)
    while pending:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        done, _ = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        pending.difference_update(done)
        granted = None
        for task in done:
            name = names[task]
            outcomes[name] = task.result()
            if outcomes[name] is CheckOutcome.GRANTED and granted is None:
                granted = name
        if granted:
            return granted
    return None


async def run_parallel_checks(
    identity: Identity,
    policy: AdminEmailPolicy,
    checks: Sequence[Tuple[str, AdminCheck]],
    timeout: float,
    grace: float,
) -> AdminDecision:
    names = {
        asyncio.create_task(_run_check(name, check, identity, policy)): name
        for name, check in checks
    }
    pending = set(names)
    outcomes: Dict[str, CheckOutcome] = {}
    try:
        granted = await _collect(pending, names, outcomes, timeout)
        if granted is None and pending:
            logger.warning(
                "[admin] checks timed out, waiting for stragglers",
                extra={"user_id": identity.user_id, "pending": sorted(names[t] for t in pending)},
            )
            granted = await _collect(pending, names, outcomes, grace)
    finally:
        for task in pending:
            task.cancel()
            outcomes.setdefault(names[task], CheckOutcome.ERROR)

    return AdminDecision(granted=granted is not None, source=granted, outcomes=outcomes)


async def resolve_admin(
    identity: Identity,
    *,
    policy: Optional[AdminEmailPolicy] = None,
    checks: Optional[Sequence[Tuple[str, AdminCheck]]] = None,
    timeout: Optional[float] = None,
    grace: Optional[float] = None,
) -> AdminDecision:
    """Decide whether identity is an admin. Stops at the first granting source."""
    policy = policy or get_admin_policy()

    source = policy.check(identity.email)
    if source:
        return AdminDecision(granted=True, source=source)

    return await run_parallel_checks(
        identity,
        policy,
        DEFAULT_CHECKS if checks is None else checks,
        settings.ADMIN_PROBE_TIMEOUT_SECONDS if timeout is None else timeout,
        settings.ADMIN_PROBE_GRACE_SECONDS if grace is None else grace,
    )


async def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: require an admin caller.

    Usage:
        @router.get("/api/admin/endpoint")
        async def admin_endpoint(actor: AdminActor = Depends(require_admin)):
            ...
    """
    # Token verification can fetch the JWKS over the network
    identity = await asyncio.to_thread(resolve_identity, request)
    if identity is None:
        raise AuthenticationError("Unauthorized")

    try:
        decision = await resolve_admin(identity)
    except Exception:
        logger.error("[admin] resolution failed", exc_info=True, extra={"user_id": identity.user_id})
        raise AdminRequiredError("Admin access required")

    if not decision.granted:
        logger.warning(
            "[admin] access denied",
            extra={
                "user_id": identity.user_id,
                "outcomes": {name: outcome.value for name, outcome in decision.outcomes.items()},
            },
        )
        raise AdminRequiredError("Admin access required")

    logger.info("[admin] access granted", extra={"user_id": identity.user_id, "source": decision.source})
    return AdminActor(
        actor_id=identity.user_id,
        actor_email=identity.email,
        granted_by=decision.source or "unknown",
        auth_mechanism=identity.auth_mechanism,
    )
