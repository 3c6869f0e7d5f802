"""
Subscription gates for protected routes.

Usage:
    @router.post("/api/resume/build")
    def build(tier: str = Depends(require_feature(Feature.AI_RESUME_BUILDER))):
        ...

    @router.post("/api/applications")
    def apply(quota: QuotaStatus = Depends(require_application_quota)):
        ...
        increment_application_count(user_id)

Denials return a fixed JSON body (SUBSCRIPTION_REQUIRED /
APPLICATION_LIMIT_REACHED) that the front end uses to open the upgrade
dialog. Gates never touch the counter.
"""
import logging
from functools import wraps
from typing import Callable, Union

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from jobbridge.core.auth import Identity, get_current_identity
from jobbridge.core.errors import (
    AppError,
    ApplicationLimitError,
    NotFoundError,
    PermissionError,
    SubscriptionRequiredError,
)
from jobbridge.core.logging import log_event
from jobbridge.features.quota.service import QuotaStatus, check_application_limit, format_timestamp
from jobbridge.features.subscriptions.catalog import (
    coerce_feature,
    get_feature_description,
    has_feature_access,
    upgrade_message,
)
from jobbridge.features.users.service import get_user
from jobbridge.models.subscription import Feature, SubscriptionTier

logger = logging.getLogger("jobbridge")


def _guarded(gate_name: str) -> Callable:
    """Turn unexpected gate failures into a 403; database errors still surface as 500."""

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (AppError, SQLAlchemyError):
                raise
            except Exception:
                logger.error(f"[gate] {gate_name} failed", exc_info=True)
                raise PermissionError("Access check failed", code="access_check_failed")

        return wrapper

    return decorator


def feature_denied_payload(feature: Union[Feature, str], current_tier: str) -> dict:
    info = get_feature_description(feature)
    return {
        "error": "Feature not available",
        "code": "SUBSCRIPTION_REQUIRED",
        "feature": info.name,
        "description": info.description,
        "requiredTier": info.required_tier.value,
        "currentTier": current_tier,
        "message": upgrade_message(feature),
    }


def quota_exhausted_payload(status: QuotaStatus) -> dict:
    return {
        "error": "Monthly application limit reached",
        "code": "APPLICATION_LIMIT_REACHED",
        "limit": status.limit,
        "remaining": 0,
        "resetDate": format_timestamp(status.reset_date),
        "message": (
            f"You've used all {status.limit} applications this month. "
            "Upgrade to Pro for unlimited applications."
        ),
        "requiredTier": SubscriptionTier.PRO.value,
    }


def require_feature(feature: Union[Feature, str]) -> Callable[..., str]:
    """Build a dependency that admits callers whose tier includes feature.

    The dependency returns the caller's tier string.
    """
    key = coerce_feature(feature)

    @_guarded(f"feature:{key.value}")
    def dependency(identity: Identity = Depends(get_current_identity)) -> str:
        user = get_user(identity.user_id)
        if user is None:
            raise NotFoundError("User not found")

        tier = user.effective_tier
        if not has_feature_access(tier, key):
            log_event(
                "info",
                "gate.feature_denied",
                user_id=identity.user_id,
                event_type="entitlement",
                error_code="SUBSCRIPTION_REQUIRED",
                extra={"feature": key.value, "tier": tier},
            )
            raise SubscriptionRequiredError(feature_denied_payload(key, tier))
        return tier

    return dependency


@_guarded("application_quota")
def require_application_quota(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> QuotaStatus:
    """Admit callers with monthly applications left. Does not count the application."""
    status = check_application_limit(identity.user_id)
    if not status.allowed:
        log_event(
            "info",
            "gate.quota_exhausted",
            user_id=identity.user_id,
            event_type="entitlement",
            error_code="APPLICATION_LIMIT_REACHED",
            extra={"limit": status.limit},
        )
        raise ApplicationLimitError(quota_exhausted_payload(status))

    request.state.application_quota = status
    return status
