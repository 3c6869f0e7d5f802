"""
Admin API.

Every route requires require_admin (401 without identity, 403 otherwise).
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from jobbridge.core.admin_auth import AdminActor, require_admin
from jobbridge.core.errors import NotFoundError
from jobbridge.features.quota.service import format_timestamp
from jobbridge.features.users.service import get_user, grant_admin, set_subscription_tier
from jobbridge.models.subscription import SubscriptionTier
from jobbridge.models.user import User

logger = logging.getLogger("jobbridge")

router = APIRouter(prefix="/api/admin", tags=["admin"])


class TierUpdateRequest(BaseModel):
    tier: SubscriptionTier


def _user_view(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "subscriptionTier": user.effective_tier,
        "monthlyApplicationCount": user.monthly_application_count,
        "applicationCountResetDate": format_timestamp(user.application_count_reset_date),
        "createdAt": format_timestamp(user.created_at),
    }


def _load_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("/me")
async def admin_me(actor: AdminActor = Depends(require_admin)):
    return {"id": actor.actor_id, "email": actor.actor_email, "isAdmin": True, "grantedBy": actor.granted_by}


@router.get("/users/{user_id}")
def admin_get_user(user_id: str, actor: AdminActor = Depends(require_admin)):
    return _user_view(_load_user(user_id))


@router.put("/users/{user_id}/tier")
def admin_set_tier(user_id: str, body: TierUpdateRequest, actor: AdminActor = Depends(require_admin)):
    _load_user(user_id)
    user = set_subscription_tier(user_id, body.tier.value)
    logger.info(
        "[admin] tier changed",
        extra={"actor_id": actor.actor_id, "user_id": user_id, "tier": body.tier.value},
    )
    return _user_view(user)


@router.post("/users/{user_id}/admin")
def admin_grant(user_id: str, actor: AdminActor = Depends(require_admin)):
    _load_user(user_id)
    user = grant_admin(user_id)
    logger.info("[admin] admin granted", extra={"actor_id": actor.actor_id, "user_id": user_id})
    return _user_view(user)
