"""Subscription catalog and the caller's plan/quota."""

from fastapi import APIRouter, Depends

from jobbridge.core.auth import Identity, get_current_identity
from jobbridge.features.quota.service import get_user_subscription_status
from jobbridge.features.subscriptions.catalog import catalog_snapshot

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/tiers")
def list_tiers():
    return catalog_snapshot()


@router.get("/status")
def subscription_status(identity: Identity = Depends(get_current_identity)):
    return get_user_subscription_status(identity.user_id)
