from fastapi import APIRouter, Depends

from jobbridge.core.auth import Identity, get_current_identity
from jobbridge.core.subscription_auth import require_feature
from jobbridge.features.applications.service import summarize_applications
from jobbridge.models.subscription import Feature

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/summary")
def analytics_summary(
    identity: Identity = Depends(get_current_identity),
    tier: str = Depends(require_feature(Feature.ANALYTICS_ACCESS)),
):
    """Application funnel for the caller (enterprise)."""
    return {"tier": tier, **summarize_applications(identity.user_id)}
