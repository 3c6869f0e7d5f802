"""
Job applications API.

POST /api/applications is quota-gated: the gate checks, the handler inserts,
then the application is counted. POST /api/applications/bulk additionally
requires the bulkApply feature.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from jobbridge.core.auth import Identity, get_current_identity
from jobbridge.core.subscription_auth import require_application_quota, require_feature
from jobbridge.features.applications.service import create_application, list_applications
from jobbridge.features.quota.service import (
    QuotaStatus,
    check_application_limit,
    increment_application_count,
)
from jobbridge.models.application import ApplicationCreate, ApplicationStatus
from jobbridge.models.subscription import Feature

logger = logging.getLogger("jobbridge")

router = APIRouter(prefix="/api/applications", tags=["applications"])


class BulkApplicationRequest(BaseModel):
    applications: List[ApplicationCreate] = Field(..., min_length=1, max_length=50)


@router.get("")
def get_applications(
    status: Optional[ApplicationStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    identity: Identity = Depends(get_current_identity),
):
    items = list_applications(identity.user_id, status=status, limit=limit)
    return {"applications": [item.model_dump(by_alias=True, mode="json") for item in items]}


@router.post("", status_code=201)
def submit_application(
    body: ApplicationCreate,
    identity: Identity = Depends(get_current_identity),
    quota: QuotaStatus = Depends(require_application_quota),
):
    application = create_application(identity.user_id, body)
    increment_application_count(identity.user_id)
    return {
        "application": application.model_dump(by_alias=True, mode="json"),
        "quota": check_application_limit(identity.user_id).to_dict(),
    }


@router.post("/bulk", status_code=201)
def submit_bulk_applications(
    body: BulkApplicationRequest,
    identity: Identity = Depends(get_current_identity),
    tier: str = Depends(require_feature(Feature.BULK_APPLY)),
):
    """Apply to several jobs. Stops counting once the monthly quota runs out."""
    created = []
    skipped = 0
    for item in body.applications:
        if not check_application_limit(identity.user_id).allowed:
            skipped += 1
            continue
        application = create_application(identity.user_id, item)
        increment_application_count(identity.user_id)
        created.append(application.model_dump(by_alias=True, mode="json"))

    if skipped:
        logger.info("[applications] bulk apply hit quota", extra={"user_id": identity.user_id, "skipped": skipped})

    return {
        "applications": created,
        "skipped": skipped,
        "quota": check_application_limit(identity.user_id).to_dict(),
    }
