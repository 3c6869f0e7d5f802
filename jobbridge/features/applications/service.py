"""
jobbridge/features/applications/service.py

Job application tracking.

Handles:
- Recording an application (create_application)
- Listing a user's applications, newest first
- Per-status counts for the analytics summary

Quota accounting lives in jobbridge.features.quota.service; callers count an
application only after create_application succeeds.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4
import logging

from sqlalchemy import func, insert, select

from jobbridge.core.database import applications, get_db_session
from jobbridge.models.application import Application, ApplicationCreate, ApplicationStatus
from jobbridge.models.user import as_utc, utc_now


logger = logging.getLogger("jobbridge")


def _row_to_application(row) -> Application:
    return Application(
        id=row.id,
        user_id=row.user_id,
        job_id=row.job_id,
        job_title=row.job_title,
        company=row.company,
        status=row.status,
        applied_date=row.applied_date,
        notes=row.notes,
    )


def create_application(user_id: str, data: ApplicationCreate, now: Optional[datetime] = None) -> Application:
    """Insert an application for user_id. applied_date defaults to now (UTC)."""
    app = Application(
        id=str(uuid4()),
        user_id=user_id,
        job_id=data.job_id,
        job_title=data.job_title,
        company=data.company,
        status=data.status,
        applied_date=as_utc(data.applied_date) or as_utc(now) or utc_now(),
        notes=data.notes,
    )
    with get_db_session() as session:
        session.execute(
            insert(applications).values(
                id=app.id,
                user_id=app.user_id,
                job_id=app.job_id,
                job_title=app.job_title,
                company=app.company,
                status=app.status.value,
                applied_date=app.applied_date,
                notes=app.notes,
                created_at=utc_now(),
            )
        )

    logger.info("[applications] created", extra={"user_id": user_id, "application_id": app.id})
    return app


def list_applications(user_id: str, status: Optional[ApplicationStatus] = None, limit: int = 100) -> List[Application]:
    query = select(applications).where(applications.c.user_id == user_id)
    if status is not None:
        query = query.where(applications.c.status == ApplicationStatus(status).value)
    query = query.order_by(applications.c.applied_date.desc(), applications.c.id).limit(limit)

    with get_db_session() as session:
        rows = session.execute(query).fetchall()
    return [_row_to_application(row) for row in rows]


def summarize_applications(user_id: str) -> Dict[str, object]:
    """Total and per-status counts. Every status is present, zero when unused."""
    with get_db_session() as session:
        rows = session.execute(
            select(applications.c.status, func.count().label("n"))
            .where(applications.c.user_id == user_id)
            .group_by(applications.c.status)
        ).fetchall()

    by_status = {status.value: 0 for status in ApplicationStatus}
    for row in rows:
        by_status[row.status] = row.n

    total = sum(by_status.values())
    responded = by_status[ApplicationStatus.INTERVIEWING.value] + by_status[ApplicationStatus.OFFERED.value]
    submitted = total - by_status[ApplicationStatus.SAVED.value]
    return {
        "total": total,
        "byStatus": by_status,
        "responseRate": round(responded / submitted, 4) if submitted else 0.0,
    }
