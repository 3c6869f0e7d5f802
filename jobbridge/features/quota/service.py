"""
jobbridge/features/quota/service.py

Monthly application quota tracking.

Handles:
- Quota checks with calendar-month rollover (check_application_limit)
- Counting a successful application (increment_application_count)
- Subscription status summary for the front end

Each read-check-write runs as a single conditional UPDATE so concurrent
submissions cannot double-reset or lose increments. Months are UTC calendar
months.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
import logging

from sqlalchemy import DateTime, and_, case, func, literal, or_, select, update

from jobbridge.core.database import get_db_session, users
from jobbridge.core.errors import NotFoundError
from jobbridge.features.subscriptions.catalog import (
    UNLIMITED,
    get_monthly_application_limit,
    get_tier_limits,
)
from jobbridge.models.subscription import SubscriptionTier
from jobbridge.models.user import as_utc, utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaStatus:
    allowed: bool
    remaining: int
    limit: int
    reset_date: Optional[datetime]
    used: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "resetDate": format_timestamp(self.reset_date),
        }


UNLIMITED_STATUS = QuotaStatus(allowed=True, remaining=UNLIMITED, limit=UNLIMITED, reset_date=None)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC with millisecond precision and a Z suffix.

    Matches what browsers produce for Date.toISOString(), which the front
    end parses.
    """
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    return as_utc(now)


def period_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Return [start, end) of the UTC calendar month containing now."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _stale_period_clause(now: datetime):
    """True when the stored reset date falls in another calendar month/year.

    A NULL reset date belongs to the current period.
    """
    start, end = period_bounds(now)
    reset_col = users.c.application_count_reset_date
    return and_(reset_col.is_not(None), or_(reset_col < start, reset_col >= end))


def _now_literal(now: datetime):
    return literal(now, type_=DateTime(timezone=True))


def _read_counter(session, user_id: str):
    return session.execute(
        select(
            users.c.monthly_application_count,
            users.c.application_count_reset_date,
        ).where(users.c.id == user_id)
    ).first()


def check_application_limit(user_id: str, now: Optional[datetime] = None) -> QuotaStatus:
    """
    Report whether the user may submit another application this month.

    A counter left over from a previous month is reset to 0 first. Unlimited
    tiers return immediately after the user lookup.

    Raises:
        NotFoundError: no such user
    """
    current = _normalize_now(now)

    with get_db_session() as session:
        row = session.execute(
            select(users.c.subscription_tier).where(users.c.id == user_id)
        ).first()
        if not row:
            raise NotFoundError(f"User {user_id} not found")

        limit = get_monthly_application_limit(row.subscription_tier)
        if limit == UNLIMITED:
            return UNLIMITED_STATUS

        reset = session.execute(
            update(users)
            .where(users.c.id == user_id)
            .where(_stale_period_clause(current))
            .values(
                monthly_application_count=0,
                application_count_reset_date=_now_literal(current),
            )
        )
        if reset.rowcount:
            logger.info(
                "[quota] monthly counter reset",
                extra={"user_id": user_id, "period_start": period_bounds(current)[0].isoformat()},
            )

        counter = _read_counter(session, user_id)

    used = counter.monthly_application_count or 0
    reset_date = as_utc(counter.application_count_reset_date) or current
    status = QuotaStatus(
        allowed=used < limit,
        remaining=max(0, limit - used),
        limit=limit,
        reset_date=reset_date,
        used=used,
    )
    if not status.allowed:
        logger.warning(
            "[quota] limit reached",
            extra={"user_id": user_id, "limit": limit, "used": used},
        )
    return status


def increment_application_count(user_id: str, now: Optional[datetime] = None) -> int:
    """
    Count one successful application.

    Same period: count + 1 (reset date kept; stamped with now if unset).
    New period: count = 1 and reset date = now.

    Returns:
        The counter value after the increment.

    Raises:
        NotFoundError: no such user
    """
    current = _normalize_now(now)
    stale = _stale_period_clause(current)
    now_value = _now_literal(current)

    with get_db_session() as session:
        result = session.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(
                monthly_application_count=case(
                    (stale, 1),
                    else_=func.coalesce(users.c.monthly_application_count, 0) + 1,
                ),
                application_count_reset_date=case(
                    (stale, now_value),
                    else_=func.coalesce(users.c.application_count_reset_date, now_value),
                ),
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")

        counter = _read_counter(session, user_id)

    count = counter.monthly_application_count
    logger.info("[quota] application counted", extra={"user_id": user_id, "count": count})
    return count


def get_user_subscription_status(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Tier, limits and quota usage for the subscription page."""
    current = _normalize_now(now)
    with get_db_session() as session:
        row = session.execute(
            select(users.c.subscription_tier, users.c.monthly_application_count).where(users.c.id == user_id)
        ).first()
    if not row:
        raise NotFoundError(f"User {user_id} not found")

    tier = row.subscription_tier or SubscriptionTier.FREE.value
    quota = check_application_limit(user_id, now=current)
    used = quota.used if quota.used is not None else (row.monthly_application_count or 0)

    return {
        "tier": tier,
        "limits": get_tier_limits(tier).model_dump(by_alias=True),
        "applicationQuota": {
            "used": used,
            "remaining": quota.remaining,
            "limit": quota.limit,
            "resetDate": format_timestamp(quota.reset_date),
        },
    }
