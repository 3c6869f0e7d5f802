"""
User and role store.
- get_user(user_id) / get_user_by_email(email)
- get_or_create_user(user_id, email)
- update_user(user_id, **patch)
- set_subscription_tier / set_user_role
- user_has_role / assign_role (user_roles join table)
"""

import logging
from typing import Optional
from sqlalchemy import select, insert, update, or_
from sqlalchemy.exc import IntegrityError

from jobbridge.core.database import get_db_session, users, roles, user_roles
from jobbridge.core.errors import NotFoundError, ValidationError
from jobbridge.features.subscriptions.catalog import resolve_tier
from jobbridge.models.subscription import SubscriptionTier
from jobbridge.models.user import User, utc_now


logger = logging.getLogger("jobbridge")

ADMIN_ROLE = "admin"

# Columns update_user() accepts
UPDATABLE_FIELDS = frozenset({
    "email",
    "role",
    "subscription_tier",
    "monthly_application_count",
    "application_count_reset_date",
})


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=row.role,
        subscription_tier=row.subscription_tier,
        monthly_application_count=row.monthly_application_count,
        application_count_reset_date=row.application_count_reset_date,
        created_at=row.created_at,
    )


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        if not row:
            return None
        return _row_to_user(row)


def get_user_by_email(email: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.email == email)).first()
        if not row:
            return None
        return _row_to_user(row)


def find_user(email_or_id: str) -> Optional[User]:
    """Look a user up by email or id (maintenance scripts)."""
    with get_db_session() as session:
        row = session.execute(
            select(users).where(or_(users.c.email == email_or_id, users.c.id == email_or_id)).limit(1)
        ).first()
        if not row:
            return None
        return _row_to_user(row)


def get_or_create_user(user_id: str, email: Optional[str] = None) -> User:
    """Return the user, inserting a free-tier row on first sight.

    A missing email on an existing row is backfilled from the identity.
    """
    existing = get_user(user_id)
    if existing:
        if email and not existing.email:
            return update_user(user_id, email=email)
        return existing

    try:
        with get_db_session() as session:
            session.execute(
                insert(users).values(
                    id=user_id,
                    email=email,
                    subscription_tier=SubscriptionTier.FREE.value,
                    monthly_application_count=0,
                    created_at=utc_now(),
                )
            )
    except IntegrityError:
        user = get_user(user_id)
        if user is None:
            raise
        # Concurrent first request for the same user; the other insert won.
        logger.info("[users] concurrent create resolved", extra={"user_id": user_id})
        return user

    user = get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def update_user(user_id: str, **patch) -> User:
    """Apply a partial patch to a user row.

    Raises:
        ValidationError: unknown field in patch
        NotFoundError: no such user
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported user fields: {', '.join(sorted(unknown))}")

    with get_db_session() as session:
        if patch:
            result = session.execute(
                update(users).where(users.c.id == user_id).values(**patch, updated_at=utc_now())
            )
            if result.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return _row_to_user(row)


def set_subscription_tier(user_id: str, tier: str) -> User:
    """Write a new tier (what the billing callback does on subscription change)."""
    if resolve_tier(tier).value != tier:
        raise ValidationError(f"Unknown subscription tier: {tier}")
    user = update_user(user_id, subscription_tier=tier)
    logger.info("[users] subscription tier set", extra={"user_id": user_id, "tier": tier})
    return user


def set_user_role(user_id: str, role: Optional[str]) -> User:
    return update_user(user_id, role=role)


def _get_or_create_role_id(session, role_name: str) -> int:
    row = session.execute(select(roles.c.id).where(roles.c.name == role_name)).first()
    if row:
        return row.id
    result = session.execute(insert(roles).values(name=role_name, created_at=utc_now()))
    return result.inserted_primary_key[0]


def user_has_role(user_id: str, role_name: str) -> bool:
    """Check the user_roles join table for a named role."""
    with get_db_session() as session:
        row = session.execute(
            select(user_roles.c.id)
            .select_from(user_roles.join(roles, user_roles.c.role_id == roles.c.id))
            .where(user_roles.c.user_id == user_id)
            .where(roles.c.name == role_name)
            .limit(1)
        ).first()
        return row is not None


def assign_role(user_id: str, role_name: str) -> bool:
    """Bind a named role to a user (idempotent).

    Returns:
        True if a new assignment was written, False if it already existed.
    """
    if get_user(user_id) is None:
        raise NotFoundError(f"User {user_id} not found")

    with get_db_session() as session:
        role_id = _get_or_create_role_id(session, role_name)
        existing = session.execute(
            select(user_roles.c.id)
            .where(user_roles.c.user_id == user_id)
            .where(user_roles.c.role_id == role_id)
        ).first()
        if existing:
            return False
        session.execute(insert(user_roles).values(user_id=user_id, role_id=role_id, created_at=utc_now()))

    logger.info("[users] role assigned", extra={"user_id": user_id, "role": role_name})
    return True


def grant_admin(user_id: str) -> User:
    """Mark a user as admin in both the role column and the role table."""
    user = set_user_role(user_id, ADMIN_ROLE)
    assign_role(user_id, ADMIN_ROLE)
    return user
