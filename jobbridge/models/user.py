from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach or convert to UTC. SQLite hands back naive datetimes."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    subscription_tier: Optional[str] = None
    monthly_application_count: int = 0
    application_count_reset_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("application_count_reset_date", "created_at")
    @classmethod
    def _normalize_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_validator("monthly_application_count", mode="before")
    @classmethod
    def _default_count(cls, value):
        return value or 0

    @property
    def effective_tier(self) -> str:
        return self.subscription_tier or "free"
