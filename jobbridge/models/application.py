from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from jobbridge.models.user import as_utc


class ApplicationStatus(str, Enum):
    APPLIED = "applied"
    INTERVIEWING = "interviewing"
    OFFERED = "offered"
    REJECTED = "rejected"
    SAVED = "saved"


class ApplicationCreate(BaseModel):
    """Request body for a new application (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str = Field(..., min_length=1, max_length=100)
    job_title: str = Field(..., min_length=1)
    company: str = Field(..., min_length=1)
    status: ApplicationStatus = ApplicationStatus.APPLIED
    applied_date: Optional[datetime] = None
    notes: Optional[str] = None


class Application(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    user_id: str
    job_id: str
    job_title: str
    company: str
    status: ApplicationStatus
    applied_date: datetime
    notes: Optional[str] = None

    @field_validator("applied_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)
