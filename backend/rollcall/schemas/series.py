"""Series Schemas - request/response contracts for series management.

Invariants:
    - SeriesCreate.title: 1-200 chars, stripped, non-empty
    - recurrence is either a rule string or a structured mapping; the service
      validates its content (RecurrenceValidationError -> 400)
    - capacity_limit 0 means unlimited, negative values are rejected here
    - topic_id, when given, is a forum thread number (digits only)

Design Decisions:
    - from_attributes on responses: routes pass ORM rows straight through
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SeriesCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    recurrence: str | dict[str, Any]
    description: str | None = Field(None, max_length=4000)
    timezone: str | None = Field(None, max_length=64)
    chat_id: str | None = Field(None, max_length=64)
    topic_id: str | None = Field(None, max_length=64, pattern=r"^[0-9]+$")
    capacity_limit: int | None = Field(None, ge=0)
    duration_minutes: int | None = Field(None, ge=1, le=7 * 24 * 60)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title cannot be empty or whitespace")
        return v


class InstanceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    series_id: UUID
    start_time: datetime
    end_time: datetime
    announcement_chat_id: str | None = None
    announcement_message_id: int | None = None


class SeriesResponse(BaseModel):
    """Series as returned to its tenant's admins."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    title: str
    description: str | None
    recurrence: str
    timezone: str
    chat_id: str | None
    topic_id: str | None
    capacity_limit: int | None
    duration_minutes: int
    is_active: bool
    created_at: datetime


class SeriesOverviewResponse(SeriesResponse):
    upcoming: list[InstanceSummary] = []


class MaterializationResponse(BaseModel):
    created: list[UUID]
    announced: list[UUID]
    skipped: int
    failed_series: list[UUID]
