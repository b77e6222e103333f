"""EventSeries ORM - a recurring event definition owned by a tenant.

Invariants:
    - recurrence holds the canonical rule string (DTSTART;TZID=... + RRULE:...)
    - is_active is the ONLY column mutated after creation (soft delete)
    - Series are never hard-deleted: instances and ledger rows stay attributable
    - capacity_limit 0 or NULL means unlimited

Design Decisions:
    - No cascade on instances: deactivation stops materialization, history stays intact
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from rollcall.core.domain_types import DEFAULT_EVENT_DURATION_MINUTES
from rollcall.db.base import Base
from rollcall.db.types import UTCDateTime


class EventSeries(Base):
    """Recurring event definition."""
    __tablename__ = "event_series"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    recurrence: Mapped[str] = mapped_column(Text, nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="Europe/Helsinki",
    )
    chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    capacity_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_EVENT_DURATION_MINUTES,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    instances: Mapped[list["EventInstance"]] = relationship(
        "EventInstance", back_populates="series", lazy="noload",
    )
