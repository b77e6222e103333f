"""EventInstance ORM - one concrete occurrence of a series.

Invariants:
    - At most one row per (series_id, start_time): the materialization idempotency key
    - Created only by the materializer
    - Only the announcement handle (announcement_chat_id, announcement_message_id)
      is written after creation; both are set together or not at all
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from rollcall.core.domain_types import MessageHandle
from rollcall.db.base import Base
from rollcall.db.types import UTCDateTime


class EventInstance(Base):
    """Materialized occurrence of an EventSeries."""
    __tablename__ = "event_instances"
    __table_args__ = (
        UniqueConstraint(
            "series_id", "start_time", name="uq_event_instances_series_start",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    series_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("event_series.id"), nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    announcement_chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    announcement_message_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    series: Mapped["EventSeries"] = relationship(
        "EventSeries", back_populates="instances", lazy="selectin",
    )

    @property
    def message_handle(self) -> MessageHandle | None:
        if self.announcement_chat_id is None or self.announcement_message_id is None:
            return None
        return MessageHandle(self.announcement_chat_id, self.announcement_message_id)

    def attach_message_handle(self, handle: MessageHandle) -> None:
        self.announcement_chat_id = handle.chat_id
        self.announcement_message_id = handle.message_id
