"""ParticipationRecord ORM - one immutable entry of the attendance ledger.

Invariants:
    - Append-only: rows are never updated or deleted
    - id is a monotonically increasing integer; latest-wins reduction orders by it
    - instance_id is a plain reference: records outlive any series deactivation

Design Decisions:
    - Integer PK instead of UUID: insertion order is the tie-breaker, created_at can collide
    - BigInteger in PostgreSQL, INTEGER on SQLite so it aliases ROWID and autoincrements
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from rollcall.db.base import Base
from rollcall.db.types import UTCDateTime


class ParticipationRecord(Base):
    """Ledger entry: actor performed action on instance."""
    __tablename__ = "participation_records"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True, autoincrement=True,
    )
    instance_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("event_instances.id"), nullable=False, index=True,
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
