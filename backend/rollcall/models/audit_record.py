"""AuditRecord ORM - append-only log of administrative interventions.

Invariants:
    - Written only by admin operations, never by ordinary votes
    - detail always carries "instance_id" (str) so records are queryable per instance
    - Never updated or deleted
    - id is a monotonically increasing integer: "newest first" means highest id,
      occurred_at is informational and can collide
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from rollcall.db.base import Base
from rollcall.db.types import UTCDateTime


class AuditRecord(Base):
    """Administrative action on an instance."""
    __tablename__ = "audit_records"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True, autoincrement=True,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
    )
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    detail: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
