"""Tenant ORM - organizations that own event series, and their chat-identity admins.

Invariants:
    - A chat identity (actor_id) administers at most one tenant
    - Only role ADMIN exists; membership rows are the admin directory

Design Decisions:
    - Minimal tables: API keys and account management live outside this service
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from rollcall.core.domain_types import MemberRole
from rollcall.db.base import Base
from rollcall.db.types import UTCDateTime


class Tenant(Base):
    """Organization owning series and their admins."""
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    members: Mapped[list["TenantMember"]] = relationship(
        "TenantMember", back_populates="tenant", lazy="selectin",
    )


class TenantMember(Base):
    """Binding of a chat identity to a tenant."""
    __tablename__ = "tenant_members"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True,
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MemberRole.ADMIN.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="members")
