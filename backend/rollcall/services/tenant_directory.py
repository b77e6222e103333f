"""Tenant Directory - chat identity -> tenant lookup and admin fan-out list.

Invariants:
    - Implements TenantLookup and AdminDirectory (core/repository_protocols.py)
    - require_tenant raises ResourceNotFoundError for an unbound identity
    - require_admin_of raises PermissionDeniedError when the identity belongs to another tenant
    - list_groups is derived from series target chats; there is no group table
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import ActorId, AdminRecipient, MemberRole, TenantId
from rollcall.core.errors import ErrorContext, PermissionDeniedError, ResourceNotFoundError
from rollcall.models.event_series import EventSeries
from rollcall.models.tenant import Tenant, TenantMember

logger = logging.getLogger(__name__)


class TenantDirectory:
    """SQL-backed tenant lookup and admin directory."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_tenant_by_chat_identity(self, actor_id: ActorId) -> Tenant | None:
        result = await self.db.execute(
            select(Tenant)
            .join(TenantMember, TenantMember.tenant_id == Tenant.id)
            .where(TenantMember.actor_id == str(actor_id))
            .where(TenantMember.role == MemberRole.ADMIN.value),
        )
        return result.scalar_one_or_none()

    async def list_admins(self, tenant_id: TenantId) -> list[AdminRecipient]:
        result = await self.db.execute(
            select(TenantMember.actor_id)
            .where(TenantMember.tenant_id == tenant_id)
            .where(TenantMember.role == MemberRole.ADMIN.value),
        )
        return [AdminRecipient(ActorId(actor_id)) for actor_id in result.scalars().all()]

    async def require_tenant(self, actor_id: ActorId) -> Tenant:
        """Tenant administered by actor_id, or ResourceNotFoundError."""
        tenant = await self.find_tenant_by_chat_identity(actor_id)
        if tenant is None:
            raise ResourceNotFoundError(
                "Tenant", f"for actor {actor_id}",
                ErrorContext(
                    actor_id=str(actor_id),
                    user_message="Please link your account first with /start <key>",
                ),
            )
        return tenant

    async def require_admin_of(self, actor_id: ActorId, tenant_id: UUID) -> Tenant:
        tenant = await self.require_tenant(actor_id)
        if tenant.id != tenant_id:
            logger.warning(
                f"Actor {actor_id} denied access to tenant {tenant_id}",
                extra={"actor_id": actor_id, "tenant_id": tenant_id},
            )
            raise PermissionDeniedError(
                "Admin only: resource belongs to another tenant",
                ErrorContext(actor_id=str(actor_id)),
            )
        return tenant

    async def list_groups(self, tenant_id: TenantId) -> list[tuple[str, int]]:
        """Group chats the tenant's series target, as (chat_id, series count), most first."""
        count = func.count(EventSeries.id)
        result = await self.db.execute(
            select(EventSeries.chat_id, count)
            .where(EventSeries.tenant_id == tenant_id)
            .where(EventSeries.chat_id.is_not(None))
            .group_by(EventSeries.chat_id)
            .order_by(count.desc(), EventSeries.chat_id),
        )
        return [(chat_id, n) for chat_id, n in result.all()]
