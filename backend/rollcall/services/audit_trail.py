"""Audit Trail - append-only recorder of administrative interventions.

Invariants:
    - record() only ever INSERTs; there is no update or delete path
    - Every detail payload carries "instance_id" as a string
    - list_for_instance orders newest first by insertion sequence (id); limit=0 means "all"
    - latest_action_for_instance uses the same sequence, so equal timestamps never tie
    - has_more is true only for a bounded page that leaves rows unseen

Design Decisions:
    - Query by JSON path (detail->instance_id) instead of a dedicated column:
      the payload is the contract, and SQLAlchemy's JSON indexing compiles for
      both PostgreSQL and SQLite
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import AuditAction, TenantId
from rollcall.models.audit_record import AuditRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditPage:
    records: list[AuditRecord]
    total: int
    has_more: bool


class AuditTrail:
    """Append-only audit log keyed by tenant, action and instance."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        tenant_id: TenantId,
        action: AuditAction,
        instance_id: UUID,
        **detail: object,
    ) -> AuditRecord:
        """Stage one audit row in the caller's transaction (caller commits)."""
        entry = AuditRecord(
            tenant_id=tenant_id,
            action=AuditAction(action).value,
            detail={"instance_id": str(instance_id), **detail},
        )
        self.db.add(entry)
        await self.db.flush()
        logger.info(
            f"Audit {entry.action}",
            extra={"tenant_id": tenant_id, "instance_id": instance_id},
        )
        return entry

    async def list_for_instance(
        self, instance_id: UUID, limit: int = 10, offset: int = 0,
    ) -> AuditPage:
        condition = AuditRecord.detail["instance_id"].as_string() == str(instance_id)

        total = (
            await self.db.execute(select(func.count()).select_from(AuditRecord).where(condition))
        ).scalar_one()

        query = (
            select(AuditRecord)
            .where(condition)
            .order_by(AuditRecord.id.desc())
            .offset(offset)
        )
        if limit > 0:
            query = query.limit(limit)
        records = list((await self.db.execute(query)).scalars().all())

        has_more = limit > 0 and offset + len(records) < total
        return AuditPage(records=records, total=total, has_more=has_more)

    async def latest_action_for_instance(
        self, instance_id: UUID, actions: set[AuditAction],
    ) -> AuditAction | None:
        """Most recent audit action among `actions` for instance_id."""
        result = await self.db.execute(
            select(AuditRecord.action)
            .where(AuditRecord.detail["instance_id"].as_string() == str(instance_id))
            .where(AuditRecord.action.in_([a.value for a in actions]))
            .order_by(AuditRecord.id.desc())
            .limit(1),
        )
        action = result.scalar_one_or_none()
        return AuditAction(action) if action else None
