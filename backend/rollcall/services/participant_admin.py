"""Participant Admin - audited administrative interventions on one instance.

Invariants:
    - Every operation first resolves the acting identity to the instance's tenant
      (ResourceNotFoundError for an unknown identity, PermissionDeniedError otherwise)
    - Each successful operation writes exactly one AuditRecord
    - Repeating an operation whose effect is in place raises, and writes nothing;
      for add/remove the attendance check runs under the per-instance vote lock
    - Admin adds bypass the capacity limit but are still serialized with votes

Design Decisions:
    - Add/remove go through ParticipationLedger.record_vote so they share the
      per-instance lock with ordinary votes; the audit row is staged in the same
      transaction as the ledger record
    - Registration close/extend are audit-only: the latest registration audit for the
      instance is the state, there is no extra column
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import ActorId, AuditAction, ParticipationAction
from rollcall.core.errors import AlreadyActionedError, ErrorContext
from rollcall.models.audit_record import AuditRecord
from rollcall.models.event_instance import EventInstance
from rollcall.models.tenant import Tenant
from rollcall.services.audit_trail import AuditTrail
from rollcall.services.participation_ledger import ParticipationLedger
from rollcall.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

REGISTRATION_ACTIONS = {AuditAction.REGISTRATION_CLOSED, AuditAction.REGISTRATION_EXTENDED}


class ParticipantAdmin:
    """Admin add/remove and registration window overrides."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: ParticipationLedger | None = None,
        audit: AuditTrail | None = None,
        directory: TenantDirectory | None = None,
    ):
        self.db = db
        self.ledger = ledger or ParticipationLedger(db)
        self.audit = audit or AuditTrail(db)
        self.directory = directory or TenantDirectory(db)

    async def add_participant(
        self, instance_id: UUID, admin_id: ActorId, actor_id: ActorId,
    ) -> AuditRecord:
        instance, tenant = await self.authorize(instance_id, admin_id)
        return await self._vote_with_audit(
            tenant, instance, admin_id, actor_id,
            ParticipationAction.JOIN, AuditAction.PARTICIPANT_ADDED,
            payload={"added_by": str(admin_id)},
            enforce_capacity=False, expect_attending=False,
        )

    async def remove_participant(
        self, instance_id: UUID, admin_id: ActorId, actor_id: ActorId,
    ) -> AuditRecord:
        instance, tenant = await self.authorize(instance_id, admin_id)
        return await self._vote_with_audit(
            tenant, instance, admin_id, actor_id,
            ParticipationAction.LEAVE, AuditAction.PARTICIPANT_REMOVED,
            payload={"removed_by": str(admin_id)}, expect_attending=True,
        )

    async def close_registration(self, instance_id: UUID, admin_id: ActorId) -> AuditRecord:
        return await self._set_registration(instance_id, admin_id, AuditAction.REGISTRATION_CLOSED)

    async def extend_registration(self, instance_id: UUID, admin_id: ActorId) -> AuditRecord:
        return await self._set_registration(
            instance_id, admin_id, AuditAction.REGISTRATION_EXTENDED,
        )

    async def _set_registration(
        self, instance_id: UUID, admin_id: ActorId, action: AuditAction,
    ) -> AuditRecord:
        instance, tenant = await self.authorize(instance_id, admin_id)
        latest = await self.audit.latest_action_for_instance(instance.id, REGISTRATION_ACTIONS)
        if latest == action:
            raise AlreadyActionedError(
                f"Registration already {'closed' if action == AuditAction.REGISTRATION_CLOSED else 'extended'}",
                ErrorContext(instance_id=str(instance_id), actor_id=str(admin_id)),
            )
        return await self._audit(tenant, action, instance.id, admin=str(admin_id))

    async def authorize(
        self, instance_id: UUID, admin_id: ActorId,
    ) -> tuple[EventInstance, Tenant]:
        instance = await self.ledger.get_instance(instance_id)
        tenant = await self.directory.require_admin_of(admin_id, instance.series.tenant_id)
        return instance, tenant

    async def _vote_with_audit(
        self,
        tenant: Tenant,
        instance: EventInstance,
        admin_id: ActorId,
        actor_id: ActorId,
        vote: ParticipationAction,
        audit_action: AuditAction,
        **vote_options,
    ) -> AuditRecord:
        """Ledger record and its audit row, committed together under the vote lock."""
        staged: list[AuditRecord] = []

        async def stage_audit() -> None:
            staged.append(await self.audit.record(
                tenant.id, audit_action, instance.id,
                actor_id=str(actor_id), admin=str(admin_id),
            ))

        await self.ledger.record_vote(
            instance.id, actor_id, vote, before_commit=stage_audit, **vote_options,
        )
        return staged[0]

    async def _audit(
        self, tenant: Tenant, action: AuditAction, instance_id: UUID, **detail: str,
    ) -> AuditRecord:
        entry = await self.audit.record(tenant.id, action, instance_id, **detail)
        await self.db.commit()
        return entry
