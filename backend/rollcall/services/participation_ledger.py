"""Participation Ledger Service - serialized check-then-append over the attendance log.

Invariants:
    - Records are only ever INSERTed; status is derived by core/ledger.py
    - The capacity check and the append for one instance never interleave:
      a per-instance asyncio.Lock (in-process) plus SELECT ... FOR UPDATE on the
      instance row (cross-process on PostgreSQL) bracket them
    - The lock is taken BEFORE the instance row lock and the capacity read
    - Votes on different instances never contend
    - CapacityExceededError carries the remaining slots; nothing is written on refusal
    - A refusal never rolls back the caller's session: the session scope owns that
    - expect_attending guards (admin add/remove) are checked under the same lock

Design Decisions:
    - Lock registry is a WeakValueDictionary: idle instances cost nothing
    - SQLite ignores FOR UPDATE; the in-process lock alone covers single-process tests
    - Live message editing is NOT done here: the caller triggers it after commit so a
      delivery failure can never undo a recorded vote
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rollcall.core.card_state import (
    CardState, compute_card_state, display_annotation, permitted_actions,
)
from rollcall.core.domain_types import ActorId, ParticipationAction
from rollcall.core.errors import (
    AlreadyActionedError, AlreadyJoinedError, CapacityExceededError, ErrorContext,
    ResourceNotFoundError,
)
from rollcall.core.ledger import (
    ATTENDING_ACTIONS, CapacityDecision, Participant, current_participants,
    evaluate_capacity, headcount, latest_action_for,
)
from rollcall.models.event_instance import EventInstance
from rollcall.models.participation_record import ParticipationRecord

logger = logging.getLogger(__name__)


class InstanceLockRegistry:
    """One asyncio.Lock per instance id, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, instance_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(instance_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[instance_id] = lock
        return lock


_default_locks = InstanceLockRegistry()


@dataclass(frozen=True)
class VoteResult:
    record: ParticipationRecord
    decision: CapacityDecision
    participants: list[Participant]


@dataclass(frozen=True)
class CardView:
    """Card state as seen by one viewer."""
    state: CardState
    permitted: frozenset[ParticipationAction]
    annotation: str
    viewer_action: ParticipationAction | None
    participants: list[Participant]


class ParticipationLedger:
    """Append-only vote recording with per-instance serialization."""

    def __init__(self, db: AsyncSession, locks: InstanceLockRegistry | None = None):
        self.db = db
        self.locks = locks or _default_locks

    async def record_vote(
        self,
        instance_id: UUID,
        actor_id: ActorId,
        action: ParticipationAction,
        payload: dict | None = None,
        *,
        enforce_capacity: bool = True,
        expect_attending: bool | None = None,
        before_commit: Callable[[], Awaitable[None]] | None = None,
    ) -> VoteResult:
        """Check capacity and append one record, atomically per instance.

        enforce_capacity=False is the admin override: the record is still
        serialized with concurrent votes but never refused.
        expect_attending=False refuses an actor who already attends
        (AlreadyJoinedError), True refuses one who does not (AlreadyActionedError).
        before_commit stages extra rows (admin audit) in the same transaction.
        """
        action = ParticipationAction(action)
        actor_id = ActorId(str(actor_id))
        ctx = ErrorContext(instance_id=str(instance_id), actor_id=actor_id)

        async with self.locks.lock_for(instance_id):
            instance = await self._lock_instance(instance_id, ctx)
            records = await self._load_records(instance_id)
            if expect_attending is not None:
                _check_attendance(records, actor_id, expect_attending, ctx)
            decision = evaluate_capacity(
                records, actor_id, action, instance.series.capacity_limit,
            )
            if enforce_capacity and not decision.allowed:
                logger.info(
                    f"Vote {action.value} refused, {decision.remaining} slot(s) left",
                    extra={"instance_id": instance_id, "actor_id": actor_id},
                )
                raise CapacityExceededError(decision.remaining or 0, ctx)

            record = ParticipationRecord(
                instance_id=instance_id,
                actor_id=actor_id,
                action=action.value,
                payload=payload,
            )
            self.db.add(record)
            if before_commit is not None:
                await before_commit()
            await self.db.commit()

        logger.info(
            f"Recorded {action.value}",
            extra={"instance_id": instance_id, "actor_id": actor_id},
        )
        return VoteResult(
            record=record,
            decision=decision,
            participants=current_participants([*records, record]),
        )

    async def current_participants(self, instance_id: UUID) -> list[Participant]:
        await self.get_instance(instance_id)
        return current_participants(await self._load_records(instance_id))

    async def viewer_status(
        self, instance_id: UUID, actor_id: ActorId,
    ) -> ParticipationAction | None:
        """Latest action of actor_id on the instance, None if they never voted."""
        await self.get_instance(instance_id)
        return latest_action_for(await self._load_records(instance_id), actor_id)

    async def view_card(
        self, instance_id: UUID, actor_id: ActorId, *, now: datetime,
    ) -> CardView:
        instance = await self.get_instance(instance_id)
        records = await self._load_records(instance_id)
        participants = current_participants(records)
        viewer_action = latest_action_for(records, actor_id)
        state = compute_card_state(
            instance.start_time,
            viewer_action,
            instance.series.capacity_limit,
            headcount(participants, exclude_actor=ActorId(str(actor_id))),
            instance.series.duration_minutes,
            now=now,
        )
        return CardView(
            state=state,
            permitted=permitted_actions(state),
            annotation=display_annotation(state),
            viewer_action=viewer_action,
            participants=participants,
        )

    async def get_instance(self, instance_id: UUID) -> EventInstance:
        result = await self.db.execute(select_instance_with_series(instance_id))
        instance = result.scalar_one_or_none()
        if instance is None:
            raise ResourceNotFoundError(
                "EventInstance", str(instance_id),
                ErrorContext(instance_id=str(instance_id)),
            )
        return instance

    # ─── Internals ─────────────────────────────────────────────

    async def _lock_instance(self, instance_id: UUID, ctx: ErrorContext) -> EventInstance:
        result = await self.db.execute(
            select_instance_with_series(instance_id).with_for_update(),
        )
        instance = result.scalar_one_or_none()
        if instance is None:
            raise ResourceNotFoundError("EventInstance", str(instance_id), ctx)
        return instance

    async def _load_records(self, instance_id: UUID) -> list[ParticipationRecord]:
        result = await self.db.execute(
            select(ParticipationRecord)
            .where(ParticipationRecord.instance_id == instance_id)
            .order_by(ParticipationRecord.id),
        )
        return list(result.scalars().all())


def select_instance_with_series(instance_id: UUID):
    """Instance row with its series loaded, refreshing any copy the session holds.

    Async sessions cannot lazy-load, and a session-cached instance may not have
    its series populated yet.
    """
    return (
        select(EventInstance)
        .where(EventInstance.id == instance_id)
        .options(selectinload(EventInstance.series))
        .execution_options(populate_existing=True)
    )


def _check_attendance(
    records: list[ParticipationRecord],
    actor_id: ActorId,
    expect_attending: bool,
    ctx: ErrorContext,
) -> None:
    attending = latest_action_for(records, actor_id) in ATTENDING_ACTIONS
    if attending == expect_attending:
        return
    if attending:
        raise AlreadyJoinedError(str(actor_id), ctx)
    raise AlreadyActionedError(f"Participant '{actor_id}' is not attending", ctx)
