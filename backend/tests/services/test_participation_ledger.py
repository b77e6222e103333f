"""Participation Ledger - latest-wins status, capacity enforcement, serialization.

Invariants:
    - Status is the actor's latest record; history is never rewritten
    - With capacity 12 and 11 taken: +1 refused, JOIN accepted, next JOIN refused
    - Two concurrent votes for the last slot: exactly one succeeds
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from rollcall.core.domain_types import ActorId, ParticipationAction
from rollcall.core.errors import CapacityExceededError, ResourceNotFoundError
from rollcall.models.participation_record import ParticipationRecord
from rollcall.services.participation_ledger import (
    InstanceLockRegistry, ParticipationLedger,
)

JOIN = ParticipationAction.JOIN
PLUS_ONE = ParticipationAction.PLUS_ONE
LEAVE = ParticipationAction.LEAVE


async def _seed_joins(db, instance, count: int) -> None:
    for i in range(count):
        db.add(ParticipationRecord(
            instance_id=instance.id, actor_id=f"seed-{i}", action=JOIN.value,
        ))
    await db.commit()


async def _record_count(db, instance) -> int:
    result = await db.execute(
        select(func.count()).select_from(ParticipationRecord)
        .where(ParticipationRecord.instance_id == instance.id),
    )
    return result.scalar_one()


# ─── Latest wins ────────────────────────────────────────────────

async def test_latest_vote_wins(test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())
    alice = ActorId("alice")

    for action in (JOIN, PLUS_ONE, LEAVE, JOIN):
        await ledger.record_vote(instance.id, alice, action)

    assert await ledger.viewer_status(instance.id, alice) == JOIN
    participants = await ledger.current_participants(instance.id)
    assert [p.actor_id for p in participants] == ["alice"]
    assert await _record_count(test_db, instance) == 4


async def test_leave_removes_from_participants(test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())

    await ledger.record_vote(instance.id, ActorId("a"), JOIN)
    await ledger.record_vote(instance.id, ActorId("b"), PLUS_ONE)
    result = await ledger.record_vote(instance.id, ActorId("a"), LEAVE)

    assert [(p.actor_id, p.action) for p in result.participants] == [("b", PLUS_ONE)]


async def test_never_voted_has_no_status(test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    ledger = ParticipationLedger(test_db)
    assert await ledger.viewer_status(instance.id, ActorId("stranger")) is None


async def test_payload_is_stored(test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    result = await ParticipationLedger(test_db).record_vote(
        instance.id, ActorId("a"), PLUS_ONE, {"guest": "Bob"},
    )
    assert result.record.payload == {"guest": "Bob"}


# ─── Capacity ───────────────────────────────────────────────────

async def test_capacity_boundary(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=12))
    await _seed_joins(test_db, instance, 11)
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())

    with pytest.raises(CapacityExceededError) as exc:
        await ledger.record_vote(instance.id, ActorId("plus"), PLUS_ONE)
    assert exc.value.remaining == 1

    result = await ledger.record_vote(instance.id, ActorId("twelfth"), JOIN)
    assert result.decision.allowed
    assert result.decision.remaining == 1

    with pytest.raises(CapacityExceededError) as exc:
        await ledger.record_vote(instance.id, ActorId("late"), JOIN)
    assert exc.value.remaining == 0
    assert exc.value.to_response()["error"]["message"] == "Sorry, only 0 slots left!"
    assert await _record_count(test_db, instance) == 12


async def test_upgrade_to_plus_one_excludes_own_slot(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=2))
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())

    await ledger.record_vote(instance.id, ActorId("a"), JOIN)
    result = await ledger.record_vote(instance.id, ActorId("a"), PLUS_ONE)

    assert result.decision.allowed
    assert result.decision.headcount_excluding_actor == 0


async def test_leave_allowed_when_full(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=1))
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())

    await ledger.record_vote(instance.id, ActorId("a"), JOIN)
    result = await ledger.record_vote(instance.id, ActorId("a"), LEAVE)

    assert result.participants == []


async def test_unlimited_series_never_refuses(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=None))
    await _seed_joins(test_db, instance, 30)
    result = await ParticipationLedger(test_db).record_vote(
        instance.id, ActorId("extra"), PLUS_ONE,
    )
    assert result.decision.remaining is None
    assert len(result.participants) == 31


async def test_override_skips_capacity(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=1))
    await _seed_joins(test_db, instance, 1)
    result = await ParticipationLedger(test_db).record_vote(
        instance.id, ActorId("vip"), JOIN, enforce_capacity=False,
    )
    assert not result.decision.allowed
    assert len(result.participants) == 2


async def test_unknown_instance(test_db):
    with pytest.raises(ResourceNotFoundError):
        await ParticipationLedger(test_db).record_vote(uuid4(), ActorId("a"), JOIN)


# ─── Concurrency ────────────────────────────────────────────────

async def test_concurrent_votes_for_last_slot(
    test_db, test_session_factory, make_series, make_instance,
):
    instance = await make_instance(await make_series(capacity_limit=12))
    await _seed_joins(test_db, instance, 11)
    locks = InstanceLockRegistry()

    async def vote(actor: str):
        async with test_session_factory() as session:
            return await ParticipationLedger(session, locks).record_vote(
                instance.id, ActorId(actor), JOIN,
            )

    results = await asyncio.gather(vote("x"), vote("y"), return_exceptions=True)

    refused = [r for r in results if isinstance(r, CapacityExceededError)]
    accepted = [r for r in results if not isinstance(r, BaseException)]
    assert len(accepted) == 1
    assert len(refused) == 1
    assert refused[0].remaining == 0
    assert await _record_count(test_db, instance) == 12


async def test_lock_registry_reuses_live_lock():
    registry = InstanceLockRegistry()
    key = uuid4()
    lock = registry.lock_for(key)
    assert registry.lock_for(key) is lock
    assert registry.lock_for(uuid4()) is not lock


# ─── Card view ──────────────────────────────────────────────────

async def test_view_card_for_joined_viewer_on_full_event(test_db, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=2))
    ledger = ParticipationLedger(test_db, InstanceLockRegistry())
    await ledger.record_vote(instance.id, ActorId("a"), JOIN)
    await ledger.record_vote(instance.id, ActorId("b"), JOIN)

    now = datetime.now(timezone.utc)
    joined = await ledger.view_card(instance.id, ActorId("a"), now=now)
    outsider = await ledger.view_card(instance.id, ActorId("c"), now=now)

    assert joined.permitted == {PLUS_ONE, LEAVE}
    assert joined.viewer_action == JOIN
    assert outsider.state.is_full
    assert outsider.permitted == frozenset()


async def test_view_card_after_event_end(test_db, make_series, make_instance):
    series = await make_series()
    start = datetime.now(timezone.utc) - timedelta(hours=5)
    instance = await make_instance(series, start=start)

    view = await ParticipationLedger(test_db).view_card(
        instance.id, ActorId("a"), now=datetime.now(timezone.utc),
    )

    assert view.state.event_ended
    assert view.permitted == frozenset()
    assert view.annotation == "event ended"
