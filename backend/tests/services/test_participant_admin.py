"""Participant Admin + Audit Trail - audited interventions and paginated history.

Invariants:
    - Add writes a JOIN record plus one PARTICIPANT_ADDED audit
    - Adding an attendee twice, or removing a non-attendee, raises and writes nothing,
      also when two admins race on the same participant
    - Admins of another tenant are refused
    - Registration close/extend toggle; repeating the current one raises
    - Audit pages are newest first by insertion order, also for equal timestamps;
      limit=0 returns everything
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from rollcall.core.domain_types import ActorId, AuditAction, ParticipationAction
from rollcall.core.errors import (
    AlreadyActionedError, AlreadyJoinedError, PermissionDeniedError, ResourceNotFoundError,
)
from rollcall.models.audit_record import AuditRecord
from rollcall.models.participation_record import ParticipationRecord
from rollcall.services.audit_trail import AuditTrail
from rollcall.services.participant_admin import REGISTRATION_ACTIONS, ParticipantAdmin
from rollcall.services.participation_ledger import InstanceLockRegistry, ParticipationLedger
from tests.services.actors import ADMIN, OTHER_ADMIN

ALICE = ActorId("3003")


@pytest.fixture
def admin(test_db):
    return ParticipantAdmin(test_db, ledger=ParticipationLedger(test_db, InstanceLockRegistry()))


async def _audit_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(AuditRecord))).scalar_one()


# ─── Add / remove ───────────────────────────────────────────────

async def test_add_participant_records_vote_and_audit(admin, test_db, make_series, make_instance):
    instance = await make_instance(await make_series())

    entry = await admin.add_participant(instance.id, ADMIN, ALICE)

    assert entry.action == AuditAction.PARTICIPANT_ADDED.value
    assert entry.detail == {"instance_id": str(instance.id), "actor_id": ALICE, "admin": ADMIN}
    assert await admin.ledger.viewer_status(instance.id, ALICE) == ParticipationAction.JOIN


async def test_add_twice_rejected(admin, test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    await admin.add_participant(instance.id, ADMIN, ALICE)

    with pytest.raises(AlreadyJoinedError):
        await admin.add_participant(instance.id, ADMIN, ALICE)
    assert await _audit_count(test_db) == 1


async def test_concurrent_adds_write_once(test_db, test_session_factory, make_series, make_instance):
    instance = await make_instance(await make_series())
    locks = InstanceLockRegistry()

    async def add():
        async with test_session_factory() as session:
            service = ParticipantAdmin(session, ledger=ParticipationLedger(session, locks))
            return await service.add_participant(instance.id, ADMIN, ALICE)

    results = await asyncio.gather(add(), add(), return_exceptions=True)

    assert sum(isinstance(r, AuditRecord) for r in results) == 1
    assert sum(isinstance(r, AlreadyJoinedError) for r in results) == 1
    assert await _audit_count(test_db) == 1
    joins = await test_db.execute(
        select(func.count()).select_from(ParticipationRecord)
        .where(ParticipationRecord.instance_id == instance.id),
    )
    assert joins.scalar_one() == 1


async def test_add_bypasses_capacity(admin, make_series, make_instance):
    instance = await make_instance(await make_series(capacity_limit=1))
    await admin.ledger.record_vote(instance.id, ActorId("first"), ParticipationAction.JOIN)

    await admin.add_participant(instance.id, ADMIN, ALICE)

    participants = await admin.ledger.current_participants(instance.id)
    assert [p.actor_id for p in participants] == ["first", ALICE]


async def test_remove_participant(admin, make_series, make_instance):
    instance = await make_instance(await make_series())
    await admin.ledger.record_vote(instance.id, ALICE, ParticipationAction.PLUS_ONE)

    entry = await admin.remove_participant(instance.id, ADMIN, ALICE)

    assert entry.action == AuditAction.PARTICIPANT_REMOVED.value
    assert await admin.ledger.viewer_status(instance.id, ALICE) == ParticipationAction.LEAVE


async def test_remove_non_attendee_rejected(admin, test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    with pytest.raises(AlreadyActionedError):
        await admin.remove_participant(instance.id, ADMIN, ALICE)
    assert await _audit_count(test_db) == 0


async def test_other_tenant_admin_refused(
    admin, test_db, other_tenant, make_series, make_instance,
):
    instance = await make_instance(await make_series())
    with pytest.raises(PermissionDeniedError):
        await admin.add_participant(instance.id, OTHER_ADMIN, ALICE)
    assert await admin.ledger.viewer_status(instance.id, ALICE) is None


async def test_unlinked_actor_refused(admin, make_series, make_instance):
    instance = await make_instance(await make_series())
    with pytest.raises(ResourceNotFoundError) as exc:
        await admin.close_registration(instance.id, ActorId("9999"))
    assert "/start" in exc.value.to_response()["error"]["message"]


# ─── Registration window ────────────────────────────────────────

async def test_close_twice_rejected(admin, make_series, make_instance):
    instance = await make_instance(await make_series())
    await admin.close_registration(instance.id, ADMIN)
    with pytest.raises(AlreadyActionedError):
        await admin.close_registration(instance.id, ADMIN)


async def test_close_then_extend_toggles(admin, make_series, make_instance):
    instance = await make_instance(await make_series())

    await admin.close_registration(instance.id, ADMIN)
    await admin.extend_registration(instance.id, ADMIN)
    with pytest.raises(AlreadyActionedError):
        await admin.extend_registration(instance.id, ADMIN)
    await admin.close_registration(instance.id, ADMIN)


# ─── Audit pagination ───────────────────────────────────────────

async def test_audit_pages_newest_first(admin, test_db, make_series, make_instance):
    instance = await make_instance(await make_series())
    await admin.add_participant(instance.id, ADMIN, ALICE)
    await admin.close_registration(instance.id, ADMIN)
    await admin.remove_participant(instance.id, ADMIN, ALICE)
    trail = AuditTrail(test_db)

    first = await trail.list_for_instance(instance.id, limit=2)
    assert [r.action for r in first.records] == ["PARTICIPANT_REMOVED", "REGISTRATION_CLOSED"]
    assert first.total == 3
    assert first.has_more

    last = await trail.list_for_instance(instance.id, limit=2, offset=2)
    assert [r.action for r in last.records] == ["PARTICIPANT_ADDED"]
    assert not last.has_more

    everything = await trail.list_for_instance(instance.id, limit=0)
    assert len(everything.records) == 3
    assert not everything.has_more


@pytest.mark.parametrize("order", [
    (AuditAction.REGISTRATION_EXTENDED, AuditAction.REGISTRATION_CLOSED),
    (AuditAction.REGISTRATION_CLOSED, AuditAction.REGISTRATION_EXTENDED),
])
async def test_equal_timestamps_keep_insertion_order(
    test_db, tenant, make_series, make_instance, order,
):
    instance = await make_instance(await make_series())
    stamp = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    for action in order:
        test_db.add(AuditRecord(
            tenant_id=tenant.id, action=action.value,
            detail={"instance_id": str(instance.id)}, occurred_at=stamp,
        ))
        await test_db.flush()
    await test_db.commit()
    trail = AuditTrail(test_db)

    assert await trail.latest_action_for_instance(instance.id, REGISTRATION_ACTIONS) == order[-1]
    page = await trail.list_for_instance(instance.id, limit=0)
    assert [r.action for r in page.records] == [a.value for a in reversed(order)]


async def test_audit_scoped_to_instance(admin, test_db, make_series, make_instance):
    series = await make_series()
    first = await make_instance(series)
    second = await make_instance(series, start=first.start_time + timedelta(days=7))
    await admin.close_registration(first.id, ADMIN)

    page = await AuditTrail(test_db).list_for_instance(second.id)

    assert page.records == []
    assert page.total == 0
