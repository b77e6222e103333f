"""Domain Types - identity wrappers, enum values and value objects.

Tests:
    - NewType wrappers are transparent
    - Enums serialize to their DB string values
    - Weekday.index follows datetime.weekday()
    - SeriesSnapshot copies every field it needs from a model
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

from rollcall.core.domain_types import (
    ActorId, AuditAction, InstanceId, MessageHandle, ParticipationAction,
    SeriesId, SeriesSnapshot, Weekday,
)


def test_identity_types_wrap_values():
    uid = uuid4()
    assert SeriesId(uid) == uid
    assert InstanceId(uid) == uid
    assert ActorId("123456789012") == "123456789012"


def test_participation_actions():
    assert [a.value for a in ParticipationAction] == ["JOIN", "PLUS_ONE", "LEAVE"]


def test_audit_actions_have_four_members():
    assert len(AuditAction) == 4


def test_weekday_index_matches_datetime():
    monday = datetime(2026, 10, 19)
    assert Weekday.MO.index == monday.weekday() == 0
    assert Weekday.SU.index == 6


def test_message_handle_is_hashable_value():
    assert MessageHandle("-100", 7) == MessageHandle("-100", 7)
    assert len({MessageHandle("-100", 7), MessageHandle("-100", 7)}) == 1


def test_series_snapshot_from_model():
    created = datetime(2026, 10, 1, tzinfo=timezone.utc)
    model = SimpleNamespace(
        id=uuid4(), tenant_id=uuid4(), title="Yoga", description=None,
        recurrence="FREQ=DAILY", timezone="Europe/Helsinki", chat_id="-1",
        topic_id=None, capacity_limit=None, duration_minutes=60,
        created_at=created, is_active=True,
    )
    snapshot = SeriesSnapshot.from_model(model)
    assert snapshot.id == model.id
    assert snapshot.duration_minutes == 60
    assert snapshot.created_at == created
