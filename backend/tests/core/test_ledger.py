"""Ledger reduction - latest-wins status, headcount units and capacity decisions.

Tests:
    - Latest record id wins regardless of list order
    - JOIN=1, PLUS_ONE=2, LEAVE=0 units
    - Capacity boundary at limit 12 with headcount 11
    - Acting actor's own prior units are excluded
    - LEAVE always allowed; unlimited capacity never refuses
"""

from dataclasses import dataclass

from rollcall.core.domain_types import ActorId, ParticipationAction
from rollcall.core.ledger import (
    Participant, current_participants, evaluate_capacity, headcount,
    latest_action_for, latest_actions, units_for,
)

JOIN = ParticipationAction.JOIN
PLUS_ONE = ParticipationAction.PLUS_ONE
LEAVE = ParticipationAction.LEAVE


@dataclass
class Rec:
    id: int
    actor_id: str
    action: str


def _ledger(*entries: tuple[str, ParticipationAction]) -> list[Rec]:
    return [Rec(i + 1, actor, action.value) for i, (actor, action) in enumerate(entries)]


def _joined(n: int) -> list[Rec]:
    return _ledger(*[(f"u{i}", JOIN) for i in range(n)])


# ─── Reduction ──────────────────────────────────────────────────

def test_latest_wins_join_plus_one_leave_join():
    records = _ledger(("a", JOIN), ("a", PLUS_ONE), ("a", LEAVE), ("a", JOIN))
    assert latest_action_for(records, ActorId("a")) == JOIN


def test_latest_wins_uses_record_id_not_list_order():
    records = [Rec(5, "a", "LEAVE"), Rec(2, "a", "JOIN")]
    assert latest_actions(records) == {"a": LEAVE}


def test_actor_without_records_has_no_status():
    assert latest_action_for(_ledger(("a", JOIN)), ActorId("b")) is None


def test_current_participants_excludes_leavers_and_keeps_order():
    records = _ledger(("a", JOIN), ("b", PLUS_ONE), ("c", JOIN), ("a", LEAVE), ("a", JOIN))
    assert current_participants(records) == [
        Participant(ActorId("b"), PLUS_ONE),
        Participant(ActorId("c"), JOIN),
        Participant(ActorId("a"), JOIN),
    ]


def test_units_and_headcount():
    assert [units_for(a) for a in (JOIN, PLUS_ONE, LEAVE)] == [1, 2, 0]
    participants = current_participants(_ledger(("a", JOIN), ("b", PLUS_ONE)))
    assert headcount(participants) == 3
    assert headcount(participants, exclude_actor=ActorId("b")) == 1


def test_empty_ledger():
    assert current_participants([]) == []
    assert headcount([]) == 0


# ─── Capacity ───────────────────────────────────────────────────

def test_join_allowed_at_eleven_of_twelve():
    decision = evaluate_capacity(_joined(11), ActorId("new"), JOIN, 12)
    assert decision.allowed
    assert decision.headcount_excluding_actor == 11
    assert decision.remaining == 1


def test_join_refused_when_full():
    decision = evaluate_capacity(_joined(12), ActorId("late"), JOIN, 12)
    assert not decision.allowed
    assert decision.remaining == 0


def test_plus_one_refused_with_one_slot_left():
    decision = evaluate_capacity(_joined(11), ActorId("new"), PLUS_ONE, 12)
    assert not decision.allowed
    assert decision.requested_units == 2
    assert decision.remaining == 1


def test_own_prior_units_excluded():
    # u0 holds one of the 11 taken slots; it is not counted against the upgrade
    records = _joined(11)
    decision = evaluate_capacity(records, ActorId("u0"), PLUS_ONE, 12)
    assert decision.headcount_excluding_actor == 10
    assert decision.allowed


def test_leave_always_allowed():
    decision = evaluate_capacity(_joined(20), ActorId("u3"), LEAVE, 12)
    assert decision.allowed


def test_unlimited_capacity():
    for limit in (None, 0):
        decision = evaluate_capacity(_joined(500), ActorId("x"), PLUS_ONE, limit)
        assert decision.allowed
        assert decision.remaining is None
