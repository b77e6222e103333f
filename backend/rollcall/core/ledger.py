"""Participation Ledger Reduction - derives attendance from the append-only action log.

Invariants:
    - Records are never mutated; current status is a pure function of the record list
    - Latest-wins ordering uses the record sequence (insertion order), never wall-clock time
    - JOIN occupies 1 unit, PLUS_ONE occupies 2, LEAVE occupies 0
    - An actor with no records has no status and occupies nothing
    - evaluate_capacity excludes the acting actor's own prior state from the headcount
    - LEAVE is always allowed

Design Decisions:
    - LedgerEntry is a Protocol: ORM rows and plain test doubles both satisfy it
    - Reduction over the full list on every call: instance ledgers are small
      (tens to hundreds of rows), and a derived view keeps full history for audits
"""

from dataclasses import dataclass
from typing import Iterable, Protocol

from rollcall.core.domain_types import ActorId, ParticipationAction


ACTION_UNITS: dict[ParticipationAction, int] = {
    ParticipationAction.JOIN: 1,
    ParticipationAction.PLUS_ONE: 2,
    ParticipationAction.LEAVE: 0,
}

ATTENDING_ACTIONS = frozenset({ParticipationAction.JOIN, ParticipationAction.PLUS_ONE})


class LedgerEntry(Protocol):
    """Structural contract for a participation record."""
    id: int
    actor_id: str
    action: str


@dataclass(frozen=True)
class Participant:
    """An actor currently attending, with their latest action."""
    actor_id: ActorId
    action: ParticipationAction

    @property
    def units(self) -> int:
        return ACTION_UNITS[self.action]


@dataclass(frozen=True)
class CapacityDecision:
    """Outcome of a capacity check. remaining is None when unlimited."""
    allowed: bool
    headcount_excluding_actor: int
    requested_units: int
    remaining: int | None


def units_for(action: ParticipationAction | str) -> int:
    return ACTION_UNITS[ParticipationAction(action)]


def latest_actions(records: Iterable[LedgerEntry]) -> dict[ActorId, ParticipationAction]:
    """Reduce records to one action per actor, highest record id wins."""
    latest: dict[ActorId, tuple[int, ParticipationAction]] = {}
    for record in records:
        actor = ActorId(str(record.actor_id))
        current = latest.get(actor)
        if current is None or record.id > current[0]:
            latest[actor] = (record.id, ParticipationAction(record.action))
    return {actor: action for actor, (_, action) in latest.items()}


def latest_action_for(
    records: Iterable[LedgerEntry], actor_id: ActorId,
) -> ParticipationAction | None:
    return latest_actions(records).get(ActorId(str(actor_id)))


def current_participants(records: Iterable[LedgerEntry]) -> list[Participant]:
    """Actors whose latest action is JOIN or PLUS_ONE, ordered by that record's id."""
    latest: dict[ActorId, LedgerEntry] = {}
    for record in records:
        actor = ActorId(str(record.actor_id))
        if actor not in latest or record.id > latest[actor].id:
            latest[actor] = record
    attending = [
        r for r in latest.values()
        if ParticipationAction(r.action) in ATTENDING_ACTIONS
    ]
    attending.sort(key=lambda r: r.id)
    return [
        Participant(ActorId(str(r.actor_id)), ParticipationAction(r.action))
        for r in attending
    ]


def headcount(
    participants: Iterable[Participant], exclude_actor: ActorId | None = None,
) -> int:
    """Occupied capacity units, optionally ignoring one actor."""
    return sum(
        p.units for p in participants
        if exclude_actor is None or p.actor_id != exclude_actor
    )


def evaluate_capacity(
    records: Iterable[LedgerEntry],
    actor_id: ActorId,
    action: ParticipationAction,
    capacity_limit: int | None,
) -> CapacityDecision:
    """Decide whether action fits under capacity_limit. Pure, no side effects."""
    taken = headcount(current_participants(records), exclude_actor=ActorId(str(actor_id)))
    requested = ACTION_UNITS[action]

    if not capacity_limit or capacity_limit <= 0:
        return CapacityDecision(True, taken, requested, None)

    remaining = capacity_limit - taken
    if action == ParticipationAction.LEAVE:
        return CapacityDecision(True, taken, requested, remaining)
    return CapacityDecision(taken + requested <= capacity_limit, taken, requested, remaining)
