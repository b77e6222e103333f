"""Card State Engine - which actions a viewer may take on an event card right now.

Invariants:
    - compute_card_state and permitted_actions are PURE: time is an argument, never read
    - event_ended:         now >  start + duration
    - registration_closed: now >= start - 25h
    - is_full:             limit > 0 and headcount (excluding viewer) >= limit
    - Priority: ended > registration closed > viewer joined > full > open
    - display_annotation never reports both "ended" and "closed"

Design Decisions:
    - Joined viewers keep PLUS_ONE even on a full event: capacity is re-checked by the
      ledger at vote time, the card only decides what to offer
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from rollcall.core.domain_types import (
    DEFAULT_EVENT_DURATION_MINUTES,
    REGISTRATION_LEAD_HOURS,
    ParticipationAction,
)
from rollcall.core.ledger import ATTENDING_ACTIONS


REGISTRATION_LEAD_TIME = timedelta(hours=REGISTRATION_LEAD_HOURS)

ANNOTATION_EVENT_ENDED = "event ended"
ANNOTATION_REGISTRATION_CLOSED = "registration closed"


@dataclass(frozen=True)
class CardState:
    is_full: bool
    viewer_joined: bool
    registration_closed: bool
    event_ended: bool


def compute_card_state(
    start_time: datetime,
    viewer_latest_action: ParticipationAction | None,
    capacity_limit: int | None,
    headcount_excluding_viewer: int,
    duration_minutes: int = DEFAULT_EVENT_DURATION_MINUTES,
    *,
    now: datetime,
) -> CardState:
    """Derive card flags for one viewer at instant now."""
    event_end = start_time + timedelta(minutes=duration_minutes)
    return CardState(
        is_full=bool(capacity_limit) and capacity_limit > 0
        and headcount_excluding_viewer >= capacity_limit,
        viewer_joined=viewer_latest_action in ATTENDING_ACTIONS,
        registration_closed=now >= start_time - REGISTRATION_LEAD_TIME,
        event_ended=now > event_end,
    )


def permitted_actions(state: CardState) -> frozenset[ParticipationAction]:
    """First matching rule wins."""
    if state.event_ended:
        return frozenset()
    if state.registration_closed:
        return frozenset()
    if state.viewer_joined:
        return frozenset({ParticipationAction.PLUS_ONE, ParticipationAction.LEAVE})
    if state.is_full:
        return frozenset()
    return frozenset({ParticipationAction.JOIN, ParticipationAction.PLUS_ONE})


def display_annotation(state: CardState) -> str:
    if state.event_ended:
        return ANNOTATION_EVENT_ENDED
    if state.registration_closed:
        return ANNOTATION_REGISTRATION_CLOSED
    return ""
