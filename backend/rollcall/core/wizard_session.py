"""Wizard Session Store - ephemeral per-actor state for step-by-step series creation.

Invariants:
    - At most one session per actor; start() replaces any existing one
    - A session expires after `timeout` of inactivity; expiry is checked on EVERY access
    - Expired sessions are dropped on access and reported as absent
    - The store is an explicit object handed to its users (app.state), never module-global
    - build_recurrence is PURE: the clock is an argument

Design Decisions:
    - Injectable clock: tests drive expiry without sleeping
    - Loss of a session is always recoverable by starting over; nothing here is durable
    - ONCE is encoded as FREQ=DAILY;COUNT=1 so the expander needs no special case
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from rollcall.core.domain_types import ActorId, Frequency, Weekday
from rollcall.core.errors import ValidationError
from rollcall.core.recurrence import RecurrenceRule, load_timezone


DEFAULT_WIZARD_TIMEOUT = timedelta(minutes=5)
ONCE = "ONCE"
WIZARD_FREQUENCIES = frozenset({"DAILY", "WEEKLY", "MONTHLY", ONCE})


class WizardStep(str, Enum):
    TITLE = "title"
    FREQUENCY = "frequency"
    DAY = "day"
    TIME = "time"
    GROUP = "group"
    LIMIT = "limit"
    CONFIRM = "confirm"


@dataclass
class WizardSession:
    """Answers collected so far for one actor."""
    actor_id: ActorId
    last_activity: datetime
    title: str | None = None
    frequency: str | None = None
    day: Weekday | None = None
    time: str | None = None
    chat_id: str | None = None
    topic_id: str | None = None
    capacity_limit: int | None = None
    limit_answered: bool = False

    @property
    def step(self) -> WizardStep:
        """First unanswered question."""
        if not self.title:
            return WizardStep.TITLE
        if not self.frequency:
            return WizardStep.FREQUENCY
        if self.frequency == Frequency.WEEKLY.value and self.day is None:
            return WizardStep.DAY
        if not self.time:
            return WizardStep.TIME
        if not self.chat_id:
            return WizardStep.GROUP
        if not self.limit_answered:
            return WizardStep.LIMIT
        return WizardStep.CONFIRM


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardSessionStore:
    """In-memory session map with inactivity expiry."""

    def __init__(
        self,
        timeout: timedelta = DEFAULT_WIZARD_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._timeout = timeout
        self._clock = clock
        self._sessions: dict[ActorId, WizardSession] = {}

    def start(self, actor_id: ActorId) -> WizardSession:
        session = WizardSession(actor_id=actor_id, last_activity=self._clock())
        self._sessions[actor_id] = session
        return session

    def get(self, actor_id: ActorId) -> WizardSession | None:
        session = self._sessions.get(actor_id)
        if session is None:
            return None
        if self._clock() - session.last_activity > self._timeout:
            self.clear(actor_id)
            return None
        return session

    def update(self, actor_id: ActorId, **changes) -> WizardSession | None:
        """Apply validated answers and refresh activity. None when absent or expired."""
        session = self.get(actor_id)
        if session is None:
            return None
        _validate_answers(changes)
        if "day" in changes and changes["day"] is not None:
            changes["day"] = Weekday(changes["day"])
        if "capacity_limit" in changes:
            changes["limit_answered"] = True
        updated = replace(session, **changes, last_activity=self._clock())
        self._sessions[actor_id] = updated
        return updated

    def clear(self, actor_id: ActorId) -> None:
        self._sessions.pop(actor_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


def _validate_answers(changes: dict) -> None:
    allowed = {"title", "frequency", "day", "time", "chat_id", "topic_id", "capacity_limit"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Unknown wizard fields: {', '.join(sorted(unknown))}", "wizard")
    if changes.get("frequency") is not None and changes["frequency"] not in WIZARD_FREQUENCIES:
        raise ValidationError(f"Unsupported frequency '{changes['frequency']}'", "frequency")
    if changes.get("day") is not None and changes["day"] not in {d.value for d in Weekday}:
        raise ValidationError(f"Invalid day '{changes['day']}'", "day")
    if changes.get("time") is not None:
        _parse_time(changes["time"])
    topic = changes.get("topic_id")
    if topic is not None and not (topic.isascii() and topic.isdigit()):
        raise ValidationError(f"Topic id must be a thread number, got '{topic}'", "topic_id")
    limit = changes.get("capacity_limit")
    if limit is not None and limit < 0:
        raise ValidationError("capacity_limit must be >= 0", "capacity_limit")


def _parse_time(value: str) -> tuple[int, int]:
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValidationError(f"Time must be HH:MM, got '{value}'", "time")
    h, m = int(hours), int(minutes)
    if not (0 <= h < 24 and 0 <= m < 60):
        raise ValidationError(f"Time out of range: '{value}'", "time")
    return h, m


def build_recurrence(session: WizardSession, *, now: datetime, timezone: str) -> RecurrenceRule:
    """Turn completed wizard answers into a RecurrenceRule anchored after now."""
    if session.step != WizardStep.CONFIRM:
        raise ValidationError(
            f"Wizard is incomplete, next step is '{session.step.value}'", session.step.value,
        )
    tz = load_timezone(timezone)
    hours, minutes = _parse_time(session.time)
    local_now = now.astimezone(tz)
    anchor = local_now.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    if session.frequency == ONCE:
        if anchor <= local_now:
            anchor += timedelta(days=1)
        return RecurrenceRule(
            dtstart=anchor, frequency=Frequency.DAILY, timezone=timezone, count=1,
        )

    frequency = Frequency(session.frequency)
    by_day: tuple[Weekday, ...] = ()
    if frequency == Frequency.WEEKLY and session.day is not None:
        days_until = session.day.index - anchor.weekday()
        if days_until <= 0:
            days_until += 7
        anchor += timedelta(days=days_until)
        by_day = (session.day,)
    return RecurrenceRule(
        dtstart=anchor, frequency=frequency, timezone=timezone, by_day=by_day,
    )
