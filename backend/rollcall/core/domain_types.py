"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - SeriesId, InstanceId, TenantId wrap UUIDs; ActorId wraps the chat user id as str
    - ActorId is the single canonical identity for ledger entries, capacity exclusion and admin checks
    - All valid states encoded as Enums, no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and to DB String columns without custom encoders
    - ActorId is a string, not int: chat transports hand out ids that overflow 32 bits
      and the ledger never does arithmetic on them (ADR: one identity type)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

SeriesId = NewType("SeriesId", UUID)
InstanceId = NewType("InstanceId", UUID)
TenantId = NewType("TenantId", UUID)
ActorId = NewType("ActorId", str)


# ─── Constants ───────────────────────────────────────────────────

DEFAULT_EVENT_DURATION_MINUTES: int = 120
REGISTRATION_LEAD_HOURS: int = 25


# ─── Enums ───────────────────────────────────────────────────────

class ParticipationAction(str, Enum):
    """Ledger actions. JOIN and PLUS_ONE occupy capacity, LEAVE frees it."""
    JOIN = "JOIN"
    PLUS_ONE = "PLUS_ONE"
    LEAVE = "LEAVE"


class AuditAction(str, Enum):
    """Administrative interventions recorded by the audit trail."""
    PARTICIPANT_ADDED = "PARTICIPANT_ADDED"
    PARTICIPANT_REMOVED = "PARTICIPANT_REMOVED"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    REGISTRATION_EXTENDED = "REGISTRATION_EXTENDED"


class Frequency(str, Enum):
    """Supported recurrence frequencies (RFC 5545 subset)."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Weekday(str, Enum):
    """BYDAY codes, Monday first (matches datetime.weekday())."""
    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)


class MemberRole(str, Enum):
    """Tenant membership roles."""
    ADMIN = "ADMIN"


# ─── Value Objects ───────────────────────────────────────────────

@dataclass(frozen=True)
class MessageHandle:
    """Reference to a message published on the chat transport."""
    chat_id: str
    message_id: int


@dataclass(frozen=True)
class AdminRecipient:
    """A tenant admin reachable by direct message."""
    recipient_id: ActorId


@dataclass(frozen=True)
class SeriesSnapshot:
    """Detached, read-only view of a series for batch processing.

    Survives session rollbacks: the materializer snapshots every active series
    before processing so a failure in one series cannot expire the others.
    """
    id: SeriesId
    tenant_id: TenantId
    title: str
    description: str | None
    recurrence: str
    timezone: str
    chat_id: str | None
    topic_id: str | None
    capacity_limit: int | None
    duration_minutes: int
    created_at: datetime

    @classmethod
    def from_model(cls, series) -> "SeriesSnapshot":
        return cls(
            id=series.id,
            tenant_id=series.tenant_id,
            title=series.title,
            description=series.description,
            recurrence=series.recurrence,
            timezone=series.timezone,
            chat_id=series.chat_id,
            topic_id=series.topic_id,
            capacity_limit=series.capacity_limit,
            duration_minutes=series.duration_minutes,
            created_at=series.created_at,
        )
