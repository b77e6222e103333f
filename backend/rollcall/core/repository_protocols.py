"""Boundary Protocols - contracts between core and shell.

Invariants:
    - Core NEVER imports from shell; dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: boundary methods are async because implementations do IO,
      but core pure functions that USE these protocols are never async themselves
    - publish() may be called at most once per instance; the shell guards it with the
      stored message handle. edit() may be called any number of times.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from rollcall.core.domain_types import (
    ActorId, AdminRecipient, InstanceId, MessageHandle, TenantId,
)


class SeriesLike(Protocol):
    """Structural contract for series objects (ORM row or SeriesSnapshot)."""
    id: UUID
    title: str
    description: str | None
    timezone: str
    capacity_limit: int | None
    duration_minutes: int


class InstanceLike(Protocol):
    """Structural contract for instance objects passed to formatters."""
    id: UUID
    start_time: datetime


class TenantLike(Protocol):
    id: UUID
    name: str


class AnnouncementPublisher(Protocol):
    """Posts and edits the live event card in a group chat."""
    async def publish(
        self, chat_id: str, topic_id: str | None, text: str, instance_id: InstanceId,
    ) -> MessageHandle: ...
    async def edit(
        self, handle: MessageHandle, text: str, instance_id: InstanceId,
    ) -> None: ...


class AdminNotifier(Protocol):
    """Sends a direct message to one admin."""
    async def notify(self, recipient_id: ActorId, text: str) -> None: ...


class AdminDirectory(Protocol):
    """Lists who should hear about a tenant's new instances."""
    async def list_admins(self, tenant_id: TenantId) -> list[AdminRecipient]: ...


class TenantLookup(Protocol):
    """Resolves a chat identity to the tenant it administers."""
    async def find_tenant_by_chat_identity(self, actor_id: ActorId) -> TenantLike | None: ...


class MessageFormatter(Protocol):
    """Renders the announcement text; render_attendance is the default."""
    def __call__(
        self, series: SeriesLike, instance: InstanceLike,
        participants: list, annotation: str = "",
    ) -> str: ...
