"""Series Service - create, list and soft-delete recurring event series.

Invariants:
    - Recurrence is validated and canonicalized BEFORE the row is written
    - A series is created only for an identity that administers a tenant
    - Listing and removal are scoped to the caller's tenant
    - Removal flips is_active; instances and ledger rows are untouched

Design Decisions:
    - Missing DTSTART anchors on creation time: the first occurrence is never in the past
    - Wizard confirmation goes through create_series so both paths share validation
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import DEFAULT_EVENT_DURATION_MINUTES, ActorId
from rollcall.core.errors import (
    AlreadyActionedError, ErrorContext, ResourceNotFoundError, ValidationError,
)
from rollcall.core.recurrence import parse_recurrence
from rollcall.core.wizard_session import WizardSessionStore, build_recurrence
from rollcall.models.event_instance import EventInstance
from rollcall.models.event_series import EventSeries
from rollcall.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

UPCOMING_INSTANCES = 5


@dataclass(frozen=True)
class SeriesOverview:
    series: EventSeries
    upcoming: list[EventInstance]


class SeriesService:
    """Tenant-scoped series management."""

    def __init__(
        self,
        db: AsyncSession,
        default_timezone: str = "Europe/Helsinki",
        default_duration_minutes: int = DEFAULT_EVENT_DURATION_MINUTES,
    ):
        self.db = db
        self.directory = TenantDirectory(db)
        self.default_timezone = default_timezone
        self.default_duration_minutes = default_duration_minutes

    async def create_series(
        self,
        actor_id: ActorId,
        title: str,
        recurrence: str | Mapping,
        *,
        description: str | None = None,
        timezone_name: str | None = None,
        chat_id: str | None = None,
        topic_id: str | None = None,
        capacity_limit: int | None = None,
        duration_minutes: int | None = None,
        now: datetime | None = None,
    ) -> EventSeries:
        now = now or datetime.now(timezone.utc)
        tenant = await self.directory.require_tenant(actor_id)

        title = (title or "").strip()
        if not title:
            raise ValidationError("Title must not be empty", "title")
        if capacity_limit is not None and capacity_limit < 0:
            raise ValidationError("capacity_limit must be >= 0", "capacity_limit")
        duration = duration_minutes or self.default_duration_minutes
        if duration <= 0:
            raise ValidationError("duration_minutes must be positive", "duration_minutes")

        tz_name = timezone_name or self.default_timezone
        rule = parse_recurrence(recurrence, timezone=tz_name, default_dtstart=now)

        series = EventSeries(
            tenant_id=tenant.id,
            title=title,
            description=description,
            recurrence=rule.to_rule_string(),
            timezone=tz_name,
            chat_id=chat_id,
            topic_id=topic_id,
            capacity_limit=capacity_limit or None,
            duration_minutes=duration,
        )
        self.db.add(series)
        await self.db.commit()
        logger.info(
            f"Series created: {title}",
            extra={"series_id": series.id, "tenant_id": tenant.id, "actor_id": actor_id},
        )
        return series

    async def create_from_wizard(
        self, actor_id: ActorId, store: WizardSessionStore, *, now: datetime | None = None,
    ) -> EventSeries:
        """Confirm the actor's wizard session into a series and clear it."""
        now = now or datetime.now(timezone.utc)
        session = store.get(actor_id)
        if session is None:
            raise ResourceNotFoundError(
                "WizardSession", str(actor_id),
                ErrorContext(
                    actor_id=str(actor_id),
                    user_message="Session expired. Please start again with /create",
                ),
            )
        rule = build_recurrence(session, now=now, timezone=self.default_timezone)
        series = await self.create_series(
            actor_id,
            session.title,
            rule.to_rule_string(),
            timezone_name=self.default_timezone,
            chat_id=session.chat_id,
            topic_id=session.topic_id,
            capacity_limit=session.capacity_limit,
            now=now,
        )
        store.clear(actor_id)
        return series

    async def list_active_series(
        self, actor_id: ActorId, *, now: datetime | None = None,
    ) -> list[SeriesOverview]:
        """Caller tenant's active series with their next upcoming instances."""
        now = now or datetime.now(timezone.utc)
        tenant = await self.directory.require_tenant(actor_id)
        result = await self.db.execute(
            select(EventSeries)
            .where(EventSeries.tenant_id == tenant.id)
            .where(EventSeries.is_active.is_(True))
            .order_by(EventSeries.created_at),
        )
        overviews = []
        for series in result.scalars().all():
            upcoming = await self.db.execute(
                select(EventInstance)
                .where(EventInstance.series_id == series.id)
                .where(EventInstance.start_time > now)
                .order_by(EventInstance.start_time)
                .limit(UPCOMING_INSTANCES),
            )
            overviews.append(SeriesOverview(series, list(upcoming.scalars().all())))
        return overviews

    async def deactivate_series(self, series_id: UUID, actor_id: ActorId) -> EventSeries:
        """Soft-delete a series owned by the caller's tenant."""
        series = await self.db.get(EventSeries, series_id)
        if series is None:
            raise ResourceNotFoundError(
                "EventSeries", str(series_id), ErrorContext(series_id=str(series_id)),
            )
        await self.directory.require_admin_of(actor_id, series.tenant_id)
        if not series.is_active:
            raise AlreadyActionedError(
                "Series already removed", ErrorContext(series_id=str(series_id)),
            )
        series.is_active = False
        await self.db.commit()
        logger.info(
            "Series deactivated",
            extra={"series_id": series_id, "actor_id": actor_id},
        )
        return series
