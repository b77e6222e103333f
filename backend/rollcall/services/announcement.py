"""Announcement Service - publishes event cards and keeps them in sync with the ledger.

Invariants:
    - An instance is published at most once: a stored message handle blocks re-publishing
    - refresh_live_message never raises on delivery failure (vote already committed)
    - Manual announce targets the next instance starting after `now`
    - Rendered text always reflects the ledger at the time of rendering

Design Decisions:
    - Publisher is optional: without a bot token the service still answers, it just
      has nothing to deliver through (announce_next then raises ValidationError)
    - The rendered card uses the neutral viewer (no vote) to pick the annotation,
      group messages are shared by every viewer
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.card_state import compute_card_state, display_annotation
from rollcall.core.domain_types import ActorId, MessageHandle
from rollcall.core.errors import (
    AlreadyAnnouncedError, ErrorContext, ExternalDeliveryError,
    ResourceNotFoundError, ValidationError,
)
from rollcall.core.format_messages import render_attendance
from rollcall.core.ledger import current_participants, headcount
from rollcall.core.repository_protocols import (
    AnnouncementPublisher, InstanceLike, MessageFormatter, SeriesLike,
)
from rollcall.models.event_instance import EventInstance
from rollcall.models.event_series import EventSeries
from rollcall.models.participation_record import ParticipationRecord
from rollcall.services.participation_ledger import select_instance_with_series
from rollcall.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


def render_card_text(
    series: SeriesLike,
    instance: InstanceLike,
    records: list,
    *,
    now: datetime,
    formatter: MessageFormatter = render_attendance,
) -> str:
    """Group-facing card text for the current ledger state."""
    participants = current_participants(records)
    state = compute_card_state(
        instance.start_time, None, series.capacity_limit,
        headcount(participants), series.duration_minutes, now=now,
    )
    return formatter(series, instance, participants, display_annotation(state))


class AnnouncementService:
    """Manual announce and live edits of published event cards."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: AnnouncementPublisher | None,
        formatter: MessageFormatter = render_attendance,
    ):
        self.db = db
        self.publisher = publisher
        self.formatter = formatter

    async def announce_next(
        self, series_id: UUID, actor_id: ActorId, *, now: datetime | None = None,
    ) -> EventInstance:
        """Publish the next upcoming instance of series_id on behalf of an admin."""
        now = now or datetime.now(timezone.utc)
        ctx = ErrorContext(series_id=str(series_id), actor_id=str(actor_id))

        series = await self.db.get(EventSeries, series_id)
        if series is None or not series.is_active:
            raise ResourceNotFoundError("EventSeries", str(series_id), ctx)
        await TenantDirectory(self.db).require_admin_of(actor_id, series.tenant_id)

        result = await self.db.execute(
            select(EventInstance)
            .where(EventInstance.series_id == series_id)
            .where(EventInstance.start_time > now)
            .order_by(EventInstance.start_time)
            .limit(1),
        )
        instance = result.scalar_one_or_none()
        if instance is None:
            raise ResourceNotFoundError(
                "EventInstance", f"upcoming for series {series_id}", ctx,
            )
        if instance.message_handle is not None:
            raise AlreadyAnnouncedError(str(instance.id), ctx)
        if not series.chat_id:
            raise ValidationError("Series has no target group chat", "chat_id", ctx)
        if self.publisher is None:
            raise ValidationError("No announcement channel is configured", "publisher", ctx)

        records = await self._load_records(instance.id)
        text = render_card_text(series, instance, records, now=now, formatter=self.formatter)
        handle = await self.publisher.publish(
            series.chat_id, series.topic_id, text, instance.id,
        )
        instance.attach_message_handle(handle)
        await self.db.commit()
        logger.info(
            "Instance announced manually",
            extra={"series_id": series_id, "instance_id": instance.id, "actor_id": actor_id},
        )
        return instance

    async def refresh_live_message(
        self, instance_id: UUID, *, now: datetime | None = None,
    ) -> bool:
        """Re-render the published card. Best-effort: False when nothing was edited."""
        if self.publisher is None:
            return False
        instance = (
            await self.db.execute(select_instance_with_series(instance_id))
        ).scalar_one_or_none()
        if instance is None or instance.message_handle is None:
            return False

        now = now or datetime.now(timezone.utc)
        records = await self._load_records(instance_id)
        text = render_card_text(
            instance.series, instance, records, now=now, formatter=self.formatter,
        )
        return await self._edit(instance.message_handle, text, instance_id)

    async def _edit(self, handle: MessageHandle, text: str, instance_id: UUID) -> bool:
        try:
            await self.publisher.edit(handle, text, instance_id)
        except ExternalDeliveryError as e:
            logger.warning(
                f"Live message edit failed: {e.message}",
                extra={"instance_id": instance_id, "error_code": e.code},
            )
            return False
        return True

    async def _load_records(self, instance_id: UUID) -> list[ParticipationRecord]:
        result = await self.db.execute(
            select(ParticipationRecord)
            .where(ParticipationRecord.instance_id == instance_id)
            .order_by(ParticipationRecord.id),
        )
        return list(result.scalars().all())
