"""Materializer - turns active series into concrete instances on a rolling horizon.

Invariants:
    - (series_id, start_time) is created at most once, whatever the number of runs
      or concurrent runners: lookup first, unique constraint as the backstop
    - Side effects (publish, admin notice) follow ONLY a successful create, so a
      re-run never repeats them
    - A publish failure of any kind never rolls back the instance; the handle stays
      empty and the admin notice still goes out
    - One failing series never stops the batch: its session is rolled back,
      it is listed in the report, the loop moves on
    - Horizon is [now, now + horizon], end inclusive

Design Decisions:
    - Series are snapshotted in a short first session, each series then gets its own
      session: a rollback can never expire another series' state mid-batch
    - One commit per created instance: partial progress survives a later failure
    - Admin notices fan out one message per admin, each best-effort
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import InstanceId, SeriesId, SeriesSnapshot
from rollcall.core.errors import ExternalDeliveryError
from rollcall.core.format_messages import format_admin_notice, render_attendance
from rollcall.core.recurrence import expand_occurrences, parse_recurrence
from rollcall.core.repository_protocols import (
    AdminDirectory, AdminNotifier, AnnouncementPublisher, MessageFormatter,
)
from rollcall.models.event_instance import EventInstance
from rollcall.models.event_series import EventSeries
from rollcall.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass
class MaterializationReport:
    created: list[InstanceId] = field(default_factory=list)
    announced: list[InstanceId] = field(default_factory=list)
    skipped: int = 0
    failed_series: list[SeriesId] = field(default_factory=list)


class Materializer:
    """Idempotent instance creation plus announcement side effects."""

    def __init__(
        self,
        session_factory: SessionFactory,
        publisher: AnnouncementPublisher | None = None,
        notifier: AdminNotifier | None = None,
        horizon: timedelta = timedelta(minutes=10),
        formatter: MessageFormatter = render_attendance,
        admin_directory: Callable[[AsyncSession], AdminDirectory] = TenantDirectory,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.notifier = notifier
        self.horizon = horizon
        self.formatter = formatter
        self.admin_directory = admin_directory

    async def run(
        self, now: datetime | None = None, series_ids: list[UUID] | None = None,
    ) -> MaterializationReport:
        """Materialize every active series (or only series_ids) for [now, now + horizon]."""
        now = now or datetime.now(timezone.utc)
        report = MaterializationReport()

        async with self.session_factory() as db:
            snapshots = await self._load_active_series(db, series_ids)

        for snapshot in snapshots:
            try:
                await self._materialize_series(snapshot, now, report)
            except Exception as e:
                logger.error(
                    f"Materialization failed for series: {e}",
                    extra={"series_id": snapshot.id, "tenant_id": snapshot.tenant_id},
                    exc_info=True,
                )
                report.failed_series.append(snapshot.id)

        logger.info(
            f"Materializer run: {len(report.created)} created, "
            f"{len(report.announced)} announced, {report.skipped} skipped, "
            f"{len(report.failed_series)} failed",
        )
        return report

    async def _load_active_series(
        self, db: AsyncSession, series_ids: list[UUID] | None,
    ) -> list[SeriesSnapshot]:
        query = select(EventSeries).where(EventSeries.is_active.is_(True))
        if series_ids is not None:
            query = query.where(EventSeries.id.in_(series_ids))
        result = await db.execute(query.order_by(EventSeries.created_at))
        return [SeriesSnapshot.from_model(s) for s in result.scalars().all()]

    async def _materialize_series(
        self, snapshot: SeriesSnapshot, now: datetime, report: MaterializationReport,
    ) -> None:
        rule = parse_recurrence(
            snapshot.recurrence,
            timezone=snapshot.timezone,
            default_dtstart=snapshot.created_at,
        )
        occurrences = expand_occurrences(rule, now, now + self.horizon, inclusive_end=True)
        if not occurrences:
            return

        async with self.session_factory() as db:
            try:
                for start in occurrences:
                    instance = await self._create_instance(db, snapshot, start)
                    if instance is None:
                        report.skipped += 1
                        continue
                    report.created.append(instance.id)
                    announced = await self._announce(db, snapshot, instance)
                    if announced:
                        report.announced.append(instance.id)
                    await self._notify_admins(db, snapshot, instance, announced)
            except Exception:
                await db.rollback()
                raise

    async def _create_instance(
        self, db: AsyncSession, snapshot: SeriesSnapshot, start: datetime,
    ) -> EventInstance | None:
        """Insert the instance unless it exists. None means already materialized."""
        existing = await db.execute(
            select(EventInstance.id)
            .where(EventInstance.series_id == snapshot.id)
            .where(EventInstance.start_time == start),
        )
        if existing.scalar_one_or_none() is not None:
            return None

        instance = EventInstance(
            series_id=snapshot.id,
            start_time=start,
            end_time=start + timedelta(minutes=snapshot.duration_minutes),
        )
        db.add(instance)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(
                f"Instance at {start.isoformat()} created concurrently, skipping",
                extra={"series_id": snapshot.id},
            )
            return None
        logger.info(
            f"Materialized instance at {start.isoformat()}",
            extra={"series_id": snapshot.id, "instance_id": instance.id},
        )
        return instance

    async def _announce(
        self, db: AsyncSession, snapshot: SeriesSnapshot, instance: EventInstance,
    ) -> bool:
        if not snapshot.chat_id or self.publisher is None:
            return False
        text = self.formatter(snapshot, instance, [], "")
        try:
            handle = await self.publisher.publish(
                snapshot.chat_id, snapshot.topic_id, text, instance.id,
            )
        except ExternalDeliveryError as e:
            logger.warning(
                f"Announcement failed, instance kept without handle: {e.message}",
                extra={"series_id": snapshot.id, "instance_id": instance.id, "error_code": e.code},
            )
            return False
        except Exception as e:
            logger.error(
                f"Announcement raised {type(e).__name__}, instance kept without handle: {e}",
                extra={"series_id": snapshot.id, "instance_id": instance.id},
                exc_info=True,
            )
            return False
        instance.attach_message_handle(handle)
        await db.commit()
        return True

    async def _notify_admins(
        self,
        db: AsyncSession,
        snapshot: SeriesSnapshot,
        instance: EventInstance,
        announced: bool,
    ) -> None:
        if self.notifier is None:
            return
        admins = await self.admin_directory(db).list_admins(snapshot.tenant_id)
        text = format_admin_notice(snapshot, instance, announced)
        for admin in admins:
            try:
                await self.notifier.notify(admin.recipient_id, text)
            except ExternalDeliveryError as e:
                logger.warning(
                    f"Admin notice failed: {e.message}",
                    extra={"instance_id": instance.id, "actor_id": admin.recipient_id},
                )
