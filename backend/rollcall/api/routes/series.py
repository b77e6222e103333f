"""Series Routes - create, list, remove, announce and materialize recurring series.

Invariants:
    - Every endpoint acts on behalf of the X-Actor-Id caller's tenant
    - Domain errors propagate to the global RollcallError handler (no try/except here)
    - Materialize runs only the requested series and returns the run report; it takes
      the scheduler lock and answers 409 while another run is in flight
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.api.dependencies import get_actor_id, get_publisher, get_scheduler
from rollcall.config import get_settings
from rollcall.core.domain_types import ActorId
from rollcall.core.errors import ErrorContext, ResourceNotFoundError
from rollcall.core.format_messages import format_groups_message
from rollcall.infrastructure.database import get_db
from rollcall.models.event_series import EventSeries
from rollcall.schemas.series import (
    InstanceSummary, MaterializationResponse, SeriesCreate,
    SeriesOverviewResponse, SeriesResponse,
)
from rollcall.services.announcement import AnnouncementService
from rollcall.services.scheduler import SchedulerDriver
from rollcall.services.series_service import SeriesService
from rollcall.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/series", tags=["series"])


def _series_service(db: AsyncSession) -> SeriesService:
    settings = get_settings()
    return SeriesService(
        db, settings.default_timezone, settings.default_event_duration_minutes,
    )


@router.post("", response_model=SeriesResponse, status_code=status.HTTP_201_CREATED)
async def create_series(
    body: SeriesCreate,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a recurring series for the caller's tenant."""
    return await _series_service(db).create_series(
        actor_id,
        body.title,
        body.recurrence,
        description=body.description,
        timezone_name=body.timezone,
        chat_id=body.chat_id,
        topic_id=body.topic_id,
        capacity_limit=body.capacity_limit,
        duration_minutes=body.duration_minutes,
    )


@router.get("", response_model=list[SeriesOverviewResponse])
async def list_series(
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Active series of the caller's tenant with their next instances."""
    overviews = await _series_service(db).list_active_series(actor_id)
    return [
        SeriesOverviewResponse(
            **SeriesResponse.model_validate(o.series).model_dump(),
            upcoming=[InstanceSummary.model_validate(i) for i in o.upcoming],
        )
        for o in overviews
    ]


@router.get("/groups")
async def list_groups(
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Group chats targeted by the tenant's series, most used first."""
    directory = TenantDirectory(db)
    tenant = await directory.require_tenant(actor_id)
    groups = await directory.list_groups(tenant.id)
    return {
        "groups": [{"chat_id": chat_id, "series_count": n} for chat_id, n in groups],
        "text": format_groups_message(groups),
    }


@router.delete("/{series_id}", response_model=SeriesResponse)
async def remove_series(
    series_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete: stops materialization, keeps history."""
    return await _series_service(db).deactivate_series(series_id, actor_id)


@router.post("/{series_id}/announce", response_model=InstanceSummary)
async def announce_series(
    series_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
    publisher=Depends(get_publisher),
):
    """Publish the next upcoming instance to the series' group chat."""
    return await AnnouncementService(db, publisher).announce_next(series_id, actor_id)


@router.post("/{series_id}/materialize", response_model=MaterializationResponse)
async def materialize_series(
    series_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
    scheduler: SchedulerDriver = Depends(get_scheduler),
):
    """Run one materialization pass for a single series now."""
    series = await db.get(EventSeries, series_id)
    if series is None or not series.is_active:
        raise ResourceNotFoundError(
            "EventSeries", str(series_id), ErrorContext(series_id=str(series_id)),
        )
    await TenantDirectory(db).require_admin_of(actor_id, series.tenant_id)
    # materializer opens its own sessions
    await db.commit()

    report = await scheduler.run_now(series_ids=[series_id])
    return MaterializationResponse(
        created=report.created,
        announced=report.announced,
        skipped=report.skipped,
        failed_series=report.failed_series,
    )
