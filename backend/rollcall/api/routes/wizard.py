"""Wizard Routes - HTTP face of the per-actor series creation wizard.

Invariants:
    - One session per caller; POST /start replaces any previous one
    - An expired or missing session is a 404 with a "start again" message
    - Confirm creates the series through SeriesService and clears the session
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.api.dependencies import get_actor_id, get_wizard_store
from rollcall.config import get_settings
from rollcall.core.domain_types import ActorId
from rollcall.core.errors import ErrorContext, ResourceNotFoundError
from rollcall.core.wizard_session import WizardSessionStore
from rollcall.infrastructure.database import get_db
from rollcall.schemas.series import SeriesResponse
from rollcall.schemas.wizard import WizardResponse, WizardUpdate
from rollcall.services.series_service import SeriesService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/wizard", tags=["wizard"])


def _expired(actor_id: ActorId) -> ResourceNotFoundError:
    return ResourceNotFoundError(
        "WizardSession", str(actor_id),
        ErrorContext(
            actor_id=str(actor_id),
            user_message="Session expired. Please start again with /create",
        ),
    )


@router.post("/start", response_model=WizardResponse, status_code=status.HTTP_201_CREATED)
async def start_wizard(
    actor_id: ActorId = Depends(get_actor_id),
    store: WizardSessionStore = Depends(get_wizard_store),
):
    return WizardResponse.from_session(store.start(actor_id))


@router.get("", response_model=WizardResponse)
async def get_wizard(
    actor_id: ActorId = Depends(get_actor_id),
    store: WizardSessionStore = Depends(get_wizard_store),
):
    session = store.get(actor_id)
    if session is None:
        raise _expired(actor_id)
    return WizardResponse.from_session(session)


@router.patch("", response_model=WizardResponse)
async def answer_wizard(
    body: WizardUpdate,
    actor_id: ActorId = Depends(get_actor_id),
    store: WizardSessionStore = Depends(get_wizard_store),
):
    """Record one or more answers; the response names the next step."""
    session = store.update(actor_id, **body.model_dump(exclude_unset=True))
    if session is None:
        raise _expired(actor_id)
    return WizardResponse.from_session(session)


@router.post("/confirm", response_model=SeriesResponse, status_code=status.HTTP_201_CREATED)
async def confirm_wizard(
    actor_id: ActorId = Depends(get_actor_id),
    store: WizardSessionStore = Depends(get_wizard_store),
    db: AsyncSession = Depends(get_db),
):
    settings = get_settings()
    service = SeriesService(
        db, settings.default_timezone, settings.default_event_duration_minutes,
    )
    return await service.create_from_wizard(actor_id, store)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_wizard(
    actor_id: ActorId = Depends(get_actor_id),
    store: WizardSessionStore = Depends(get_wizard_store),
):
    store.clear(actor_id)
