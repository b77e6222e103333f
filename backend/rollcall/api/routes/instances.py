"""Instance Routes - votes, card state, participants, admin interventions, audit.

Invariants:
    - A vote is committed before the live message edit is attempted
    - Live edit failures never change the vote response
    - Admin endpoints delegate authorization to ParticipantAdmin
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.api.dependencies import get_actor_id, get_publisher
from rollcall.core.domain_types import ActorId
from rollcall.core.format_messages import (
    format_audit_action, format_participant_list, render_attendance,
)
from rollcall.core.ledger import Participant, headcount
from rollcall.infrastructure.database import get_db
from rollcall.schemas.instance import (
    AuditPageResponse, AuditRecordResponse, CardResponse, ParticipantAdd,
    ParticipantResponse, ParticipantsResponse, VoteRequest, VoteResponse,
)
from rollcall.services.announcement import AnnouncementService
from rollcall.services.audit_trail import AuditTrail
from rollcall.services.participant_admin import ParticipantAdmin
from rollcall.services.participation_ledger import ParticipationLedger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/instances", tags=["instances"])


def _participants(participants: list[Participant]) -> list[ParticipantResponse]:
    return [
        ParticipantResponse(actor_id=p.actor_id, action=p.action, units=p.units)
        for p in participants
    ]


async def _refresh(db: AsyncSession, publisher, instance_id: UUID) -> None:
    await AnnouncementService(db, publisher).refresh_live_message(instance_id)


# ─── Viewer ─────────────────────────────────────────────────────

@router.get("/{instance_id}/card", response_model=CardResponse)
async def get_card(
    instance_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Card flags and permitted actions for the calling viewer."""
    ledger = ParticipationLedger(db)
    view = await ledger.view_card(instance_id, actor_id, now=datetime.now(timezone.utc))
    instance = await ledger.get_instance(instance_id)
    return CardResponse(
        instance_id=instance.id,
        start_time=instance.start_time,
        is_full=view.state.is_full,
        viewer_joined=view.state.viewer_joined,
        registration_closed=view.state.registration_closed,
        event_ended=view.state.event_ended,
        permitted_actions=sorted(view.permitted, key=lambda a: a.value),
        annotation=view.annotation,
        viewer_action=view.viewer_action,
        participants=_participants(view.participants),
        text=render_attendance(instance.series, instance, view.participants, view.annotation),
    )


@router.post("/{instance_id}/votes", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def vote(
    instance_id: UUID,
    body: VoteRequest,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
    publisher=Depends(get_publisher),
):
    """Append JOIN / PLUS_ONE / LEAVE for the caller, then refresh the group card."""
    result = await ParticipationLedger(db).record_vote(
        instance_id, actor_id, body.action, body.payload,
    )
    await _refresh(db, publisher, instance_id)
    return VoteResponse(
        record_id=result.record.id,
        action=body.action,
        remaining=result.decision.remaining,
        participants=_participants(result.participants),
    )


@router.get("/{instance_id}/participants", response_model=ParticipantsResponse)
async def list_participants(instance_id: UUID, db: AsyncSession = Depends(get_db)):
    participants = await ParticipationLedger(db).current_participants(instance_id)
    return ParticipantsResponse(
        instance_id=instance_id,
        headcount=headcount(participants),
        participants=_participants(participants),
        text=format_participant_list(participants),
    )


# ─── Admin ──────────────────────────────────────────────────────

@router.post(
    "/{instance_id}/participants",
    response_model=AuditRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant(
    instance_id: UUID,
    body: ParticipantAdd,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
    publisher=Depends(get_publisher),
):
    entry = await ParticipantAdmin(db).add_participant(
        instance_id, actor_id, ActorId(body.actor_id),
    )
    await _refresh(db, publisher, instance_id)
    return _audit_response(entry)


@router.delete("/{instance_id}/participants/{participant_id}", response_model=AuditRecordResponse)
async def remove_participant(
    instance_id: UUID,
    participant_id: str,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
    publisher=Depends(get_publisher),
):
    entry = await ParticipantAdmin(db).remove_participant(
        instance_id, actor_id, ActorId(participant_id),
    )
    await _refresh(db, publisher, instance_id)
    return _audit_response(entry)


@router.post("/{instance_id}/registration/close", response_model=AuditRecordResponse)
async def close_registration(
    instance_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return _audit_response(await ParticipantAdmin(db).close_registration(instance_id, actor_id))


@router.post("/{instance_id}/registration/extend", response_model=AuditRecordResponse)
async def extend_registration(
    instance_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return _audit_response(await ParticipantAdmin(db).extend_registration(instance_id, actor_id))


@router.get("/{instance_id}/audit", response_model=AuditPageResponse)
async def list_audit(
    instance_id: UUID,
    limit: int = Query(10, ge=0, le=500),
    offset: int = Query(0, ge=0),
    actor_id: ActorId = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    """Audit history of one instance, newest first. limit=0 returns everything."""
    admin = ParticipantAdmin(db)
    await admin.authorize(instance_id, actor_id)
    page = await AuditTrail(db).list_for_instance(instance_id, limit=limit, offset=offset)
    return AuditPageResponse(
        records=[_audit_response(r) for r in page.records],
        total=page.total,
        has_more=page.has_more,
        limit=limit,
        offset=offset,
    )


def _audit_response(entry) -> AuditRecordResponse:
    response = AuditRecordResponse.model_validate(entry)
    response.text = format_audit_action(entry.action, entry.detail)
    return response
