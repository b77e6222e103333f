"""Instance Schemas - votes, card state, participants and audit pages.

Invariants:
    - VoteRequest.action is a ParticipationAction; anything else is a 400
    - ParticipantAdd.actor_id is the canonical chat identity string
    - AuditPageResponse.limit=0 means the whole history was requested
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from rollcall.core.domain_types import ParticipationAction


class VoteRequest(BaseModel):
    action: ParticipationAction
    payload: dict | None = None


class ParticipantResponse(BaseModel):
    actor_id: str
    action: ParticipationAction
    units: int


class VoteResponse(BaseModel):
    record_id: int
    action: ParticipationAction
    remaining: int | None
    participants: list[ParticipantResponse]


class CardResponse(BaseModel):
    """What one viewer sees and may do on an event card."""
    instance_id: UUID
    start_time: datetime
    is_full: bool
    viewer_joined: bool
    registration_closed: bool
    event_ended: bool
    permitted_actions: list[ParticipationAction]
    annotation: str
    viewer_action: ParticipationAction | None
    participants: list[ParticipantResponse]
    text: str


class ParticipantsResponse(BaseModel):
    instance_id: UUID
    headcount: int
    participants: list[ParticipantResponse]
    text: str


class ParticipantAdd(BaseModel):
    actor_id: str = Field(min_length=1, max_length=64)


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    detail: dict
    occurred_at: datetime
    text: str = ""


class AuditPageResponse(BaseModel):
    records: list[AuditRecordResponse]
    total: int
    has_more: bool
    limit: int
    offset: int
