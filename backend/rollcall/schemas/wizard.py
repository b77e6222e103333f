"""Wizard Schemas - partial answers for the step-by-step series wizard.

Invariants:
    - WizardUpdate only carries fields the caller is answering (exclude_unset)
    - Content checks (frequency, day, time format) live in WizardSessionStore.update
"""

from datetime import datetime

from pydantic import BaseModel, Field

from rollcall.core.wizard_session import WizardSession


class WizardUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    frequency: str | None = None
    day: str | None = None
    time: str | None = None
    chat_id: str | None = Field(None, max_length=64)
    topic_id: str | None = Field(None, max_length=64)
    capacity_limit: int | None = Field(None, ge=0)


class WizardResponse(BaseModel):
    actor_id: str
    step: str
    title: str | None
    frequency: str | None
    day: str | None
    time: str | None
    chat_id: str | None
    topic_id: str | None
    capacity_limit: int | None
    last_activity: datetime

    @classmethod
    def from_session(cls, session: WizardSession) -> "WizardResponse":
        return cls(
            actor_id=session.actor_id,
            step=session.step.value,
            title=session.title,
            frequency=session.frequency,
            day=session.day.value if session.day else None,
            time=session.time,
            chat_id=session.chat_id,
            topic_id=session.topic_id,
            capacity_limit=session.capacity_limit,
            last_activity=session.last_activity,
        )
