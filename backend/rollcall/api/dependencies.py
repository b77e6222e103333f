"""Route Dependencies - caller identity and app-scoped collaborators.

Invariants:
    - Caller identity comes from the X-Actor-Id header only; missing header -> 400
    - Collaborators live on app.state (set by the lifespan); absent ones resolve to
      None (publisher) or are created on first use (wizard store)
    - Manual materialization goes through the app's SchedulerDriver, so it shares the
      one-run-in-flight lock with the background loop
    - A scheduler built on demand uses the CURRENT db_manager, never a stale import
"""

from datetime import timedelta

from fastapi import Header, Request

import rollcall.infrastructure.database as database
from rollcall.config import get_settings
from rollcall.core.domain_types import ActorId
from rollcall.core.wizard_session import WizardSessionStore
from rollcall.infrastructure.telegram_client import TelegramClient
from rollcall.services.materializer import Materializer
from rollcall.services.scheduler import SchedulerDriver


async def get_actor_id(
    x_actor_id: str = Header(..., alias="X-Actor-Id", min_length=1, max_length=64),
) -> ActorId:
    return ActorId(x_actor_id.strip())


def get_publisher(request: Request) -> TelegramClient | None:
    return getattr(request.app.state, "telegram", None)


def get_wizard_store(request: Request) -> WizardSessionStore:
    store = getattr(request.app.state, "wizard_store", None)
    if store is None:
        settings = get_settings()
        store = WizardSessionStore(timeout=timedelta(seconds=settings.wizard_timeout_seconds))
        request.app.state.wizard_store = store
    return store


def get_scheduler(request: Request) -> SchedulerDriver:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        if database.db_manager is None:
            raise RuntimeError("Database not initialized")
        settings = get_settings()
        publisher = get_publisher(request)
        scheduler = SchedulerDriver(
            Materializer(
                database.db_manager.session,
                publisher=publisher,
                notifier=publisher,
                horizon=timedelta(minutes=settings.materializer_horizon_minutes),
            ),
            interval_seconds=settings.scheduler_interval_seconds,
        )
        request.app.state.scheduler = scheduler
    return scheduler
