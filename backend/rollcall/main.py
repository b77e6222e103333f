"""Rollcall API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map RollcallError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, chat client, wizard store and scheduler are created in the lifespan
      and torn down in reverse order

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Collaborators on app.state: routes reach them through api/dependencies.py,
      tests replace them by assigning app.state attributes
    - No bot token -> no TelegramClient: instances are still materialized, nothing is sent
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rollcall.api.error_handlers import register_error_handlers
from rollcall.api.routes import health, instances, series, wizard
from rollcall.config import get_settings
from rollcall.core.wizard_session import WizardSessionStore
from rollcall.infrastructure.database import init_db
from rollcall.infrastructure.observability import setup_logging
from rollcall.infrastructure.telegram_client import TelegramClient
from rollcall.services.materializer import Materializer
from rollcall.services.scheduler import SchedulerDriver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )

    telegram = None
    if settings.telegram_bot_token:
        telegram = TelegramClient(
            settings.telegram_bot_token,
            api_base=settings.telegram_api_base,
            max_retries=settings.telegram_max_retries,
            base_delay_ms=settings.telegram_base_delay_ms,
            max_delay_ms=settings.telegram_max_delay_ms,
            timeout_seconds=settings.telegram_timeout_seconds,
        )
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set, announcements are disabled")
    app.state.telegram = telegram
    app.state.wizard_store = WizardSessionStore(
        timeout=timedelta(seconds=settings.wizard_timeout_seconds),
    )

    scheduler = SchedulerDriver(
        Materializer(
            manager.session,
            publisher=telegram,
            notifier=telegram,
            horizon=timedelta(minutes=settings.materializer_horizon_minutes),
        ),
        interval_seconds=settings.scheduler_interval_seconds,
    )
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        scheduler.start()

    logger.info("Rollcall API started")
    yield
    logger.info("Rollcall API shutting down")

    await scheduler.stop()
    if telegram is not None:
        await telegram.aclose()
    await manager.dispose()


app = FastAPI(title="Rollcall API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(series.router)
app.include_router(instances.router)
app.include_router(wizard.router)

register_error_handlers(app)
