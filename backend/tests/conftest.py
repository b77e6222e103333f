"""Root conftest - shared test configuration."""

import os

# Tests never talk to a real bot or a real database
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
