"""Shared test fixtures and configuration.

Sets up fake environment variables so slotmatch.config doesn't sys.exit(),
and provides temp SQLite stores, a controllable clock and a mock notifier.
"""

import os

# Patch env vars BEFORE any slotmatch imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest


class FixedClock:
    """ClockPort whose time only moves when a test moves it."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2024-01-01 09:00 UTC (a Monday)."""
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_slotmatch.db")


@pytest.fixture
def schedule_db(tmp_db_path):
    from slotmatch.data.db import ScheduleDB
    return ScheduleDB(db_path=tmp_db_path)


@pytest.fixture
def booking_db(tmp_db_path):
    from slotmatch.data.db import BookingDB
    return BookingDB(db_path=tmp_db_path)


@pytest.fixture
def waitlist_db(tmp_db_path):
    from slotmatch.data.db import WaitlistDB
    return WaitlistDB(db_path=tmp_db_path)
