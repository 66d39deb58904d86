"""pytest configuration for SMS router tests."""

import os
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add src directory to path so tests can import smsrouter
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# In-memory database and no Redis for test isolation
os.environ["SMSROUTER_DB_PATH"] = ":memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault("SMSROUTER_TIMEZONE", "America/New_York")

from smsrouter.db import init_db  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_conn():
    """Fresh in-memory database with migrations applied."""
    conn = init_db(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def phone() -> str:
    return "+12125550100"


@pytest.fixture
def service_number() -> str:
    return "+17185550199"
