"""
Shared fixtures: a throwaway SQLite database per test, deterministic clocks
and the full service stack wired the way ScoreboardBot.setup_hook wires it.
"""

from datetime import datetime, timedelta

import pytest

from scoreboard.database.database import Database
from scoreboard.services.action_tokens import ActionTokenService, MemoryTokenStore
from scoreboard.services.broadcast import BroadcastHub
from scoreboard.services.leaderboard_store import LeaderboardStore
from scoreboard.services.score_ledger import ScoreLedger
from scoreboard.services.synchronizer import Synchronizer
from scoreboard.services.update_coordinator import UpdateCoordinator

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
MAX_SCORE = 1000


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


class TickingClock:
    """Naive UTC datetimes, one second apart on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger_clock():
    return TickingClock()


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'scoreboard_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def token_store(clock):
    return MemoryTokenStore(clock=clock)


@pytest.fixture
def token_service(token_store, clock):
    return ActionTokenService(
        token_store,
        TEST_SECRET,
        ttl_seconds=60,
        consumed_retention_seconds=120,
        clock=clock,
        retry_base_delay=0,
    )


@pytest.fixture
def ledger(db, ledger_clock):
    return ScoreLedger(
        db.session_factory,
        max_score=MAX_SCORE,
        clock=ledger_clock,
        max_retries=5,
        retry_base_delay=0,
    )


@pytest.fixture
def leaderboard_store():
    return LeaderboardStore(size=3)


@pytest.fixture
def broadcaster(leaderboard_store):
    return BroadcastHub(leaderboard_store, queue_size=4)


@pytest.fixture
def synchronizer(ledger, leaderboard_store, broadcaster):
    return Synchronizer(ledger, leaderboard_store, broadcaster)


@pytest.fixture
def coordinator(token_service, ledger, leaderboard_store, broadcaster):
    return UpdateCoordinator(
        token_service, ledger, leaderboard_store, broadcaster,
        max_delta=100, default_increment=10,
    )
