# Set environment variables to indicate we're running tests
import os

os.environ["TESTING"] = "True"
os.environ["MATCHMAKER_AUTOSTART"] = "False"
os.environ["QUEUE_BACKEND"] = "memory"

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from duelqueue.business.matchmaking import (
    MatchmakingDriver,
    OutcomeBroker,
    PairingCommitter,
    ProximityMatcher,
    RangeEscalationPolicy,
)
from duelqueue.business.services import MatchmakingService
from duelqueue.config import logger
from duelqueue.data.repositories import InMemoryQueueStore

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryQueueStore(clock=clock)


@pytest.fixture
def policy():
    return RangeEscalationPolicy(
        steps=[(0, 50), (60, 200), (120, 300)], desperation_timeout=125
    )


@pytest.fixture
def matcher(policy):
    return ProximityMatcher(policy, close_range=50)


@pytest.fixture
def notify_player():
    return AsyncMock()


@pytest.fixture
def broker(notify_player, clock):
    return OutcomeBroker(notify_player=notify_player, clock=clock)


@pytest.fixture
def create_match():
    counter = {"n": 0}

    async def _create(player1, player2, mode, puzzle):
        counter["n"] += 1
        return f"match-{counter['n']}"

    return AsyncMock(side_effect=_create)


@pytest.fixture
def committer(store, create_match, broker):
    return PairingCommitter(store, create_match=create_match, broker=broker)


@pytest.fixture
def driver(store, matcher, committer, broker, clock):
    return MatchmakingDriver(
        store,
        matcher,
        committer,
        broker=broker,
        modes=["ranked", "casual"],
        tick_interval=0.01,
        max_wait=300,
        clock=clock,
    )


@pytest.fixture
def ratings():
    return {}


@pytest.fixture
def service(store, driver, broker, policy, ratings, clock):
    async def rating_provider(user_id):
        return ratings.get(user_id, 1000)

    return MatchmakingService(
        store,
        driver,
        broker,
        policy,
        rating_provider=rating_provider,
        modes=["ranked", "casual"],
        close_range=50,
        clock=clock,
    )


# Disable logging during tests
@pytest.fixture(autouse=True)
def disable_logging():
    logger.disabled = True
    yield
    logger.disabled = False
