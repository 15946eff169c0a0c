# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database fixtures (in-memory SQLite) and lineup result factories
- MockRedisClient: in-memory stand-in for the redis-py calls the cache and
  push sink make
- MockDataStore and RecordingPushSink for worker tests
- Return series factories
"""

import fnmatch
import os
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WORKER_ENABLED", "false")

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lineup_analytics.models import Base, LineupResult
from lineup_analytics.services.analytics.types import ReturnSeries
from lineup_analytics.services.exceptions import DataStoreError


UTC = timezone.utc


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def create_lineup_result(
        db: Session,
        user_id: str = "user-1",
        lineup_id: str = "lineup-a",
        entry_fee: str = "10.00",
        winnings: str = "0.00",
        completed_at: datetime | None = None,
        contest_id: str = "contest-1",
        sport: str = "nba",
) -> LineupResult:
    """Factory to create a completed contest entry."""
    row = LineupResult(
        user_id=user_id,
        lineup_id=lineup_id,
        contest_id=contest_id,
        sport=sport,
        entry_fee=Decimal(entry_fee),
        winnings=Decimal(winnings),
        completed_at=completed_at or datetime.now(UTC),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# =============================================================================
# MOCK REDIS CLIENT
# =============================================================================

class MockPipeline:
    """Buffers SETEX calls until execute(), like a non-transactional pipeline."""

    def __init__(self, client: "MockRedisClient"):
        self._client = client
        self._commands: list[tuple[str, int, str]] = []

    def setex(self, key: str, ttl: int, value: str) -> "MockPipeline":
        self._commands.append((key, ttl, value))
        return self

    def execute(self) -> list[bool]:
        self._client._check()
        self._client.pipeline_executions += 1
        return [self._client.setex(key, ttl, value) for key, ttl, value in self._commands]


class MockRedisClient:
    """
    In-memory implementation of the redis-py subset used by the service.

    Set ``fail = True`` to make every call raise redis.ConnectionError.
    ``mark_expired(key)`` leaves a key visible to SCAN while TTL reports -2,
    the state between expiry and eviction. Keys in ``fail_keys`` make
    ``ttl`` raise for that key only.
    """

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.expired: set[str] = set()
        self.published: list[tuple[str, str]] = []
        self.fail = False
        self.fail_keys: set[str] = set()
        self.closed = False
        self.pipeline_executions = 0
        self.mget_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError("Connection refused")

    def ping(self) -> bool:
        self._check()
        return True

    def get(self, key: str) -> str | None:
        self._check()
        if key in self.expired:
            return None
        return self.store.get(key)

    def set(self, key: str, value: str) -> bool:
        """Write without expiry (test setup only; the service always uses SETEX)."""
        self.store[key] = value
        self.ttls[key] = None
        return True

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        self.expired.discard(key)
        return True

    def mget(self, keys: Sequence[str]) -> list[str | None]:
        self._check()
        self.mget_calls += 1
        return [None if key in self.expired else self.store.get(key) for key in keys]

    def pipeline(self, transaction: bool = True) -> MockPipeline:
        return MockPipeline(self)

    def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                self.expired.discard(key)
                deleted += 1
        return deleted

    def scan_iter(self, match: str | None = None, count: int | None = None) -> Iterator[str]:
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ttl(self, key: str) -> int:
        self._check()
        if key in self.fail_keys:
            raise redis.TimeoutError(f"Timeout reading TTL of {key}")
        if key not in self.store or key in self.expired:
            return -2
        ttl = self.ttls.get(key)
        return -1 if ttl is None else ttl

    def expire(self, key: str, seconds: int) -> bool:
        self._check()
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 1

    def close(self) -> None:
        self.closed = True

    def mark_expired(self, key: str) -> None:
        self.expired.add(key)


@pytest.fixture
def redis_client() -> MockRedisClient:
    return MockRedisClient()


# =============================================================================
# RETURN SERIES FACTORIES
# =============================================================================

def make_series(
        returns: Sequence[float],
        entity_id: str = "user-1",
        lineup_ids: Sequence[str] | None = None,
        start: datetime = datetime(2024, 1, 1, tzinfo=UTC),
        step: timedelta = timedelta(days=1),
) -> ReturnSeries:
    """Build a ReturnSeries with one sample per ``step`` starting at ``start``."""
    timestamps = [start + step * i for i in range(len(returns))]
    return ReturnSeries.from_returns(entity_id, timestamps, list(returns), lineup_ids)


def make_lineup_series(
        returns_by_lineup: dict[str, Sequence[float]],
        entity_id: str = "user-1",
        start: datetime = datetime(2024, 1, 1, tzinfo=UTC),
) -> ReturnSeries:
    """
    Build a multi-lineup series: on day i every lineup contributes its i-th
    return, so each lineup gets its own column in the returns matrix.
    """
    timestamps: list[datetime] = []
    returns: list[float] = []
    lineup_ids: list[str] = []
    days = max(len(values) for values in returns_by_lineup.values())
    for day in range(days):
        for lineup_id, values in returns_by_lineup.items():
            if day < len(values):
                timestamps.append(start + timedelta(days=day))
                returns.append(values[day])
                lineup_ids.append(lineup_id)
    return ReturnSeries.from_returns(entity_id, timestamps, returns, lineup_ids)


def reject_constant(token: str):
    """``parse_constant`` hook for json.loads that fails on Infinity/NaN."""
    raise ValueError(f"non-standard JSON constant: {token}")


# =============================================================================
# WORKER COLLABORATORS
# =============================================================================

class MockDataStore:
    """
    In-memory data store for worker tests.

    Configure ``histories``, ``active_users`` and ``eligible_users``; make
    individual users fail with ``fail_users`` or every listing call fail with
    ``fail_listing``.
    """

    def __init__(self):
        self.histories: dict[str, ReturnSeries] = {}
        self.active_users: list[str] = []
        self.eligible_users: list[str] = []
        self.fail_users: set[str] = set()
        self.fail_listing = False
        self.cleanup_result = 0
        self.cleanup_cutoffs: list[datetime] = []
        self.performance_reports: dict[str, list] = {}
        self.portfolio_analyses: dict[str, list] = {}
        self.predictions: dict[str, list] = {}
        self.history_calls: list[tuple[str, timedelta]] = []

    def add_user(self, user_id: str, series: ReturnSeries, eligible: bool = False) -> None:
        self.histories[user_id] = series
        self.active_users.append(user_id)
        if eligible:
            self.eligible_users.append(user_id)

    def list_active_users(self, window: timedelta) -> list[str]:
        if self.fail_listing:
            raise DataStoreError("list_active_users", "database is down")
        return list(self.active_users)

    def list_portfolio_eligible_users(self) -> list[str]:
        if self.fail_listing:
            raise DataStoreError("list_portfolio_eligible_users", "database is down")
        return list(self.eligible_users)

    def get_user_lineup_history(self, user_id: str, window: timedelta) -> ReturnSeries:
        self.history_calls.append((user_id, window))
        if user_id in self.fail_users:
            raise DataStoreError("get_user_lineup_history", f"cannot read {user_id}")
        return self.histories.get(user_id) or make_series([], entity_id=user_id)

    def store_performance_report(self, user_id, report) -> None:
        self.performance_reports.setdefault(user_id, []).append(report)

    def store_portfolio_analysis(self, user_id, result) -> None:
        self.portfolio_analyses.setdefault(user_id, []).append(result)

    def store_prediction(self, user_id, result) -> None:
        self.predictions.setdefault(user_id, []).append(result)

    def cleanup_older_than(self, cutoff: datetime) -> int:
        self.cleanup_cutoffs.append(cutoff)
        return self.cleanup_result


class RecordingPushSink:
    """Push sink that records events; ``fail = True`` makes sends raise."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []
        self.fail = False

    def send_event(self, kind: str, user_id: str, payload) -> None:
        if self.fail:
            raise redis.ConnectionError("push channel unavailable")
        self.events.append((kind, user_id, dict(payload)))

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.events]


@pytest.fixture
def data_store() -> MockDataStore:
    return MockDataStore()


@pytest.fixture
def push_sink() -> RecordingPushSink:
    return RecordingPushSink()
