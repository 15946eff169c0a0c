# tests/services/test_datastore.py
"""
Integration tests for SqlAlchemyDataStore against in-memory SQLite.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lineup_analytics.models import MLPrediction, PortfolioAnalytics, UserPerformanceHistory
from lineup_analytics.services.analytics.calculator import (
    calculate_performance_metrics,
    calculate_risk_metrics,
)
from lineup_analytics.services.analytics.portfolio import optimize_portfolio
from lineup_analytics.services.analytics.prediction import TrailingPerformancePredictor
from lineup_analytics.services.analytics.types import PerformanceReport
from lineup_analytics.services.datastore import SqlAlchemyDataStore
from lineup_analytics.services.exceptions import DataStoreError
from tests.conftest import create_lineup_result, make_lineup_series, make_series


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(session_factory) -> SqlAlchemyDataStore:
    return SqlAlchemyDataStore(
        session_factory,
        min_lineups_for_portfolio=2,
        portfolio_window=timedelta(days=90),
        clock=lambda: NOW,
    )


def _report(user_id: str = "user-1") -> PerformanceReport:
    returns = [0.1, 0.2]  # no losses: unbounded profit factor
    return PerformanceReport(
        user_id=user_id,
        time_frame="30d",
        start=NOW - timedelta(days=30),
        end=NOW,
        sample_count=len(returns),
        performance=calculate_performance_metrics(returns),
        risk=calculate_risk_metrics(returns),
    )


class TestLineupHistory:
    """Tests for get_user_lineup_history."""

    def test_builds_returns_inside_window(self, db, store):
        create_lineup_result(db, entry_fee="10.00", winnings="25.00", completed_at=NOW - timedelta(days=2))
        create_lineup_result(db, lineup_id="lineup-b", entry_fee="20.00", winnings="0.00",
                             completed_at=NOW - timedelta(days=1))
        create_lineup_result(db, entry_fee="0.00", winnings="5.00", completed_at=NOW - timedelta(days=1))
        create_lineup_result(db, entry_fee="10.00", winnings="50.00", completed_at=NOW - timedelta(days=40))
        create_lineup_result(db, user_id="user-2", completed_at=NOW - timedelta(days=1))

        series = store.get_user_lineup_history("user-1", timedelta(days=30))

        assert series.entity_id == "user-1"
        assert series.returns == [1.5, -1.0]
        assert [s.lineup_id for s in series.samples] == ["lineup-a", "lineup-b"]
        assert series.start == NOW - timedelta(days=30)
        assert series.end == NOW
        assert series.samples[0].timestamp.tzinfo is not None

    def test_unknown_user_has_empty_series(self, store):
        assert len(store.get_user_lineup_history("nobody", timedelta(days=30))) == 0


class TestUserListing:
    """Tests for the active and portfolio-eligible user queries."""

    def test_active_users(self, db, store):
        create_lineup_result(db, user_id="user-1", completed_at=NOW - timedelta(days=1))
        create_lineup_result(db, user_id="user-1", completed_at=NOW - timedelta(days=2))
        create_lineup_result(db, user_id="user-2", completed_at=NOW - timedelta(days=10))
        create_lineup_result(db, user_id="user-3", entry_fee="0.00", completed_at=NOW - timedelta(days=1))

        assert store.list_active_users(timedelta(days=7)) == ["user-1"]

    def test_portfolio_eligible_users(self, db, store):
        create_lineup_result(db, user_id="user-1", lineup_id="a", completed_at=NOW - timedelta(days=3))
        create_lineup_result(db, user_id="user-1", lineup_id="b", completed_at=NOW - timedelta(days=2))
        create_lineup_result(db, user_id="user-2", lineup_id="a", completed_at=NOW - timedelta(days=3))
        create_lineup_result(db, user_id="user-2", lineup_id="a", completed_at=NOW - timedelta(days=2))

        assert store.list_portfolio_eligible_users() == ["user-1"]


class TestWrites:
    """Tests for persisting analytics results and retention cleanup."""

    def test_store_performance_report(self, db, store):
        store.store_performance_report("user-1", _report())

        row = db.scalars(select(UserPerformanceHistory)).one()
        assert row.user_id == "user-1"
        assert row.time_frame == "30d"
        assert row.sample_count == 2
        assert row.roi == pytest.approx(0.32)
        # infinity is not valid JSON
        assert row.performance["profit_factor"] is None
        assert row.risk["max_return"] == 0.2

    def test_store_portfolio_analysis(self, db, store):
        series = make_lineup_series({"a": [0.1, 0.2, 0.0], "b": [0.0, -0.1, 0.1]})

        store.store_portfolio_analysis("user-1", optimize_portfolio(series))

        row = db.scalars(select(PortfolioAnalytics)).one()
        assert row.method == "risk_parity"
        assert set(row.weights) == {"a", "b"}
        assert row.correlation["size"] == 2

    def test_store_prediction(self, db, store):
        result = TrailingPerformancePredictor().predict("user-1", make_series([0.1, -0.1]))

        store.store_prediction("user-1", result)
        store.store_prediction("user-1", result)

        rows = db.scalars(select(MLPrediction)).all()
        assert len(rows) == 2
        assert rows[0].prediction_id.startswith("pred_user-1_")
        assert rows[0].prediction_id != rows[1].prediction_id
        assert rows[0].prediction["sample_count"] == 2

    def test_cleanup_older_than(self, db, store):
        store.store_performance_report("user-1", _report())
        store.store_prediction("user-1", TrailingPerformancePredictor().predict("user-1", make_series([0.1])))

        assert store.cleanup_older_than(datetime.now(timezone.utc) - timedelta(days=1)) == 0
        assert store.cleanup_older_than(datetime.now(timezone.utc) + timedelta(seconds=1)) == 2
        assert db.scalar(select(func.count()).select_from(UserPerformanceHistory)) == 0


class TestErrors:
    """Database failures surface as DataStoreError."""

    @pytest.fixture
    def broken_store(self) -> SqlAlchemyDataStore:
        # No tables created
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return SqlAlchemyDataStore(sessionmaker(bind=engine), clock=lambda: NOW)

    def test_read_failure(self, broken_store):
        with pytest.raises(DataStoreError) as exc_info:
            broken_store.list_active_users(timedelta(days=7))

        assert exc_info.value.operation == "list_active_users"

    def test_write_failure(self, broken_store):
        with pytest.raises(DataStoreError):
            broken_store.store_performance_report("user-1", _report())

    def test_cleanup_failure(self, broken_store):
        with pytest.raises(DataStoreError):
            broken_store.cleanup_older_than(NOW)
