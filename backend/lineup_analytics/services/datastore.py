# backend/lineup_analytics/services/datastore.py
"""
SQLAlchemy implementation of the worker's data store.

Reads completed contest entries from ``lineup_results`` and writes analytics
results to ``user_performance_history``, ``portfolio_analytics`` and
``ml_predictions``. Each call opens its own short session, so the store is
safe to share between the worker's task threads.

Database errors surface as DataStoreError; the worker counts them per user
and moves on.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lineup_analytics.models import (
    LineupResult,
    MLPrediction,
    PortfolioAnalytics,
    UserPerformanceHistory,
)
from lineup_analytics.services.analytics.types import (
    PerformanceReport,
    PortfolioAnalysis,
    PredictionResult,
    ReturnSeries,
    json_safe,
)
from lineup_analytics.services.exceptions import DataStoreError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class SqlAlchemyDataStore:
    """
    Data store backed by the application database.

    Args:
        session_factory: Callable returning a new Session (e.g. SessionLocal)
        min_lineups_for_portfolio: Distinct lineups a user needs for
                                   portfolio analysis
        portfolio_window: Look-back used to decide portfolio eligibility
        clock: Returns the current UTC time; replaceable in tests
        logger: Logger to use (defaults to this module's)
    """

    def __init__(
            self,
            session_factory: Callable[[], Session],
            min_lineups_for_portfolio: int = 10,
            portfolio_window: timedelta = timedelta(days=90),
            clock: Callable[[], datetime] = _utcnow,
            logger: logging.Logger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.min_lineups_for_portfolio = min_lineups_for_portfolio
        self.portfolio_window = portfolio_window
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    # =========================================================================
    # READS
    # =========================================================================

    def list_active_users(self, window: timedelta) -> list[str]:
        """Users with at least one paid entry completed inside ``window``."""
        cutoff = self._clock() - window
        stmt = (
            select(distinct(LineupResult.user_id))
            .where(LineupResult.completed_at >= cutoff)
            .where(LineupResult.entry_fee > 0)
            .order_by(LineupResult.user_id)
        )
        try:
            with self._session_factory() as session:
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise DataStoreError("list_active_users", str(e)) from e

    def list_portfolio_eligible_users(self) -> list[str]:
        """Users with at least ``min_lineups_for_portfolio`` distinct lineups in the portfolio window."""
        cutoff = self._clock() - self.portfolio_window
        stmt = (
            select(LineupResult.user_id)
            .where(LineupResult.completed_at >= cutoff)
            .where(LineupResult.entry_fee > 0)
            .group_by(LineupResult.user_id)
            .having(func.count(distinct(LineupResult.lineup_id)) >= self.min_lineups_for_portfolio)
            .order_by(LineupResult.user_id)
        )
        try:
            with self._session_factory() as session:
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise DataStoreError("list_portfolio_eligible_users", str(e)) from e

    def get_user_lineup_history(self, user_id: str, window: timedelta) -> ReturnSeries:
        """
        Build the user's return series over ``window``, oldest entry first.

        Each entry's return is (winnings - entry_fee) / entry_fee; free
        entries are left out.
        """
        now = self._clock()
        start = now - window
        stmt = (
            select(LineupResult)
            .where(LineupResult.user_id == user_id)
            .where(LineupResult.completed_at >= start)
            .where(LineupResult.entry_fee > 0)
            .order_by(LineupResult.completed_at, LineupResult.id)
        )
        try:
            with self._session_factory() as session:
                rows = list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise DataStoreError("get_user_lineup_history", str(e)) from e

        series = ReturnSeries.from_returns(
            entity_id=user_id,
            timestamps=[_as_utc(row.completed_at) for row in rows],
            returns=[float((row.winnings - row.entry_fee) / row.entry_fee) for row in rows],
            lineup_ids=[row.lineup_id for row in rows],
        )
        # The window, not the first/last entry, bounds the series
        return ReturnSeries(entity_id=user_id, start=start, end=now, samples=series.samples)

    # =========================================================================
    # WRITES
    # =========================================================================

    def _commit(self, operation: str, row: object) -> None:
        try:
            with self._session_factory() as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as e:
            raise DataStoreError(operation, str(e)) from e

    def store_performance_report(self, user_id: str, report: PerformanceReport) -> None:
        self._commit("store_performance_report", UserPerformanceHistory(
            user_id=user_id,
            time_frame=report.time_frame,
            period_start=report.start,
            period_end=report.end,
            sample_count=report.sample_count,
            roi=report.performance.roi,
            sharpe_ratio=report.performance.sharpe_ratio,
            max_drawdown=report.performance.max_drawdown,
            win_rate=report.performance.win_rate,
            consistency_score=report.performance.consistency_score,
            performance=json_safe(report.performance.to_dict()),
            risk=json_safe(report.risk.to_dict()),
        ))

    def store_portfolio_analysis(self, user_id: str, result: PortfolioAnalysis) -> None:
        self._commit("store_portfolio_analysis", PortfolioAnalytics(
            user_id=user_id,
            method=result.method.value,
            expected_return=result.expected_return,
            risk=result.risk,
            sharpe_ratio=result.sharpe_ratio,
            diversification_score=result.diversification_score,
            weights=result.weights,
            risk_contribution=result.risk_contribution,
            correlation=json_safe(result.correlation.to_dict()),
            optimization_time_ms=result.optimization_time_ms,
        ))

    def store_prediction(self, user_id: str, result: PredictionResult) -> None:
        self._commit("store_prediction", MLPrediction(
            prediction_id=f"pred_{user_id}_{uuid.uuid4().hex}",
            user_id=user_id,
            model_id=result.model_id,
            model_version=result.model_version,
            prediction_type=result.prediction_type,
            prediction=json_safe(result.to_dict()),
            confidence=result.confidence,
        ))

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Delete analytics rows created before ``cutoff`` from every results table."""
        deleted = 0
        try:
            with self._session_factory() as session:
                for model in (UserPerformanceHistory, PortfolioAnalytics, MLPrediction):
                    outcome = session.execute(delete(model).where(model.created_at < cutoff))
                    deleted += outcome.rowcount or 0
                session.commit()
        except SQLAlchemyError as e:
            raise DataStoreError("cleanup_older_than", str(e)) from e

        self._logger.info(f"Deleted {deleted} analytics rows older than {cutoff.isoformat()}")
        return deleted
