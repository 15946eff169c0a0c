# backend/lineup_analytics/services/protocols.py
"""
Protocol interfaces for the analytics worker's collaborators.

Using typing.Protocol enables structural subtyping:
- The SQLAlchemy store, the push sinks and the predictor satisfy these
  without inheriting from them
- Test doubles work without explicit inheritance
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from lineup_analytics.services.analytics.types import (
        PerformanceReport,
        PortfolioAnalysis,
        PredictionResult,
        ReturnSeries,
    )


class DataStoreProtocol(Protocol):
    """Read lineup history and persist analytics results."""

    def list_active_users(self, window: timedelta) -> list[str]:
        """Users with at least one completed entry inside ``window``."""
        ...

    def list_portfolio_eligible_users(self) -> list[str]:
        """Users with enough distinct lineups for portfolio analysis."""
        ...

    def get_user_lineup_history(self, user_id: str, window: timedelta) -> ReturnSeries:
        ...

    def store_performance_report(self, user_id: str, report: PerformanceReport) -> None:
        ...

    def store_portfolio_analysis(self, user_id: str, result: PortfolioAnalysis) -> None:
        ...

    def store_prediction(self, user_id: str, result: PredictionResult) -> None:
        ...

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Delete analytics rows created before ``cutoff``; returns the row count."""
        ...


class PushSinkProtocol(Protocol):
    """Fire-and-forget delivery of analytics events to connected clients."""

    def send_event(self, kind: str, user_id: str, payload: Mapping[str, Any]) -> None:
        ...


class PredictorProtocol(Protocol):
    """Model refreshed periodically from all users' histories."""

    def refresh(self, histories: Mapping[str, ReturnSeries]) -> Any:
        ...

    def predict(self, user_id: str, series: ReturnSeries) -> PredictionResult:
        ...
