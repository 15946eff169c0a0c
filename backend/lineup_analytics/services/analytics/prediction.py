# backend/lineup_analytics/services/analytics/prediction.py
"""
Baseline next-contest predictor.

Shrinks each user's observed mean return and win rate toward the
population averages fitted at the last refresh:

    expected_return = (n · mean_u + k · mean_pop) / (n + k)
    win_probability = (wins_u + k · p_pop) / (n + k)
    confidence      = n / (n + k)

where n is the number of the user's samples and k the prior strength.
Users with a short history lean on the population; long histories speak
for themselves. Refreshing bumps the model version so stored predictions
can be traced to the fit that produced them.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from lineup_analytics.services.analytics.returns import calculate_mean
from lineup_analytics.services.analytics.types import PredictionResult, ReturnSeries
from lineup_analytics.services.constants import (
    MODEL_ID,
    PREDICTION_PRIOR_STRENGTH,
    PREDICTION_TYPE,
)


@dataclass(frozen=True)
class ModelSnapshot:
    """Population prior produced by one refresh."""
    version: int
    prior_mean_return: float
    prior_win_rate: float
    sample_count: int
    user_count: int
    refreshed_at: datetime | None


class TrailingPerformancePredictor:
    """
    Shrinkage predictor over trailing lineup returns.

    ``refresh`` and ``predict`` may run on different threads; the current
    snapshot is swapped under a lock and read as a whole.
    """

    def __init__(
            self,
            prior_strength: float = PREDICTION_PRIOR_STRENGTH,
            logger: logging.Logger | None = None,
    ) -> None:
        if prior_strength <= 0:
            raise ValueError("prior_strength must be positive")
        self.prior_strength = prior_strength
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._snapshot = ModelSnapshot(
            version=0,
            prior_mean_return=0.0,
            prior_win_rate=0.5,
            sample_count=0,
            user_count=0,
            refreshed_at=None,
        )

    @property
    def snapshot(self) -> ModelSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def model_version(self) -> int:
        return self.snapshot.version

    def refresh(self, histories: Mapping[str, ReturnSeries]) -> ModelSnapshot:
        """
        Refit the population prior from every user's history.

        An empty population keeps the previous prior but still bumps the
        version, so a refresh is always observable.
        """
        returns = [r for series in histories.values() for r in series.returns]

        with self._lock:
            previous = self._snapshot
            if returns:
                prior_mean = calculate_mean(returns)
                prior_win = sum(1 for r in returns if r > 0) / len(returns)
            else:
                prior_mean = previous.prior_mean_return
                prior_win = previous.prior_win_rate

            self._snapshot = ModelSnapshot(
                version=previous.version + 1,
                prior_mean_return=prior_mean,
                prior_win_rate=prior_win,
                sample_count=len(returns),
                user_count=sum(1 for s in histories.values() if len(s) > 0),
                refreshed_at=datetime.now(timezone.utc),
            )
            snapshot = self._snapshot

        self._logger.info(
            f"Model refreshed to v{snapshot.version}: "
            f"{snapshot.user_count} users, {snapshot.sample_count} samples, "
            f"prior_mean={snapshot.prior_mean_return:.4f}, "
            f"prior_win_rate={snapshot.prior_win_rate:.3f}"
        )
        return snapshot

    def predict(self, user_id: str, series: ReturnSeries) -> PredictionResult:
        """Predict the next contest's return and win probability for one user."""
        snapshot = self.snapshot
        returns = series.returns
        n = len(returns)
        k = self.prior_strength

        wins = sum(1 for r in returns if r > 0)
        user_mean = calculate_mean(returns)

        return PredictionResult(
            user_id=user_id,
            model_id=MODEL_ID,
            model_version=snapshot.version,
            prediction_type=PREDICTION_TYPE,
            expected_return=(n * user_mean + k * snapshot.prior_mean_return) / (n + k),
            win_probability=(wins + k * snapshot.prior_win_rate) / (n + k),
            confidence=n / (n + k),
            sample_count=n,
        )
