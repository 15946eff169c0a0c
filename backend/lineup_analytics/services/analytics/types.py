# backend/lineup_analytics/services/analytics/types.py
"""
Data types for lineup portfolio analytics.

Returns here are normalized lineup-performance deltas, one per completed
contest entry: ``(winnings - entry_fee) / entry_fee``. Values are plain
floats; every metric is a ratio or a fraction, none is a currency amount.

Architecture:
    - ReturnSample / ReturnSeries: input time series (immutable)
    - PerformanceMetrics: return, risk-adjusted and benchmark-relative figures
    - RiskMetrics: tail risk and distribution shape
    - CorrelationMatrix: pairwise Pearson correlations
    - PortfolioAnalysis: optimized lineup weights
    - PredictionResult: baseline model output
    - PerformanceReport: one user's metrics for one window

Every result type round-trips through ``to_dict`` / ``from_dict`` so it can
be stored as JSON in the analytics cache and the data store.
"""

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

_T = TypeVar("_T", bound="_Serializable")


class _Serializable:
    """Field-for-field JSON mapping shared by the flat result types."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls: type[_T], data: dict[str, Any]) -> _T:
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in known})


def json_safe(value: Any) -> Any:
    """
    Replace non-finite floats with None, recursing into dicts and lists.

    Strict JSON has no token for infinity or NaN; an unbounded profit factor
    is written as null and read back by ``PerformanceMetrics.from_dict``.
    """
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class ReturnSample:
    """
    One completed contest entry.

    Attributes:
        timestamp: When the contest completed
        period_return: Normalized return of the entry
        cumulative_value: Wealth index after this entry (starts from 1.0)
        lineup_id: Lineup that produced the entry, if known
    """
    timestamp: datetime
    period_return: float
    cumulative_value: float = 1.0
    lineup_id: str | None = None


@dataclass(frozen=True)
class ReturnSeries:
    """
    Ordered return samples of one entity over one window.

    Built fresh for every window and never mutated afterwards.
    """
    entity_id: str
    start: datetime
    end: datetime
    samples: tuple[ReturnSample, ...] = ()

    @property
    def returns(self) -> list[float]:
        return [s.period_return for s in self.samples]

    def __len__(self) -> int:
        return len(self.samples)

    def by_lineup(self) -> dict[str, list[float]]:
        """Group returns by lineup ID, preserving order; unlabeled samples are dropped."""
        grouped: dict[str, list[float]] = {}
        for sample in self.samples:
            if sample.lineup_id is not None:
                grouped.setdefault(sample.lineup_id, []).append(sample.period_return)
        return grouped

    @classmethod
    def from_returns(
            cls,
            entity_id: str,
            timestamps: list[datetime],
            returns: list[float],
            lineup_ids: list[str | None] | None = None,
    ) -> "ReturnSeries":
        """Build a series from parallel lists, deriving the wealth index."""
        if len(timestamps) != len(returns):
            raise ValueError("timestamps and returns must have the same length")
        if lineup_ids is not None and len(lineup_ids) != len(returns):
            raise ValueError("lineup_ids and returns must have the same length")
        samples = []
        wealth = 1.0
        for i, (ts, r) in enumerate(zip(timestamps, returns)):
            wealth *= 1.0 + r
            samples.append(ReturnSample(
                timestamp=ts,
                period_return=r,
                cumulative_value=wealth,
                lineup_id=lineup_ids[i] if lineup_ids is not None else None,
            ))
        start = timestamps[0] if timestamps else datetime.min
        end = timestamps[-1] if timestamps else datetime.min
        return cls(entity_id=entity_id, start=start, end=end, samples=tuple(samples))


# =============================================================================
# METRIC RESULTS
# =============================================================================

@dataclass
class PerformanceMetrics(_Serializable):
    """
    Performance and risk-adjusted return figures for one series.

    Benchmark-relative fields (information_ratio, upside/downside capture,
    beta, alpha, treynor_ratio) stay 0 when no aligned benchmark was given.
    ``max_drawdown_duration`` counts periods spent below the running peak.
    """
    roi: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration: int = 0
    volatility: float = 0.0
    downside_deviation: float = 0.0
    calmar_ratio: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    expected_value: float = 0.0
    kelly_fraction: float = 0.0
    consistency_score: float = 0.0
    risk_adjusted_return: float = 0.0
    information_ratio: float = 0.0
    upside_capture: float = 0.0
    downside_capture: float = 0.0
    beta: float = 0.0
    alpha: float = 0.0
    treynor_ratio: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceMetrics":
        metrics = super().from_dict(data)
        # null profit factor: wins and no losses
        if metrics.profit_factor is None:
            metrics.profit_factor = math.inf
        return metrics


@dataclass
class RiskMetrics(_Serializable):
    """Tail-risk and distribution-shape statistics for one series."""
    var_95: float = 0.0
    var_99: float = 0.0
    cvar_95: float = 0.0
    cvar_99: float = 0.0
    standard_deviation: float = 0.0
    variance: float = 0.0
    skewness: float = 0.0
    kurtosis: float = 0.0
    max_loss: float = 0.0
    min_return: float = 0.0
    max_return: float = 0.0


@dataclass
class CorrelationMatrix(_Serializable):
    """
    Pairwise Pearson correlations.

    Square and symmetric, diagonal exactly 1.0, ``size == len(assets)``.
    ``average_correlation`` is taken over the unique off-diagonal pairs.
    """
    assets: list[str] = field(default_factory=list)
    matrix: list[list[float]] = field(default_factory=list)
    size: int = 0
    average_correlation: float = 0.0


# =============================================================================
# PORTFOLIO & PREDICTION RESULTS
# =============================================================================

class OptimizationMethod(str, Enum):
    """Weighting scheme used by the portfolio optimizer."""
    RISK_PARITY = "risk_parity"
    MEAN_VARIANCE = "mean_variance"
    EQUAL_WEIGHT = "equal_weight"


@dataclass
class PortfolioAnalysis:
    """
    Optimized allocation across a user's lineups.

    Attributes:
        weights: Lineup ID -> weight (weights sum to 1)
        expected_return: Weighted mean return
        risk: Portfolio standard deviation
        sharpe_ratio: (expected_return - rf) / risk
        diversification_score: 1 - Herfindahl index of the weights
        risk_contribution: Lineup ID -> share of total variance
        correlation: Correlation matrix across lineups
        method: Weighting scheme used
        optimization_time_ms: Wall-clock time spent optimizing
    """
    weights: dict[str, float]
    expected_return: float
    risk: float
    sharpe_ratio: float
    diversification_score: float
    risk_contribution: dict[str, float]
    correlation: CorrelationMatrix
    method: OptimizationMethod = OptimizationMethod.RISK_PARITY
    optimization_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["method"] = self.method.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PortfolioAnalysis":
        return cls(
            weights=dict(data["weights"]),
            expected_return=data["expected_return"],
            risk=data["risk"],
            sharpe_ratio=data["sharpe_ratio"],
            diversification_score=data["diversification_score"],
            risk_contribution=dict(data["risk_contribution"]),
            correlation=CorrelationMatrix.from_dict(data["correlation"]),
            method=OptimizationMethod(data.get("method", OptimizationMethod.RISK_PARITY.value)),
            optimization_time_ms=data.get("optimization_time_ms", 0.0),
        )


@dataclass
class PredictionResult(_Serializable):
    """Output of the baseline predictor for one user."""
    user_id: str
    model_id: str
    model_version: int
    prediction_type: str
    expected_return: float
    win_probability: float
    confidence: float
    sample_count: int


@dataclass
class PerformanceReport:
    """One user's performance and risk figures over one window."""
    user_id: str
    time_frame: str
    start: datetime
    end: datetime
    sample_count: int
    performance: PerformanceMetrics
    risk: RiskMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "time_frame": self.time_frame,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "sample_count": self.sample_count,
            "performance": self.performance.to_dict(),
            "risk": self.risk.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceReport":
        return cls(
            user_id=data["user_id"],
            time_frame=data["time_frame"],
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
            sample_count=data["sample_count"],
            performance=PerformanceMetrics.from_dict(data["performance"]),
            risk=RiskMetrics.from_dict(data["risk"]),
        )


def cache_date(value: date | datetime) -> date:
    """Normalize a datetime to its calendar date for cache keys."""
    return value.date() if isinstance(value, datetime) else value
