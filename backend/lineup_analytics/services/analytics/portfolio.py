# backend/lineup_analytics/services/analytics/portfolio.py
"""
Portfolio optimization across a user's lineups.

Treats each distinct lineup as an asset. Samples are bucketed by contest
date into a returns matrix (dates x lineups, 0 where a lineup did not play
that day), from which a regularized sample covariance matrix and mean
returns are derived. Weights are then found with one of:

- Risk parity: every lineup contributes the same share of portfolio
  variance. Solved with the multiplicative fixed-point update
  w_i <- w_i * sqrt(target / RC_i), RC_i = w_i (Σw)_i, target = w'Σw / n.
- Mean-variance: minimize 0.5 w'Σw - λ w'μ by projected gradient descent.
- Equal weight: 1/n each (baseline).

After solving, weights are projected onto the feasible set
{Σw = 1, min_position <= w_i <= max_position}.

Result metrics:
    Expected return = w'μ
    Risk            = sqrt(w'Σw)
    Sharpe          = (w'μ - rf) / risk
    Diversification = 1 - Σ w_i²   (1 - Herfindahl index)
    Risk share_i    = w_i (Σw)_i / w'Σw

Pure Python on purpose: portfolios are a few dozen lineups at most.
"""

import logging
import math
import time
from collections.abc import Sequence
from dataclasses import dataclass

from lineup_analytics.services.analytics.calculator import calculate_correlation_matrix
from lineup_analytics.services.analytics.returns import calculate_mean
from lineup_analytics.services.analytics.types import (
    OptimizationMethod,
    PortfolioAnalysis,
    ReturnSeries,
)
from lineup_analytics.services.constants import (
    DEFAULT_RISK_AVERSION,
    MAX_POSITION_WEIGHT,
    MIN_LINEUPS_FOR_OPTIMIZATION,
    MIN_POSITION_WEIGHT,
    OPTIMIZER_MAX_ITERATIONS,
    OPTIMIZER_TOLERANCE,
)
from lineup_analytics.services.exceptions import InsufficientDataError, ValidationError

logger = logging.getLogger(__name__)

Matrix = list[list[float]]


@dataclass
class PortfolioConfig:
    """
    Optimizer settings.

    Attributes:
        method: Weighting scheme
        risk_aversion: λ in the mean-variance objective
        min_position_size: Lower bound for every weight
        max_position_size: Upper bound for every weight (relaxed to 1/n
                           when n lineups could not otherwise sum to 1)
        regularization: Added to the covariance diagonal
        risk_free_rate: Per-entry rate used in the Sharpe ratio
    """
    method: OptimizationMethod = OptimizationMethod.RISK_PARITY
    risk_aversion: float = DEFAULT_RISK_AVERSION
    min_position_size: float = MIN_POSITION_WEIGHT
    max_position_size: float = MAX_POSITION_WEIGHT
    regularization: float = 1e-6
    risk_free_rate: float = 0.0

    def __post_init__(self) -> None:
        if self.min_position_size < 0:
            raise ValidationError("min_position_size cannot be negative", field="min_position_size")
        if self.max_position_size <= 0 or self.max_position_size > 1:
            raise ValidationError("max_position_size must be in (0, 1]", field="max_position_size")
        if self.min_position_size > self.max_position_size:
            raise ValidationError(
                "min_position_size cannot exceed max_position_size", field="min_position_size"
            )
        if self.regularization < 0:
            raise ValidationError("regularization cannot be negative", field="regularization")


# =============================================================================
# INPUT PREPARATION
# =============================================================================

def build_returns_matrix(series: ReturnSeries) -> tuple[list[str], Matrix]:
    """
    Arrange a user's samples as a dates x lineups matrix.

    Several entries of one lineup on the same day are averaged. Samples
    without a lineup ID are ignored.

    Returns:
        (sorted lineup IDs, rows ordered by date)
    """
    cells: dict[tuple[str, str], list[float]] = {}
    lineup_ids: set[str] = set()
    dates: set[str] = set()

    for sample in series.samples:
        if sample.lineup_id is None:
            continue
        day = sample.timestamp.date().isoformat()
        lineup_ids.add(sample.lineup_id)
        dates.add(day)
        cells.setdefault((day, sample.lineup_id), []).append(sample.period_return)

    ordered_ids = sorted(lineup_ids)
    rows = []
    for day in sorted(dates):
        rows.append([
            calculate_mean(cells[(day, lineup_id)]) if (day, lineup_id) in cells else 0.0
            for lineup_id in ordered_ids
        ])
    return ordered_ids, rows


def covariance_matrix(rows: Matrix, regularization: float = 0.0) -> Matrix:
    """Sample covariance of the matrix columns, with ``regularization`` on the diagonal."""
    n_rows = len(rows)
    n_cols = len(rows[0]) if rows else 0
    means = [calculate_mean([row[j] for row in rows]) for j in range(n_cols)]

    cov = [[0.0] * n_cols for _ in range(n_cols)]
    for i in range(n_cols):
        for j in range(i, n_cols):
            total = 0.0
            for row in rows:
                total += (row[i] - means[i]) * (row[j] - means[j])
            value = total / (n_rows - 1) if n_rows > 1 else 0.0
            cov[i][j] = value
            cov[j][i] = value
        cov[i][i] += regularization
    return cov


def _mat_vec(matrix: Matrix, vector: Sequence[float]) -> list[float]:
    return [sum(a * b for a, b in zip(row, vector)) for row in matrix]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


# =============================================================================
# CONSTRAINTS
# =============================================================================

def project_to_bounds(weights: Sequence[float], lower: float, upper: float) -> list[float]:
    """
    Euclidean projection onto {Σw = 1, lower <= w_i <= upper}.

    Finds the shift τ with Σ clip(w_i - τ, lower, upper) = 1 by bisection.
    ``upper`` is raised to 1/n and ``lower`` cut to 1/n when the box could
    not otherwise hold a fully invested portfolio.
    """
    n = len(weights)
    if n == 0:
        return []
    upper = max(upper, 1.0 / n)
    lower = min(lower, 1.0 / n)

    def total(tau: float) -> float:
        return sum(min(max(w - tau, lower), upper) for w in weights)

    lo = min(weights) - upper
    hi = max(weights) - lower
    for _ in range(100):
        mid = (lo + hi) / 2
        if total(mid) > 1.0:
            lo = mid
        else:
            hi = mid
    tau = (lo + hi) / 2
    return [min(max(w - tau, lower), upper) for w in weights]


# =============================================================================
# SOLVERS
# =============================================================================

def solve_risk_parity(cov: Matrix) -> list[float]:
    """Weights with equal variance contributions (unconstrained, long-only)."""
    n = len(cov)
    weights = [1.0 / n] * n

    for iteration in range(OPTIMIZER_MAX_ITERATIONS):
        sigma_w = _mat_vec(cov, weights)
        variance = _dot(weights, sigma_w)
        if variance <= 0:
            break
        target = variance / n

        updated = []
        for w, sw in zip(weights, sigma_w):
            contribution = w * sw
            updated.append(w * math.sqrt(target / contribution) if contribution > 0 else w)
        norm = sum(updated)
        updated = [w / norm for w in updated]

        change = max(abs(a - b) for a, b in zip(updated, weights))
        weights = updated
        if change < OPTIMIZER_TOLERANCE:
            logger.debug(f"Risk parity converged after {iteration + 1} iterations")
            break

    return weights


def solve_mean_variance(
        cov: Matrix,
        expected_returns: Sequence[float],
        risk_aversion: float,
        lower: float,
        upper: float,
) -> list[float]:
    """Minimize 0.5 w'Σw - λ w'μ over the constrained set by projected gradient."""
    n = len(cov)
    trace = sum(cov[i][i] for i in range(n))
    step = 1.0 / trace if trace > 0 else 1.0
    weights = project_to_bounds([1.0 / n] * n, lower, upper)

    for _ in range(OPTIMIZER_MAX_ITERATIONS):
        sigma_w = _mat_vec(cov, weights)
        gradient = [sw - risk_aversion * mu for sw, mu in zip(sigma_w, expected_returns)]
        updated = project_to_bounds(
            [w - step * g for w, g in zip(weights, gradient)], lower, upper
        )
        change = max(abs(a - b) for a, b in zip(updated, weights))
        weights = updated
        if change < OPTIMIZER_TOLERANCE:
            break

    return weights


# =============================================================================
# ENTRY POINT
# =============================================================================

def optimize_portfolio(
        series: ReturnSeries,
        config: PortfolioConfig | None = None,
) -> PortfolioAnalysis:
    """
    Optimize weights across the lineups found in a user's history.

    Args:
        series: The user's return samples, each tagged with a lineup ID
        config: Optimizer settings (risk parity by default)

    Returns:
        PortfolioAnalysis with weights keyed by lineup ID

    Raises:
        InsufficientDataError: Fewer than two lineups or fewer than two
                               contest dates in the history
    """
    config = config or PortfolioConfig()
    started = time.perf_counter()

    lineup_ids, rows = build_returns_matrix(series)
    if len(lineup_ids) < MIN_LINEUPS_FOR_OPTIMIZATION:
        raise InsufficientDataError("portfolio optimization (lineups)", MIN_LINEUPS_FOR_OPTIMIZATION, len(lineup_ids))
    if len(rows) < 2:
        raise InsufficientDataError("portfolio optimization (contest dates)", 2, len(rows))

    cov = covariance_matrix(rows, config.regularization)
    expected = [calculate_mean([row[j] for row in rows]) for j in range(len(lineup_ids))]

    if config.method == OptimizationMethod.MEAN_VARIANCE:
        raw = solve_mean_variance(
            cov, expected, config.risk_aversion,
            config.min_position_size, config.max_position_size,
        )
    elif config.method == OptimizationMethod.RISK_PARITY:
        raw = solve_risk_parity(cov)
    else:
        raw = [1.0 / len(lineup_ids)] * len(lineup_ids)

    weights = project_to_bounds(raw, config.min_position_size, config.max_position_size)

    sigma_w = _mat_vec(cov, weights)
    variance = _dot(weights, sigma_w)
    risk = math.sqrt(variance) if variance > 0 else 0.0
    expected_return = _dot(weights, expected)

    analysis = PortfolioAnalysis(
        weights=dict(zip(lineup_ids, weights)),
        expected_return=expected_return,
        risk=risk,
        sharpe_ratio=(expected_return - config.risk_free_rate) / risk if risk > 0 else 0.0,
        diversification_score=1.0 - sum(w * w for w in weights),
        risk_contribution={
            lineup_id: (w * sw / variance if variance > 0 else 0.0)
            for lineup_id, w, sw in zip(lineup_ids, weights, sigma_w)
        },
        correlation=calculate_correlation_matrix(
            [[row[j] for row in rows] for j in range(len(lineup_ids))],
            lineup_ids,
        ),
        method=config.method,
        optimization_time_ms=(time.perf_counter() - started) * 1000,
    )

    logger.debug(
        f"Optimized {len(lineup_ids)} lineups for {series.entity_id} "
        f"({config.method.value}): return={analysis.expected_return:.4f}, "
        f"risk={analysis.risk:.4f}, sharpe={analysis.sharpe_ratio:.3f}"
    )
    return analysis
