# backend/lineup_analytics/services/analytics/calculator.py
"""
Aggregate entry points of the metrics calculator.

Combines the pure functions of ``returns``, ``risk`` and ``benchmark`` into
the three result records consumed by the cache and the worker:

    calculate_performance_metrics -> PerformanceMetrics
    calculate_risk_metrics        -> RiskMetrics
    calculate_correlation_matrix  -> CorrelationMatrix

The calculator keeps no state and never holds on to the series it is given.
"""

import logging
from collections.abc import Sequence

from lineup_analytics.services.analytics.benchmark import (
    calculate_alpha,
    calculate_beta,
    calculate_correlation,
    calculate_downside_capture,
    calculate_information_ratio,
    calculate_treynor_ratio,
    calculate_upside_capture,
)
from lineup_analytics.services.analytics.returns import (
    calculate_consistency_score,
    calculate_expected_value,
    calculate_kelly_fraction,
    calculate_profit_factor,
    calculate_standard_deviation,
    calculate_total_return,
    calculate_variance,
    calculate_win_rate,
)
from lineup_analytics.services.analytics.risk import (
    calculate_calmar_ratio,
    calculate_cvar,
    calculate_downside_deviation,
    calculate_kurtosis,
    calculate_max_drawdown,
    calculate_max_drawdown_duration,
    calculate_sharpe_ratio,
    calculate_skewness,
    calculate_sortino_ratio,
    calculate_var,
)
from lineup_analytics.services.analytics.types import (
    CorrelationMatrix,
    PerformanceMetrics,
    RiskMetrics,
)
from lineup_analytics.services.constants import VAR_95_ALPHA, VAR_99_ALPHA

logger = logging.getLogger(__name__)


def calculate_performance_metrics(
        returns: Sequence[float],
        benchmark: Sequence[float] | None = None,
        risk_free_rate: float = 0.0,
) -> PerformanceMetrics:
    """
    Compute every performance figure for one return series.

    Args:
        returns: Per-entry returns, oldest first
        benchmark: Paired benchmark returns; benchmark-relative fields are
                   filled only when it has the same non-zero length
        risk_free_rate: Per-entry risk-free rate (also the Sortino target)

    Returns:
        PerformanceMetrics; all zeros for an empty series
    """
    if not returns:
        return PerformanceMetrics()

    metrics = PerformanceMetrics(
        roi=calculate_total_return(returns),
        expected_value=calculate_expected_value(returns),
        volatility=calculate_standard_deviation(returns),
        max_drawdown=calculate_max_drawdown(returns),
        max_drawdown_duration=calculate_max_drawdown_duration(returns),
        sharpe_ratio=calculate_sharpe_ratio(returns, risk_free_rate),
        sortino_ratio=calculate_sortino_ratio(returns, risk_free_rate),
        calmar_ratio=calculate_calmar_ratio(returns),
        win_rate=calculate_win_rate(returns),
        profit_factor=calculate_profit_factor(returns),
        kelly_fraction=calculate_kelly_fraction(returns),
        consistency_score=calculate_consistency_score(returns),
        downside_deviation=calculate_downside_deviation(returns, 0.0),
    )

    if benchmark is not None and len(benchmark) == len(returns):
        metrics.beta = calculate_beta(returns, benchmark)
        metrics.alpha = calculate_alpha(returns, benchmark, risk_free_rate, metrics.beta)
        metrics.treynor_ratio = calculate_treynor_ratio(returns, metrics.beta, risk_free_rate)
        metrics.information_ratio = calculate_information_ratio(returns, benchmark)
        metrics.upside_capture = calculate_upside_capture(returns, benchmark)
        metrics.downside_capture = calculate_downside_capture(returns, benchmark)
    elif benchmark:
        logger.debug(
            f"Skipping benchmark metrics: {len(benchmark)} benchmark samples "
            f"for {len(returns)} returns"
        )

    if metrics.volatility > 0:
        metrics.risk_adjusted_return = metrics.expected_value / metrics.volatility

    return metrics


def calculate_risk_metrics(returns: Sequence[float]) -> RiskMetrics:
    """
    Compute tail-risk and distribution-shape figures for one return series.

    VaR and CVaR are historical, taken from a sorted copy of the input.
    ``max_loss`` is the worst return capped at 0 (a series with no losing
    entry has no loss).
    """
    if not returns:
        return RiskMetrics()

    sorted_returns = sorted(returns)

    return RiskMetrics(
        var_95=calculate_var(sorted_returns, VAR_95_ALPHA),
        var_99=calculate_var(sorted_returns, VAR_99_ALPHA),
        cvar_95=calculate_cvar(sorted_returns, VAR_95_ALPHA),
        cvar_99=calculate_cvar(sorted_returns, VAR_99_ALPHA),
        standard_deviation=calculate_standard_deviation(returns),
        variance=calculate_variance(returns),
        skewness=calculate_skewness(returns),
        kurtosis=calculate_kurtosis(returns),
        max_loss=min(0.0, sorted_returns[0]),
        min_return=sorted_returns[0],
        max_return=sorted_returns[-1],
    )


def calculate_correlation_matrix(
        series: Sequence[Sequence[float]],
        names: Sequence[str],
) -> CorrelationMatrix:
    """
    Pairwise Pearson correlations between several return series.

    Only the upper triangle is computed; the lower triangle mirrors it so the
    matrix is symmetric by construction. The diagonal is exactly 1.0.

    Args:
        series: One return series per asset
        names: Asset names, parallel to ``series``

    Returns:
        CorrelationMatrix; empty when there are no series or the names do
        not match the series count
    """
    n = len(series)
    if n == 0 or len(names) != n:
        return CorrelationMatrix()

    matrix = [[0.0] * n for _ in range(n)]
    total = 0.0
    pairs = 0

    for i in range(n):
        matrix[i][i] = 1.0
        for j in range(i + 1, n):
            corr = calculate_correlation(series[i], series[j])
            matrix[i][j] = corr
            matrix[j][i] = corr
            total += corr
            pairs += 1

    return CorrelationMatrix(
        assets=list(names),
        matrix=matrix,
        size=n,
        average_correlation=total / pairs if pairs else 0.0,
    )


class MetricsCalculator:
    """
    Namespace for the aggregate calculations.

    Lets callers depend on one object (and tests substitute it) without
    giving the calculator any state.
    """

    @staticmethod
    def performance(
            returns: Sequence[float],
            benchmark: Sequence[float] | None = None,
            risk_free_rate: float = 0.0,
    ) -> PerformanceMetrics:
        return calculate_performance_metrics(returns, benchmark, risk_free_rate)

    @staticmethod
    def risk(returns: Sequence[float]) -> RiskMetrics:
        return calculate_risk_metrics(returns)

    @staticmethod
    def correlation_matrix(
            series: Sequence[Sequence[float]],
            names: Sequence[str],
    ) -> CorrelationMatrix:
        return calculate_correlation_matrix(series, names)
