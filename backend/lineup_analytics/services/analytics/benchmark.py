# backend/lineup_analytics/services/analytics/benchmark.py
"""
Benchmark-relative metrics.

A benchmark series is paired sample-by-sample with the user's returns, e.g.
the field's average return in the same contests. Every function here returns
0 when the two series differ in length or are empty, rather than raising.

Formulas:
    Cov(x, y) = Σ(x - x̄)(y - ȳ) / (n - 1)

    ρ(x, y) = Σ(x - x̄)(y - ȳ) / sqrt(Σ(x - x̄)² · Σ(y - ȳ)²)

    β = Cov(p, b) / Var(b)

    α = mean(p) - (rf + β · (mean(b) - rf))          (CAPM residual)

    Treynor = (mean(p) - rf) / β

    Information Ratio = mean(p - b) / σ(p - b)

    Upside Capture = mean(p | b > 0) / mean(b | b > 0)
    Downside Capture = mean(p | b < 0) / mean(b | b < 0)
"""

import math
from collections.abc import Sequence

from lineup_analytics.services.analytics.returns import (
    calculate_mean,
    calculate_variance,
    calculate_standard_deviation,
)


def _aligned(returns: Sequence[float], benchmark: Sequence[float]) -> bool:
    return len(returns) == len(benchmark) and len(returns) > 0


def calculate_covariance(x: Sequence[float], y: Sequence[float]) -> float:
    """Sample covariance; 0 on mismatched lengths or fewer than two pairs."""
    n = len(x)
    if n != len(y) or n < 2:
        return 0.0

    mean_x = calculate_mean(x)
    mean_y = calculate_mean(y)
    total = 0.0
    for xi, yi in zip(x, y):
        total += (xi - mean_x) * (yi - mean_y)
    return total / (n - 1)


def calculate_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation coefficient.

    Returns:
        Correlation in [-1, 1]; 0 on mismatched lengths, fewer than two
        pairs, or when either series has zero variance
    """
    n = len(x)
    if n != len(y) or n < 2:
        return 0.0

    mean_x = calculate_mean(x)
    mean_y = calculate_mean(y)

    numerator = 0.0
    sum_sq_x = 0.0
    sum_sq_y = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        numerator += dx * dy
        sum_sq_x += dx * dx
        sum_sq_y += dy * dy

    denominator = math.sqrt(sum_sq_x * sum_sq_y)
    if denominator == 0:
        return 0.0

    return numerator / denominator


def calculate_beta(returns: Sequence[float], benchmark: Sequence[float]) -> float:
    """Sensitivity to the benchmark; 0 if the benchmark has no variance."""
    if not _aligned(returns, benchmark):
        return 0.0

    benchmark_variance = calculate_variance(benchmark)
    if benchmark_variance == 0:
        return 0.0

    return calculate_covariance(returns, benchmark) / benchmark_variance


def calculate_alpha(
        returns: Sequence[float],
        benchmark: Sequence[float],
        risk_free_rate: float = 0.0,
        beta: float | None = None,
) -> float:
    """
    Jensen's alpha (per period).

    Args:
        returns: User returns
        benchmark: Paired benchmark returns
        risk_free_rate: Per-period risk-free rate
        beta: Precomputed beta; computed from the series when omitted

    Returns:
        CAPM residual, or 0 if the series are not aligned or the benchmark
        has no variance
    """
    if not _aligned(returns, benchmark):
        return 0.0
    if calculate_variance(benchmark) == 0:
        return 0.0

    if beta is None:
        beta = calculate_beta(returns, benchmark)

    expected = risk_free_rate + beta * (calculate_mean(benchmark) - risk_free_rate)
    return calculate_mean(returns) - expected


def calculate_treynor_ratio(returns: Sequence[float], beta: float, risk_free_rate: float = 0.0) -> float:
    """Excess return per unit of beta; 0 when beta is 0."""
    if beta == 0 or not returns:
        return 0.0
    return (calculate_mean(returns) - risk_free_rate) / beta


def calculate_information_ratio(returns: Sequence[float], benchmark: Sequence[float]) -> float:
    """Mean active return over tracking error; 0 when tracking error is 0."""
    if not _aligned(returns, benchmark):
        return 0.0

    active = [r - b for r, b in zip(returns, benchmark)]
    tracking_error = calculate_standard_deviation(active)
    if tracking_error == 0:
        return 0.0

    return calculate_mean(active) / tracking_error


def _capture(returns: Sequence[float], benchmark: Sequence[float], upside: bool) -> float:
    if not _aligned(returns, benchmark):
        return 0.0

    user_subset = []
    bench_subset = []
    for r, b in zip(returns, benchmark):
        if (b > 0) if upside else (b < 0):
            user_subset.append(r)
            bench_subset.append(b)

    if not user_subset:
        return 0.0

    bench_mean = calculate_mean(bench_subset)
    if bench_mean == 0:
        return 0.0

    return calculate_mean(user_subset) / bench_mean


def calculate_upside_capture(returns: Sequence[float], benchmark: Sequence[float]) -> float:
    """Share of benchmark gains captured, over periods where the benchmark rose."""
    return _capture(returns, benchmark, upside=True)


def calculate_downside_capture(returns: Sequence[float], benchmark: Sequence[float]) -> float:
    """Share of benchmark losses suffered, over periods where the benchmark fell."""
    return _capture(returns, benchmark, upside=False)
