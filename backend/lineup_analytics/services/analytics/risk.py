# backend/lineup_analytics/services/analytics/risk.py
"""
Risk calculation functions for lineup return series.

This module contains pure functions for:
- Sharpe Ratio: excess return per unit of volatility
- Sortino Ratio: excess return per unit of downside deviation
- Max Drawdown (and its duration): worst peak-to-trough decline
- Calmar Ratio: annualized mean return over max drawdown
- Value at Risk / Conditional VaR: historical (empirical) tail losses
- Skewness / Kurtosis: bias-corrected third and fourth moments

Ratios are per-period (per contest entry) and are not annualized, except
for the Calmar numerator which uses the 252-period convention.

Formulas:
    Sharpe = mean(r - rf) / σ(r - rf)

    Sortino = (mean(r) - t) / DD_t,   DD_t = sqrt(Σ_{r<t} (r - t)² / #{r<t})

    W_0 = 1 + r_0,  W_i = W_{i-1} · (1 + r_i)
    Max Drawdown = max_i (peak_i - W_i) / peak_i

    Calmar = mean(r) · 252 / MaxDD

    VaR_α = sorted(r)[floor(α·n)]
    CVaR_α = mean(sorted(r)[0 .. floor(α·n)])

    Skew = n / ((n-1)(n-2)) · Σ z³
    Kurt = n(n+1) / ((n-1)(n-2)(n-3)) · Σ z⁴ - 3(n-1)² / ((n-2)(n-3))
"""

import math
from collections.abc import Sequence

from lineup_analytics.services.analytics.returns import (
    calculate_mean,
    calculate_standard_deviation,
)
from lineup_analytics.services.constants import (
    TRADING_DAYS_PER_YEAR,
    MIN_SAMPLES_FOR_SKEWNESS,
    MIN_SAMPLES_FOR_KURTOSIS,
)


# =============================================================================
# RISK-ADJUSTED RETURN
# =============================================================================

def calculate_sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> float:
    """
    Sharpe ratio of the excess returns.

    Args:
        returns: Per-entry returns
        risk_free_rate: Per-entry risk-free rate

    Returns:
        mean(excess) / stdev(excess), or 0 if the stdev is 0
    """
    if not returns:
        return 0.0

    excess = [r - risk_free_rate for r in returns]
    std = calculate_standard_deviation(excess)
    if std == 0:
        return 0.0

    return calculate_mean(excess) / std


def calculate_downside_deviation(returns: Sequence[float], target_return: float = 0.0) -> float:
    """
    Root-mean-square shortfall below the target.

    Only samples strictly below the target take part, and the divisor is
    their count, not the length of the series.

    Returns:
        Downside deviation, or 0 if no sample is below the target
    """
    total = 0.0
    count = 0
    for r in returns:
        if r < target_return:
            diff = r - target_return
            total += diff * diff
            count += 1

    if count == 0:
        return 0.0

    return math.sqrt(total / count)


def calculate_sortino_ratio(returns: Sequence[float], target_return: float = 0.0) -> float:
    """Sortino ratio; 0 when no sample falls below the target."""
    if not returns:
        return 0.0

    downside = calculate_downside_deviation(returns, target_return)
    if downside == 0:
        return 0.0

    return (calculate_mean(returns) - target_return) / downside


# =============================================================================
# DRAWDOWN
# =============================================================================

def calculate_wealth_curve(returns: Sequence[float]) -> list[float]:
    """Cumulative product of (1 + r), starting with the first entry."""
    curve = []
    wealth = 1.0
    for r in returns:
        wealth *= 1.0 + r
        curve.append(wealth)
    return curve


def calculate_max_drawdown(returns: Sequence[float]) -> float:
    """
    Largest relative decline from a running peak of the wealth curve.

    The peak starts at the wealth after the first entry, so a loss on the
    very first entry is not itself a drawdown.

    Returns:
        Max drawdown in [0, 1]; 0 for empty input or a never-declining curve
    """
    curve = calculate_wealth_curve(returns)
    if not curve:
        return 0.0

    max_drawdown = 0.0
    peak = curve[0]
    for value in curve:
        if value > peak:
            peak = value
        if peak <= 0:
            # Wealth wiped out: a total loss from here on
            max_drawdown = 1.0
            continue
        drawdown = (peak - value) / peak
        if drawdown > max_drawdown:
            max_drawdown = drawdown

    return min(max_drawdown, 1.0)


def calculate_max_drawdown_duration(returns: Sequence[float]) -> int:
    """
    Longest run of consecutive entries spent below the running peak.

    Measured on the same wealth curve as ``calculate_max_drawdown``.
    """
    curve = calculate_wealth_curve(returns)
    if not curve:
        return 0

    longest = 0
    current = 0
    peak = curve[0]
    for value in curve:
        if value >= peak:
            peak = value
            current = 0
        else:
            current += 1
            longest = max(longest, current)

    return longest


def calculate_calmar_ratio(returns: Sequence[float]) -> float:
    """Annualized mean return divided by max drawdown; 0 if there is no drawdown."""
    if not returns:
        return 0.0

    max_drawdown = calculate_max_drawdown(returns)
    if max_drawdown == 0:
        return 0.0

    return calculate_mean(returns) * TRADING_DAYS_PER_YEAR / max_drawdown


# =============================================================================
# TAIL RISK
# =============================================================================

def _tail_index(n: int, alpha: float) -> int:
    return min(int(alpha * n), n - 1)


def calculate_var(sorted_returns: Sequence[float], alpha: float) -> float:
    """
    Historical Value at Risk.

    Args:
        sorted_returns: Returns sorted ascending
        alpha: Tail probability (0.05 for VaR 95%)

    Returns:
        The return at index floor(alpha·n), or 0 for empty input
    """
    if not sorted_returns:
        return 0.0
    return sorted_returns[_tail_index(len(sorted_returns), alpha)]


def calculate_cvar(sorted_returns: Sequence[float], alpha: float) -> float:
    """
    Conditional VaR (expected shortfall): mean of the returns at or below
    the VaR index.

    Args:
        sorted_returns: Returns sorted ascending
        alpha: Tail probability
    """
    if not sorted_returns:
        return 0.0
    index = _tail_index(len(sorted_returns), alpha)
    return calculate_mean(sorted_returns[:index + 1])


# =============================================================================
# DISTRIBUTION SHAPE
# =============================================================================

def calculate_skewness(returns: Sequence[float]) -> float:
    """Bias-corrected sample skewness; 0 if n < 3 or the stdev is 0."""
    n = len(returns)
    if n < MIN_SAMPLES_FOR_SKEWNESS:
        return 0.0

    mean = calculate_mean(returns)
    std = calculate_standard_deviation(returns)
    if std == 0:
        return 0.0

    total = 0.0
    for r in returns:
        z = (r - mean) / std
        total += z * z * z

    return n / ((n - 1) * (n - 2)) * total


def calculate_kurtosis(returns: Sequence[float]) -> float:
    """Bias-corrected excess kurtosis; 0 if n < 4 or the stdev is 0."""
    n = len(returns)
    if n < MIN_SAMPLES_FOR_KURTOSIS:
        return 0.0

    mean = calculate_mean(returns)
    std = calculate_standard_deviation(returns)
    if std == 0:
        return 0.0

    total = 0.0
    for r in returns:
        z = (r - mean) / std
        total += z * z * z * z

    factor = n * (n + 1) / ((n - 1) * (n - 2) * (n - 3))
    correction = 3 * (n - 1) ** 2 / ((n - 2) * (n - 3))
    return factor * total - correction
