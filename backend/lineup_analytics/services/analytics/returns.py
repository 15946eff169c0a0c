# backend/lineup_analytics/services/analytics/returns.py
"""
Return statistics for lineup return series.

This module contains pure functions over a sequence of per-entry returns:
- Mean / Variance / Standard Deviation (sample, Bessel-corrected)
- Total Return: compounded growth over the series
- Win Rate and Profit Factor
- Kelly Fraction: bet sizing from win rate and payoff ratio (capped)
- Consistency Score: stability of returns relative to their mean

None of these functions mutates its input or raises on empty input; each
returns a documented zero value instead. Sums accumulate left to right so
results are reproducible for identical inputs.

Formulas:
    Variance = Σ(r - mean)² / (n - 1)

    Total Return = Π(1 + r) - 1

    Profit Factor = Σ wins / Σ |losses|

    Kelly = p - (1 - p) / (avg_win / avg_loss),   clamped to [0, 0.25]

    Consistency = 1 / (1 + CV²),   CV = σ / |mean|
"""

import math
from collections.abc import Sequence

from lineup_analytics.services.constants import KELLY_FRACTION_CAP


def calculate_mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for an empty sequence."""
    if not values:
        return 0.0
    total = 0.0
    for v in values:
        total += v
    return total / len(values)


def calculate_variance(values: Sequence[float]) -> float:
    """
    Sample variance with Bessel's correction.

    Returns:
        Variance, or 0 when fewer than two values are given
    """
    n = len(values)
    if n <= 1:
        return 0.0
    mean = calculate_mean(values)
    total = 0.0
    for v in values:
        diff = v - mean
        total += diff * diff
    return total / (n - 1)


def calculate_standard_deviation(values: Sequence[float]) -> float:
    """Sample standard deviation; 0 when fewer than two values are given."""
    return math.sqrt(calculate_variance(values))


def calculate_total_return(returns: Sequence[float]) -> float:
    """
    Compounded return over the whole series.

    Example:
        [0.10, -0.10] -> 1.1 * 0.9 - 1 = -0.01
    """
    if not returns:
        return 0.0
    growth = 1.0
    for r in returns:
        growth *= 1.0 + r
    return growth - 1.0


def calculate_expected_value(returns: Sequence[float]) -> float:
    """Expected return per entry (the mean)."""
    return calculate_mean(returns)


def calculate_win_rate(returns: Sequence[float]) -> float:
    """Share of entries with a strictly positive return; 0 for empty input."""
    if not returns:
        return 0.0
    wins = sum(1 for r in returns if r > 0)
    return wins / len(returns)


def calculate_profit_factor(returns: Sequence[float]) -> float:
    """
    Gross wins divided by gross losses.

    Returns:
        - 0 for empty input or when there are neither wins nor losses
        - ``math.inf`` when there are wins but no losses
        - Σ wins / Σ |losses| otherwise
    """
    if not returns:
        return 0.0

    total_wins = 0.0
    total_losses = 0.0
    for r in returns:
        if r > 0:
            total_wins += r
        elif r < 0:
            total_losses += abs(r)

    if total_losses == 0:
        return math.inf if total_wins > 0 else 0.0

    return total_wins / total_losses


def calculate_kelly_fraction(returns: Sequence[float]) -> float:
    """
    Kelly bet-size fraction from the win rate and the average win/loss ratio.

    Formula: f* = p - (1 - p) / b,   b = avg_win / avg_loss

    The result is clamped to [0, KELLY_FRACTION_CAP]. A series with no wins
    or no losses has no defined payoff ratio and yields 0.

    Args:
        returns: Per-entry returns

    Returns:
        Recommended fraction of bankroll in [0, 0.25]
    """
    if not returns:
        return 0.0

    wins = [r for r in returns if r > 0]
    losses = [-r for r in returns if r < 0]

    if not wins or not losses:
        return 0.0

    win_rate = len(wins) / len(returns)
    avg_win = calculate_mean(wins)
    avg_loss = calculate_mean(losses)
    win_loss_ratio = avg_win / avg_loss

    kelly = win_rate - (1.0 - win_rate) / win_loss_ratio

    return max(0.0, min(kelly, KELLY_FRACTION_CAP))


def calculate_consistency_score(returns: Sequence[float]) -> float:
    """
    Consistency of returns: 1 / (1 + CV²).

    1.0 means perfectly steady returns; values near 0 mean the dispersion
    dwarfs the mean. 0 when fewer than two returns or the mean is 0.
    """
    if len(returns) <= 1:
        return 0.0

    mean = calculate_mean(returns)
    if mean == 0:
        return 0.0

    cv = math.sqrt(calculate_variance(returns)) / abs(mean)
    return 1.0 / (1.0 + cv * cv)
