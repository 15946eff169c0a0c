# backend/tests/services/analytics/test_returns.py
"""
Unit tests for return statistics.

These tests verify the pure calculation logic WITHOUT database dependencies.
All tests use known values that can be verified by hand.

Test Coverage:
- calculate_mean / calculate_variance / calculate_standard_deviation
- calculate_total_return: Compounded growth
- calculate_win_rate / calculate_profit_factor
- calculate_kelly_fraction: Bet sizing with the 0.25 cap
- calculate_consistency_score: 1 / (1 + CV²)
"""

import math

import pytest

from lineup_analytics.services.analytics.returns import (
    calculate_mean,
    calculate_variance,
    calculate_standard_deviation,
    calculate_total_return,
    calculate_expected_value,
    calculate_win_rate,
    calculate_profit_factor,
    calculate_kelly_fraction,
    calculate_consistency_score,
)
from lineup_analytics.services.constants import KELLY_FRACTION_CAP


# =============================================================================
# MOMENTS
# =============================================================================

class TestMeanAndVariance:
    """Tests for mean, variance and standard deviation."""

    def test_mean(self):
        assert calculate_mean([1.0, 2.0, 3.0, 4.0]) == 2.5

    def test_mean_empty(self):
        """Should return 0 for empty input instead of raising."""
        assert calculate_mean([]) == 0.0

    def test_sample_variance_uses_bessel_correction(self):
        """Variance divides by n - 1."""
        # mean 5, squared deviations sum to 32, n - 1 = 7
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]

        assert calculate_variance(values) == pytest.approx(32 / 7)
        assert calculate_standard_deviation(values) == pytest.approx(math.sqrt(32 / 7))

    def test_variance_single_value(self):
        """Should return 0 when fewer than two values are given."""
        assert calculate_variance([0.5]) == 0.0
        assert calculate_variance([]) == 0.0
        assert calculate_standard_deviation([0.5]) == 0.0

    def test_does_not_mutate_input(self):
        values = [0.3, -0.1, 0.2]
        original = list(values)

        calculate_variance(values)
        calculate_total_return(values)

        assert values == original


# =============================================================================
# TOTAL RETURN
# =============================================================================

class TestTotalReturn:
    """Tests for compounded total return."""

    def test_compounds_returns(self):
        """+10% then -10% loses 1%."""
        assert calculate_total_return([0.10, -0.10]) == pytest.approx(-0.01)

    def test_single_return(self):
        assert calculate_total_return([0.25]) == pytest.approx(0.25)

    def test_empty(self):
        assert calculate_total_return([]) == 0.0

    def test_total_loss(self):
        assert calculate_total_return([0.5, -1.0]) == pytest.approx(-1.0)


# =============================================================================
# WIN STATISTICS
# =============================================================================

class TestWinRate:
    """Tests for win rate."""

    def test_zero_return_is_not_a_win(self):
        assert calculate_win_rate([0.1, -0.1, 0.0, 0.2]) == 0.5

    def test_all_wins(self):
        assert calculate_win_rate([0.1, 0.2]) == 1.0

    def test_empty(self):
        assert calculate_win_rate([]) == 0.0

    def test_expected_value_is_mean(self):
        assert calculate_expected_value([0.1, 0.3]) == pytest.approx(0.2)


class TestProfitFactor:
    """Tests for gross wins over gross losses."""

    def test_wins_and_losses(self):
        # wins 0.3, losses 0.1
        assert calculate_profit_factor([0.1, -0.05, 0.2, -0.05]) == pytest.approx(3.0)

    def test_wins_without_losses_is_infinite(self):
        assert calculate_profit_factor([0.1, 0.2]) == math.inf

    def test_losses_without_wins_is_zero(self):
        assert calculate_profit_factor([-0.1, -0.2]) == 0.0

    def test_flat_series_is_zero(self):
        """Neither wins nor losses yields 0, not infinity."""
        assert calculate_profit_factor([0.0, 0.0]) == 0.0

    def test_empty(self):
        assert calculate_profit_factor([]) == 0.0


class TestKellyFraction:
    """Tests for the capped Kelly fraction."""

    def test_basic_kelly(self):
        """p = 0.6, win/loss ratio 1 -> 0.6 - 0.4 = 0.2."""
        returns = [0.1, 0.1, 0.1, -0.1, -0.1]

        assert calculate_kelly_fraction(returns) == pytest.approx(0.2)

    def test_capped_at_quarter(self):
        """p = 0.75, ratio 5 -> 0.7, capped to 0.25."""
        returns = [0.5, 0.5, 0.5, -0.1]

        assert calculate_kelly_fraction(returns) == KELLY_FRACTION_CAP
        assert KELLY_FRACTION_CAP == 0.25

    def test_negative_edge_floors_at_zero(self):
        """p = 0.25, ratio 1 -> -0.5, floored to 0."""
        assert calculate_kelly_fraction([0.1, -0.1, -0.1, -0.1]) == 0.0

    def test_no_losses(self):
        """Payoff ratio undefined without losses."""
        assert calculate_kelly_fraction([0.1, 0.2]) == 0.0

    def test_no_wins(self):
        assert calculate_kelly_fraction([-0.1, -0.2]) == 0.0

    def test_empty(self):
        assert calculate_kelly_fraction([]) == 0.0


class TestConsistencyScore:
    """Tests for 1 / (1 + CV²)."""

    def test_known_value(self):
        # mean 2, stdev sqrt(2), CV² = 0.5
        assert calculate_consistency_score([1.0, 3.0]) == pytest.approx(1 / 1.5)

    def test_constant_returns_are_perfectly_consistent(self):
        assert calculate_consistency_score([0.25, 0.25, 0.25]) == 1.0

    def test_zero_mean(self):
        assert calculate_consistency_score([0.1, -0.1]) == 0.0

    def test_single_value(self):
        assert calculate_consistency_score([0.1]) == 0.0

    def test_bounded(self):
        score = calculate_consistency_score([0.5, -0.4, 0.3, -0.35, 0.01])
        assert 0.0 < score <= 1.0
