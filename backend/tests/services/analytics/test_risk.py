# backend/tests/services/analytics/test_risk.py
"""
Unit tests for risk calculations.

These tests verify the pure calculation logic WITHOUT database dependencies.
All tests use known values that can be verified by hand.

Test Coverage:
- calculate_sharpe_ratio / calculate_sortino_ratio
- calculate_downside_deviation: Only samples below target, divided by their count
- calculate_max_drawdown / calculate_max_drawdown_duration
- calculate_calmar_ratio: 252-period annualization
- calculate_var / calculate_cvar: Historical tail losses
- calculate_skewness / calculate_kurtosis
"""

import math

import pytest

from lineup_analytics.services.analytics.risk import (
    calculate_sharpe_ratio,
    calculate_downside_deviation,
    calculate_sortino_ratio,
    calculate_wealth_curve,
    calculate_max_drawdown,
    calculate_max_drawdown_duration,
    calculate_calmar_ratio,
    calculate_var,
    calculate_cvar,
    calculate_skewness,
    calculate_kurtosis,
)
from lineup_analytics.services.constants import TRADING_DAYS_PER_YEAR


SCENARIO = [0.05, -0.02, 0.03, -0.01, 0.04]


# =============================================================================
# RISK-ADJUSTED RETURN
# =============================================================================

class TestSharpeRatio:
    """Tests for the Sharpe ratio."""

    def test_known_value(self):
        """mean 0.2, stdev 0.1 -> 2.0."""
        assert calculate_sharpe_ratio([0.1, 0.2, 0.3]) == pytest.approx(2.0)

    def test_with_risk_free_rate(self):
        """Excess returns [0, 0.1, 0.2]: mean 0.1, stdev 0.1."""
        assert calculate_sharpe_ratio([0.1, 0.2, 0.3], risk_free_rate=0.1) == pytest.approx(1.0)

    def test_zero_volatility(self):
        assert calculate_sharpe_ratio([0.25, 0.25, 0.25]) == 0.0

    def test_empty(self):
        assert calculate_sharpe_ratio([]) == 0.0


class TestSortinoRatio:
    """Tests for downside deviation and the Sortino ratio."""

    def test_downside_deviation_divides_by_count_below_target(self):
        # (0.01 + 0.09) / 2 samples below 0
        result = calculate_downside_deviation([0.1, -0.1, -0.3])

        assert result == pytest.approx(math.sqrt(0.05))

    def test_downside_deviation_none_below_target(self):
        assert calculate_downside_deviation([0.1, 0.2]) == 0.0

    def test_downside_deviation_custom_target(self):
        # only 0.01 is below 0.02
        assert calculate_downside_deviation([0.01, 0.05], target_return=0.02) == pytest.approx(0.01)

    def test_known_value(self):
        """mean 0.05, downside deviation 0.1 -> 0.5."""
        assert calculate_sortino_ratio([0.2, -0.1, 0.2, -0.1]) == pytest.approx(0.5)

    def test_no_downside(self):
        assert calculate_sortino_ratio([0.1, 0.2, 0.3]) == 0.0

    def test_empty(self):
        assert calculate_sortino_ratio([]) == 0.0


# =============================================================================
# DRAWDOWN
# =============================================================================

class TestMaxDrawdown:
    """Tests for max drawdown and its duration."""

    def test_wealth_curve(self):
        assert calculate_wealth_curve([0.1, -0.5]) == pytest.approx([1.1, 0.55])

    def test_scenario_drawdown(self):
        """Peak 1.05 falls to 1.029: a 2% drawdown."""
        assert calculate_max_drawdown(SCENARIO) == pytest.approx(0.02)

    def test_deep_drawdown(self):
        # 1.1 -> 0.55 is a 50% decline; recovery to 0.66 stays under the peak
        returns = [0.1, -0.5, 0.2]

        assert calculate_max_drawdown(returns) == pytest.approx(0.5)
        assert calculate_max_drawdown_duration(returns) == 2

    def test_first_loss_is_not_a_drawdown(self):
        """The running peak starts at the wealth after the first entry."""
        assert calculate_max_drawdown([-0.5]) == 0.0

    def test_total_loss_is_capped_at_one(self):
        assert calculate_max_drawdown([0.1, -1.0]) == pytest.approx(1.0)
        assert calculate_max_drawdown([-1.0, 0.5]) == 1.0

    def test_monotonic_growth(self):
        assert calculate_max_drawdown([0.1, 0.1, 0.1]) == 0.0
        assert calculate_max_drawdown_duration([0.1, 0.1, 0.1]) == 0

    def test_empty(self):
        assert calculate_max_drawdown([]) == 0.0
        assert calculate_max_drawdown_duration([]) == 0

    def test_scenario_duration(self):
        """Two separate one-entry dips."""
        assert calculate_max_drawdown_duration(SCENARIO) == 1

    def test_duration_resets_at_new_peak(self):
        # dip for 3 entries, new high, dip for 1
        returns = [0.1, -0.1, -0.1, 0.05, 0.5, -0.1]

        assert calculate_max_drawdown_duration(returns) == 3


class TestCalmarRatio:
    """Tests for the Calmar ratio."""

    def test_scenario(self):
        """mean 0.018 · 252 / 0.02."""
        expected = 0.018 * TRADING_DAYS_PER_YEAR / 0.02

        assert calculate_calmar_ratio(SCENARIO) == pytest.approx(expected)
        assert TRADING_DAYS_PER_YEAR == 252

    def test_no_drawdown(self):
        assert calculate_calmar_ratio([0.1, 0.2]) == 0.0

    def test_empty(self):
        assert calculate_calmar_ratio([]) == 0.0


# =============================================================================
# TAIL RISK
# =============================================================================

class TestVaR:
    """Tests for historical VaR and CVaR."""

    @pytest.fixture
    def sorted_returns(self) -> list[float]:
        return [float(i) for i in range(-10, 10)]  # 20 values

    def test_var_95(self, sorted_returns):
        """floor(0.05 · 20) = index 1."""
        assert calculate_var(sorted_returns, 0.05) == -9.0

    def test_var_99(self, sorted_returns):
        """floor(0.01 · 20) = index 0."""
        assert calculate_var(sorted_returns, 0.01) == -10.0

    def test_cvar_95_averages_through_var_index(self, sorted_returns):
        assert calculate_cvar(sorted_returns, 0.05) == pytest.approx(-9.5)

    def test_cvar_99(self, sorted_returns):
        assert calculate_cvar(sorted_returns, 0.01) == -10.0

    def test_index_clamped_to_last(self):
        assert calculate_var([1.0, 2.0, 3.0], 1.0) == 3.0
        assert calculate_cvar([1.0, 2.0, 3.0], 1.0) == pytest.approx(2.0)

    def test_empty(self):
        assert calculate_var([], 0.05) == 0.0
        assert calculate_cvar([], 0.05) == 0.0


# =============================================================================
# DISTRIBUTION SHAPE
# =============================================================================

class TestMoments:
    """Tests for skewness and excess kurtosis."""

    def test_symmetric_skewness(self):
        assert calculate_skewness([1.0, 2.0, 3.0]) == pytest.approx(0.0, abs=1e-12)

    def test_right_skew_is_positive(self):
        assert calculate_skewness([1.0, 2.0, 10.0]) > 0

    def test_skewness_needs_three_samples(self):
        assert calculate_skewness([1.0, 2.0]) == 0.0

    def test_kurtosis_known_value(self):
        """Bias-corrected excess kurtosis of 1..4 is -1.2."""
        assert calculate_kurtosis([1.0, 2.0, 3.0, 4.0]) == pytest.approx(-1.2)

    def test_kurtosis_needs_four_samples(self):
        assert calculate_kurtosis([1.0, 2.0, 3.0]) == 0.0

    def test_constant_series(self):
        assert calculate_skewness([0.25, 0.25, 0.25]) == 0.0
        assert calculate_kurtosis([0.25, 0.25, 0.25, 0.25]) == 0.0
