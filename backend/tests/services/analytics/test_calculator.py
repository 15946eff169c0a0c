# backend/tests/services/analytics/test_calculator.py
"""
Tests for the aggregate calculator entry points.

Test Coverage:
- calculate_performance_metrics: every field on a worked scenario,
  benchmark gating, empty input
- calculate_risk_metrics: VaR/CVaR on a sorted copy, max_loss cap
- calculate_correlation_matrix: symmetry, diagonal, degenerate input
- MetricsCalculator facade
"""

import math

import pytest

from lineup_analytics.services.analytics.calculator import (
    MetricsCalculator,
    calculate_correlation_matrix,
    calculate_performance_metrics,
    calculate_risk_metrics,
)
from lineup_analytics.services.analytics.types import (
    CorrelationMatrix,
    PerformanceMetrics,
    RiskMetrics,
)


SCENARIO = [0.05, -0.02, 0.03, -0.01, 0.04]


# =============================================================================
# PERFORMANCE METRICS
# =============================================================================

class TestPerformanceMetrics:
    """Tests for calculate_performance_metrics."""

    @pytest.fixture
    def metrics(self) -> PerformanceMetrics:
        return calculate_performance_metrics(SCENARIO)

    def test_roi_is_compounded(self, metrics):
        """1.05 · 0.98 · 1.03 · 0.99 · 1.04 - 1."""
        assert metrics.roi == pytest.approx(0.091242152, abs=1e-9)

    def test_drawdown(self, metrics):
        assert metrics.max_drawdown == pytest.approx(0.02)
        assert metrics.max_drawdown_duration == 1

    def test_win_statistics(self, metrics):
        assert metrics.win_rate == pytest.approx(0.6)
        # wins 0.12, losses 0.03
        assert metrics.profit_factor == pytest.approx(4.0)
        # p = 0.6, payoff 0.04 / 0.015 -> 0.45, capped
        assert metrics.kelly_fraction == 0.25

    def test_volatility_and_ratios(self, metrics):
        volatility = math.sqrt(0.00388 / 4)

        assert metrics.expected_value == pytest.approx(0.018)
        assert metrics.volatility == pytest.approx(volatility)
        assert metrics.sharpe_ratio == pytest.approx(0.018 / volatility)
        assert metrics.risk_adjusted_return == pytest.approx(metrics.sharpe_ratio)
        assert metrics.calmar_ratio == pytest.approx(0.018 * 252 / 0.02)

    def test_sortino_and_downside_deviation(self, metrics):
        # losses -0.02 and -0.01 -> sqrt((0.0004 + 0.0001) / 2)
        downside = math.sqrt(0.00025)

        assert metrics.downside_deviation == pytest.approx(downside)
        assert metrics.sortino_ratio == pytest.approx(0.018 / downside)

    def test_benchmark_fields_zero_without_benchmark(self, metrics):
        assert metrics.beta == 0.0
        assert metrics.alpha == 0.0
        assert metrics.treynor_ratio == 0.0
        assert metrics.information_ratio == 0.0
        assert metrics.upside_capture == 0.0
        assert metrics.downside_capture == 0.0

    def test_benchmark_fields_filled_when_aligned(self):
        benchmark = [r / 2 for r in SCENARIO]

        metrics = calculate_performance_metrics(SCENARIO, benchmark)

        assert metrics.beta == pytest.approx(2.0)
        assert metrics.alpha == pytest.approx(0.0, abs=1e-12)
        assert metrics.treynor_ratio == pytest.approx(0.018 / 2.0)
        assert metrics.upside_capture == pytest.approx(2.0)
        assert metrics.downside_capture == pytest.approx(2.0)

    def test_mismatched_benchmark_is_ignored(self):
        metrics = calculate_performance_metrics(SCENARIO, [0.01, 0.02])

        assert metrics.beta == 0.0
        assert metrics.alpha == 0.0
        assert metrics.roi == pytest.approx(0.091242152, abs=1e-9)

    def test_empty_series(self):
        """Should return an all-zero record instead of raising."""
        assert calculate_performance_metrics([]) == PerformanceMetrics()

    def test_does_not_mutate_input(self):
        returns = list(SCENARIO)

        calculate_performance_metrics(returns, [0.0] * len(returns))
        calculate_risk_metrics(returns)

        assert returns == SCENARIO

    def test_single_sample(self):
        metrics = calculate_performance_metrics([0.1])

        assert metrics.roi == pytest.approx(0.1)
        assert metrics.volatility == 0.0
        assert metrics.sharpe_ratio == 0.0
        assert metrics.risk_adjusted_return == 0.0
        assert metrics.profit_factor == math.inf

    def test_round_trips_through_dict(self, metrics):
        assert PerformanceMetrics.from_dict(metrics.to_dict()) == metrics

    def test_from_dict_ignores_unknown_fields(self):
        restored = PerformanceMetrics.from_dict({"roi": 0.5, "legacy_field": 1})

        assert restored.roi == 0.5


# =============================================================================
# RISK METRICS
# =============================================================================

class TestRiskMetrics:
    """Tests for calculate_risk_metrics."""

    def test_scenario(self):
        risk = calculate_risk_metrics(SCENARIO)

        # floor(0.05 · 5) = 0: the worst return
        assert risk.var_95 == -0.02
        assert risk.var_99 == -0.02
        assert risk.cvar_95 == -0.02
        assert risk.max_loss == -0.02
        assert risk.min_return == -0.02
        assert risk.max_return == 0.05
        assert risk.variance == pytest.approx(0.00388 / 4)
        assert risk.standard_deviation == pytest.approx(math.sqrt(0.00388 / 4))

    def test_no_losses_caps_max_loss_at_zero(self):
        risk = calculate_risk_metrics([0.01, 0.02, 0.03])

        assert risk.max_loss == 0.0
        assert risk.min_return == 0.01

    def test_unsorted_input(self):
        risk = calculate_risk_metrics([0.3, -0.5, 0.1])

        assert risk.min_return == -0.5
        assert risk.var_95 == -0.5

    def test_empty(self):
        assert calculate_risk_metrics([]) == RiskMetrics()


# =============================================================================
# CORRELATION MATRIX
# =============================================================================

class TestCorrelationMatrix:
    """Tests for calculate_correlation_matrix."""

    def test_symmetric_with_unit_diagonal(self):
        series = [
            [0.1, 0.2, 0.3, 0.1],
            [0.2, 0.4, 0.6, 0.2],
            [0.3, 0.1, -0.2, 0.0],
        ]

        result = calculate_correlation_matrix(series, ["a", "b", "c"])

        assert result.size == 3
        assert result.assets == ["a", "b", "c"]
        for i in range(3):
            assert result.matrix[i][i] == 1.0
            for j in range(3):
                assert result.matrix[i][j] == result.matrix[j][i]
        assert result.matrix[0][1] == pytest.approx(1.0)

    def test_average_over_unique_pairs(self):
        series = [[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [3.0, 2.0, 1.0]]

        result = calculate_correlation_matrix(series, ["a", "b", "c"])

        # pairs: (a,b) = 1, (a,c) = -1, (b,c) = -1
        assert result.average_correlation == pytest.approx(-1 / 3)

    def test_single_asset(self):
        result = calculate_correlation_matrix([[0.1, 0.2]], ["only"])

        assert result.matrix == [[1.0]]
        assert result.average_correlation == 0.0

    def test_empty(self):
        assert calculate_correlation_matrix([], []) == CorrelationMatrix()

    def test_names_mismatch(self):
        assert calculate_correlation_matrix([[0.1], [0.2]], ["a"]).size == 0


class TestMetricsCalculator:
    """Tests for the MetricsCalculator facade."""

    def test_delegates_to_functions(self):
        assert MetricsCalculator.performance(SCENARIO) == calculate_performance_metrics(SCENARIO)
        assert MetricsCalculator.risk(SCENARIO) == calculate_risk_metrics(SCENARIO)
        assert MetricsCalculator.correlation_matrix([[1.0, 2.0]], ["a"]).size == 1
