# backend/lineup_analytics/services/analytics/__init__.py
"""
Metrics calculator package.

This package computes lineup portfolio analytics:
- Return statistics (ROI, win rate, profit factor, Kelly, consistency)
- Risk metrics (Sharpe, Sortino, drawdown, Calmar, VaR/CVaR, moments)
- Benchmark comparison (beta, alpha, Treynor, information ratio, capture)
- Portfolio optimization across lineups (risk parity, mean-variance)
- Baseline next-contest prediction

Architecture:
    analytics/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Value objects and (de)serialization
    ├── returns.py               # Mean, variance, ROI, win/loss statistics
    ├── risk.py                  # Risk-adjusted ratios, drawdown, tails, moments
    ├── benchmark.py             # Benchmark-relative metrics
    ├── calculator.py            # Aggregate entry points
    ├── portfolio.py             # Lineup weight optimization
    └── prediction.py            # Shrinkage predictor

Usage:
    from lineup_analytics.services.analytics import (
        calculate_performance_metrics,
        calculate_risk_metrics,
    )

    performance = calculate_performance_metrics(series.returns, risk_free_rate=0.0)
    risk = calculate_risk_metrics(series.returns)

Data Flow:
    DataStore.get_user_lineup_history()
        ↓
    ReturnSeries (per-entry returns)
        ↓
    ┌─────────────────────────────────────────┐
    │            Metrics Calculator           │
    │  ┌─────────────┐  ┌─────────────────┐   │
    │  │ Returns     │  │ Risk            │   │
    │  │ • ROI       │  │ • Sharpe        │   │
    │  │ • Win rate  │  │ • Drawdown      │   │
    │  │ • Kelly     │  │ • VaR / CVaR    │   │
    │  └─────────────┘  └─────────────────┘   │
    │  ┌───────────────────────────────────┐  │
    │  │ Benchmark                         │  │
    │  │ • Beta  • Alpha  • Capture        │  │
    │  └───────────────────────────────────┘  │
    └─────────────────────────────────────────┘
        ↓
    PerformanceMetrics / RiskMetrics → AnalyticsCache, DataStore
"""

from lineup_analytics.services.analytics.benchmark import (
    calculate_alpha,
    calculate_beta,
    calculate_correlation,
    calculate_covariance,
    calculate_downside_capture,
    calculate_information_ratio,
    calculate_treynor_ratio,
    calculate_upside_capture,
)
from lineup_analytics.services.analytics.calculator import (
    MetricsCalculator,
    calculate_correlation_matrix,
    calculate_performance_metrics,
    calculate_risk_metrics,
)
from lineup_analytics.services.analytics.portfolio import PortfolioConfig, optimize_portfolio
from lineup_analytics.services.analytics.prediction import (
    ModelSnapshot,
    TrailingPerformancePredictor,
)
from lineup_analytics.services.analytics.returns import (
    calculate_consistency_score,
    calculate_expected_value,
    calculate_kelly_fraction,
    calculate_mean,
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
    OptimizationMethod,
    PerformanceMetrics,
    PerformanceReport,
    PortfolioAnalysis,
    PredictionResult,
    ReturnSample,
    ReturnSeries,
    RiskMetrics,
)

__all__ = [
    # Types
    "ReturnSample",
    "ReturnSeries",
    "PerformanceMetrics",
    "RiskMetrics",
    "CorrelationMatrix",
    "PerformanceReport",
    "PortfolioAnalysis",
    "PredictionResult",
    "OptimizationMethod",
    # Aggregates
    "MetricsCalculator",
    "calculate_performance_metrics",
    "calculate_risk_metrics",
    "calculate_correlation_matrix",
    # Returns
    "calculate_mean",
    "calculate_variance",
    "calculate_standard_deviation",
    "calculate_total_return",
    "calculate_expected_value",
    "calculate_win_rate",
    "calculate_profit_factor",
    "calculate_kelly_fraction",
    "calculate_consistency_score",
    # Risk
    "calculate_sharpe_ratio",
    "calculate_sortino_ratio",
    "calculate_downside_deviation",
    "calculate_max_drawdown",
    "calculate_max_drawdown_duration",
    "calculate_calmar_ratio",
    "calculate_var",
    "calculate_cvar",
    "calculate_skewness",
    "calculate_kurtosis",
    # Benchmark
    "calculate_covariance",
    "calculate_correlation",
    "calculate_beta",
    "calculate_alpha",
    "calculate_treynor_ratio",
    "calculate_information_ratio",
    "calculate_upside_capture",
    "calculate_downside_capture",
    # Portfolio & prediction
    "PortfolioConfig",
    "optimize_portfolio",
    "TrailingPerformancePredictor",
    "ModelSnapshot",
]
