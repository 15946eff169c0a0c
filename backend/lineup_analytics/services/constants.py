# backend/lineup_analytics/services/constants.py
"""
Centralized constants for the lineup analytics services.

Values that operators tune at deploy time live in ``config.Settings``; the
numbers here are part of the metric definitions or wire formats and change
only together with a cache key prefix bump.

Usage:
    from lineup_analytics.services.constants import (
        TRADING_DAYS_PER_YEAR,
        KELLY_FRACTION_CAP,
    )
"""


# =============================================================================
# METRIC DEFINITIONS
# =============================================================================

# Periods per year used to annualize the mean return in the Calmar ratio
TRADING_DAYS_PER_YEAR: int = 252

# Upper bound on the Kelly fraction; full Kelly is far too aggressive for
# contest bankrolls, so the recommendation is capped at a quarter
KELLY_FRACTION_CAP: float = 0.25

# Tail probabilities for historical VaR / CVaR
VAR_95_ALPHA: float = 0.05
VAR_99_ALPHA: float = 0.01

# Minimum sample sizes for the distribution-shape statistics
MIN_SAMPLES_FOR_SKEWNESS: int = 3
MIN_SAMPLES_FOR_KURTOSIS: int = 4


# =============================================================================
# ANALYTICS CACHE
# =============================================================================

# Key layout: {prefix}{kind}:{entity_id}:date:{YYYY-MM-DD}
CACHE_DATE_FORMAT: str = "%Y-%m-%d"

# Segment between the prefix and an optimization fingerprint
OPTIMIZATION_KEY_SEGMENT: str = "optimization"

# Player IDs are truncated to this many characters inside a fingerprint
FINGERPRINT_ID_CHARS: int = 8

# SCAN page size for the expired-key sweep
CACHE_SCAN_COUNT: int = 500

# Redis TTL replies
REDIS_TTL_KEY_MISSING: int = -2
REDIS_TTL_NO_EXPIRY: int = -1


# =============================================================================
# PORTFOLIO OPTIMIZATION
# =============================================================================

# Position limits applied to every optimized lineup weight
MIN_POSITION_WEIGHT: float = 0.0
MAX_POSITION_WEIGHT: float = 0.4

# Iterative solvers stop when the largest weight change falls below this
OPTIMIZER_TOLERANCE: float = 1e-8
OPTIMIZER_MAX_ITERATIONS: int = 1000

# Risk aversion used by mean-variance (higher = closer to minimum variance)
DEFAULT_RISK_AVERSION: float = 2.0

# Users need at least this many distinct lineups for portfolio analysis
MIN_LINEUPS_FOR_OPTIMIZATION: int = 2


# =============================================================================
# PREDICTION
# =============================================================================

# Pseudo-observations of the population prior blended into each user's mean
PREDICTION_PRIOR_STRENGTH: float = 20.0

MODEL_ID: str = "trailing-performance"
PREDICTION_TYPE: str = "next_contest_return"
