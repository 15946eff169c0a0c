# backend/lineup_analytics/services/__init__.py
"""
Service layer for lineup analytics.

Services have no knowledge of HTTP. They raise domain exceptions and receive
their collaborators (sessions, Redis clients, loggers) through constructors,
which keeps them testable with plain fakes.

Usage:
    from lineup_analytics.services import AnalyticsWorker, WorkerConfig
    from lineup_analytics.services import AnalyticsCache, CacheKind
    from lineup_analytics.services import SqlAlchemyDataStore, build_push_sink

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Formula constants and limits
    ├── protocols.py                 # Worker collaborator interfaces
    ├── circuit_breaker.py           # Ratio circuit breaker for Redis and the database
    ├── datastore.py                 # SQLAlchemy data store
    ├── push.py                      # Real-time event sinks
    ├── analytics/                   # Metrics calculator (pure functions)
    │   ├── types.py                 # Result and input types
    │   ├── returns.py               # Return statistics, Kelly, consistency
    │   ├── risk.py                  # Sharpe, Sortino, drawdown, VaR/CVaR
    │   ├── benchmark.py             # Beta, alpha, capture ratios
    │   ├── calculator.py            # Aggregate metrics and correlation matrix
    │   ├── portfolio.py             # Lineup weight optimization
    │   └── prediction.py            # Trailing-performance predictor
    ├── cache/                       # Redis analytics cache
    │   └── analytics_cache.py
    └── worker/                      # Background scheduler
        └── analytics_worker.py
"""

# Exceptions
from lineup_analytics.services.exceptions import (
    ServiceError,
    ValidationError,
    AnalyticsError,
    InsufficientDataError,
    CacheError,
    DataStoreError,
    WorkerError,
    WorkerAlreadyRunningError,
    WorkerNotRunningError,
    WorkerStopTimeoutError,
)
# Circuit breaker
from lineup_analytics.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
    breaker_from_settings,
)
# Cache
from lineup_analytics.services.cache import AnalyticsCache, CacheKind, CacheStats
# Data store
from lineup_analytics.services.datastore import SqlAlchemyDataStore
# Push
from lineup_analytics.services.push import (
    EventKind,
    LoggingPushSink,
    NullPushSink,
    RedisPushSink,
    build_push_sink,
)
# Worker
from lineup_analytics.services.worker import AnalyticsWorker, WorkerConfig, WorkerStats

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "AnalyticsCache",
    "CacheKind",
    "CacheStats",
    "SqlAlchemyDataStore",
    "AnalyticsWorker",
    "WorkerConfig",
    "WorkerStats",
    # Push
    "EventKind",
    "NullPushSink",
    "LoggingPushSink",
    "RedisPushSink",
    "build_push_sink",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",
    "breaker_from_settings",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "ServiceError",
    "ValidationError",
    "AnalyticsError",
    "InsufficientDataError",
    "CacheError",
    "DataStoreError",
    "WorkerError",
    "WorkerAlreadyRunningError",
    "WorkerNotRunningError",
    "WorkerStopTimeoutError",
]
