# backend/lineup_analytics/services/cache/__init__.py
"""
Analytics cache package.

Usage:
    from lineup_analytics.services.cache import AnalyticsCache, CacheKind
"""

from lineup_analytics.services.cache.analytics_cache import (
    AnalyticsCache,
    CacheKind,
    CacheStats,
    LineupOptimizationRequest,
    SweepResult,
    WarmResult,
    generate_optimization_cache_key,
)

__all__ = [
    "AnalyticsCache",
    "CacheKind",
    "CacheStats",
    "LineupOptimizationRequest",
    "SweepResult",
    "WarmResult",
    "generate_optimization_cache_key",
]
