# backend/lineup_analytics/services/worker/__init__.py
"""
Background analytics worker.

Usage:
    from lineup_analytics.services.worker import AnalyticsWorker, WorkerConfig
"""

from lineup_analytics.services.worker.analytics_worker import (
    AnalyticsWorker,
    WorkerConfig,
    WorkerStats,
    TASKS,
)

__all__ = [
    "AnalyticsWorker",
    "WorkerConfig",
    "WorkerStats",
    "TASKS",
]
