# backend/lineup_analytics/utils/__init__.py
"""
Cross-cutting utilities for the lineup analytics service.

- logging: Logging configuration with cycle ID tagging
- context: Cycle ID storage for worker cycles and requests

Usage:
    from lineup_analytics.utils import setup_logging
    from lineup_analytics.utils import cycle_scope, get_cycle_id
"""

from lineup_analytics.utils.context import (
    get_cycle_id,
    set_cycle_id,
    clear_cycle_id,
    new_cycle_id,
    cycle_scope,
)
from lineup_analytics.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_cycle_id",
    "set_cycle_id",
    "clear_cycle_id",
    "new_cycle_id",
    "cycle_scope",
]
