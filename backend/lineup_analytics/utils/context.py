# backend/lineup_analytics/utils/context.py
"""
Execution context for the analytics service.

Each worker cycle and each HTTP request runs under a short identifier so
that every log line it produces can be grouped afterwards. The identifier
lives in a ContextVar, which keeps it isolated per thread (each worker task
runs on its own thread) and per asyncio task.

Usage:
    from lineup_analytics.utils.context import cycle_scope, get_cycle_id

    with cycle_scope("performance_aggregation"):
        logger.info("...")   # log record carries the cycle ID
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_cycle_id_var: ContextVar[str | None] = ContextVar("cycle_id", default=None)


# =============================================================================
# CYCLE ID
# =============================================================================

def get_cycle_id() -> str | None:
    """
    Get the identifier of the cycle (or request) currently running.

    Returns:
        The cycle ID, or None outside of any cycle.
    """
    return _cycle_id_var.get()


def set_cycle_id(cycle_id: str) -> None:
    """
    Set the cycle ID for the current context.

    Args:
        cycle_id: Unique identifier for this unit of work
    """
    _cycle_id_var.set(cycle_id)


def clear_cycle_id() -> None:
    """Clear the cycle ID."""
    _cycle_id_var.set(None)


def new_cycle_id(task_name: str) -> str:
    """Build a cycle ID such as ``performance_aggregation-3f2a9c1d``."""
    return f"{task_name}-{uuid.uuid4().hex[:8]}"


@contextmanager
def cycle_scope(task_name: str) -> Iterator[str]:
    """
    Run a block under a fresh cycle ID, restoring the previous one afterwards.

    Args:
        task_name: Name of the task, used as the ID prefix

    Yields:
        The cycle ID in effect inside the block
    """
    cycle_id = new_cycle_id(task_name)
    token = _cycle_id_var.set(cycle_id)
    try:
        yield cycle_id
    finally:
        _cycle_id_var.reset(token)
