# backend/lineup_analytics/services/circuit_breaker.py
"""
Circuit breaker for calls to Redis and the lineup data store.

The breaker watches the outcome of recent calls and stops sending traffic
to a dependency once too large a share of them fail, giving the dependency
time to recover instead of piling timeouts onto it.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Failure ratio exceeded, calls rejected immediately
    HALF_OPEN - Probing recovery, a limited number of calls allowed

State Transitions:
    CLOSED -> OPEN: At least ``minimum_calls`` outcomes were recorded in the
                    last ``window_seconds`` and the share of failures among
                    them is >= ``failure_ratio_threshold``
    OPEN -> HALF_OPEN: After ``recovery_timeout`` seconds
    HALF_OPEN -> CLOSED: A probe call succeeds
    HALF_OPEN -> OPEN: A probe call fails

Usage:
    from lineup_analytics.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen

    breaker = CircuitBreaker(name="analytics-cache", failure_ratio_threshold=0.5)

    # Context manager
    try:
        with breaker:
            raw = client.get(key)
    except CircuitBreakerOpen:
        return None

    # Decorator
    @breaker
    def load_history(user_id):
        return store.get_user_lineup_history(user_id, window)
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Callable, TypeVar, Any

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Exception raised when circuit breaker is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until recovery timeout expires
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """
    Statistics for monitoring circuit breaker behavior.

    Attributes:
        total_calls: Total number of calls attempted
        successful_calls: Number of successful calls
        failed_calls: Number of failed calls
        rejected_calls: Number of calls rejected (circuit open)
        state_changes: Number of state transitions
        window_calls: Outcomes currently inside the rolling window
        window_failure_ratio: Failure share inside the rolling window
        last_failure_time: Clock reading of last failure
        last_success_time: Clock reading of last success
    """
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    window_calls: int = 0
    window_failure_ratio: float = 0.0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker with a rolling failure-ratio trigger.

    Attributes:
        name: Identifier for this circuit breaker (used in logs/errors)
        failure_ratio_threshold: Failure share (0, 1] that opens the circuit
        minimum_calls: Outcomes required in the window before the ratio counts
        window_seconds: Length of the rolling window
        recovery_timeout: Seconds to wait before probing recovery
        half_open_max_calls: Max probe calls allowed in half-open state
        excluded_exceptions: Exception types that don't count as failures
        clock: Monotonic time source, replaceable in tests
    """

    name: str
    failure_ratio_threshold: float = 0.5
    minimum_calls: int = 10
    window_seconds: float = 60.0
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)
    clock: Callable[[], float] = time.monotonic

    # Internal state (not part of constructor)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _outcomes: deque = field(default_factory=deque, init=False)  # (timestamp, failed)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not 0 < self.failure_ratio_threshold <= 1:
            raise ValueError("failure_ratio_threshold must be in (0, 1]")
        if self.minimum_calls < 1:
            raise ValueError("minimum_calls must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.debug(
            f"CircuitBreaker '{self.name}' initialized: "
            f"ratio={self.failure_ratio_threshold}, "
            f"minimum_calls={self.minimum_calls}, "
            f"window={self.window_seconds}s, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    @property
    def state(self) -> CircuitState:
        """Current state of the circuit breaker."""
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Get a copy of current statistics."""
        with self._lock:
            self._evict_old_outcomes(self.clock())
            window_calls, ratio = self._window_ratio()
            return CircuitBreakerStats(
                total_calls=self._stats.total_calls,
                successful_calls=self._stats.successful_calls,
                failed_calls=self._stats.failed_calls,
                rejected_calls=self._stats.rejected_calls,
                state_changes=self._stats.state_changes,
                window_calls=window_calls,
                window_failure_ratio=ratio,
                last_failure_time=self._stats.last_failure_time,
                last_success_time=self._stats.last_success_time,
            )

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed (normal operation)."""
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (blocking requests)."""
        return self.state == CircuitState.OPEN

    def _check_state_transition(self) -> None:
        """Move OPEN -> HALF_OPEN once the recovery timeout has passed. Lock held."""
        if self._state == CircuitState.OPEN:
            if self.clock() - self._opened_at >= self.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to a new state. Lock held."""
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
        if new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        if new_state == CircuitState.CLOSED:
            self._outcomes.clear()

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _evict_old_outcomes(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._outcomes and self._outcomes[0][0] <= cutoff:
            self._outcomes.popleft()

    def _window_ratio(self) -> tuple[int, float]:
        total = len(self._outcomes)
        if total == 0:
            return 0, 0.0
        failures = sum(1 for _, failed in self._outcomes if failed)
        return total, failures / total

    def _record_success(self) -> None:
        """Record a successful call. Lock held."""
        now = self.clock()
        self._stats.successful_calls += 1
        self._stats.last_success_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)
            return

        if self._state == CircuitState.CLOSED:
            self._outcomes.append((now, False))
            self._evict_old_outcomes(now)

    def _record_failure(self) -> None:
        """Record a failed call. Lock held."""
        now = self.clock()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        if self._state == CircuitState.CLOSED:
            self._outcomes.append((now, True))
            self._evict_old_outcomes(now)
            total, ratio = self._window_ratio()
            if total >= self.minimum_calls and ratio >= self.failure_ratio_threshold:
                self._transition_to(CircuitState.OPEN)

    def _can_execute(self) -> bool:
        """Check whether a call may proceed in the current state. Lock held."""
        self._check_state_transition()

        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True
            return False

        return False

    def _time_until_recovery(self) -> float:
        remaining = self.recovery_timeout - (self.clock() - self._opened_at)
        return max(0.0, remaining)

    def __enter__(self) -> "CircuitBreaker":
        """
        Context manager entry - check if call is allowed.

        Raises:
            CircuitBreakerOpen: If circuit is open
        """
        with self._lock:
            self._stats.total_calls += 1

            if not self._can_execute():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(
                    self.name,
                    self._time_until_recovery()
                )

        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        """Context manager exit - record success or failure, never suppress."""
        with self._lock:
            if exc_val is None:
                self._record_success()
            elif self.excluded_exceptions and isinstance(exc_val, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()

        return False

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Use circuit breaker as a decorator."""
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with self:
                return func(*args, **kwargs)
        return wrapper

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``func(*args, **kwargs)`` under the breaker."""
        with self:
            return func(*args, **kwargs)

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Manually open the circuit breaker (maintenance, known outage)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
            logger.warning(f"CircuitBreaker '{self.name}' manually opened")


def breaker_from_settings(name: str, app_settings: Any, **overrides: Any) -> CircuitBreaker:
    """Build a breaker from the ``breaker_*`` fields of Settings."""
    params = dict(
        failure_ratio_threshold=app_settings.breaker_failure_ratio,
        minimum_calls=app_settings.breaker_minimum_calls,
        window_seconds=app_settings.breaker_window_seconds,
        recovery_timeout=app_settings.breaker_recovery_timeout_seconds,
        half_open_max_calls=app_settings.breaker_half_open_max_calls,
    )
    params.update(overrides)
    return CircuitBreaker(name=name, **params)
