# backend/lineup_analytics/services/worker/analytics_worker.py
"""
Background scheduler for analytics aggregation.

Four tasks run on their own daemon threads, each on a fixed period:

    performance_aggregation  (1h)   metrics + risk per active user
    portfolio_analysis       (4h)   lineup weight optimization per eligible user
    model_refresh            (12h)  refit the predictor, predict per active user
    data_cleanup             (24h)  drop old analytics rows, sweep the cache

Every thread waits on one shared ``threading.Event`` with its period as the
timeout, so the same call is both the ticker and the cancellation check.
The first cycle of each task runs one period after ``start()``. Users within
a cycle are processed one at a time and the stop event is checked before
each of them.

Failure policy:
- A failing user is logged, counted and skipped
- A failure to list users (or to refit the model) ends that cycle only
- Push delivery is fire-and-forget; failures are counted as push_<event>
- Nothing is retried inside a cycle; the next tick is the retry

Usage:
    worker = AnalyticsWorker(data_store, cache, push_sink, config=WorkerConfig.from_settings(settings))
    worker.start()
    ...
    worker.stop()
"""

import copy
import logging
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from lineup_analytics.services.analytics.calculator import (
    calculate_performance_metrics,
    calculate_risk_metrics,
)
from lineup_analytics.services.analytics.portfolio import PortfolioConfig, optimize_portfolio
from lineup_analytics.services.analytics.prediction import TrailingPerformancePredictor
from lineup_analytics.services.analytics.types import (
    OptimizationMethod,
    PerformanceMetrics,
    PerformanceReport,
    ReturnSeries,
    RiskMetrics,
)
from lineup_analytics.services.cache.analytics_cache import AnalyticsCache, CacheKind
from lineup_analytics.services.circuit_breaker import CircuitBreaker
from lineup_analytics.services.exceptions import (
    InsufficientDataError,
    ValidationError,
    WorkerAlreadyRunningError,
    WorkerNotRunningError,
    WorkerStopTimeoutError,
)
from lineup_analytics.services.protocols import (
    DataStoreProtocol,
    PredictorProtocol,
    PushSinkProtocol,
)
from lineup_analytics.services.push import EventKind, NullPushSink
from lineup_analytics.utils.context import cycle_scope

# Task names double as the error category for a cycle-level failure
TASK_PERFORMANCE = "performance_aggregation"
TASK_PORTFOLIO = "portfolio_analysis"
TASK_MODEL_REFRESH = "model_refresh"
TASK_CLEANUP = "data_cleanup"
TASKS = (TASK_PERFORMANCE, TASK_PORTFOLIO, TASK_MODEL_REFRESH, TASK_CLEANUP)

# Per-user error categories
ERROR_USER_PERFORMANCE = "user_performance"
ERROR_USER_PORTFOLIO = "user_portfolio"
ERROR_USER_PREDICTIONS = "user_predictions"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _batched(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class WorkerConfig:
    """
    Schedule and processing settings for the analytics worker.

    Intervals and the stop timeout are in seconds.
    """
    performance_interval: float = 3600.0
    portfolio_interval: float = 14400.0
    model_refresh_interval: float = 43200.0
    cleanup_interval: float = 86400.0
    batch_size: int = 100
    active_user_window: timedelta = timedelta(days=7)
    performance_window: timedelta = timedelta(days=30)
    portfolio_window: timedelta = timedelta(days=90)
    data_retention: timedelta = timedelta(days=90)
    enable_real_time_updates: bool = True
    stop_timeout: float = 30.0
    risk_free_rate: float = 0.0
    optimization_method: OptimizationMethod = OptimizationMethod.RISK_PARITY

    def __post_init__(self) -> None:
        for name in ("performance_interval", "portfolio_interval", "model_refresh_interval", "cleanup_interval"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive", field=name)
        if self.batch_size < 1:
            raise ValidationError("batch_size must be at least 1", field="batch_size")
        for name in ("active_user_window", "performance_window", "portfolio_window", "data_retention"):
            if getattr(self, name) <= timedelta(0):
                raise ValidationError(f"{name} must be positive", field=name)
        if self.stop_timeout < 0:
            raise ValidationError("stop_timeout cannot be negative", field="stop_timeout")

    @classmethod
    def from_settings(cls, app_settings: Any) -> "WorkerConfig":
        return cls(
            performance_interval=app_settings.worker_performance_interval_seconds,
            portfolio_interval=app_settings.worker_portfolio_interval_seconds,
            model_refresh_interval=app_settings.worker_model_refresh_interval_seconds,
            cleanup_interval=app_settings.worker_cleanup_interval_seconds,
            batch_size=app_settings.worker_batch_size,
            active_user_window=timedelta(days=app_settings.active_user_window_days),
            performance_window=timedelta(days=app_settings.performance_window_days),
            portfolio_window=timedelta(days=app_settings.portfolio_window_days),
            data_retention=timedelta(days=app_settings.data_retention_days),
            enable_real_time_updates=app_settings.enable_real_time_updates,
            stop_timeout=app_settings.worker_stop_timeout_seconds,
            risk_free_rate=app_settings.risk_free_rate,
        )


@dataclass
class WorkerStats:
    """
    Counters kept for the life of the worker object.

    A stop and restart leaves every counter in place; ``start_time`` records
    the latest ``start()``.
    """
    start_time: datetime | None = None
    users_processed: int = 0
    performance_reports_generated: int = 0
    portfolio_analyses_completed: int = 0
    predictions_generated: int = 0
    rows_cleaned: int = 0
    errors: dict[str, int] = field(default_factory=dict)
    last_run: dict[str, datetime] = field(default_factory=dict)
    last_success: dict[str, datetime] = field(default_factory=dict)
    last_duration_seconds: dict[str, float] = field(default_factory=dict)
    cycles: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "users_processed": self.users_processed,
            "performance_reports_generated": self.performance_reports_generated,
            "portfolio_analyses_completed": self.portfolio_analyses_completed,
            "predictions_generated": self.predictions_generated,
            "rows_cleaned": self.rows_cleaned,
            "errors": dict(self.errors),
            "last_run": {task: ts.isoformat() for task, ts in self.last_run.items()},
            "last_success": {task: ts.isoformat() for task, ts in self.last_success.items()},
            "last_duration_seconds": dict(self.last_duration_seconds),
            "cycles": dict(self.cycles),
        }


class AnalyticsWorker:
    """
    Runs the four analytics tasks on background threads.

    Args:
        data_store: Source of lineup history and sink for results
        cache: Cache that receives fresh performance and risk records
        push_sink: Real-time event transport (events dropped when None)
        predictor: Model refreshed by the model_refresh task
        config: Schedule and windows
        breaker: Circuit breaker around every data store call
        logger: Logger to use (defaults to this module's)
        clock: Returns the current UTC time; replaceable in tests
    """

    def __init__(
            self,
            data_store: DataStoreProtocol,
            cache: AnalyticsCache,
            push_sink: PushSinkProtocol | None = None,
            predictor: PredictorProtocol | None = None,
            config: WorkerConfig | None = None,
            breaker: CircuitBreaker | None = None,
            logger: logging.Logger | None = None,
            clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._data_store = data_store
        self._cache = cache
        self._push_sink = push_sink or NullPushSink()
        self._logger = logger or logging.getLogger(__name__)
        self._predictor = predictor or TrailingPerformancePredictor(logger=self._logger)
        self.config = config or WorkerConfig()
        self._breaker = breaker or CircuitBreaker(name="analytics-datastore")
        self._clock = clock or _utcnow

        self._lifecycle_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = WorkerStats()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._running = False
        self._stopping = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        with self._lifecycle_lock:
            return self._running

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def start(self) -> None:
        """
        Start one thread per task.

        Raises:
            WorkerAlreadyRunningError: If the worker is already running
        """
        with self._lifecycle_lock:
            if self._running:
                raise WorkerAlreadyRunningError()

            with self._stats_lock:
                self._stats.start_time = self._clock()

            stop_event = threading.Event()
            self._stop_event = stop_event
            schedule = {
                TASK_PERFORMANCE: (self.config.performance_interval, self._aggregate_performance),
                TASK_PORTFOLIO: (self.config.portfolio_interval, self._analyze_portfolios),
                TASK_MODEL_REFRESH: (self.config.model_refresh_interval, self._refresh_model),
                TASK_CLEANUP: (self.config.cleanup_interval, self._clean_up),
            }
            self._threads = [
                threading.Thread(
                    target=self._tick,
                    args=(task, interval, body, stop_event),
                    name=f"analytics-{task}",
                    daemon=True,
                )
                for task, (interval, body) in schedule.items()
            ]
            for thread in self._threads:
                thread.start()
            self._running = True

        self._logger.info(
            f"Analytics worker started: "
            f"performance={self.config.performance_interval}s, "
            f"portfolio={self.config.portfolio_interval}s, "
            f"model_refresh={self.config.model_refresh_interval}s, "
            f"cleanup={self.config.cleanup_interval}s"
        )

    def stop(self, timeout: float | None = None) -> None:
        """
        Signal every task to stop and wait for the threads to exit.

        A cycle in progress finishes its current user before exiting.

        Args:
            timeout: Seconds to wait across all threads (defaults to
                     ``config.stop_timeout``)

        The threads are joined outside the lifecycle lock, so ``is_running``
        keeps answering (True) while the shutdown is in progress.

        Raises:
            WorkerNotRunningError: If the worker is not running or another
                                   stop is already in progress
            WorkerStopTimeoutError: If a thread is still alive after the
                                    timeout; the worker is marked stopped anyway
        """
        with self._lifecycle_lock:
            if not self._running or self._stopping:
                raise WorkerNotRunningError()

            self._logger.info("Stopping analytics worker")
            timeout = self.config.stop_timeout if timeout is None else timeout
            self._stopping = True
            self._stop_event.set()
            threads = list(self._threads)

        deadline = time.monotonic() + timeout
        stuck = []
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                stuck.append(thread.name)

        with self._lifecycle_lock:
            self._threads = []
            self._stop_event = threading.Event()
            self._running = False
            self._stopping = False

        if stuck:
            self._logger.error(f"Analytics worker threads still running after {timeout}s: {stuck}")
            raise WorkerStopTimeoutError(stuck, timeout)
        self._logger.info("Analytics worker stopped")

    def get_stats(self) -> WorkerStats:
        """Deep copy of the current counters."""
        with self._stats_lock:
            return copy.deepcopy(self._stats)

    def _tick(
            self,
            task: str,
            interval: float,
            body: Callable[[threading.Event], None],
            stop_event: threading.Event,
    ) -> None:
        while not stop_event.wait(interval):
            self._run_cycle(task, body, stop_event)
        self._logger.debug(f"{task} thread exiting")

    # =========================================================================
    # ONE-SHOT CYCLES
    # =========================================================================

    def run_performance_aggregation(self) -> bool:
        """Run one performance aggregation cycle now; True if it completed."""
        return self._run_cycle(TASK_PERFORMANCE, self._aggregate_performance, self._stop_event)

    def run_portfolio_analysis(self) -> bool:
        return self._run_cycle(TASK_PORTFOLIO, self._analyze_portfolios, self._stop_event)

    def run_model_refresh(self) -> bool:
        return self._run_cycle(TASK_MODEL_REFRESH, self._refresh_model, self._stop_event)

    def run_data_cleanup(self) -> bool:
        return self._run_cycle(TASK_CLEANUP, self._clean_up, self._stop_event)

    def _run_cycle(
            self,
            task: str,
            body: Callable[[threading.Event], None],
            stop_event: threading.Event,
    ) -> bool:
        with cycle_scope(task):
            started_at = self._clock()
            started = time.perf_counter()
            self._logger.info(f"Starting {task} cycle")
            try:
                body(stop_event)
                completed = True
            except Exception as e:
                completed = False
                self._record_error(task)
                self._logger.error(f"{task} cycle failed: {e}", exc_info=True)
            duration = time.perf_counter() - started

            with self._stats_lock:
                self._stats.cycles[task] = self._stats.cycles.get(task, 0) + 1
                self._stats.last_run[task] = started_at
                self._stats.last_duration_seconds[task] = duration
                if completed:
                    self._stats.last_success[task] = self._clock()

            if completed:
                self._logger.info(f"Completed {task} cycle in {duration:.2f}s")
            return completed

    # =========================================================================
    # TASK BODIES
    # =========================================================================

    def _aggregate_performance(self, stop_event: threading.Event) -> None:
        users = self._guarded(self._data_store.list_active_users, self.config.active_user_window)
        self._logger.info(f"Aggregating performance for {len(users)} active users")
        on_date = self._clock()
        processed = 0

        for batch in _batched(users, self.config.batch_size):
            performance: dict[str, PerformanceMetrics] = {}
            risk: dict[str, RiskMetrics] = {}
            for user_id in batch:
                if stop_event.is_set():
                    break
                try:
                    report = self._process_user_performance(user_id)
                except Exception as e:
                    self._user_failed(ERROR_USER_PERFORMANCE, user_id, e)
                    continue
                if report is None:
                    continue
                performance[user_id] = report.performance
                risk[user_id] = report.risk
                processed += 1
                self._increment(users_processed=1, performance_reports_generated=1)
                self._push(EventKind.PERFORMANCE_UPDATE, user_id, report.to_dict())

            self._cache.bulk_set(performance, on_date, CacheKind.PORTFOLIO)
            self._cache.bulk_set(risk, on_date, CacheKind.RISK)
            if stop_event.is_set():
                self._logger.info("Stop requested, ending performance aggregation early")
                break

        self._logger.info(f"Performance aggregation processed {processed}/{len(users)} users")

    def _process_user_performance(self, user_id: str) -> PerformanceReport | None:
        series = self._history(user_id, self.config.performance_window)
        if len(series) == 0:
            self._logger.debug(f"No paid entries for user {user_id} in window, skipping")
            return None

        returns = series.returns
        report = PerformanceReport(
            user_id=user_id,
            time_frame=f"{self.config.performance_window.days}d",
            start=series.start,
            end=series.end,
            sample_count=len(series),
            performance=calculate_performance_metrics(returns, risk_free_rate=self.config.risk_free_rate),
            risk=calculate_risk_metrics(returns),
        )
        self._guarded(self._data_store.store_performance_report, user_id, report)
        return report

    def _analyze_portfolios(self, stop_event: threading.Event) -> None:
        users = self._guarded(self._data_store.list_portfolio_eligible_users)
        self._logger.info(f"Analyzing portfolios for {len(users)} eligible users")
        portfolio_config = PortfolioConfig(
            method=self.config.optimization_method,
            risk_free_rate=self.config.risk_free_rate,
        )
        completed = 0

        for user_id in users:
            if stop_event.is_set():
                self._logger.info("Stop requested, ending portfolio analysis early")
                break
            try:
                series = self._history(user_id, self.config.portfolio_window)
                result = optimize_portfolio(series, portfolio_config)
                self._guarded(self._data_store.store_portfolio_analysis, user_id, result)
            except InsufficientDataError as e:
                self._logger.debug(f"Skipping portfolio for user {user_id}: {e}")
                continue
            except Exception as e:
                self._user_failed(ERROR_USER_PORTFOLIO, user_id, e)
                continue
            completed += 1
            self._increment(portfolio_analyses_completed=1)
            self._push(EventKind.PORTFOLIO_UPDATE, user_id, result.to_dict())

        self._logger.info(f"Portfolio analysis completed for {completed}/{len(users)} users")

    def _refresh_model(self, stop_event: threading.Event) -> None:
        users = self._guarded(self._data_store.list_active_users, self.config.active_user_window)

        histories: dict[str, ReturnSeries] = {}
        for user_id in users:
            if stop_event.is_set():
                self._logger.info("Stop requested, ending model refresh early")
                return
            try:
                histories[user_id] = self._history(user_id, self.config.performance_window)
            except Exception as e:
                self._user_failed(ERROR_USER_PREDICTIONS, user_id, e)

        self._predictor.refresh(histories)

        generated = 0
        for user_id, series in histories.items():
            if stop_event.is_set():
                self._logger.info("Stop requested, ending prediction generation early")
                break
            if len(series) == 0:
                continue
            try:
                prediction = self._predictor.predict(user_id, series)
                self._guarded(self._data_store.store_prediction, user_id, prediction)
            except Exception as e:
                self._user_failed(ERROR_USER_PREDICTIONS, user_id, e)
                continue
            generated += 1
            self._increment(predictions_generated=1)
            self._push(EventKind.PREDICTION_UPDATE, user_id, prediction.to_dict())

        self._logger.info(f"Generated {generated} predictions for {len(histories)} users")

    def _clean_up(self, stop_event: threading.Event) -> None:
        cutoff = self._clock() - self.config.data_retention
        deleted = self._guarded(self._data_store.cleanup_older_than, cutoff)
        self._increment(rows_cleaned=deleted)

        if stop_event.is_set():
            return
        sweep = self._cache.clear_expired_keys()
        if not sweep.completed:
            self._logger.warning("Cache sweep did not complete; remaining keys rely on Redis expiry")
        self._logger.info(
            f"Cleanup removed {deleted} rows older than {cutoff.date()}, "
            f"swept {sweep.checked} cache keys"
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _guarded(self, func: Callable[..., Any], *args: Any) -> Any:
        return self._breaker.call(func, *args)

    def _history(self, user_id: str, window: timedelta) -> ReturnSeries:
        return self._guarded(self._data_store.get_user_lineup_history, user_id, window)

    def _push(self, kind: EventKind, user_id: str, payload: dict[str, Any]) -> None:
        if not self.config.enable_real_time_updates:
            return
        try:
            self._push_sink.send_event(kind.value, user_id, payload)
        except Exception as e:
            self._record_error(f"push_{kind.value}")
            self._logger.warning(f"Failed to push {kind.value} for user {user_id}: {e}")

    def _user_failed(self, category: str, user_id: str, error: Exception) -> None:
        self._record_error(category)
        self._logger.error(f"{category} failed for user {user_id}: {error}")

    def _record_error(self, category: str) -> None:
        with self._stats_lock:
            self._stats.errors[category] = self._stats.errors.get(category, 0) + 1

    def _increment(self, **counters: int) -> None:
        with self._stats_lock:
            for name, amount in counters.items():
                setattr(self._stats, name, getattr(self._stats, name) + amount)
