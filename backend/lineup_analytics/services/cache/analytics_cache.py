# backend/lineup_analytics/services/cache/analytics_cache.py
"""
Redis cache for computed analytics.

Makes calculator output nearly free to re-read. Every entry is a JSON
document written with a finite TTL under a deterministic key:

    {prefix}{kind}:{entity_id}:date:{YYYY-MM-DD}     metrics records
    {prefix}optimization:{fingerprint}               optimizer results

A miss is a normal "compute on demand" signal, not an error. Redis being
down, slow, or behind an open circuit breaker degrades every read to a miss
and every write to a no-op, with a warning in the log and an error count
in ``stats()``. Nothing here raises into the read path.

Usage:
    cache = AnalyticsCache.from_settings(settings)

    metrics = cache.get("user-42", date.today(), CacheKind.PORTFOLIO)
    if metrics is None:
        metrics = calculate_performance_metrics(series.returns)
        cache.set("user-42", date.today(), metrics, CacheKind.PORTFOLIO)
"""

import json
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import redis

from lineup_analytics.services.analytics.calculator import (
    calculate_performance_metrics,
    calculate_risk_metrics,
)
from lineup_analytics.services.analytics.types import (
    PerformanceMetrics,
    ReturnSeries,
    RiskMetrics,
    cache_date,
    json_safe,
)
from lineup_analytics.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    breaker_from_settings,
)
from lineup_analytics.services.constants import (
    CACHE_DATE_FORMAT,
    CACHE_SCAN_COUNT,
    FINGERPRINT_ID_CHARS,
    OPTIMIZATION_KEY_SEGMENT,
    REDIS_TTL_KEY_MISSING,
    REDIS_TTL_NO_EXPIRY,
)
from lineup_analytics.services.exceptions import CacheError, ValidationError

# Failures that degrade to a miss / no-op instead of propagating
_DEGRADED_ERRORS = (redis.RedisError, CircuitBreakerOpen)


class CacheKind(str, Enum):
    """Record family stored under a key; decides the decoded type."""
    PLAYER = "player"
    PORTFOLIO = "portfolio"
    RISK = "risk"


_RECORD_TYPES: dict[CacheKind, type] = {
    CacheKind.PLAYER: PerformanceMetrics,
    CacheKind.PORTFOLIO: PerformanceMetrics,
    CacheKind.RISK: RiskMetrics,
}

CachedRecord = PerformanceMetrics | RiskMetrics


@dataclass
class CacheStats:
    """Counters accumulated since the cache was created."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0
    marshal_errors: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "errors": self.errors,
            "marshal_errors": self.marshal_errors,
            "hit_rate": self.hit_rate,
        }


@dataclass
class WarmResult:
    """Outcome of a cache warming pass."""
    total: int = 0
    computed: int = 0
    skipped: int = 0
    written: int = 0


@dataclass
class SweepResult:
    """Outcome of an expired-key sweep."""
    checked: int = 0
    deleted: int = 0
    ttl_restored: int = 0
    failed: int = 0
    completed: bool = True


@dataclass(frozen=True)
class LineupOptimizationRequest:
    """
    Parameters of a lineup-generation run that determine its result.

    Only what feeds the cache fingerprint is modelled here; the optimizer
    itself lives outside this service.
    """
    salary_cap: int
    num_lineups: int
    min_different_players: int
    use_correlations: bool = False
    correlation_weight: float = 0.0
    stacking_rules: Sequence[Any] = field(default_factory=tuple)


def generate_optimization_cache_key(
        request: LineupOptimizationRequest,
        player_ids: Iterable[str],
) -> str:
    """
    Deterministic fingerprint for an optimization request.

    Format:
        salary:{cap}_lineups:{n}_diff:{d}[_corr:{w:.2f}][_stacks:{k}]_players:{hash}

    The player hash is ``{first8}-{last8}-{count}`` over the sorted IDs, or
    ``empty`` when there are none, so the key does not depend on the order
    in which the pool was listed.
    """
    key = (
        f"salary:{request.salary_cap}"
        f"_lineups:{request.num_lineups}"
        f"_diff:{request.min_different_players}"
    )
    if request.use_correlations:
        key += f"_corr:{request.correlation_weight:.2f}"
    if request.stacking_rules:
        key += f"_stacks:{len(request.stacking_rules)}"

    ids = sorted(str(pid) for pid in player_ids)
    if ids:
        player_hash = (
            f"{ids[0][:FINGERPRINT_ID_CHARS]}-{ids[-1][:FINGERPRINT_ID_CHARS]}-{len(ids)}"
        )
    else:
        player_hash = "empty"
    return f"{key}_players:{player_hash}"


class AnalyticsCache:
    """
    TTL cache of analytics records backed by Redis.

    Thread-safe: the Redis client pools its connections and the counters are
    guarded by a lock. Concurrent writers of the same key are last-write-wins.
    """

    def __init__(
            self,
            client: "redis.Redis",
            key_prefix: str = "analytics:",
            default_ttl: int = 3600,
            breaker: CircuitBreaker | None = None,
            logger: logging.Logger | None = None,
    ) -> None:
        if default_ttl <= 0:
            raise ValidationError("default_ttl must be positive", field="default_ttl")
        self._client = client
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self._breaker = breaker or CircuitBreaker(name="analytics-cache")
        self._logger = logger or logging.getLogger(__name__)
        self._stats = CacheStats()
        self._stats_lock = threading.Lock()
        self._available = True

    @classmethod
    def from_settings(cls, app_settings: Any, logger: logging.Logger | None = None) -> "AnalyticsCache":
        """Connect to Redis using the application settings and probe it once."""
        client = redis.Redis.from_url(
            app_settings.redis_url,
            decode_responses=True,
            socket_timeout=app_settings.redis_socket_timeout,
            socket_connect_timeout=app_settings.redis_connect_timeout,
        )
        cache = cls(
            client,
            key_prefix=app_settings.cache_key_prefix,
            default_ttl=app_settings.cache_default_ttl_seconds,
            breaker=breaker_from_settings("analytics-cache", app_settings),
            logger=logger,
        )
        cache.ping()
        return cache

    # =========================================================================
    # KEYS
    # =========================================================================

    def build_key(self, entity_id: str, on_date: date | datetime, kind: CacheKind = CacheKind.PORTFOLIO) -> str:
        day = cache_date(on_date).strftime(CACHE_DATE_FORMAT)
        return f"{self.key_prefix}{kind.value}:{entity_id}:date:{day}"

    def build_optimization_key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}{OPTIMIZATION_KEY_SEGMENT}:{fingerprint}"

    # =========================================================================
    # HEALTH & STATS
    # =========================================================================

    @property
    def is_available(self) -> bool:
        """Whether the last Redis round-trip succeeded."""
        return self._available

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def ping(self) -> bool:
        """Probe Redis and update ``is_available``."""
        try:
            with self._breaker:
                self._client.ping()
            self._available = True
            self._logger.info("Analytics cache connected")
        except _DEGRADED_ERRORS as e:
            self._available = False
            self._logger.warning(f"Analytics cache unavailable: {e}")
        return self._available

    def stats(self) -> CacheStats:
        """Snapshot of the counters."""
        with self._stats_lock:
            return CacheStats(**vars(self._stats))

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            self._logger.warning(f"Error closing analytics cache connection: {e}")

    def _count(self, **increments: int) -> None:
        with self._stats_lock:
            for name, amount in increments.items():
                setattr(self._stats, name, getattr(self._stats, name) + amount)

    def _degraded(self, operation: str, error: Exception) -> None:
        if isinstance(error, redis.RedisError):
            self._available = False
        self._count(errors=1)
        self._logger.warning(f"Analytics cache {operation} failed, degrading: {error}")

    # =========================================================================
    # (DE)SERIALIZATION
    # =========================================================================

    def _encode(self, key: str, value: Any) -> str:
        payload = value.to_dict() if hasattr(value, "to_dict") else value
        try:
            return json.dumps(json_safe(payload), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise CacheError(f"Cannot serialize value for {key}: {e}", key=key) from e

    def _decode(self, key: str, raw: str, kind: CacheKind) -> CachedRecord | None:
        try:
            return _RECORD_TYPES[kind].from_dict(json.loads(raw))
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            self._count(marshal_errors=1)
            self._logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    def _resolve_ttl(self, ttl: int | None) -> int:
        resolved = self.default_ttl if ttl is None else ttl
        if resolved <= 0:
            raise ValidationError("ttl must be positive", field="ttl")
        return resolved

    # =========================================================================
    # SINGLE-KEY OPERATIONS
    # =========================================================================

    def get(
            self,
            entity_id: str,
            on_date: date | datetime,
            kind: CacheKind = CacheKind.PORTFOLIO,
    ) -> CachedRecord | None:
        """
        Read one record.

        Returns:
            The decoded record, or None on a miss (including a degraded cache)
        """
        key = self.build_key(entity_id, on_date, kind)
        try:
            with self._breaker:
                raw = self._client.get(key)
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("get", e)
            self._count(misses=1)
            return None

        if raw is None:
            self._count(misses=1)
            self._logger.debug(f"Cache miss: {key}")
            return None

        record = self._decode(key, raw, kind)
        self._count(**({"hits": 1} if record is not None else {"misses": 1}))
        return record

    def set(
            self,
            entity_id: str,
            on_date: date | datetime,
            record: CachedRecord,
            kind: CacheKind = CacheKind.PORTFOLIO,
            ttl: int | None = None,
    ) -> bool:
        """
        Write one record, overwriting any previous value.

        Args:
            ttl: Seconds to live; defaults to ``default_ttl``. Must be positive.

        Returns:
            True if Redis accepted the write

        Raises:
            ValidationError: If ttl is not positive
            CacheError: If the record cannot be serialized
        """
        ttl = self._resolve_ttl(ttl)
        key = self.build_key(entity_id, on_date, kind)
        payload = self._encode(key, record)
        return self._setex(key, ttl, payload)

    def _setex(self, key: str, ttl: int, payload: str) -> bool:
        try:
            with self._breaker:
                self._client.setex(key, ttl, payload)
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("set", e)
            return False
        self._count(sets=1)
        self._logger.debug(f"Cached {key} (ttl={ttl}s, {len(payload)} bytes)")
        return True

    # =========================================================================
    # BULK OPERATIONS
    # =========================================================================

    def bulk_get(
            self,
            entity_ids: Sequence[str],
            on_date: date | datetime,
            kind: CacheKind = CacheKind.PORTFOLIO,
    ) -> dict[str, CachedRecord]:
        """
        Read many records with a single MGET.

        Returns:
            Mapping of entity ID to record for hits only. Misses, undecodable
            entries and a degraded cache simply leave IDs out.
        """
        if not entity_ids:
            return {}

        keys = [self.build_key(entity_id, on_date, kind) for entity_id in entity_ids]
        try:
            with self._breaker:
                values = self._client.mget(keys)
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("bulk_get", e)
            self._count(misses=len(keys))
            return {}

        results: dict[str, CachedRecord] = {}
        for entity_id, key, raw in zip(entity_ids, keys, values):
            if raw is None:
                continue
            record = self._decode(key, raw, kind)
            if record is not None:
                results[entity_id] = record

        hits = len(results)
        misses = len(keys) - hits
        self._count(hits=hits, misses=misses)
        self._logger.debug(
            f"Bulk cache read ({kind.value}): {hits} hits, {misses} misses, "
            f"hit rate {hits / len(keys):.1%}"
        )
        return results

    def bulk_set(
            self,
            records: Mapping[str, CachedRecord],
            on_date: date | datetime,
            kind: CacheKind = CacheKind.PORTFOLIO,
            ttl: int | None = None,
    ) -> int:
        """
        Write many records in one pipeline.

        Records that cannot be serialized are skipped and counted; the rest
        are still written.

        Returns:
            Number of records written (0 if Redis was unreachable)
        """
        ttl = self._resolve_ttl(ttl)
        if not records:
            return 0

        encoded: list[tuple[str, str]] = []
        for entity_id, record in records.items():
            key = self.build_key(entity_id, on_date, kind)
            try:
                encoded.append((key, self._encode(key, record)))
            except CacheError as e:
                self._count(marshal_errors=1)
                self._logger.warning(f"Skipping {entity_id} in bulk cache write: {e}")

        if not encoded:
            return 0

        try:
            with self._breaker:
                pipe = self._client.pipeline(transaction=False)
                for key, payload in encoded:
                    pipe.setex(key, ttl, payload)
                pipe.execute()
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("bulk_set", e)
            return 0

        self._count(sets=len(encoded))
        self._logger.debug(
            f"Bulk cached {len(encoded)}/{len(records)} {kind.value} records (ttl={ttl}s)"
        )
        return len(encoded)

    def warm_cache(
            self,
            series_by_entity: Mapping[str, ReturnSeries | Sequence[float]],
            on_date: date | datetime,
            kind: CacheKind = CacheKind.PORTFOLIO,
            benchmark: Sequence[float] | None = None,
            risk_free_rate: float = 0.0,
            ttl: int | None = None,
    ) -> WarmResult:
        """
        Compute records for a whole entity set and bulk-write them.

        Meant to run ahead of expected reads (e.g. after a data refresh).
        Entities without a single return sample are skipped.
        """
        result = WarmResult(total=len(series_by_entity))
        records: dict[str, CachedRecord] = {}

        for entity_id, series in series_by_entity.items():
            returns = series.returns if isinstance(series, ReturnSeries) else list(series)
            if not returns:
                result.skipped += 1
                continue
            if kind == CacheKind.RISK:
                records[entity_id] = calculate_risk_metrics(returns)
            else:
                records[entity_id] = calculate_performance_metrics(returns, benchmark, risk_free_rate)
            result.computed += 1

        result.written = self.bulk_set(records, on_date, kind, ttl)
        self._logger.info(
            f"Cache warming ({kind.value}, {cache_date(on_date)}): "
            f"{result.computed} computed, {result.skipped} skipped, {result.written} written"
        )
        return result

    # =========================================================================
    # INVALIDATION & MAINTENANCE
    # =========================================================================

    def invalidate(
            self,
            entity_id: str,
            *dates: date | datetime,
            kind: CacheKind = CacheKind.PORTFOLIO,
    ) -> int:
        """
        Delete an entity's records for the given dates (today when none given).

        Returns:
            Number of keys removed
        """
        days = dates or (datetime.now(timezone.utc).date(),)
        keys = [self.build_key(entity_id, day, kind) for day in days]
        try:
            with self._breaker:
                deleted = self._client.delete(*keys)
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("invalidate", e)
            return 0

        self._count(deletes=deleted)
        self._logger.debug(f"Invalidated {deleted}/{len(keys)} keys for {entity_id}")
        return deleted

    def clear_expired_keys(self) -> SweepResult:
        """
        Sweep every key under the prefix and enforce the TTL policy.

        - TTL -2 (already expired, not yet evicted): delete
        - TTL -1 (no expiry, should never happen): re-apply the default TTL

        A Redis error on a single key skips that key and counts it in
        ``failed``. A SCAN failure stops the sweep and returns the partial
        counts with ``completed=False``.
        """
        result = SweepResult()
        pattern = f"{self.key_prefix}*"
        try:
            with self._breaker:
                for key in self._client.scan_iter(match=pattern, count=CACHE_SCAN_COUNT):
                    result.checked += 1
                    try:
                        ttl = self._client.ttl(key)
                        if ttl == REDIS_TTL_KEY_MISSING:
                            self._client.delete(key)
                            result.deleted += 1
                        elif ttl == REDIS_TTL_NO_EXPIRY:
                            self._client.expire(key, self.default_ttl)
                            result.ttl_restored += 1
                    except redis.RedisError as e:
                        result.failed += 1
                        self._count(errors=1)
                        self._logger.warning(f"Skipping {key} in expired key sweep: {e}")
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("clear_expired_keys", e)
            result.completed = False

        self._count(deletes=result.deleted)
        self._logger.info(
            f"Expired key sweep: {result.checked} checked, {result.deleted} deleted, "
            f"{result.ttl_restored} TTLs restored, {result.failed} failed"
        )
        return result

    # =========================================================================
    # OPTIMIZATION RESULTS
    # =========================================================================

    def get_optimization_result(self, fingerprint: str) -> dict[str, Any] | None:
        """Read a cached optimizer result by fingerprint; None on a miss."""
        key = self.build_optimization_key(fingerprint)
        try:
            with self._breaker:
                raw = self._client.get(key)
            self._available = True
        except _DEGRADED_ERRORS as e:
            self._degraded("get_optimization_result", e)
            self._count(misses=1)
            return None

        if raw is None:
            self._count(misses=1)
            return None
        try:
            value = json.loads(raw)
        except ValueError as e:
            self._count(misses=1, marshal_errors=1)
            self._logger.warning(f"Discarding undecodable optimization result {key}: {e}")
            return None
        self._count(hits=1)
        return value

    def set_optimization_result(
            self,
            fingerprint: str,
            result: Mapping[str, Any],
            ttl: int | None = None,
    ) -> bool:
        """
        Cache an optimizer result.

        Raises:
            ValidationError: If ttl is not positive
            CacheError: If the result cannot be serialized
        """
        if result is None:
            raise ValidationError("optimization result cannot be None", field="result")
        ttl = self._resolve_ttl(ttl)
        key = self.build_optimization_key(fingerprint)
        return self._setex(key, ttl, self._encode(key, dict(result)))
