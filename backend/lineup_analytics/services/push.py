# backend/lineup_analytics/services/push.py
"""
Real-time push of analytics events.

The transport is chosen once at startup from ``Settings.push_sink``:

    none   -> NullPushSink     (drop events)
    log    -> LoggingPushSink  (write events to the log; development)
    redis  -> RedisPushSink    (PUBLISH to {channel_prefix}{user_id})

A WebSocket/SSE gateway subscribes to the Redis channels and forwards
events to browsers; that gateway is a separate service.

Event envelope:
    {
        "event_id": "perf_42_1718000000",
        "type": "performance_update",
        "category": "performance",
        "user_id": "42",
        "data": { ... },
        "timestamp": 1718000000
    }

Non-finite floats in the payload (an unbounded profit factor) are sent as
null so every event is strict JSON.

Sinks raise on delivery failure; the worker logs and counts the failure and
never retries a push.
"""

import json
import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

import redis

from lineup_analytics.config import PushSinkKind
from lineup_analytics.services.analytics.types import json_safe


class EventKind(str, Enum):
    """Analytics event types and their envelope metadata."""
    PERFORMANCE_UPDATE = "performance_update"
    PORTFOLIO_UPDATE = "portfolio_update"
    PREDICTION_UPDATE = "prediction_update"

    @property
    def category(self) -> str:
        return _EVENT_META[self][0]

    @property
    def id_prefix(self) -> str:
        return _EVENT_META[self][1]


_EVENT_META = {
    EventKind.PERFORMANCE_UPDATE: ("performance", "perf"),
    EventKind.PORTFOLIO_UPDATE: ("portfolio", "port"),
    EventKind.PREDICTION_UPDATE: ("ml", "pred"),
}


def build_event(
        kind: str,
        user_id: str,
        payload: Mapping[str, Any],
        clock: Callable[[], float] = time.time,
) -> dict[str, Any]:
    """Wrap a payload in the event envelope."""
    event_kind = EventKind(kind)
    now = int(clock())
    return {
        "event_id": f"{event_kind.id_prefix}_{user_id}_{now}",
        "type": event_kind.value,
        "category": event_kind.category,
        "user_id": user_id,
        "data": json_safe(dict(payload)),
        "timestamp": now,
    }


class NullPushSink:
    """Discards every event."""

    def send_event(self, kind: str, user_id: str, payload: Mapping[str, Any]) -> None:
        return None


class LoggingPushSink:
    """Writes each event to the log at INFO."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def send_event(self, kind: str, user_id: str, payload: Mapping[str, Any]) -> None:
        event = build_event(kind, user_id, payload)
        self._logger.info(
            f"Analytics event {event['event_id']} ({event['type']}) for user {user_id}",
            extra={"event": event},
        )


class RedisPushSink:
    """Publishes each event as JSON on the user's Redis channel."""

    def __init__(
            self,
            client: "redis.Redis",
            channel_prefix: str = "analytics:events:",
            logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self.channel_prefix = channel_prefix
        self._logger = logger or logging.getLogger(__name__)

    def channel_for(self, user_id: str) -> str:
        return f"{self.channel_prefix}{user_id}"

    def send_event(self, kind: str, user_id: str, payload: Mapping[str, Any]) -> None:
        event = build_event(kind, user_id, payload)
        receivers = self._client.publish(self.channel_for(user_id), json.dumps(event, allow_nan=False))
        self._logger.debug(f"Published {event['event_id']} to {receivers} subscribers")


def build_push_sink(
        app_settings: Any,
        redis_client: "redis.Redis | None" = None,
        logger: logging.Logger | None = None,
) -> NullPushSink | LoggingPushSink | RedisPushSink:
    """
    Resolve the configured push transport.

    Real-time updates switched off always yield the null sink, whatever
    ``push_sink`` says.
    """
    if not app_settings.enable_real_time_updates:
        return NullPushSink()

    kind = PushSinkKind(app_settings.push_sink)
    if kind == PushSinkKind.REDIS:
        client = redis_client or redis.Redis.from_url(
            app_settings.redis_url,
            decode_responses=True,
            socket_timeout=app_settings.redis_socket_timeout,
            socket_connect_timeout=app_settings.redis_connect_timeout,
        )
        return RedisPushSink(client, app_settings.push_channel_prefix, logger=logger)
    if kind == PushSinkKind.LOG:
        return LoggingPushSink(logger=logger)
    return NullPushSink()
