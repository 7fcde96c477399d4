"""
Real-time channel publishing over Redis pub/sub.

Live clients (dashboard sockets, push gateways) subscribe to Redis channels:
- availability-<YYYY-MM-DD>  slot counts for one day
- user-<alias>               notifications for one user alias
- admin-notifications        role-wide admin broadcasts

Every message is JSON: {"event": <event name>, "data": <payload>}.
Delivery is best-effort; the database stays the source of truth.
"""

import json
import logging
import os
from datetime import date, datetime
from typing import Any, Optional

import redis

from .errors import NotificationDeliveryFailed

logger = logging.getLogger(__name__)

# Event names
NEW_NOTIFICATION = "new-notification"
SLOT_AVAILABILITY_UPDATED = "slot-availability-updated"

ADMIN_CHANNEL = "admin-notifications"

# Redis connection
redis_client: Optional[redis.Redis] = None


def get_user_channel(alias) -> str:
    return f"user-{alias}"


def get_availability_channel(day: date) -> str:
    return f"availability-{day.isoformat()}"


def _mask(redis_url: str) -> str:
    scheme, _, rest = redis_url.partition("://")
    return f"{scheme}://****@{rest.rsplit('@', 1)[-1]}" if "@" in rest else redis_url


def get_redis_client() -> redis.Redis:
    """Shared client; REDIS_URL wins over the individual REDIS_* settings"""
    global redis_client
    if redis_client is not None:
        return redis_client

    # A hung publish must not hold up the request that triggered it
    options = dict(
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
        max_connections=20,
    )

    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        logger.info(f"📡 Real-time channels via {_mask(redis_url)}")
        redis_client = redis.from_url(redis_url, **options)
    else:
        host = os.getenv("REDIS_HOST", "localhost")
        port = int(os.getenv("REDIS_PORT", "6379"))
        logger.info(f"📡 Real-time channels via {host}:{port}")
        redis_client = redis.Redis(
            host=host,
            port=port,
            password=os.getenv("REDIS_PASSWORD"),
            db=int(os.getenv("REDIS_DB", "0")),
            ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
            **options,
        )
    return redis_client


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class RealtimePublisher:
    """Publishes events to Redis channels"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def trigger(self, channel: str, event: str, data: dict) -> int:
        """
        Publish one event. Returns the number of subscribers that received it.

        Raises NotificationDeliveryFailed when the channel cannot be reached.
        """
        message = json.dumps({"event": event, "data": data}, default=_json_default)
        try:
            receivers = self._get_client().publish(channel, message)
        except (redis.RedisError, OSError) as e:
            raise NotificationDeliveryFailed(channel, e) from e

        logger.debug(f"📣 {event} -> {channel} ({receivers} subscribers)")
        return receivers


_publisher: Optional[RealtimePublisher] = None


def get_realtime_publisher() -> RealtimePublisher:
    """Dependency for the process-wide publisher"""
    global _publisher
    if _publisher is None:
        _publisher = RealtimePublisher()
    return _publisher
