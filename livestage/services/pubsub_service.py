"""
Redis Pub/Sub Service for live product set updates.
Fans state changes out to every connected controller/host view, with graceful degradation.
"""

import json
import logging
import time
from datetime import datetime, date
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)


def state_topic(product_set_id: int) -> str:
    """Durable state channel: full state snapshots, replace-wholesale on receipt."""
    return f"product_set:{product_set_id}:state"


def ui_topic(product_set_id: int) -> str:
    """Ephemeral UI channel: view toggles that are never persisted."""
    return f"product_set:{product_set_id}:ui"


def list_topic(brand_id: int) -> str:
    """Brand-wide channel announcing that the product set list changed."""
    return f"product_sets:{brand_id}:list"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


class Subscription:
    """
    A single view's subscription to one or more topics.

    Messages come back as dicts with the publisher's payload plus a `topic` key.
    """

    def __init__(self, service: 'PubSubService', topics, pubsub=None):
        self._service = service
        self.topics = tuple(topics)
        self._pubsub = pubsub
        self.closed = False

    @property
    def active(self) -> bool:
        return self._pubsub is not None and not self.closed

    def get_message(self, timeout: float = 0.0) -> Optional[Dict[str, Any]]:
        """Return the next message, or None when nothing arrived within `timeout` seconds."""
        if not self.active:
            if timeout:
                time.sleep(timeout)
            return None
        deadline = time.monotonic() + timeout
        while True:
            try:
                raw = self._pubsub.get_message(timeout=max(deadline - time.monotonic(), 0.0))
            except RedisError as e:
                logger.warning(f"[PUBSUB] ✗ Receive error on {self.topics}: {e}")
                return None
            if raw is None:
                return None
            # Skip subscribe/unsubscribe confirmations
            if raw.get('type') == 'message':
                break

        try:
            message = json.loads(raw['data'])
        except (TypeError, ValueError) as e:
            logger.warning(f"[PUBSUB] ✗ Dropping undecodable message on {raw.get('channel')}: {e}")
            return None
        message['topic'] = self._service.strip_prefix(raw['channel'])
        return message

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._pubsub is None:
            return
        try:
            self._pubsub.unsubscribe()
            self._pubsub.close()
        except RedisError as e:
            logger.warning(f"[PUBSUB] ✗ Unsubscribe error: {e}")
        logger.debug(f"[PUBSUB] Unsubscribed from {self.topics}")


class PubSubService:
    """
    Redis-based publish/subscribe with per-topic ordering.

    Channel pattern: {prefix}:{topic}
    """

    def __init__(self, app: Optional[Flask] = None, client: Optional[redis.Redis] = None):
        """Initialize pub/sub service."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""

        if app:
            self.init_app(app, client=client)

    def init_app(self, app: Flask, client: Optional[redis.Redis] = None) -> None:
        """Initialize Redis client from Flask app config, or adopt an explicit client."""
        self._prefix = app.config.get('PUBSUB_CHANNEL_PREFIX', 'livestage')

        if client is not None:
            self.client = client
            self._enabled = True
            return

        self._enabled = app.config.get('PUBSUB_ENABLED', True)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[PUBSUB] Pub/Sub is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_keepalive=True,
                max_connections=50,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[PUBSUB] ✓ Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[PUBSUB] ⚠ Redis connection failed: {e}. Live updates DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        """Check if pub/sub is available and healthy."""
        if not self._enabled or not self.client:
            return False
        try:
            self.client.ping()
            return True
        except (ConnectionError, RedisError):
            return False

    def _channel(self, topic: str) -> str:
        return f"{self._prefix}:{topic}"

    def strip_prefix(self, channel: str) -> str:
        prefix = f"{self._prefix}:"
        return channel[len(prefix):] if channel.startswith(prefix) else channel

    def publish(self, topic: str, message: Dict[str, Any]) -> int:
        """Publish a JSON message; returns the number of receivers (0 when degraded)."""
        if not self._enabled or not self.client:
            logger.debug(f"[PUBSUB] Skipping publish to {topic}: pub/sub unavailable")
            return 0
        try:
            payload = json.dumps(message, default=_json_default)
            receivers = self.client.publish(self._channel(topic), payload)
            logger.debug(f"[PUBSUB] PUBLISH {topic} type={message.get('type')} receivers={receivers}")
            return receivers
        except (RedisError, TypeError) as e:
            logger.warning(f"[PUBSUB] ✗ Publish error on {topic}: {e}")
            return 0

    def subscribe(self, *topics: str) -> Subscription:
        """Subscribe to topics; returns an inert subscription when pub/sub is unavailable."""
        if not self._enabled or not self.client:
            logger.warning(f"[PUBSUB] ⚠ Subscribe to {topics} without Redis: no live updates")
            return Subscription(self, topics)
        try:
            pubsub = self.client.pubsub()
            pubsub.subscribe(*[self._channel(topic) for topic in topics])
            logger.debug(f"[PUBSUB] SUBSCRIBE {topics}")
            return Subscription(self, topics, pubsub)
        except RedisError as e:
            logger.warning(f"[PUBSUB] ✗ Subscribe error on {topics}: {e}")
            return Subscription(self, topics)


_pubsub_service: Optional[PubSubService] = None


def init_pubsub(app: Flask, client: Optional[redis.Redis] = None) -> PubSubService:
    """Initialize pub/sub service singleton."""
    global _pubsub_service
    _pubsub_service = PubSubService(app, client=client)
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['pubsub'] = _pubsub_service
    return _pubsub_service


def get_pubsub() -> PubSubService:
    """Get pub/sub service instance."""
    if _pubsub_service is None:
        raise RuntimeError("Pub/Sub not initialized.")
    return _pubsub_service
