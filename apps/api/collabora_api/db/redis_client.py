"""Redis connection used by the session store.

One client per process, built lazily from RedisSettings. Responses are
decoded to str because session records are JSON text.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import redis

from collabora_api.config.env import RedisSettings, get_redis_settings

logger = logging.getLogger(__name__)


def build_redis_client(settings: RedisSettings) -> redis.Redis:
    """Create a Redis client from settings (no connection is opened yet)."""
    kwargs = {
        "decode_responses": True,
        "socket_connect_timeout": settings.socket_timeout,
        "socket_timeout": settings.socket_timeout,
        "health_check_interval": 30,
    }

    parsed = urlparse(settings.url)
    if not parsed.password and settings.password:
        kwargs["password"] = settings.password

    logger.debug(
        "Redis client created",
        extra={
            "event": "redis.client.created",
            "host": parsed.hostname,
            "db": parsed.path.lstrip("/") or "0",
            "tls": parsed.scheme == "rediss",
        },
    )
    return redis.from_url(settings.url, **kwargs)


class RedisClient:
    """Process-wide Redis client."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        if cls._instance is None:
            cls._instance = build_redis_client(get_redis_settings())
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (tests, reconfiguration)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None
