"""
Redis key-value store adapter - Implements KeyValueStore protocol.

Values are encoded with the typed value codec before they reach Redis,
so a flat string store round-trips booleans, numbers, datetimes and
structured objects. TTLs are in milliseconds (PX).

The adapter never retries; redis errors are logged and surfaced as
TransientInfraError so the caller decides what to do.
"""

import logging
from typing import Any

import redis

from src.domain import codec
from src.domain.exceptions import TransientInfraError

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """
    Implements KeyValueStore protocol via redis-py.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, client: redis.Redis) -> None:
        """
        Initialize store with a Redis client.

        Args:
            client: redis.Redis created with decode_responses=True
        """
        self._client = client

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            logger.error("Redis GET failed for %s: %s", key, e)
            raise TransientInfraError(detail="key-value store unavailable") from e
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return codec.decode(raw)

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        try:
            self._client.set(key, codec.encode(value), px=ttl_ms)
        except redis.RedisError as e:
            logger.error("Redis SET failed for %s: %s", key, e)
            raise TransientInfraError(detail="key-value store unavailable") from e

    def set_if_absent(self, key: str, value: Any, ttl_ms: int | None = None) -> bool:
        try:
            # SET NX returns None when the key already exists
            result = self._client.set(key, codec.encode(value), px=ttl_ms, nx=True)
        except redis.RedisError as e:
            logger.error("Redis SET NX failed for %s: %s", key, e)
            raise TransientInfraError(detail="key-value store unavailable") from e
        return bool(result)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            logger.error("Redis DEL failed for %s: %s", key, e)
            raise TransientInfraError(detail="key-value store unavailable") from e


def create_client(url: str) -> redis.Redis:
    """Create a Redis client from a URL."""
    return redis.Redis.from_url(url, decode_responses=True)
