"""
In-memory key-value store adapter - Implements KeyValueStore protocol.

Single-process stand-in for Redis, used for local runs and tests.
Values still pass through the typed value codec so corrupt payloads
behave exactly as they do against Redis.
"""

import threading
import time
from collections.abc import Callable
from typing import Any

from src.domain import codec


class InMemoryKeyValueStore:
    """
    Implements KeyValueStore protocol with a lock-protected dict.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Expiry uses a monotonic clock, checked lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            clock: Seconds source used for expiry (injectable for tests)
        """
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._live(key)
        if raw is None:
            return None
        return codec.decode(raw)

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        encoded = codec.encode(value)
        with self._lock:
            self._data[key] = (encoded, self._deadline(ttl_ms))

    def set_if_absent(self, key: str, value: Any, ttl_ms: int | None = None) -> bool:
        encoded = codec.encode(value)
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (encoded, self._deadline(ttl_ms))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def raw(self, key: str) -> str | None:
        """Return the encoded string for a key, bypassing the codec."""
        with self._lock:
            return self._live(key)

    def put_raw(self, key: str, encoded: str) -> None:
        """Store an already-encoded string (for corruption tests)."""
        with self._lock:
            self._data[key] = (encoded, None)

    def _deadline(self, ttl_ms: int | None) -> float | None:
        if ttl_ms is None:
            return None
        return self._clock() + ttl_ms / 1000

    def _live(self, key: str) -> str | None:
        # Caller holds self._lock
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, deadline = entry
        if deadline is not None and self._clock() >= deadline:
            del self._data[key]
            return None
        return raw
