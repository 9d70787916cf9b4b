"""Thread-safe in-memory LRU cache with a byte-size ceiling and optional TTLs.

Used for two things:

• Google OAuth access tokens, keyed per calendar owner, expiring shortly
  before Google says they do.
• Inbound message ids, so a webhook redelivered by an at-least-once
  transport is only processed once within the de-duplication window.

Entries are evicted least-recently-used first once the byte ceiling is
reached; expired entries are dropped lazily on access.  Purely ephemeral.

>>> cache = TTLCache(max_bytes=1024 * 1024)
>>> cache.put("token:biz-1", "ya29...", ttl_seconds=3300)
>>> cache.get("token:biz-1")
'ya29...'
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class TTLCache:
    """Least-recently-used cache bounded by estimated byte size."""

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_bytes = max_bytes
        self._clock = clock
        self._current_bytes = 0
        # key → (value, size_bytes, expires_at or None)
        self._store: OrderedDict[str, tuple[Any, int, float | None]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _estimate_bytes(value: Any) -> int:
        try:
            return len(json.dumps(value, default=str).encode("utf-8"))
        except (TypeError, ValueError, OverflowError):
            return len(str(value).encode("utf-8"))

    def _drop(self, key: str) -> None:
        _, size, _ = self._store.pop(key)
        self._current_bytes -= size

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` (promoting it to MRU) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, _, expires_at = entry
            if self._expired(expires_at):
                self._drop(key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Insert or overwrite ``key``, evicting LRU entries if needed."""
        size = self._estimate_bytes(value)
        if size > self._max_bytes:
            logger.debug(
                "Cache: skipping key %s (size %d > max %d)",
                key, size, self._max_bytes,
            )
            return

        with self._lock:
            self._put_locked(key, value, size, ttl_seconds)

    def add_if_absent(self, key: str, value: Any = True, ttl_seconds: float | None = None) -> bool:
        """Atomically store ``key`` unless a live entry exists.  Returns ``True`` if stored."""
        size = self._estimate_bytes(value)
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and not self._expired(entry[2]):
                return False
            self._put_locked(key, value, size, ttl_seconds)
            return True

    def _put_locked(self, key: str, value: Any, size: int, ttl_seconds: float | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        if key in self._store:
            self._drop(key)
        while self._current_bytes + size > self._max_bytes and self._store:
            evicted_key, (_, evicted_size, _) = self._store.popitem(last=False)
            self._current_bytes -= evicted_size
            logger.debug("Cache: evicted %s (%d bytes)", evicted_key, evicted_size)
        self._store[key] = (value, size, expires_at)
        self._current_bytes += size

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            if key in self._store:
                self._drop(key)
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._current_bytes = 0

    # ── Introspection ────────────────────────────────────────────────

    @property
    def current_bytes(self) -> int:
        return self._current_bytes

    @property
    def entry_count(self) -> int:
        return len(self._store)
