"""Thread-safe in-memory LRU cache with a byte-size ceiling and per-entry TTL.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **Size tracking** via ``json.dumps`` byte length, which is accurate for
  the JSON-shaped reference data returned by PMS vendors.
• **Expiry** is stamped per entry at ``put`` time; expired entries are
  dropped lazily on ``get``.
• **threading.Lock** for thread safety (FastAPI runs sync routes on a
  thread pool).
• Purely ephemeral; data is lost on process restart.

Usage in CareStackAdapter
─────────────────────────
>>> cache = TTLCache(default_ttl=300)
>>> cache.put("providers:all", providers)
>>> cache.get("providers:all")
[...]
>>> cache.invalidate_prefix("providers:")
1
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

# Default ceiling: 5 MB (reference data only, never patient lists)
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
# Default lifetime for providers / locations / operatories
DEFAULT_TTL_SECONDS = 300.0


class TTLCache:
    """Least-Recently-Used cache bounded by total estimated byte size,
    whose entries also expire after a time-to-live."""

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_bytes = max_bytes
        self._default_ttl = default_ttl
        self._clock = clock
        self._current_bytes = 0
        # key → (value, estimated_size_bytes, expires_at)
        self._store: OrderedDict[str, tuple[Any, int, float]] = OrderedDict()
        self._lock = threading.Lock()

    # ── Size estimation ──────────────────────────────────────────────

    @staticmethod
    def _estimate_bytes(value: Any) -> int:
        """Return the estimated size of *value* in bytes (lower bound)."""
        try:
            return len(json.dumps(value, default=str).encode("utf-8"))
        except (TypeError, ValueError, OverflowError):
            return len(str(value).encode("utf-8"))

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, size, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                self._current_bytes -= size
                logger.debug("Cache: expired %s", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Insert or overwrite *key*.  Evicts LRU entries if needed."""
        size = self._estimate_bytes(value)

        if size > self._max_bytes:
            logger.debug(
                "Cache: skipping key %s (size %d > max %d)",
                key, size, self._max_bytes,
            )
            return

        expires_at = self._clock() + (self._default_ttl if ttl is None else ttl)

        with self._lock:
            if key in self._store:
                _, old_size, _ = self._store.pop(key)
                self._current_bytes -= old_size

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
                _, size, _ = self._store.pop(key)
                self._current_bytes -= size
                return True
            return False

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key that starts with *prefix*.  Returns count removed."""
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for key in keys:
                _, size, _ = self._store.pop(key)
                self._current_bytes -= size
            return len(keys)

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
