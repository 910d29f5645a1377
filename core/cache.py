# core/cache.py

"""
In-memory TTL cache for read-mostly data (site policy documents).

Policy reads are allowed to be eventually consistent, so a short TTL plus
explicit invalidation on admin writes is enough. Values of None are never
stored, so a miss is always re-read from the store.
"""

import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Thread-safe key/value store; each entry expires `ttl_seconds` after it
    was set, measured on `clock` (monotonic by default).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float = 60):
        if value is None:
            return
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)

    def delete(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-wide instance shared by every PolicyStore
_cache = TTLCache()


def get_cache() -> TTLCache:
    return _cache


def cache_clear():
    _cache.clear()
