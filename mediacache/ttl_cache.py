"""
TtlCache - Small time-expiring cache with an injectable clock.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TtlCache:
    """
    Maps keys to values that expire ttl seconds after being stored.

    One instance is built per process and handed to whoever needs it, so
    tests can pass their own clock.
    """

    def __init__(self, ttl: float, clock: Optional[Callable[[], float]] = None):
        self.ttl = ttl
        self.clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._items: Dict[Any, Tuple[float, Any]] = {}

    def get(self, key: Any, default: Any = None) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return default
            stored_at, value = item
            if self.clock() - stored_at >= self.ttl:
                del self._items[key]
                return default
            return value

    def put(self, key: Any, value: Any) -> None:
        with self._lock:
            self._items[key] = (self.clock(), value)

    def get_or_compute(self, key: Any, compute: Callable[[], Any]) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        missing = object()
        value = self.get(key, missing)
        if value is missing:
            value = compute()
            self.put(key, value)
        return value

    def invalidate(self, key: Any = None) -> None:
        """Drop one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._items.clear()
            else:
                self._items.pop(key, None)
