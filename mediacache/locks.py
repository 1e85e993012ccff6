"""
KeyedLocks - In-process single-flight for cache keys.

Requests for the same cache path serialize on one lock; a request that
waited finds the finished file and returns it instead of generating again.
Locks are reentrant so a generation can produce an intermediate under its
own key, and they are dropped from the table when no thread holds or waits
on them.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLocks:
    """Table of reentrant locks keyed by string, reference counted."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._entries[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
