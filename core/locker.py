"""
Keyed Locks - Named mutexes created on demand
=============================================

Used to serialize work sharing a key (e.g. executions of the same rule)
without a lock per object being declared up front. A key's lock only
exists while someone holds or waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List


class KeyedLocker:
    """
    Registry of re-entrant locks addressed by string key.

    Example:
        locker = KeyedLocker()
        with locker.lock("rule-execution/abc"):
            ...
    """

    def __init__(self):
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()

    @contextmanager
    def lock(self, key: str):
        """Hold the lock for `key` while the block runs."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
