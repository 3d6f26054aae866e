"""
Per-key locking for registry writers.

Writers for the same key are serialized; writers for different keys
proceed independently. Readers never take these locks.
"""

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Hashable, Iterator, List


class KeyedLocks:
    """
    Mutex per key, created on first use and dropped once no writer holds
    or waits on it.
    """

    def __init__(self) -> None:
        # key -> [lock, holders and waiters]
        self._locks: Dict[Hashable, List] = {}
        self._guard = Lock()

    def _acquire_entry(self, key: Hashable) -> Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block"""
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        """Keys currently held or waited on"""
        with self._guard:
            return len(self._locks)
