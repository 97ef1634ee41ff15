"""Per-key mutual exclusion for conversation state."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Hashable, Iterator


class KeyedLocks:
    """Hand out one re-entrant lock per key.

    Locks are created on first use and kept for the lifetime of the object;
    the number of keys is bounded by the number of conversations handled by
    the process.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[Hashable, RLock] = {}

    def get(self, key: Hashable) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = RLock()
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
