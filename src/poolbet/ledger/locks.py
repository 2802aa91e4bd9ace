"""Per-event locks. Batches take every lock they need in ascending id order."""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from threading import Lock, RLock
from typing import Iterable, Iterator
from weakref import WeakValueDictionary


class EventLocks:
    """A lock lives only while some caller references it, so lookups of unknown ids leave nothing behind."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: WeakValueDictionary[int, RLock] = WeakValueDictionary()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def for_event(self, event_id: int) -> RLock:
        with self._guard:
            lock = self._locks.get(event_id)
            if lock is None:
                lock = RLock()
                self._locks[event_id] = lock
            return lock

    @contextmanager
    def hold(self, event_ids: Iterable[int]) -> Iterator[None]:
        """Hold the locks of all given events (deduplicated, sorted)."""
        with ExitStack() as stack:
            for event_id in sorted(set(event_ids)):
                stack.enter_context(self.for_event(event_id))
            yield
