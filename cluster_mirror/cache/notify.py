"""Rate limited "resources changed" notifications.

Cache changes arrive one event at a time. Listeners are instead notified with
the set of bucket keys that changed, no more often than once per interval. A
change that arrives while a notification is pending joins it, and a change
that arrives right after a notification schedules the next one, so the final
state is always delivered.
"""

import asyncio
from collections.abc import Callable
import logging

from cluster_mirror.manifest import BucketKey

__all__ = [
    "ChangeNotifier",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.5

ChangeListener = Callable[[frozenset[BucketKey]], None]


class ChangeNotifier:
    """Coalesces change notifications for the cache."""

    def __init__(self, interval: float = DEFAULT_INTERVAL) -> None:
        self._interval = interval
        self._listeners: list[ChangeListener] = []
        self._pending: set[BucketKey] = set()
        self._handle: asyncio.TimerHandle | None = None
        self._last_fire: float | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener, returning a function that removes it."""

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        self._listeners.append(listener)
        return remove

    def notify(self, key: BucketKey) -> None:
        """Record a change to the bucket, scheduling a notification if needed."""
        self._pending.add(key)
        if self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        delay = 0.0
        if self._last_fire is not None:
            delay = max(0.0, self._last_fire + self._interval - loop.time())
        self._handle = loop.call_later(delay, self._flush)

    def _flush(self) -> None:
        self._handle = None
        keys = frozenset(self._pending)
        self._pending.clear()
        self._last_fire = asyncio.get_running_loop().time()
        _LOGGER.debug(
            "Notifying %d listeners of %d changed buckets",
            len(self._listeners),
            len(keys),
        )
        for listener in list(self._listeners):
            try:
                listener(keys)
            except Exception:
                _LOGGER.exception("Cache change listener failed")

    def close(self) -> None:
        """Drop any pending notification."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending.clear()
