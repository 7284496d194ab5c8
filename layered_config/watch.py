"""
Watch Bus
Per-key and global observers, notified synchronously after a commit
"""

import threading
from typing import Callable, Dict, List, Optional, Set

from .contracts import ChangeEvent
from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.watch")

Watcher = Callable[[ChangeEvent], None]

ALL_KEYS = "*"


class Subscription:
    """Handle returned by ``watch``; call it (or ``unwatch()``) to unsubscribe"""

    def __init__(self, bus: 'WatchBus', key: str, callback: Watcher):
        self._bus = bus
        self.key = key
        self.callback = callback
        self.active = True

    def unwatch(self) -> None:
        if not self.active:
            return
        self._bus._remove(self.key, self.callback)
        self.active = False

    __call__ = unwatch


class WatchBus:
    """
    Observer registry keyed by configuration key.

    Registrations and the delivery snapshot share one lock, since reloads
    publish from the file watcher thread while collaborators subscribe and
    unsubscribe from their own.
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._watchers: Dict[str, Set[Watcher]] = {}
        self._lock = lock if lock is not None else threading.RLock()

    def watch(self, key: str, callback: Watcher) -> Subscription:
        with self._lock:
            self._watchers.setdefault(key, set()).add(callback)
        return Subscription(self, key, callback)

    def watch_all(self, callback: Watcher) -> Subscription:
        """Subscribe to every committed change, including overlay reloads"""
        return self.watch(ALL_KEYS, callback)

    def _remove(self, key: str, callback: Watcher) -> None:
        with self._lock:
            watchers = self._watchers.get(key)
            if watchers is None:
                return
            watchers.discard(callback)
            if not watchers:
                del self._watchers[key]

    def watcher_count(self, key: Optional[str] = None) -> int:
        with self._lock:
            if key is not None:
                return len(self._watchers.get(key, ()))
            return sum(len(callbacks) for callbacks in self._watchers.values())

    def has_watchers(self, key: str) -> bool:
        with self._lock:
            return key in self._watchers

    def _targets(self, key: str) -> List[Watcher]:
        with self._lock:
            targets = list(self._watchers.get(key, ()))
            if key != ALL_KEYS:
                targets.extend(self._watchers.get(ALL_KEYS, ()))
        return targets

    def publish(self, event: ChangeEvent) -> None:
        """Deliver to key watchers, then global watchers; a failing callback does not stop the rest"""
        for callback in self._targets(event.key):
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    "configuration_watcher_failed",
                    key=event.key,
                    source=event.source,
                    error=str(e),
                    exc_info=True
                )

    def clear(self) -> None:
        with self._lock:
            self._watchers.clear()
