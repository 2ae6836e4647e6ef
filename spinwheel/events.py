"""
SPINWHEEL — Change Notifications

In-process broadcast after every mutation, plus a watcher that turns the
storage medium's native cross-context signal into the same kind of event.

Event types:
  config_updated   config saved or reset (this process)
  history_updated  spin appended or history cleared (this process)
  storage          another instance wrote to the shared storage

Convergence is best-effort: observers reload and re-render, nothing here
prevents lost updates.

Usage:
    bus = ChangeBus()
    unsubscribe = bus.subscribe(lambda event, data: refresh())
    watcher = StorageWatcher(storage, bus)
    watcher.poll()          # call from the UI loop / request hook
"""

import logging
from typing import Callable

logger = logging.getLogger("spinwheel.events")

CONFIG_UPDATED = "config_updated"
HISTORY_UPDATED = "history_updated"
STORAGE = "storage"

Listener = Callable[[str, dict], None]


class ChangeBus:
    """Synchronous fan-out of change events to subscribed listeners."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(event_type, data)`. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: str, **data) -> None:
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(event_type, data)
            except Exception as e:
                logger.error(f"Listener failed on '{event_type}': {e!r}")

    def __len__(self) -> int:
        return len(self._listeners)


class StorageWatcher:
    """Raises a `storage` event when another instance has written."""

    def __init__(self, storage, bus: ChangeBus):
        self.storage = storage
        self.bus = bus
        self._seen = storage.data_version()

    def poll(self) -> bool:
        """Check the storage signal once. True if a foreign write was seen."""
        current = self.storage.data_version()
        if current == self._seen:
            return False
        self._seen = current
        logger.debug(f"Foreign storage write detected (data_version={current})")
        self.bus.emit(STORAGE, data_version=current)
        return True
