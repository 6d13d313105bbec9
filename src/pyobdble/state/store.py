"""In-memory telemetry store and subscriber fan-out.

This is the only component allowed to change the live snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pyobdble.models.snapshot import TelemetrySnapshot
from pyobdble.state.events import FieldUpdate

_logger = logging.getLogger(__name__)

Observer = Callable[[TelemetrySnapshot], None]
Unsubscribe = Callable[[], None]


class TelemetryStore:
    """Holds the latest snapshot and publishes it to observers.

    Observers are called synchronously, in registration order, with the
    full frozen snapshot.  The store must only be touched from the event
    loop that owns the session.
    """

    def __init__(self) -> None:
        self._snapshot = TelemetrySnapshot()
        self._observers: list[Observer] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._observers)

    def get_snapshot(self) -> TelemetrySnapshot:
        """Return the current point-in-time snapshot."""
        return self._snapshot

    def subscribe(self, observer: Observer) -> Unsubscribe:
        """Register *observer* and deliver the current snapshot to it once.

        Returns a callable that removes the observer.  Calling it more than
        once is harmless.
        """
        self._observers.append(observer)
        self._deliver(observer, self._snapshot)

        def unsubscribe() -> None:
            # Identity match: the same callable may be registered twice.
            for index, candidate in enumerate(self._observers):
                if candidate is observer:
                    del self._observers[index]
                    return

        return unsubscribe

    def publish(self, mutated_fields: Iterable[str] = ()) -> None:
        """Notify every current observer with the current snapshot."""
        snapshot = self._snapshot
        observers = list(self._observers)
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Publishing fields=%s to %d observer(s)", sorted(mutated_fields), len(observers))
        for observer in observers:
            self._deliver(observer, snapshot)

    def apply(self, update: FieldUpdate) -> None:
        """Write one decoded value and publish."""
        self._snapshot = self._snapshot.model_copy(update={update.field: update.value})
        self.publish((update.field,))

    def set_connection(self, connected: bool, device_name: str = "") -> None:
        """Record the session's connection status and publish."""
        self._snapshot = self._snapshot.model_copy(update={"is_connected": connected, "device_name": device_name})
        self.publish(("is_connected", "device_name"))

    def reset(self) -> None:
        """Drop every value back to its initial state and publish."""
        self._snapshot = TelemetrySnapshot()
        self.publish(TelemetrySnapshot.model_fields)

    def _deliver(self, observer: Observer, snapshot: TelemetrySnapshot) -> None:
        try:
            observer(snapshot)
        except Exception:
            _logger.debug("Telemetry observer %r failed", observer, exc_info=True)
