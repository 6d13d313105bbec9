"""High-level async client for ELM327 BLE adapters.

Usage::

    async with ObdClient(ObdConfig.from_env()) as client:
        peers = [p async for p in client.discover()]
        choice = next(c for c in client.recommend(peers) if c.recommended)
        unsubscribe = client.subscribe(print)
        await client.connect(choice.peer)
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

from pyobdble._transport import BleakTransport, Transport
from pyobdble.config import ObdConfig
from pyobdble.discovery import PeerChoice, matches_adapter_name, tag_peers
from pyobdble.exceptions import ObdConnectFailedError, ObdError, ObdTransportUnavailableError
from pyobdble.models.peer import PeerDescriptor
from pyobdble.models.snapshot import TelemetrySnapshot
from pyobdble.session import ObdSession, SessionState
from pyobdble.state.store import Observer, TelemetryStore, Unsubscribe

_logger = logging.getLogger(__name__)


class ObdClient:
    """Async client owning one transport, one store and at most one session.

    Parameters
    ----------
    config
        Library configuration.  Defaults to ``ObdConfig()``.
    transport
        Link implementation.  Defaults to a :class:`BleakTransport` built
        from *config*.
    on_error
        Optional callback for errors raised away from any caller, such as
        failed poll writes or a lost link.
    """

    def __init__(
        self,
        config: ObdConfig | None = None,
        *,
        transport: Transport | None = None,
        on_error: Callable[[ObdError], None] | None = None,
    ) -> None:
        self._config = config or ObdConfig()
        self._transport: Transport = transport or BleakTransport(
            self._config.adapter,
            connect_timeout=self._config.connect_timeout,
            write_with_response=self._config.write_with_response,
        )
        self._on_error = on_error
        # Outlives sessions so subscriptions survive reconnects.
        self._store = TelemetryStore()
        self._session: ObdSession | None = None
        self._available: bool | None = None

    async def __aenter__(self) -> ObdClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    @property
    def config(self) -> ObdConfig:
        return self._config

    @property
    def store(self) -> TelemetryStore:
        return self._store

    @property
    def session(self) -> ObdSession | None:
        return self._session

    # ------------------------------------------------------------------
    # Availability and discovery
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Check that the Bluetooth backend is usable.

        Raises :class:`ObdTransportUnavailableError` when it is not.
        """
        try:
            await self._transport.open()
        except ObdTransportUnavailableError:
            self._available = False
            raise
        self._available = True

    @property
    def is_available(self) -> bool:
        """Result of the last :meth:`open`; ``False`` before it has run."""
        return bool(self._available)

    def discover(
        self,
        timeout: float | None = None,
        *,
        match_all: bool = False,
    ) -> AsyncIterator[PeerDescriptor]:
        """Yield adapters as they are seen.

        By default only peers whose advertised name contains one of the
        configured vendor hints are yielded; ``match_all=True`` yields every
        peer.  The scan can be stopped with :meth:`stop_discovery` as soon
        as this returns.
        """
        hints = self._config.adapter.name_hints

        def name_filter(name: str | None) -> bool:
            return matches_adapter_name(name, hints)

        scan_timeout = self._config.scan_timeout if timeout is None else timeout
        return self._transport.discover(scan_timeout, None if match_all else name_filter)

    def stop_discovery(self) -> None:
        self._transport.stop_discovery()

    @staticmethod
    def recommend(peers: Iterable[PeerDescriptor]) -> list[PeerChoice]:
        """Tag the low-energy variant of each adapter among *peers*."""
        return tag_peers(peers)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def connect(self, peer: PeerDescriptor | str, name: str | None = None) -> None:
        """Connect to *peer*, initialize it and start polling.

        *peer* may be a descriptor from :meth:`discover` or a bare address,
        in which case *name* is used as the device name.  An active session
        is torn down first.
        """
        if isinstance(peer, str):
            peer = PeerDescriptor(id=peer, name=name or "")
        if not peer.is_low_energy:
            raise ObdConnectFailedError(
                f"{peer.name or peer.id} is a classic Bluetooth peer; pick its BLE variant",
                address=peer.id,
            )

        await self.disconnect()
        session = ObdSession(self._config, self._transport, self._store, on_error=self._on_error)
        self._session = session
        _logger.info("Connecting to %s (%s)", peer.name or peer.id, peer.id)
        await session.start(peer)

    async def disconnect(self) -> None:
        """Stop the active session, if any. Idempotent."""
        session = self._session
        if session is None:
            return
        await session.stop()

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Unsubscribe:
        """Register *observer*; it receives the current snapshot immediately."""
        return self._store.subscribe(observer)

    def get_snapshot(self) -> TelemetrySnapshot:
        return self._store.get_snapshot()

    def is_ready(self) -> bool:
        return self._session is not None and self._session.is_ready()

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.UNCONNECTED
        return self._session.state

    @property
    def last_error(self) -> ObdError | None:
        if self._session is None:
            return None
        return self._session.last_error
