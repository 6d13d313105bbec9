"""Lifecycle of one physical adapter connection.

::

    unconnected -> connecting -> initializing -> ready -> polling
        ^                                                   |
        +----------------- disconnecting <------------------+

Any unrecoverable transport error while ready/polling ends in ``faulted``.

Everything here runs on one asyncio event loop.  The transport pushes raw
chunks onto a queue; a reader task drains it through the frame assembler,
which routes each reply to the initializer (while initializing) or to the
decoder (while ready/polling).  Replies arriving in any other state are
dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

from pyobdble._constants import UNKNOWN_DEVICE_NAME
from pyobdble._logfmt import printable_for_log
from pyobdble._transport import Transport
from pyobdble.config import ObdConfig
from pyobdble.exceptions import ObdConnectFailedError, ObdError, ObdTransportError
from pyobdble.ingestion.decoder import PidDecoder
from pyobdble.ingestion.framing import FrameAssembler
from pyobdble.ingestion.scheduler import PollScheduler
from pyobdble.initializer import AdapterInitializer
from pyobdble.models.peer import PeerDescriptor
from pyobdble.models.snapshot import TelemetrySnapshot
from pyobdble.state.store import TelemetryStore

_logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    READY = "ready"
    POLLING = "polling"
    DISCONNECTING = "disconnecting"
    FAULTED = "faulted"


LIVE_STATES = frozenset({SessionState.READY, SessionState.POLLING})
_IDLE_STATES = frozenset({SessionState.UNCONNECTED, SessionState.FAULTED})


class ObdSession:
    """Drives one adapter from link-up to polling and back.

    Parameters
    ----------
    config
        Timeouts, adapter profile and poll plan.
    transport
        Link to the adapter.  The session registers its own notify and
        disconnect callbacks for the duration of the connection.
    store
        Receives decoded values and the connection status.
    on_error
        Optional callback for errors that do not propagate to a caller,
        such as a failed poll write or a lost link.
    """

    def __init__(
        self,
        config: ObdConfig,
        transport: Transport,
        store: TelemetryStore,
        *,
        on_error: Callable[[ObdError], None] | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = store
        self._on_error = on_error
        self._state = SessionState.UNCONNECTED
        self._peer: PeerDescriptor | None = None
        self._framer = FrameAssembler(
            self._on_frame,
            terminator=config.adapter.prompt,
            max_buffer_size=config.max_buffer_size,
        )
        self._decoder = PidDecoder(store)
        self._scheduler: PollScheduler | None = None
        self._chunks: asyncio.Queue[bytes] = asyncio.Queue()
        self._init_replies: asyncio.Queue[str] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._fault_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self.last_error: ObdError | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def peer(self) -> PeerDescriptor | None:
        return self._peer

    @property
    def decoder(self) -> PidDecoder:
        return self._decoder

    def is_ready(self) -> bool:
        """Whether the adapter is initialized and queries are flowing."""
        return self._state in LIVE_STATES

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            _logger.debug("Session %s -> %s", self._state, state)
            self._state = state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, peer: PeerDescriptor) -> None:
        """Connect to *peer*, initialize the adapter and start polling.

        Raises
        ------
        ObdConnectFailedError
            The link could not be established, or *peer* is not a BLE peer.
        ObdAdapterInitFailedError
            The adapter did not answer its init sequence in time.
        """
        if self._state not in _IDLE_STATES:
            raise ObdError(f"Session is already {self._state}")
        if not peer.is_low_energy:
            raise ObdConnectFailedError(
                f"{peer.name or peer.id} is a classic Bluetooth peer; only BLE adapters are supported",
                address=peer.id,
            )

        self._peer = peer
        self.last_error = None
        self._set_state(SessionState.CONNECTING)
        self._framer.reset()
        self._reader_task = asyncio.create_task(self._read_chunks(), name=f"obd-reader-{peer.id}")
        self._unsubscribers = [
            self._transport.on_notify(self._on_chunk),
            self._transport.on_disconnect(self._on_link_lost),
        ]

        try:
            await self._transport.connect(peer.id)
            if self._state != SessionState.CONNECTING:
                raise ObdConnectFailedError("Session was stopped while connecting", address=peer.id)
            self._set_state(SessionState.INITIALIZING)
            initializer = AdapterInitializer(
                self._config.adapter.init_commands,
                self.send,
                self._init_replies,
                command_timeout=self._config.command_timeout,
                settle_delay=self._config.reset_settle_delay,
                address=peer.id,
            )
            await initializer.run()
            if self._state != SessionState.INITIALIZING:
                raise ObdConnectFailedError("Session was stopped during initialization", address=peer.id)
        except BaseException:
            if self._state not in _IDLE_STATES and self._state != SessionState.DISCONNECTING:
                await self._teardown(SessionState.UNCONNECTED)
            raise

        device_name = peer.name or UNKNOWN_DEVICE_NAME
        self._set_state(SessionState.READY)
        self._store.set_connection(True, device_name)
        _logger.info("Adapter %s ready", device_name)

        self._scheduler = PollScheduler(
            self._config.poll,
            self.send,
            is_active=self.is_ready,
            max_consecutive_failures=self._config.max_consecutive_write_failures,
            on_write_error=self._report_error,
        )
        self._poll_task = asyncio.create_task(self._scheduler.run(), name=f"obd-poller-{peer.id}")
        self._poll_task.add_done_callback(self._on_poll_done)
        self._set_state(SessionState.POLLING)

    async def stop(self) -> None:
        """Stop polling and drop the link. Idempotent; never raises."""
        if self._state in (SessionState.UNCONNECTED, SessionState.DISCONNECTING):
            return
        if self._state == SessionState.FAULTED:
            self._set_state(SessionState.UNCONNECTED)
            return
        await self._teardown(SessionState.UNCONNECTED)

    async def join(self) -> None:
        """Wait until every chunk received so far has been framed and decoded."""
        await self._chunks.join()

    async def send(self, command: str) -> None:
        """Write one command, terminated as the adapter expects."""
        payload = f"{command}{self._config.adapter.line_ending}".encode("ascii")
        await self._transport.write(payload)

    async def _teardown(self, final_state: SessionState) -> None:
        self._set_state(SessionState.DISCONNECTING)
        if self._store.get_snapshot() != TelemetrySnapshot():
            self._store.reset()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        current = asyncio.current_task()
        tasks = [t for t in (self._poll_task, self._reader_task) if t is not None and t is not current]
        self._poll_task = None
        self._reader_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._framer.reset()
        self._chunks = asyncio.Queue()
        self._init_replies = asyncio.Queue()

        await self._transport.disconnect()
        self._set_state(final_state)
        _logger.debug("Session torn down (%s)", final_state)

    # ------------------------------------------------------------------
    # Faults
    # ------------------------------------------------------------------

    def _report_error(self, exc: ObdError) -> None:
        self.last_error = exc
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)

    def _schedule_fault(self, exc: ObdError) -> None:
        if self._fault_task is not None and not self._fault_task.done():
            return
        self._fault_task = asyncio.get_running_loop().create_task(self._fault(exc))

    async def _fault(self, exc: ObdError) -> None:
        if self._state not in LIVE_STATES:
            return
        _logger.warning("Session faulted: %s", exc)
        self._report_error(exc)
        await self._teardown(SessionState.FAULTED)

    def _on_poll_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if not isinstance(exc, ObdError):
            _logger.error("Poller crashed", exc_info=exc)
            exc = ObdError(f"Poller crashed: {exc!r}")
        self._schedule_fault(exc)

    def _on_link_lost(self) -> None:
        if self._state in LIVE_STATES:
            address = self._peer.id if self._peer is not None else ""
            self._schedule_fault(ObdTransportError("Link to adapter lost", address=address))

    # ------------------------------------------------------------------
    # Data path
    # ------------------------------------------------------------------

    def _on_chunk(self, chunk: bytes) -> None:
        self._chunks.put_nowait(bytes(chunk))

    async def _read_chunks(self) -> None:
        while True:
            chunk = await self._chunks.get()
            try:
                self._framer.feed(chunk)
            except Exception:
                _logger.warning("Dropping chunk %s after handler failure", printable_for_log(chunk), exc_info=True)
            finally:
                self._chunks.task_done()

    def _on_frame(self, frame: str) -> None:
        state = self._state
        if state == SessionState.INITIALIZING:
            self._init_replies.put_nowait(frame)
        elif state in LIVE_STATES:
            self._decoder.feed(frame)
        else:
            _logger.debug("Dropping reply %s in state %s", printable_for_log(frame), state)
