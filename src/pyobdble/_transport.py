"""BLE transport to ELM327-style serial bridges."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from pyobdble._constants import ATT_HEADER_SIZE, DEFAULT_ATT_MTU
from pyobdble._logfmt import printable_for_log
from pyobdble.config import AdapterProfile
from pyobdble.exceptions import (
    ObdConnectFailedError,
    ObdTransportUnavailableError,
    ObdWriteFailedError,
)
from pyobdble.models.peer import LinkType, PeerDescriptor

_logger = logging.getLogger(__name__)

NotifyCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[], None]
NameFilter = Callable[[str | None], bool]

# How often a running discovery re-checks for an explicit stop.
_STOP_POLL_INTERVAL = 0.25

_WRITE_PROPERTIES = frozenset({"write", "write-without-response"})
_NOTIFY_PROPERTIES = frozenset({"notify", "indicate"})


class Transport(Protocol):
    """Structural transport interface used by the session.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`BleakTransport`) concrete.
    Callbacks must be invoked on the event loop that owns the session.
    """

    @property
    def is_connected(self) -> bool: ...

    async def open(self) -> None: ...

    def discover(self, timeout: float, name_filter: NameFilter | None = None) -> AsyncIterator[PeerDescriptor]: ...

    def stop_discovery(self) -> None: ...

    async def connect(self, peer_id: str) -> None: ...

    async def write(self, data: bytes) -> None: ...

    def on_notify(self, callback: NotifyCallback) -> Callable[[], None]: ...

    def on_disconnect(self, callback: DisconnectCallback) -> Callable[[], None]: ...

    async def disconnect(self) -> None: ...


def _remover(callbacks: list[Callable[..., None]], callback: Callable[..., None]) -> Callable[[], None]:
    def remove() -> None:
        for index, candidate in enumerate(callbacks):
            if candidate is callback:
                del callbacks[index]
                return

    return remove


class BleakTransport:
    """GATT transport built on bleak.

    Commands go to the adapter profile's write characteristic; replies
    arrive as notifications and are handed, unframed, to every registered
    notify callback.
    """

    def __init__(
        self,
        adapter: AdapterProfile | None = None,
        *,
        connect_timeout: float = 10.0,
        write_with_response: bool = True,
    ) -> None:
        self._adapter = adapter or AdapterProfile()
        self._connect_timeout = connect_timeout
        self._write_with_response = write_with_response
        self._client: BleakClient | None = None
        self._write_char: BleakGATTCharacteristic | None = None
        self._notify_char: BleakGATTCharacteristic | None = None
        self._address = ""
        self._notify_callbacks: list[NotifyCallback] = []
        self._disconnect_callbacks: list[DisconnectCallback] = []
        self._stop_scan: asyncio.Event | None = None

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_connected

    # ------------------------------------------------------------------
    # Availability and discovery
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Probe the Bluetooth backend by starting and stopping a scan."""
        scanner = BleakScanner()
        try:
            await scanner.start()
            await scanner.stop()
        except (BleakError, OSError) as exc:
            raise ObdTransportUnavailableError(f"Bluetooth LE is not available: {exc}") from exc
        _logger.debug("Bluetooth LE backend available")

    def discover(self, timeout: float, name_filter: NameFilter | None = None) -> AsyncIterator[PeerDescriptor]:
        """Yield matching peers as they are seen, for at most *timeout* seconds.

        Each peer id is yielded once per scan.  Use :meth:`stop_discovery`
        or close the iterator to end early.  A stop requested before the
        first iteration ends the scan as soon as it starts.
        """
        stop = asyncio.Event()
        self._stop_scan = stop
        return self._scan(timeout, name_filter, stop)

    async def _scan(
        self,
        timeout: float,
        name_filter: NameFilter | None,
        stop: asyncio.Event,
    ) -> AsyncIterator[PeerDescriptor]:
        found: asyncio.Queue[PeerDescriptor] = asyncio.Queue()
        seen: set[str] = set()

        def on_detect(device: BLEDevice, advertisement: AdvertisementData) -> None:
            if device.address in seen:
                return
            name = advertisement.local_name or device.name
            if name_filter is not None and not name_filter(name):
                return
            seen.add(device.address)
            found.put_nowait(
                PeerDescriptor(
                    id=device.address,
                    name=name or "",
                    link_type=LinkType.LOW_ENERGY,
                    rssi=advertisement.rssi,
                )
            )

        scanner = BleakScanner(detection_callback=on_detect)
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise ObdTransportUnavailableError(f"Could not start scan: {exc}") from exc

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        _logger.debug("Scanning for %.1fs", timeout)
        try:
            while not stop.is_set():
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    peer = await asyncio.wait_for(found.get(), min(remaining, _STOP_POLL_INTERVAL))
                except TimeoutError:
                    continue
                _logger.debug("Discovered %s (%s) rssi=%s", peer.name, peer.id, peer.rssi)
                yield peer
        finally:
            if self._stop_scan is stop:
                self._stop_scan = None
            try:
                await scanner.stop()
            except (BleakError, OSError):
                _logger.debug("Scanner stop failed", exc_info=True)

    def stop_discovery(self) -> None:
        """End a running :meth:`discover` at its next poll."""
        if self._stop_scan is not None:
            self._stop_scan.set()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, peer_id: str) -> None:
        """Connect, resolve the serial characteristics and enable notifications."""
        if self._client is not None:
            await self.disconnect()

        client = BleakClient(
            peer_id,
            disconnected_callback=self._handle_disconnected,
            timeout=self._connect_timeout,
        )
        _logger.debug("Connecting to %s", peer_id)
        try:
            await client.connect()
        except (BleakError, TimeoutError, OSError) as exc:
            raise ObdConnectFailedError(f"Could not connect to {peer_id}: {exc}", address=peer_id) from exc

        try:
            write_char, notify_char = self._resolve_characteristics(client)
            self._client = client
            self._write_char = write_char
            self._notify_char = notify_char
            self._address = peer_id
            await client.start_notify(notify_char, self._handle_notify)
        except (BleakError, OSError, ObdConnectFailedError) as exc:
            self._client = None
            self._write_char = None
            self._notify_char = None
            try:
                await client.disconnect()
            except (BleakError, OSError, TimeoutError):
                _logger.debug("Disconnect after failed setup also failed", exc_info=True)
            if isinstance(exc, ObdConnectFailedError):
                raise
            raise ObdConnectFailedError(f"Could not enable notifications on {peer_id}: {exc}", address=peer_id) from exc

        _logger.info(
            "Connected to %s (write=%s notify=%s mtu=%s)",
            peer_id,
            write_char.uuid,
            notify_char.uuid,
            client.mtu_size,
        )

    def _resolve_characteristics(self, client: BleakClient) -> tuple[BleakGATTCharacteristic, BleakGATTCharacteristic]:
        services = client.services
        write_char: BleakGATTCharacteristic | None = None
        notify_char: BleakGATTCharacteristic | None = None
        service = services.get_service(self._adapter.service_uuid)
        if service is not None:
            write_char = service.get_characteristic(self._adapter.write_uuid)
            notify_char = service.get_characteristic(self._adapter.notify_uuid)

        if write_char is None or notify_char is None:
            # Clones with non-standard UUIDs: take the first usable pair.
            for service in services:
                for char in service.characteristics:
                    props = set(char.properties)
                    if write_char is None and props & _WRITE_PROPERTIES:
                        write_char = char
                    if notify_char is None and props & _NOTIFY_PROPERTIES:
                        notify_char = char
            if write_char is not None and notify_char is not None:
                _logger.debug(
                    "Profile UUIDs not found on %s; using write=%s notify=%s",
                    client.address,
                    write_char.uuid,
                    notify_char.uuid,
                )

        if write_char is None or notify_char is None:
            raise ObdConnectFailedError(
                f"{client.address} exposes no writable/notifiable characteristic pair",
                address=client.address,
            )
        return write_char, notify_char

    async def disconnect(self) -> None:
        """Tear down the link. Never raises; safe to call repeatedly."""
        client = self._client
        notify_char = self._notify_char
        self._client = None
        self._write_char = None
        self._notify_char = None
        if client is None:
            return

        try:
            if client.is_connected:
                if notify_char is not None:
                    try:
                        await client.stop_notify(notify_char)
                    except (BleakError, OSError):
                        _logger.debug("stop_notify failed", exc_info=True)
                await client.disconnect()
        except (BleakError, OSError, TimeoutError):
            _logger.debug("Disconnect from %s failed; dropping link locally", self._address, exc_info=True)
        _logger.debug("Disconnected from %s", self._address)

    # ------------------------------------------------------------------
    # Data path
    # ------------------------------------------------------------------

    async def write(self, data: bytes) -> None:
        client = self._client
        char = self._write_char
        if client is None or char is None or not client.is_connected:
            raise ObdWriteFailedError("No adapter connected", address=self._address)

        limit = getattr(char, "max_write_without_response_size", DEFAULT_ATT_MTU - ATT_HEADER_SIZE)
        if len(data) > limit:
            raise ObdWriteFailedError(
                f"{len(data)} bytes exceeds negotiated payload size of {limit}",
                address=self._address,
            )

        response = self._write_with_response and "write" in char.properties
        _logger.debug("TX %s", printable_for_log(data))
        try:
            await client.write_gatt_char(char, data, response=response)
        except (BleakError, OSError, TimeoutError) as exc:
            raise ObdWriteFailedError(f"GATT write failed: {exc}", address=self._address) from exc

    def on_notify(self, callback: NotifyCallback) -> Callable[[], None]:
        self._notify_callbacks.append(callback)
        return _remover(self._notify_callbacks, callback)

    def on_disconnect(self, callback: DisconnectCallback) -> Callable[[], None]:
        self._disconnect_callbacks.append(callback)
        return _remover(self._disconnect_callbacks, callback)

    def _handle_notify(self, _sender: BleakGATTCharacteristic, data: bytearray) -> None:
        chunk = bytes(data)
        _logger.debug("RX %s", printable_for_log(chunk))
        for callback in list(self._notify_callbacks):
            try:
                callback(chunk)
            except Exception:
                _logger.debug("Notify callback failed", exc_info=True)

    def _handle_disconnected(self, client: BleakClient) -> None:
        # Deliberate disconnects clear self._client first.
        if client is not self._client:
            return
        _logger.info("Link to %s lost", self._address)
        self._client = None
        self._write_char = None
        self._notify_char = None
        for callback in list(self._disconnect_callbacks):
            try:
                callback()
            except Exception:
                _logger.debug("Disconnect callback failed", exc_info=True)
