from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

import pytest

from pyobdble._transport import _remover
from pyobdble.config import ObdConfig, PollPlan
from pyobdble.exceptions import ObdConnectFailedError, ObdTransportUnavailableError, ObdWriteFailedError
from pyobdble.models.peer import LinkType, PeerDescriptor

# ---------------------------------------------------------------------------
# Fake ELM327 adapter
# ---------------------------------------------------------------------------


def _default_payloads() -> dict[str, str]:
    return {
        "0C": "1AF8",  # 1726 rpm
        "0D": "3C",  # 60 km/h
        "0B": "65",  # 101 kPa
        "11": "33",  # 20 %
        "05": "7B",  # 83 C
        "5C": "82",  # 90 C
        "5E": "0190",  # 20.0 L/h
        "2F": "80",  # 50 %
        "0F": "3C",  # 20 C
        "46": "32",  # 10 C
        "62": "A0",  # 35 %
        "2C": "40",  # 25 %
        "42": "3750",  # 14.2 V
    }


@dataclass
class FakeElmAdapter:
    """Transport double that answers like an ELM327 with echo/spaces off.

    Replies are split into ``chunk_size`` byte notifications and delivered
    on later loop iterations, the way a BLE stack would.
    """

    pid_payloads: dict[str, str] = field(default_factory=_default_payloads)
    peers: list[PeerDescriptor] = field(default_factory=list)
    silent_commands: set[str] = field(default_factory=set)
    chunk_size: int = 5
    available: bool = True
    connect_should_fail: bool = False
    fail_writes: bool = False
    writes: list[str] = field(default_factory=list)
    connected: bool = False
    connect_count: int = 0
    disconnect_count: int = 0
    discovery_stopped: bool = False
    _notify_callbacks: list[Callable[[bytes], None]] = field(default_factory=list)
    _disconnect_callbacks: list[Callable[[], None]] = field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def commands(self) -> list[str]:
        return [w.rstrip("\r") for w in self.writes]

    @property
    def queries(self) -> list[str]:
        return [c for c in self.commands if c.startswith("01")]

    async def open(self) -> None:
        if not self.available:
            raise ObdTransportUnavailableError("no radio")

    def discover(
        self,
        timeout: float,
        name_filter: Callable[[str | None], bool] | None = None,
    ) -> AsyncIterator[PeerDescriptor]:
        self.discovery_stopped = False
        return self._scan(name_filter)

    async def _scan(self, name_filter: Callable[[str | None], bool] | None) -> AsyncIterator[PeerDescriptor]:
        for peer in self.peers:
            if self.discovery_stopped:
                return
            if name_filter is not None and not name_filter(peer.name):
                continue
            await asyncio.sleep(0)
            yield peer

    def stop_discovery(self) -> None:
        self.discovery_stopped = True

    async def connect(self, peer_id: str) -> None:
        self.connect_count += 1
        if self.connect_should_fail:
            raise ObdConnectFailedError("link refused", address=peer_id)
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_count += 1
        self.connected = False

    async def write(self, data: bytes) -> None:
        if not self.connected or self.fail_writes:
            raise ObdWriteFailedError("write refused")
        text = data.decode("ascii")
        self.writes.append(text)
        reply = self.reply_for(text.rstrip("\r"))
        if reply is not None:
            self.notify(reply)

    def reply_for(self, command: str) -> str | None:
        if command in self.silent_commands:
            return None
        if command == "ATZ":
            return "\r\rELM327 v1.5\r\r>"
        if command.startswith("AT"):
            return "OK\r\r>"
        if command.startswith("01") and len(command) == 4:
            pid = command[2:]
            payload = self.pid_payloads.get(pid)
            if payload is None:
                return "NO DATA\r\r>"
            return f"41{pid}{payload}\r\r>"
        return "?\r\r>"

    def notify(self, text: str) -> None:
        """Deliver *text* as a series of chunks on later loop iterations."""
        loop = asyncio.get_running_loop()
        data = text.encode("ascii")
        for start in range(0, len(data), self.chunk_size):
            loop.call_soon(self._emit, data[start : start + self.chunk_size])

    def _emit(self, chunk: bytes) -> None:
        for callback in list(self._notify_callbacks):
            callback(chunk)

    def drop_link(self) -> None:
        self.connected = False
        for callback in list(self._disconnect_callbacks):
            callback()

    def on_notify(self, callback: Callable[[bytes], None]) -> Callable[[], None]:
        self._notify_callbacks.append(callback)
        return _remover(self._notify_callbacks, callback)

    def on_disconnect(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._disconnect_callbacks.append(callback)
        return _remover(self._disconnect_callbacks, callback)


@pytest.fixture
def adapter() -> FakeElmAdapter:
    return FakeElmAdapter(
        peers=[
            PeerDescriptor(id="AA:BB:CC:DD:EE:01", name="OBDII", link_type=LinkType.LOW_ENERGY, rssi=-60),
            PeerDescriptor(id="AA:BB:CC:DD:EE:02", name="Pixel 8", link_type=LinkType.LOW_ENERGY, rssi=-40),
            PeerDescriptor(id="AA:BB:CC:DD:EE:03", name="VEEPEAK BLE", link_type=LinkType.LOW_ENERGY, rssi=-70),
        ]
    )


@pytest.fixture
def config() -> ObdConfig:
    return ObdConfig(
        command_timeout=0.2,
        reset_settle_delay=0.0,
        poll=PollPlan(tick_interval=0.01),
    )


@pytest.fixture
def peer() -> PeerDescriptor:
    return PeerDescriptor(id="AA:BB:CC:DD:EE:01", name="OBDII", rssi=-60)

