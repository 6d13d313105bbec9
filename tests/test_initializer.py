from __future__ import annotations

import asyncio

import pytest

from pyobdble._constants import DEFAULT_INIT_COMMANDS
from pyobdble.exceptions import ObdAdapterInitFailedError, ObdWriteFailedError
from pyobdble.initializer import AdapterInitializer


class _EchoAdapter:
    """Answers each command by queueing a reply, unless told to stay silent."""

    def __init__(self, replies: asyncio.Queue[str], silent: set[str] | None = None) -> None:
        self.replies = replies
        self.silent = silent or set()
        self.sent: list[str] = []

    async def __call__(self, command: str) -> None:
        self.sent.append(command)
        if command in self.silent:
            return
        reply = "ELM327 v1.5" if command == "ATZ" else "OK"
        asyncio.get_running_loop().call_soon(self.replies.put_nowait, reply)


@pytest.mark.asyncio
async def test_sequence_sent_in_order_with_replies() -> None:
    replies: asyncio.Queue[str] = asyncio.Queue()
    adapter = _EchoAdapter(replies)
    initializer = AdapterInitializer(DEFAULT_INIT_COMMANDS, adapter, replies, settle_delay=0)

    result = await initializer.run()

    assert adapter.sent == ["ATZ", "ATE0", "ATL0", "ATS0", "ATH0", "ATSP0"]
    assert result == ["ELM327 v1.5", "OK", "OK", "OK", "OK", "OK"]


@pytest.mark.asyncio
async def test_settle_delay_only_after_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr("pyobdble.initializer.asyncio.sleep", fake_sleep)
    replies: asyncio.Queue[str] = asyncio.Queue()
    initializer = AdapterInitializer(("ATZ", "ATE0", "ATL0"), _EchoAdapter(replies), replies, settle_delay=1.0)

    await initializer.run()

    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_missing_reply_fails_whole_sequence() -> None:
    replies: asyncio.Queue[str] = asyncio.Queue()
    adapter = _EchoAdapter(replies, silent={"ATL0"})
    initializer = AdapterInitializer(
        DEFAULT_INIT_COMMANDS,
        adapter,
        replies,
        command_timeout=0.05,
        settle_delay=0,
        address="AA:BB",
    )

    with pytest.raises(ObdAdapterInitFailedError) as exc_info:
        await initializer.run()

    assert exc_info.value.command == "ATL0"
    assert exc_info.value.address == "AA:BB"
    assert adapter.sent == ["ATZ", "ATE0", "ATL0"]


@pytest.mark.asyncio
async def test_write_failure_maps_to_init_failure() -> None:
    async def broken_send(_command: str) -> None:
        raise ObdWriteFailedError("not connected")

    replies: asyncio.Queue[str] = asyncio.Queue()
    initializer = AdapterInitializer(DEFAULT_INIT_COMMANDS, broken_send, replies, settle_delay=0)

    with pytest.raises(ObdAdapterInitFailedError) as exc_info:
        await initializer.run()

    assert exc_info.value.command == "ATZ"
    assert isinstance(exc_info.value.__cause__, ObdWriteFailedError)


@pytest.mark.asyncio
async def test_stale_replies_are_dropped_before_each_command() -> None:
    replies: asyncio.Queue[str] = asyncio.Queue()
    replies.put_nowait("410C1AF8")
    initializer = AdapterInitializer(("ATZ",), _EchoAdapter(replies), replies, settle_delay=0)

    assert await initializer.run() == ["ELM327 v1.5"]
