"""ELM327 initialization sequence.

Brings a freshly connected adapter into a known state: reset, then echo,
linefeeds, spaces and headers off, then automatic protocol detection.
With those settings a Mode 01 reply is a bare ``410C1AF8`` followed by the
prompt, which is what the decoder expects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from pyobdble._logfmt import printable_for_log
from pyobdble.exceptions import ObdAdapterInitFailedError, ObdWriteFailedError

_logger = logging.getLogger(__name__)


class AdapterInitializer:
    """Sends the init commands strictly one after another.

    Each command waits for its framed reply (delivered on *responses*) for
    at most *command_timeout* seconds.  A timeout or write failure aborts
    the whole sequence with :class:`ObdAdapterInitFailedError`.
    """

    def __init__(
        self,
        commands: Sequence[str],
        send: Callable[[str], Awaitable[None]],
        responses: asyncio.Queue[str],
        *,
        command_timeout: float = 2.0,
        settle_delay: float = 1.0,
        address: str = "",
    ) -> None:
        self._commands = tuple(commands)
        self._send = send
        self._responses = responses
        self._command_timeout = command_timeout
        self._settle_delay = settle_delay
        self._address = address

    def _drain_stale(self) -> None:
        while not self._responses.empty():
            stale = self._responses.get_nowait()
            _logger.debug("Dropping stale reply %s", printable_for_log(stale))

    async def run(self) -> list[str]:
        """Run the sequence; return the reply received for each command."""
        replies: list[str] = []
        for index, command in enumerate(self._commands):
            self._drain_stale()
            try:
                await self._send(command)
            except ObdWriteFailedError as exc:
                raise ObdAdapterInitFailedError(
                    f"Could not send {command}: {exc}",
                    command=command,
                    address=self._address,
                ) from exc

            try:
                reply = await asyncio.wait_for(self._responses.get(), self._command_timeout)
            except TimeoutError as exc:
                raise ObdAdapterInitFailedError(
                    f"No reply to {command} within {self._command_timeout:.1f}s",
                    command=command,
                    address=self._address,
                ) from exc

            _logger.debug("%s -> %s", command, printable_for_log(reply))
            if "?" in reply:
                _logger.warning("Adapter did not understand %s (reply %s)", command, printable_for_log(reply))
            replies.append(reply)

            if index == 0 and self._settle_delay > 0:
                await asyncio.sleep(self._settle_delay)
        return replies
