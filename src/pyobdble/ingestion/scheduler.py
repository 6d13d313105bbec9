"""Interleaved polling of priority and secondary PIDs.

The ELM327 answers one query at a time and a BLE link manages a handful
of round-trips per second, so the bus budget is split: most ticks go to a
short list of fast-changing PIDs (RPM, speed, boost, throttle) and every
n-th tick walks a longer list of slow-changing ones (temperatures, fuel).

Queries are not correlated with replies.  The next tick fires whether or
not the previous reply has been framed; replies are routed purely by the
PID they carry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pyobdble._constants import MODE_01_REQUEST
from pyobdble.config import PollPlan
from pyobdble.exceptions import ObdWriteFailedError

_logger = logging.getLogger(__name__)


@dataclass
class PollQueue:
    """Two cyclic PID sequences with independent cursors."""

    priority: tuple[str, ...]
    secondary: tuple[str, ...] = ()
    secondary_every: int = 5
    priority_index: int = 0
    secondary_index: int = 0
    cycle: int = 0

    @classmethod
    def from_plan(cls, plan: PollPlan) -> PollQueue:
        return cls(
            priority=plan.priority_pids,
            secondary=plan.secondary_pids,
            secondary_every=plan.secondary_every,
        )

    def advance(self) -> str:
        """Return the PID for this tick and move the cursors on."""
        if self.secondary and self.cycle % self.secondary_every == self.secondary_every - 1:
            pid = self.secondary[self.secondary_index]
            self.secondary_index = (self.secondary_index + 1) % len(self.secondary)
        else:
            pid = self.priority[self.priority_index]
            self.priority_index = (self.priority_index + 1) % len(self.priority)
        self.cycle += 1
        return pid


class PollScheduler:
    """Issues one Mode 01 query per tick while the session is polling.

    Parameters
    ----------
    plan
        Tick interval and queue membership.
    send
        Coroutine writing one command to the adapter.
    is_active
        Checked before every tick; nothing is sent while it returns False.
    max_consecutive_failures
        Write failures in a row tolerated before :meth:`run` gives up by
        re-raising the last :class:`ObdWriteFailedError`.
    on_write_error
        Optional callback invoked for every tolerated write failure.
    """

    def __init__(
        self,
        plan: PollPlan,
        send: Callable[[str], Awaitable[None]],
        *,
        is_active: Callable[[], bool],
        max_consecutive_failures: int = 3,
        on_write_error: Callable[[ObdWriteFailedError], None] | None = None,
    ) -> None:
        self._plan = plan
        self._queue = PollQueue.from_plan(plan)
        self._send = send
        self._is_active = is_active
        self._max_failures = max_consecutive_failures
        self._on_write_error = on_write_error
        self._consecutive_failures = 0

    @property
    def queue(self) -> PollQueue:
        return self._queue

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def next_request(self) -> str:
        """Advance the queue and return the four-character query."""
        return f"{MODE_01_REQUEST}{self._queue.advance()}"

    async def tick(self) -> str | None:
        """Run one tick; return the query sent, or ``None`` when idle."""
        if not self._is_active():
            return None

        request = self.next_request()
        try:
            await self._send(request)
        except ObdWriteFailedError as exc:
            self._consecutive_failures += 1
            _logger.warning(
                "Query %s failed (%d/%d): %s",
                request,
                self._consecutive_failures,
                self._max_failures,
                exc,
            )
            # The failure that reaches the limit is reported by whoever handles the raise.
            if self._consecutive_failures >= self._max_failures:
                raise
            if self._on_write_error is not None:
                try:
                    self._on_write_error(exc)
                except Exception:
                    _logger.debug("on_write_error callback failed", exc_info=True)
            return request

        self._consecutive_failures = 0
        return request

    async def run(self) -> None:
        """Tick forever at a fixed cadence until cancelled."""
        loop = asyncio.get_running_loop()
        interval = self._plan.tick_interval
        deadline = loop.time()
        _logger.debug(
            "Polling every %.3fs: priority=%s secondary=%s",
            interval,
            ",".join(self._queue.priority),
            ",".join(self._queue.secondary),
        )
        while True:
            await self.tick()
            deadline += interval
            delay = deadline - loop.time()
            if delay < 0:
                # A slow write overran the tick; restart the cadence from now.
                deadline = loop.time()
                delay = 0
            await asyncio.sleep(delay)
