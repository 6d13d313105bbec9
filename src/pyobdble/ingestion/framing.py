"""Reassembly of adapter replies from raw notification chunks.

BLE notifications carry at most one ATT payload (often 20 bytes), so a
single ELM327 reply may be split over several chunks, and several short
replies may share one chunk.  The adapter ends every reply with its prompt
character; that is the only framing signal available.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pyobdble._constants import PROMPT
from pyobdble._logfmt import printable_for_log

_logger = logging.getLogger(__name__)


class FrameAssembler:
    """Turn an unbounded chunk stream into complete, trimmed reply strings.

    ``on_frame`` is called once per reply, in arrival order, synchronously
    from :meth:`feed`.  Chunks without a prompt accumulate; the first chunk
    carrying a prompt flushes the whole buffer, including any text after
    the last prompt, and clears it.  If accumulated data grows beyond
    ``max_buffer_size`` the assembler discards it and skips input up to and
    including the next prompt, then resumes.
    """

    def __init__(
        self,
        on_frame: Callable[[str], None],
        *,
        terminator: str = PROMPT,
        max_buffer_size: int = 4096,
    ) -> None:
        if len(terminator) != 1:
            raise ValueError("terminator must be a single character")
        self._on_frame = on_frame
        self._terminator = terminator
        self._max_buffer_size = max_buffer_size
        self._buffer = ""
        self._resyncing = False
        self._overflows = 0

    @property
    def pending(self) -> str:
        """Data received since the last terminator."""
        return self._buffer

    @property
    def resyncing(self) -> bool:
        return self._resyncing

    @property
    def overflow_count(self) -> int:
        """How many times the buffer cap forced a resynchronization."""
        return self._overflows

    def reset(self) -> None:
        """Forget any partial reply."""
        self._buffer = ""
        self._resyncing = False

    def feed(self, chunk: bytes | bytearray | str) -> int:
        """Consume one notification chunk; return the number of frames emitted."""
        text = chunk if isinstance(chunk, str) else bytes(chunk).decode("ascii", errors="replace")
        if not text:
            return 0

        if self._resyncing:
            _, found, rest = text.partition(self._terminator)
            if not found:
                return 0
            _logger.debug("Resynchronized on terminator after overflow")
            self._resyncing = False
            text = rest

        self._buffer += text

        if self._terminator not in self._buffer:
            if len(self._buffer) > self._max_buffer_size:
                self._overflow()
            return 0

        # A terminator closes out everything received so far, trailing text included.
        segments = self._buffer.split(self._terminator)
        self._buffer = ""

        emitted = 0
        for segment in segments:
            frame = segment.strip()
            if not frame:
                continue
            _logger.debug("Frame %s", printable_for_log(frame))
            self._on_frame(frame)
            emitted += 1
        return emitted

    def _overflow(self) -> None:
        _logger.warning(
            "Discarding %d unterminated characters (cap %d); waiting for next terminator",
            len(self._buffer),
            self._max_buffer_size,
        )
        self._buffer = ""
        self._resyncing = True
        self._overflows += 1
