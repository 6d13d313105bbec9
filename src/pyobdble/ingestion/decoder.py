"""Mode 01 reply validation and decoding.

Anything that is not a well-formed ``41 <pid> <data>`` reply is dropped
without complaint: echoes, ``SEARCHING...``, ``NO DATA``, ``OK`` and
truncated replies are normal traffic on an ELM327 link.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from pyobdble._constants import MODE_01_RESPONSE
from pyobdble._logfmt import printable_for_log
from pyobdble.pids import PID_TABLE, PidSpec
from pyobdble.state.events import FieldUpdate
from pyobdble.state.store import TelemetryStore

_logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_MODE01_RE = re.compile(rf"^{MODE_01_RESPONSE}([0-9A-F]{{2}})([0-9A-F]*)$")


def clean_response(response: str) -> str:
    """Strip all whitespace (including CR/LF) and uppercase."""
    return _WHITESPACE_RE.sub("", response).upper()


def parse_mode01_response(response: str) -> tuple[str, str] | None:
    """Split a reply into ``(pid, payload_hex)``.

    Returns ``None`` when the reply is not a Mode 01 response or contains
    non-hex characters.
    """
    match = _MODE01_RE.match(clean_response(response))
    if match is None:
        return None
    return match.group(1), match.group(2)


def decode_response(response: str, table: Mapping[str, PidSpec] = PID_TABLE) -> FieldUpdate | None:
    """Decode one complete reply into a :class:`FieldUpdate`, or ``None``."""
    parsed = parse_mode01_response(response)
    if parsed is None:
        _logger.debug("Ignoring non-Mode-01 reply %s", printable_for_log(response))
        return None

    pid, payload = parsed
    spec = table.get(pid)
    if spec is None:
        _logger.debug("Ignoring reply for unmapped PID %s", pid)
        return None

    value = spec.decode(payload)
    if value is None:
        _logger.debug(
            "Ignoring truncated reply for PID %s (%d of %d hex chars)",
            pid,
            len(payload),
            spec.byte_length * 2,
        )
        return None

    return FieldUpdate(pid=pid, field=spec.field, value=value, raw=clean_response(response))


class PidDecoder:
    """Feeds decoded replies into a :class:`TelemetryStore`."""

    def __init__(self, store: TelemetryStore, table: Mapping[str, PidSpec] = PID_TABLE) -> None:
        self._store = store
        self._table = table
        self.decoded = 0
        self.discarded = 0

    def feed(self, response: str) -> FieldUpdate | None:
        update = decode_response(response, self._table)
        if update is None:
            self.discarded += 1
            return None
        self.decoded += 1
        self._store.apply(update)
        return update
