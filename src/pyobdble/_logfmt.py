"""Helpers for safe debug logging.

Adapters emit raw ASCII interleaved with carriage returns, prompts and, on
cheap clones, the occasional garbage byte.  This module renders such data
so DEBUG logs stay on one line and bounded in size.
"""

from __future__ import annotations

_ESCAPES: dict[str, str] = {
    "\r": "\\r",
    "\n": "\\n",
    "\t": "\\t",
}


def printable_for_log(value: bytes | bytearray | str | None, *, max_length: int = 64) -> str:
    """Return a single-line, truncated rendering of wire data."""
    if value is None:
        return "<none>"

    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("ascii", errors="replace")
    else:
        text = value

    rendered: list[str] = []
    for ch in text:
        if ch in _ESCAPES:
            rendered.append(_ESCAPES[ch])
        elif ch.isprintable():
            rendered.append(ch)
        else:
            rendered.append(f"\\x{ord(ch) & 0xFF:02x}")
    result = "".join(rendered)

    if len(result) > max_length:
        return f"{result[:max_length]}…<truncated:{len(text)}>"
    return result
