"""Ingestion layer.

This package contains the pieces that turn adapter traffic into
normalized :class:`~pyobdble.state.events.FieldUpdate` events: reply
framing, PID decoding and the polling schedule that drives the queries.
"""

__all__: list[str] = []
