"""Public data models."""

from pyobdble.models.peer import LinkType, PeerDescriptor
from pyobdble.models.snapshot import TelemetrySnapshot

__all__ = [
    "LinkType",
    "PeerDescriptor",
    "TelemetrySnapshot",
]
