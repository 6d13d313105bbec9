"""pyobdble - Async OBD-II live telemetry over BLE ELM327 adapters."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyobdble")
except PackageNotFoundError:
    __version__ = "0+local"
from pyobdble.client import ObdClient
from pyobdble.config import AdapterProfile, ObdConfig, PollPlan
from pyobdble.discovery import PeerChoice
from pyobdble.exceptions import (
    ObdAdapterInitFailedError,
    ObdConfigError,
    ObdConnectFailedError,
    ObdError,
    ObdTransportError,
    ObdTransportUnavailableError,
    ObdWriteFailedError,
)
from pyobdble.models import LinkType, PeerDescriptor, TelemetrySnapshot
from pyobdble.session import SessionState

__all__ = [
    "__version__",
    "AdapterProfile",
    "LinkType",
    "ObdAdapterInitFailedError",
    "ObdClient",
    "ObdConfig",
    "ObdConfigError",
    "ObdConnectFailedError",
    "ObdError",
    "ObdTransportError",
    "ObdTransportUnavailableError",
    "ObdWriteFailedError",
    "PeerChoice",
    "PeerDescriptor",
    "PollPlan",
    "SessionState",
    "TelemetrySnapshot",
]
