"""Custom exception hierarchy for pyobdble."""

from __future__ import annotations


class ObdError(Exception):
    """Base exception for all pyobdble errors."""


class ObdConfigError(ObdError):
    """Invalid or missing configuration."""


class ObdTransportError(ObdError):
    """Link-level failure talking to the adapter."""

    def __init__(
        self,
        message: str,
        *,
        address: str = "",
    ) -> None:
        self.address = address
        super().__init__(message)


class ObdTransportUnavailableError(ObdTransportError):
    """No usable Bluetooth radio or backend on this host.

    Permanent for the lifetime of the process; retrying will not help.
    """


class ObdConnectFailedError(ObdTransportError):
    """Could not establish a link to the adapter (retryable)."""


class ObdWriteFailedError(ObdTransportError):
    """A command could not be written to the adapter.

    Raised when no peer is connected, when the payload exceeds the
    negotiated write size, or when the GATT write itself fails.  A single
    failure while polling is transient; repeated failures fault the session.
    """


class ObdAdapterInitFailedError(ObdConnectFailedError):
    """The ELM327 did not complete its initialization sequence.

    The session is torn back down to ``unconnected``; callers may retry by
    connecting again.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        address: str = "",
    ) -> None:
        self.command = command
        super().__init__(message, address=address)
