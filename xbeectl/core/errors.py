"""Domain-specific errors for xbeectl."""

from __future__ import annotations


class XBeeError(Exception):
    """Base error for xbeectl."""


class ConfigValidationError(XBeeError):
    """Raised when a device profile does not conform to schema or semantics."""


class ConfigLoadError(XBeeError):
    """Raised when reading device profile sources fails."""


class TransportError(XBeeError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the serial port cannot be opened."""


class TransportSendError(TransportError):
    """Raised when writing to the transport fails."""


class TransportTimeoutError(TransportError):
    """Raised when no byte arrives within the read timeout."""


class TransportClosedError(TransportError):
    """Raised when the transport is (or became) closed."""


class ResponseTimeoutError(XBeeError, TimeoutError):
    """Raised when no matching response frame arrives before the deadline."""


class DecodeError(XBeeError):
    """Base error for frames that cannot be decoded."""


class ChecksumMismatchError(DecodeError):
    """Raised when the checksum byte does not match the payload."""


class LengthMismatchError(DecodeError):
    """Raised when the length field disagrees with the buffer."""


class MalformedFieldError(DecodeError):
    """Raised when a well-framed payload has invalid type-specific fields."""


class UnsupportedModeError(XBeeError):
    """Raised when a frame operation is attempted outside API mode."""


class QueueFullError(XBeeError):
    """Raised when a dispatch queue rejects an insert."""


class ProtocolMismatchError(XBeeError):
    """Raised when a response contradicts the request it claims to answer."""


class ATCommandError(XBeeError):
    """Raised when an AT command response carries a non-OK status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransmitError(XBeeError):
    """Raised when a transmit status reports a delivery failure."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DiscoveryInProgressError(XBeeError):
    """Raised when a blocking discovery is requested while one is running."""
