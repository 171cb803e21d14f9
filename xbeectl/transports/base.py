"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    @property
    def name(self) -> str:
        """Human-readable port name used in log lines."""

    def open(self) -> None: ...

    def close(self) -> None:
        """Close the link; closing twice is harmless."""

    def is_open(self) -> bool: ...

    def read_byte(self, timeout: float) -> int:
        """Return one byte, raising TransportTimeoutError if none arrives in time."""

    def write(self, data: bytes) -> None: ...

    def reset_input(self) -> None:
        """Discard bytes received but not yet read."""
