"""Frame id allocation and request/response matching."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from xbeectl.core.dispatch_queue import DispatchQueue
from xbeectl.core.errors import ProtocolMismatchError, ResponseTimeoutError, TransportClosedError
from xbeectl.core.frames import (
    ATCommandFrame,
    ATCommandResponseFrame,
    ExplicitAddressingFrame,
    Frame,
    RemoteATCommandFrame,
    RemoteATCommandResponseFrame,
    TransmitRequestFrame,
    TransmitStatusFrame,
    frame_id_of,
    payload_of,
)
from xbeectl.core.model import XBee64BitAddress

LOGGER = logging.getLogger(__name__)


class FrameIdCounter:
    """Per-device frame id source: 1..255, wrapping back to 1."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def next(self) -> int:
        with self._lock:
            self._value = 1 if self._value >= 0xFF else self._value + 1
            return self._value


def check_response(sent: Frame, candidate: Frame) -> None:
    """Raise ProtocolMismatchError if candidate cannot answer sent."""
    if not candidate.NEEDS_ID:
        raise ProtocolMismatchError(f"{type(candidate).__name__} carries no frame id")
    if frame_id_of(candidate) != frame_id_of(sent):
        raise ProtocolMismatchError(
            f"Frame id {frame_id_of(candidate)} does not match request id {frame_id_of(sent)}"
        )
    if payload_of(candidate) == payload_of(sent):
        raise ProtocolMismatchError("Frame is an echo of the request")

    if isinstance(sent, ATCommandFrame):
        if not isinstance(candidate, ATCommandResponseFrame):
            raise ProtocolMismatchError(f"Expected an AT command response, got {type(candidate).__name__}")
        if candidate.command.upper() != sent.command.upper():
            raise ProtocolMismatchError(f"Response echoes {candidate.command}, request was {sent.command}")
    elif isinstance(sent, RemoteATCommandFrame):
        if not isinstance(candidate, RemoteATCommandResponseFrame):
            raise ProtocolMismatchError(
                f"Expected a remote AT command response, got {type(candidate).__name__}"
            )
        if candidate.command.upper() != sent.command.upper():
            raise ProtocolMismatchError(f"Response echoes {candidate.command}, request was {sent.command}")
        target = sent.x64bit_addr
        if target.is_known and target != XBee64BitAddress.BROADCAST and candidate.x64bit_addr != target:
            raise ProtocolMismatchError(f"Response came from {candidate.x64bit_addr}, request went to {target}")
    elif isinstance(sent, (TransmitRequestFrame, ExplicitAddressingFrame)):
        if not isinstance(candidate, TransmitStatusFrame):
            raise ProtocolMismatchError(f"Expected a transmit status, got {type(candidate).__name__}")


@dataclass(eq=False)
class _PendingRequest:
    frame: Frame
    cancelled: threading.Event = field(default_factory=threading.Event)


class Correlator:
    """Sends frames and waits on a queue for the frame that answers them."""

    def __init__(self, write: Callable[[Frame], None], queue: DispatchQueue) -> None:
        self._write = write
        self._queue = queue
        self._pending: list[_PendingRequest] = []
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def send_fire_and_forget(self, frame: Frame) -> None:
        self._write(frame)

    def send_and_await(self, frame: Frame, timeout: float, cancel: threading.Event | None = None) -> Frame:
        """Write frame and wait for its response.

        Setting cancel (then calling release) or calling cancel_all ends the
        wait with TransportClosedError.
        """
        if not frame.NEEDS_ID or frame_id_of(frame) == 0:
            raise ValueError("send_and_await needs a frame with a non-zero frame id")
        if cancel is not None and cancel.is_set():
            raise TransportClosedError(f"Request for frame id {frame_id_of(frame)} was cancelled before sending")

        pending = _PendingRequest(frame) if cancel is None else _PendingRequest(frame, cancel)
        with self._lock:
            self._pending.append(pending)
        try:
            self._write(frame)
            response = self._queue.pop(
                lambda candidate: self._matches(frame, candidate),
                timeout,
                cancel=pending.cancelled,
            )
        finally:
            with self._lock:
                self._pending.remove(pending)

        if response is None:
            if pending.cancelled.is_set():
                raise TransportClosedError(
                    f"Wait for a response to frame id {frame_id_of(frame)} was cancelled"
                )
            raise ResponseTimeoutError(
                f"No response to {type(frame).__name__} (frame id {frame_id_of(frame)}) within {timeout}s"
            )
        return response

    def release(self, cancel: threading.Event) -> None:
        """Set cancel and wake the waits that were given it."""
        cancel.set()
        self._queue.wake_all()

    def cancel_all(self) -> None:
        with self._lock:
            pending = list(self._pending)
        for request in pending:
            request.cancelled.set()
        self._queue.wake_all()

    @staticmethod
    def _matches(sent: Frame, candidate: Frame) -> bool:
        try:
            check_response(sent, candidate)
        except ProtocolMismatchError as exc:
            if candidate.NEEDS_ID and frame_id_of(candidate) == frame_id_of(sent):
                LOGGER.debug("Ignoring candidate response: %s", exc)
            return False
        return True
