from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Iterable

import pytest

from xbeectl.core.constants import ATCommandStatus, OperatingMode, TransmitStatus
from xbeectl.core.device import DeviceSettings, XBeeDevice
from xbeectl.core.errors import TransportClosedError, TransportTimeoutError
from xbeectl.core.frames import (
    ATCommandFrame,
    ATCommandResponseFrame,
    ExplicitAddressingFrame,
    Frame,
    TransmitRequestFrame,
    TransmitStatusFrame,
    decode,
    encode,
)
from xbeectl.core.model import XBee16BitAddress

Responder = Callable[[Frame], Iterable[Frame] | None]


class FakeTransport:
    """In-memory transport; bytes written can trigger scripted replies."""

    def __init__(self, name: str = "fake0", responder: Responder | None = None) -> None:
        self._name = name
        self.responder = responder
        self.escaped = False
        self.written: list[bytes] = []
        self.open_calls = 0
        self._incoming: deque[int] = deque()
        self._cond = threading.Condition()
        self._open = False

    @property
    def name(self) -> str:
        return self._name

    def open(self) -> None:
        self.open_calls += 1
        with self._cond:
            self._open = True

    def close(self) -> None:
        with self._cond:
            self._open = False
            self._cond.notify_all()

    def is_open(self) -> bool:
        return self._open

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._incoming.extend(data)
            self._cond.notify_all()

    def feed_frame(self, frame: Frame) -> None:
        self.feed(encode(frame, escaped=self.escaped))

    def read_byte(self, timeout: float) -> int:
        deadline = time.monotonic() + timeout
        with self._cond:
            while not self._incoming:
                if not self._open:
                    raise TransportClosedError(f"{self._name} is closed")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransportTimeoutError(f"No data on {self._name}")
                self._cond.wait(remaining)
            return self._incoming.popleft()

    def write(self, data: bytes) -> None:
        if not self._open:
            raise TransportClosedError(f"{self._name} is closed")
        self.written.append(bytes(data))
        if self.responder is None:
            return
        for reply in self.responder(decode(data, escaped=self.escaped)) or ():
            self.feed_frame(reply)

    def reset_input(self) -> None:
        with self._cond:
            self._incoming.clear()

    def written_frames(self) -> list[Frame]:
        return [decode(data, escaped=self.escaped) for data in self.written]


class ATResponder:
    """Answers AT commands from a table and acknowledges transmissions.

    Table values are response values (bytes), a non-OK ATCommandStatus, or a
    callable returning the reply frames. Commands missing from the table get
    INVALID_COMMAND; commands listed in `silent` get no reply at all.
    """

    def __init__(
        self,
        values: dict[str, object] | None = None,
        *,
        silent: Iterable[str] = (),
        transmit_status: int = TransmitStatus.SUCCESS,
    ) -> None:
        self.values = dict(values or {})
        self.silent = set(silent)
        self.transmit_status = transmit_status
        self.commands: list[str] = []

    def __call__(self, frame: Frame) -> list[Frame]:
        if isinstance(frame, ATCommandFrame):
            self.commands.append(frame.command)
            if frame.command in self.silent:
                return []
            entry = self.values.get(frame.command)
            if callable(entry):
                return list(entry(frame))
            if entry is None:
                return [ATCommandResponseFrame(frame.frame_id, frame.command, ATCommandStatus.INVALID_COMMAND)]
            if isinstance(entry, ATCommandStatus):
                return [ATCommandResponseFrame(frame.frame_id, frame.command, entry)]
            return [ATCommandResponseFrame(frame.frame_id, frame.command, ATCommandStatus.OK, entry)]
        if isinstance(frame, (TransmitRequestFrame, ExplicitAddressingFrame)) and frame.frame_id:
            return [
                TransmitStatusFrame(
                    frame.frame_id,
                    XBee16BitAddress.from_hex("1234"),
                    0,
                    self.transmit_status,
                    0,
                )
            ]
        return []


def wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.005)
    return condition()


@pytest.fixture
def make_device():
    """Build API-mode devices on fake transports and close them after the test."""
    opened: list[XBeeDevice] = []

    def _make(
        responder: Responder | None = None,
        *,
        open_device: bool = True,
        **settings: object,
    ) -> tuple[XBeeDevice, FakeTransport]:
        transport = FakeTransport(responder=responder)
        options: dict[str, object] = {
            "operating_mode": OperatingMode.API_MODE,
            "sync_ops_timeout": 1.0,
            "read_timeout": 0.01,
        }
        options.update(settings)
        device = XBeeDevice(transport, settings=DeviceSettings(**options))
        opened.append(device)
        if open_device:
            device.open()
        return device, transport

    yield _make
    for device in opened:
        device.close()
