"""Serial transport implementation using pyserial."""

from __future__ import annotations

import threading

import serial

from xbeectl.core.errors import (
    TransportClosedError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)


class SerialTransport:
    def __init__(
        self,
        port: str,
        *,
        baudrate: int = 9600,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: float = 1,
        rtscts: bool = False,
        xonxoff: bool = False,
        write_timeout: float | None = None,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.rtscts = rtscts
        self.xonxoff = xonxoff
        self.write_timeout = write_timeout
        self._serial: serial.Serial | None = None
        self._read_timeout: float | None = None
        self._write_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.port

    def open(self) -> None:
        if self.is_open():
            return
        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                rtscts=self.rtscts,
                xonxoff=self.xonxoff,
                timeout=None,
                write_timeout=self.write_timeout,
            )
        except (serial.SerialException, ValueError) as exc:
            raise TransportConnectError(f"Could not open serial port {self.port}: {exc}") from exc
        self._read_timeout = None

    def close(self) -> None:
        port, self._serial = self._serial, None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as exc:
            raise TransportClosedError(f"Error while closing {self.port}: {exc}") from exc

    def is_open(self) -> bool:
        port = self._serial
        return port is not None and port.is_open

    def _port(self) -> serial.Serial:
        port = self._serial
        if port is None or not port.is_open:
            raise TransportClosedError(f"Serial port {self.port} is not open")
        return port

    def read_byte(self, timeout: float) -> int:
        port = self._port()
        try:
            if timeout != self._read_timeout:
                port.timeout = timeout
                self._read_timeout = timeout
            data = port.read(1)
        except (serial.SerialException, OSError) as exc:
            raise TransportClosedError(f"Serial read failed on {self.port}: {exc}") from exc
        if not data:
            raise TransportTimeoutError(f"No data on {self.port} within {timeout}s")
        return data[0]

    def write(self, data: bytes) -> None:
        with self._write_lock:
            port = self._port()
            try:
                port.write(data)
                port.flush()
            except serial.SerialTimeoutException as exc:
                raise TransportTimeoutError(f"Serial write timed out on {self.port}") from exc
            except (serial.SerialException, OSError) as exc:
                raise TransportSendError(f"Serial write failed on {self.port}: {exc}") from exc

    def reset_input(self) -> None:
        port = self._port()
        try:
            port.reset_input_buffer()
        except (serial.SerialException, OSError) as exc:
            raise TransportClosedError(f"Could not flush {self.port}: {exc}") from exc
