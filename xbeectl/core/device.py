"""Local XBee device handle: owns the listener, correlator, registry and discovery."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from xbeectl.core.constants import (
    BROADCAST_RADIUS_MAX,
    DEFAULT_QUEUE_CAPACITY,
    ATCommandStatus,
    ModemStatus,
    OperatingMode,
    RemoteATCmdOptions,
    TransmitOptions,
    TransmitStatus,
    XBeeProtocol,
)
from xbeectl.core.correlator import Correlator, FrameIdCounter
from xbeectl.core.discovery import DiscoveryEngine
from xbeectl.core.errors import (
    ATCommandError,
    ResponseTimeoutError,
    TransmitError,
    TransportClosedError,
    UnsupportedModeError,
    XBeeError,
)
from xbeectl.core.events import EventHook, Handler
from xbeectl.core.frames import (
    ATCommandFrame,
    ATCommandQueueFrame,
    ExplicitAddressingFrame,
    ExplicitRXIndicatorFrame,
    Frame,
    ReceiveFrame,
    RemoteATCommandFrame,
    TransmitRequestFrame,
    TransmitStatusFrame,
    encode,
    hex_string,
)
from xbeectl.core.listener import PacketListener
from xbeectl.core.model import (
    ExplicitXBeeMessage,
    RemoteNode,
    XBee16BitAddress,
    XBee64BitAddress,
    XBeeMessage,
)
from xbeectl.core.network import NodeRegistry
from xbeectl.transports.base import Transport

LOGGER = logging.getLogger(__name__)

RESET_TIMEOUT = 5.0
_RESET_STATUSES = (ModemStatus.HARDWARE_RESET, ModemStatus.WATCHDOG_TIMER_RESET)


@dataclass(frozen=True)
class DeviceSettings:
    operating_mode: OperatingMode | None = None
    protocol: XBeeProtocol = XBeeProtocol.UNKNOWN
    sync_ops_timeout: float = 4.0
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    read_timeout: float = 0.1
    apply_changes: bool = True
    read_info_on_open: bool = False


def _status_text(status: int) -> str:
    return getattr(status, "name", f"0x{status:02X}")


class XBeeDevice:
    """The radio attached to this host.

    Every piece of runtime state (frame ids, queues, known nodes, discovery)
    hangs off the instance, so several devices can run side by side.
    """

    def __init__(self, transport: Transport, *, settings: DeviceSettings | None = None) -> None:
        self.transport = transport
        self.settings = settings or DeviceSettings()
        self.protocol = self.settings.protocol
        configured = self.settings.operating_mode
        self.operating_mode = OperatingMode.UNKNOWN if configured is None else configured
        self.sync_ops_timeout = self.settings.sync_ops_timeout
        self.apply_changes_flag = self.settings.apply_changes

        self.x64bit_addr = XBee64BitAddress.UNKNOWN
        self.x16bit_addr = XBee16BitAddress.UNKNOWN
        self.node_id: str | None = None
        self.hardware_version: bytes | None = None
        self.firmware_version: bytes | None = None

        self.network = NodeRegistry()
        self._frame_ids = FrameIdCounter()
        self.listener = PacketListener(
            transport,
            self.network,
            escaped=self.operating_mode is OperatingMode.ESCAPED_API_MODE,
            queue_capacity=self.settings.queue_capacity,
            read_timeout=self.settings.read_timeout,
        )
        self.correlator = Correlator(self._write, self.listener.packet_queue)
        self.discovery = DiscoveryEngine(self, self.network)

        self.listener.packet_received.subscribe(self.discovery.handle_frame)
        self.listener.stopped.subscribe(self._on_listener_stopped)
        self._open = False
        self._lifecycle_lock = threading.Lock()

    def __enter__(self) -> XBeeDevice:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __str__(self) -> str:
        return f"{self.x64bit_addr} - {self.node_id}" if self.node_id else str(self.x64bit_addr)

    @property
    def is_open(self) -> bool:
        return self._open and self.transport.is_open()

    def open(self) -> None:
        with self._lifecycle_lock:
            if self._open:
                return
            self.transport.open()
            self.listener.escaped = self.settings.operating_mode is OperatingMode.ESCAPED_API_MODE
            self.listener.start()
            self._open = True
        LOGGER.debug("Opened %s", self.transport.name)

        try:
            self.operating_mode = self._determine_operating_mode()
            if not self.operating_mode.is_api:
                raise UnsupportedModeError(
                    f"{self.transport.name} is in {self.operating_mode.name} mode; API mode is required"
                )
            self.listener.escaped = self.operating_mode is OperatingMode.ESCAPED_API_MODE
            if self.settings.read_info_on_open:
                self.read_device_info()
        except XBeeError:
            self.close()
            raise

    def close(self) -> None:
        with self._lifecycle_lock:
            if not self._open:
                return
            self._open = False
        self.discovery.stop_discovery_process()
        self.correlator.cancel_all()
        self.listener.stop()
        self.listener.join()
        self.transport.close()
        LOGGER.debug("Closed %s", self.transport.name)

    def _on_listener_stopped(self) -> None:
        self.correlator.cancel_all()

    def _determine_operating_mode(self) -> OperatingMode:
        if self.settings.operating_mode is not None:
            return self.settings.operating_mode
        self.operating_mode = OperatingMode.API_MODE
        try:
            value = self.get_parameter("AP")
        except (ResponseTimeoutError, ATCommandError) as exc:
            LOGGER.warning("Could not read AP from %s: %s", self.transport.name, exc)
            return OperatingMode.UNKNOWN
        if not value:
            return OperatingMode.UNKNOWN
        try:
            return OperatingMode(value[-1])
        except ValueError:
            return OperatingMode.UNKNOWN

    def _check_ready(self) -> None:
        if not self.is_open:
            raise TransportClosedError(f"Device on {self.transport.name} is not open")
        if not self.operating_mode.is_api:
            raise UnsupportedModeError(f"Operation not supported in {self.operating_mode.name} mode")

    def next_frame_id(self) -> int:
        return self._frame_ids.next()

    def _write(self, frame: Frame) -> None:
        data = encode(frame, escaped=self.operating_mode is OperatingMode.ESCAPED_API_MODE)
        LOGGER.debug("%s - SENT - %s", self.transport.name, hex_string(data))
        self.transport.write(data)

    def send_frame(
        self,
        frame: Frame,
        sync: bool = False,
        cancel: threading.Event | None = None,
    ) -> Frame | None:
        """Send frame; with sync=True, wait for and return the frame answering it.

        A sync wait given cancel ends early once abort_requests(cancel) runs.
        """
        self._check_ready()
        if sync:
            return self.correlator.send_and_await(frame, self.sync_ops_timeout, cancel)
        self.correlator.send_fire_and_forget(frame)
        return None

    def abort_requests(self, cancel: threading.Event) -> None:
        self.correlator.release(cancel)

    # AT parameters

    def _send_at(self, frame: ATCommandFrame, cancel: threading.Event | None = None) -> bytes:
        response = self.send_frame(frame, sync=True, cancel=cancel)
        if response.status != ATCommandStatus.OK:
            raise ATCommandError(
                f"AT command {frame.command} failed: {_status_text(response.status)}",
                status=response.status,
            )
        return response.value

    def get_parameter(self, command: str, *, cancel: threading.Event | None = None) -> bytes:
        self._check_ready()
        return self._send_at(ATCommandFrame(self.next_frame_id(), command), cancel)

    def set_parameter(self, command: str, value: bytes) -> None:
        self._check_ready()
        frame_cls = ATCommandFrame if self.apply_changes_flag else ATCommandQueueFrame
        self._send_at(frame_cls(self.next_frame_id(), command, value))

    def execute_command(self, command: str) -> None:
        self._check_ready()
        self._send_at(ATCommandFrame(self.next_frame_id(), command))

    def apply_changes(self) -> None:
        self.execute_command("AC")

    def write_changes(self) -> None:
        self.execute_command("WR")

    def read_device_info(self) -> None:
        high = self.get_parameter("SH")
        low = self.get_parameter("SL")
        self.x64bit_addr = XBee64BitAddress(high.rjust(4, b"\x00") + low.rjust(4, b"\x00"))
        self.node_id = self.get_parameter("NI").decode("ascii", errors="replace")
        try:
            self.x16bit_addr = XBee16BitAddress(self.get_parameter("MY"))
        except ATCommandError as exc:
            LOGGER.debug("MY not supported on %s: %s", self.transport.name, exc)
        self.hardware_version = self.get_parameter("HV")
        self.firmware_version = self.get_parameter("VR")

    def reset(self) -> None:
        """Software-reset the radio and wait for it to report back."""
        self._check_ready()
        done = threading.Event()

        def on_status(status: int) -> None:
            if status in _RESET_STATUSES:
                done.set()

        self.listener.modem_status_received.subscribe(on_status)
        try:
            self.execute_command("FR")
            if not done.wait(RESET_TIMEOUT):
                raise ResponseTimeoutError(f"{self.transport.name} did not report a reset within {RESET_TIMEOUT}s")
        finally:
            self.listener.modem_status_received.unsubscribe(on_status)

    # Remote AT parameters

    def _send_remote_at(self, remote: RemoteNode, command: str, parameter: bytes = b"") -> bytes:
        self._check_ready()
        if not remote.has_address:
            raise ValueError("Remote node has no known address")
        options = RemoteATCmdOptions.APPLY_CHANGES if self.apply_changes_flag else RemoteATCmdOptions.NONE
        frame = RemoteATCommandFrame(
            self.next_frame_id(),
            remote.x64bit_addr or XBee64BitAddress.UNKNOWN,
            remote.x16bit_addr or XBee16BitAddress.UNKNOWN,
            options,
            command,
            parameter,
        )
        response = self.send_frame(frame, sync=True)
        if response.status != ATCommandStatus.OK:
            raise ATCommandError(
                f"Remote AT command {command} on {remote} failed: {_status_text(response.status)}",
                status=response.status,
            )
        return response.value

    def get_remote_parameter(self, remote: RemoteNode, command: str) -> bytes:
        return self._send_remote_at(remote, command)

    def set_remote_parameter(self, remote: RemoteNode, command: str, value: bytes) -> None:
        self._send_remote_at(remote, command, value)

    # Data

    def _check_transmit(self, response: TransmitStatusFrame) -> TransmitStatusFrame:
        if response.transmit_status != TransmitStatus.SUCCESS:
            raise TransmitError(
                f"Transmission failed: {_status_text(response.transmit_status)}",
                status=response.transmit_status,
            )
        return response

    @staticmethod
    def _addresses(remote: RemoteNode) -> tuple[XBee64BitAddress, XBee16BitAddress]:
        if not remote.has_address:
            raise ValueError("Remote node has no known address")
        return (
            remote.x64bit_addr or XBee64BitAddress.UNKNOWN,
            remote.x16bit_addr or XBee16BitAddress.UNKNOWN,
        )

    def send_data_64_16(
        self,
        x64bit_addr: XBee64BitAddress,
        x16bit_addr: XBee16BitAddress,
        data: bytes,
        transmit_options: int = TransmitOptions.NONE,
    ) -> TransmitStatusFrame:
        self._check_ready()
        frame = TransmitRequestFrame(
            self.next_frame_id(), x64bit_addr, x16bit_addr, BROADCAST_RADIUS_MAX, transmit_options, data
        )
        return self._check_transmit(self.send_frame(frame, sync=True))

    def send_data(
        self,
        remote: RemoteNode,
        data: bytes,
        transmit_options: int = TransmitOptions.NONE,
    ) -> TransmitStatusFrame:
        x64, x16 = self._addresses(remote)
        return self.send_data_64_16(x64, x16, data, transmit_options)

    def send_data_broadcast(self, data: bytes, transmit_options: int = TransmitOptions.NONE) -> TransmitStatusFrame:
        return self.send_data_64_16(XBee64BitAddress.BROADCAST, XBee16BitAddress.UNKNOWN, data, transmit_options)

    def send_data_async(
        self,
        remote: RemoteNode,
        data: bytes,
        transmit_options: int = TransmitOptions.NONE,
    ) -> None:
        x64, x16 = self._addresses(remote)
        self.send_frame(TransmitRequestFrame(0, x64, x16, BROADCAST_RADIUS_MAX, transmit_options, data))

    def _explicit_frame(
        self,
        frame_id: int,
        remote: RemoteNode,
        data: bytes,
        source_endpoint: int,
        dest_endpoint: int,
        cluster_id: int,
        profile_id: int,
        transmit_options: int,
    ) -> ExplicitAddressingFrame:
        x64, x16 = self._addresses(remote)
        return ExplicitAddressingFrame(
            frame_id,
            x64,
            x16,
            source_endpoint,
            dest_endpoint,
            cluster_id,
            profile_id,
            BROADCAST_RADIUS_MAX,
            transmit_options,
            data,
        )

    def send_explicit_data(
        self,
        remote: RemoteNode,
        data: bytes,
        source_endpoint: int,
        dest_endpoint: int,
        cluster_id: int,
        profile_id: int,
        transmit_options: int = TransmitOptions.NONE,
    ) -> TransmitStatusFrame:
        self._check_ready()
        frame = self._explicit_frame(
            self.next_frame_id(),
            remote,
            data,
            source_endpoint,
            dest_endpoint,
            cluster_id,
            profile_id,
            transmit_options,
        )
        return self._check_transmit(self.send_frame(frame, sync=True))

    def send_explicit_data_async(
        self,
        remote: RemoteNode,
        data: bytes,
        source_endpoint: int,
        dest_endpoint: int,
        cluster_id: int,
        profile_id: int,
        transmit_options: int = TransmitOptions.NONE,
    ) -> None:
        frame = self._explicit_frame(
            0, remote, data, source_endpoint, dest_endpoint, cluster_id, profile_id, transmit_options
        )
        self.send_frame(frame)

    # Reading

    def _remote_for(self, frame: ReceiveFrame | ExplicitRXIndicatorFrame) -> RemoteNode:
        found = self.network.find_by_long(frame.x64bit_addr) or self.network.find_by_short(frame.x16bit_addr)
        return found or RemoteNode(x64bit_addr=frame.x64bit_addr, x16bit_addr=frame.x16bit_addr)

    def _to_message(self, frame: ReceiveFrame) -> XBeeMessage:
        return XBeeMessage(frame.rf_data, self._remote_for(frame), broadcast=frame.is_broadcast)

    def _to_explicit_message(self, frame: ExplicitRXIndicatorFrame) -> ExplicitXBeeMessage:
        return ExplicitXBeeMessage(
            frame.rf_data,
            self._remote_for(frame),
            broadcast=frame.is_broadcast,
            source_endpoint=frame.source_endpoint,
            dest_endpoint=frame.dest_endpoint,
            cluster_id=frame.cluster_id,
            profile_id=frame.profile_id,
        )

    def read_data(self, timeout: float | None = 0.0) -> XBeeMessage | None:
        self._check_ready()
        frame = self.listener.data_queue.pop(lambda f: isinstance(f, ReceiveFrame), timeout)
        return None if frame is None else self._to_message(frame)

    def read_data_from(self, remote: RemoteNode, timeout: float | None = 0.0) -> XBeeMessage | None:
        self._check_ready()
        frame = self.listener.data_queue.pop_by_remote(remote, timeout)
        return None if frame is None else self._to_message(frame)

    def read_explicit_data(self, timeout: float | None = 0.0) -> ExplicitXBeeMessage | None:
        self._check_ready()
        frame = self.listener.explicit_queue.pop(None, timeout)
        return None if frame is None else self._to_explicit_message(frame)

    def read_explicit_data_from(
        self,
        remote: RemoteNode,
        timeout: float | None = 0.0,
    ) -> ExplicitXBeeMessage | None:
        self._check_ready()
        frame = self.listener.explicit_queue.pop_by_remote(remote, timeout)
        return None if frame is None else self._to_explicit_message(frame)

    @property
    def has_packets(self) -> bool:
        return len(self.listener.data_queue) > 0

    @property
    def has_explicit_packets(self) -> bool:
        return len(self.listener.explicit_queue) > 0

    def flush_queues(self) -> None:
        self.listener.flush()

    # Observers

    def _hook(self, event: str) -> EventHook:
        hooks = {
            "packet_received": self.listener.packet_received,
            "data_received": self.listener.data_received,
            "explicit_data_received": self.listener.explicit_data_received,
            "modem_status_received": self.listener.modem_status_received,
            "device_discovered": self.discovery.device_discovered,
            "discovery_finished": self.discovery.discovery_finished,
        }
        try:
            return hooks[event]
        except KeyError as exc:
            raise ValueError(f"Unknown event '{event}'. Known: {', '.join(sorted(hooks))}") from exc

    def subscribe(self, event: str, handler: Handler) -> None:
        self._hook(event).subscribe(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        self._hook(event).unsubscribe(handler)
