"""Background reader that routes incoming frames to queues and observers."""

from __future__ import annotations

import logging
import threading

from xbeectl.core.constants import (
    DATA_FRAME_TYPES,
    DEFAULT_QUEUE_CAPACITY,
    PASSTHROUGH_CLUSTER,
    PASSTHROUGH_ENDPOINT,
    PASSTHROUGH_PROFILE,
    ApiFrameType,
)
from xbeectl.core.dispatch_queue import DispatchQueue, Overflow
from xbeectl.core.errors import DecodeError, TransportError
from xbeectl.core.events import EventHook
from xbeectl.core.framer import StreamFramer
from xbeectl.core.frames import (
    ExplicitRXIndicatorFrame,
    Frame,
    ModemStatusFrame,
    ReceiveFrame,
    RemoteATCommandResponseFrame,
    encode,
    frame_type_of,
    hex_string,
)
from xbeectl.core.model import ExplicitXBeeMessage, RemoteNode, XBeeMessage
from xbeectl.core.network import NodeRegistry
from xbeectl.transports.base import Transport

LOGGER = logging.getLogger(__name__)

_SOURCE_FRAMES = (ReceiveFrame, ExplicitRXIndicatorFrame, RemoteATCommandResponseFrame)


def is_passthrough(frame: ExplicitRXIndicatorFrame) -> bool:
    return (
        frame.source_endpoint == PASSTHROUGH_ENDPOINT
        and frame.dest_endpoint == PASSTHROUGH_ENDPOINT
        and frame.cluster_id == PASSTHROUGH_CLUSTER
        and frame.profile_id == PASSTHROUGH_PROFILE
    )


def to_receive_frame(frame: ExplicitRXIndicatorFrame) -> ReceiveFrame:
    return ReceiveFrame(frame.x64bit_addr, frame.x16bit_addr, frame.receive_options, frame.rf_data)


class PacketListener:
    """Owns read access to the transport for as long as the device is open.

    Explicit frames on the pass-through endpoints are also delivered as plain
    data: a ReceiveFrame is queued on the data queue and data_received fires
    before explicit_data_received.
    """

    def __init__(
        self,
        transport: Transport,
        registry: NodeRegistry,
        *,
        escaped: bool = False,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        read_timeout: float = 0.1,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.framer = StreamFramer(transport, escaped=escaped, read_timeout=read_timeout)

        self.packet_queue = DispatchQueue(queue_capacity)
        self.data_queue = DispatchQueue(queue_capacity)
        self.explicit_queue = DispatchQueue(queue_capacity)
        self.ip_queue = DispatchQueue(queue_capacity)

        self.packet_received = EventHook("packet_received")
        self.data_received = EventHook("data_received")
        self.explicit_data_received = EventHook("explicit_data_received")
        self.modem_status_received = EventHook("modem_status_received")
        self.stopped = EventHook("stopped")

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def escaped(self) -> bool:
        return self.framer.escaped

    @escaped.setter
    def escaped(self, value: bool) -> None:
        self.framer.escaped = value

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"xbee-listener-{self.transport.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        LOGGER.debug("Listener started on %s", self.transport.name)
        try:
            while not self._stop.is_set():
                try:
                    frame = self.framer.read_frame()
                except DecodeError as exc:
                    LOGGER.warning("Dropping corrupt frame on %s: %s", self.transport.name, exc)
                    continue
                except TransportError as exc:
                    if not self._stop.is_set():
                        LOGGER.error("Listener on %s stopped by transport error: %s", self.transport.name, exc)
                    break
                if frame is not None:
                    self.process(frame)
        finally:
            self._stop.set()
            try:
                self.transport.close()
            except TransportError as exc:
                LOGGER.warning("Failed to close %s: %s", self.transport.name, exc)
            LOGGER.debug("Listener stopped on %s", self.transport.name)
            self.stopped.notify()

    def process(self, frame: Frame) -> None:
        """Route one decoded frame, update the registry and notify observers."""
        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug("%s - RECEIVED - %s", self.transport.name, hex_string(encode(frame)))

        self._route(frame)
        remote = self._update_registry(frame)

        self.packet_received.notify(frame)
        if isinstance(frame, ReceiveFrame):
            self.data_received.notify(XBeeMessage(frame.rf_data, remote, broadcast=frame.is_broadcast))
        elif isinstance(frame, ExplicitRXIndicatorFrame):
            if is_passthrough(frame):
                self.data_received.notify(XBeeMessage(frame.rf_data, remote, broadcast=frame.is_broadcast))
            self.explicit_data_received.notify(
                ExplicitXBeeMessage(
                    frame.rf_data,
                    remote,
                    broadcast=frame.is_broadcast,
                    source_endpoint=frame.source_endpoint,
                    dest_endpoint=frame.dest_endpoint,
                    cluster_id=frame.cluster_id,
                    profile_id=frame.profile_id,
                )
            )
        elif isinstance(frame, ModemStatusFrame):
            self.modem_status_received.notify(frame.status)

    def _route(self, frame: Frame) -> None:
        frame_type = frame_type_of(frame)
        if frame_type in DATA_FRAME_TYPES:
            self.data_queue.push(frame, Overflow.EVICT_OLDEST)
        elif isinstance(frame, ExplicitRXIndicatorFrame):
            self.explicit_queue.push(frame, Overflow.EVICT_OLDEST)
            if is_passthrough(frame):
                self.data_queue.push(to_receive_frame(frame), Overflow.EVICT_OLDEST)
        elif frame_type == ApiFrameType.RX_IPV4:
            self.ip_queue.push(frame, Overflow.EVICT_OLDEST)
        else:
            self.packet_queue.push(frame, Overflow.EVICT_OLDEST)

    def _update_registry(self, frame: Frame) -> RemoteNode | None:
        if not isinstance(frame, _SOURCE_FRAMES):
            return None
        node = RemoteNode(x64bit_addr=frame.x64bit_addr, x16bit_addr=frame.x16bit_addr)
        if not node.has_address:
            return node
        return self.registry.upsert(node)

    def flush(self) -> None:
        for queue in (self.packet_queue, self.data_queue, self.explicit_queue, self.ip_queue):
            queue.clear()
