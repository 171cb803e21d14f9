"""Node discovery (ND) rounds run in the background for one local device."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from xbeectl.core.constants import (
    NODE_DISCOVERY_COMMAND,
    ATCommandStatus,
    DiscoveryOptions,
    NetworkDiscoveryStatus,
    XBeeProtocol,
)
from xbeectl.core.errors import (
    DiscoveryInProgressError,
    MalformedFieldError,
    TransportClosedError,
    XBeeError,
)
from xbeectl.core.events import EventHook
from xbeectl.core.frames import ATCommandFrame, ATCommandResponseFrame, Frame
from xbeectl.core.model import RemoteNode, XBee16BitAddress, XBee64BitAddress
from xbeectl.core.network import NodeRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT = 20.0
DIGI_MESH_TIMEOUT_CORRECTION = 3.0
DIGI_POINT_TIMEOUT_CORRECTION = 8.0
SLEEP_TIMEOUT_CORRECTION = 0.1
SLEEP_SUPPORT_MODE = 7

_TIMEOUT_CORRECTIONS = {
    XBeeProtocol.DIGI_MESH: DIGI_MESH_TIMEOUT_CORRECTION,
    XBeeProtocol.DIGI_POINT: DIGI_POINT_TIMEOUT_CORRECTION,
}


class DiscoveryHost(Protocol):
    """What the engine needs from the local device."""

    protocol: XBeeProtocol

    def get_parameter(self, command: str, *, cancel: threading.Event | None = None) -> bytes: ...

    def set_parameter(self, command: str, value: bytes) -> None: ...

    def send_frame(self, frame: Frame, sync: bool = False) -> Frame | None: ...

    def next_frame_id(self) -> int: ...

    def abort_requests(self, cancel: threading.Event) -> None: ...


@dataclass(eq=False)
class DiscoveryState:
    awaited: tuple[str, ...] = ()
    frame_id: int | None = None
    deadline: float | None = None
    seen: list[RemoteNode] = field(default_factory=list)
    result_for_awaited: RemoteNode | None = None
    end_reason: NetworkDiscoveryStatus | None = None
    stop_requested: bool = False
    cancel: threading.Event = field(default_factory=threading.Event)

    @property
    def awaited_identifier(self) -> str | None:
        return self.awaited[0] if len(self.awaited) == 1 else None

    def all_awaited_found(self) -> bool:
        if not self.awaited:
            return False
        found = {node.node_id for node in self.seen}
        return all(name in found for name in self.awaited)


def check_node_identifier(node_id: str) -> bytes:
    """Return node_id as the ND parameter, or raise ValueError."""
    if not isinstance(node_id, str) or not node_id:
        raise ValueError(f"Node identifier must be a non-empty string: {node_id!r}")
    try:
        return node_id.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError(f"Node identifier must be ASCII: {node_id!r}") from exc


def calculate_discovery_value(protocol: XBeeProtocol, options: DiscoveryOptions) -> int:
    """Translate discovery options into the NO value the protocol accepts."""
    if protocol in (XBeeProtocol.ZIGBEE, XBeeProtocol.ZNET):
        return int(options & ~DiscoveryOptions.APPEND_RSSI)
    if protocol in (
        XBeeProtocol.DIGI_MESH,
        XBeeProtocol.DIGI_POINT,
        XBeeProtocol.XLR,
        XBeeProtocol.XLR_DM,
    ):
        return int(options)
    return 1 if options & DiscoveryOptions.DISCOVER_MYSELF else 0


def parse_discovered_node(value: bytes, protocol: XBeeProtocol) -> RemoteNode:
    """Build a node from the value of an ND response.

    The value starts with the 16-bit and 64-bit addresses; the NUL-terminated
    node identifier follows, one byte later on 802.15.4 where the signal
    strength sits in between.
    """
    start = 11 if protocol == XBeeProtocol.RAW_802_15_4 else 10
    if len(value) < start:
        raise MalformedFieldError(f"ND response too short: {len(value)} bytes")
    end = value.find(b"\x00", start)
    raw_id = value[start:] if end < 0 else value[start:end]
    return RemoteNode(
        x64bit_addr=XBee64BitAddress(value[2:10]),
        x16bit_addr=XBee16BitAddress(value[0:2]),
        node_id=raw_id.decode("ascii", errors="replace"),
        protocol=protocol,
    )


class DiscoveryEngine:
    def __init__(self, host: DiscoveryHost, registry: NodeRegistry) -> None:
        self.host = host
        self.registry = registry
        self.device_discovered = EventHook("device_discovered")
        self.discovery_finished = EventHook("discovery_finished")
        self._cond = threading.Condition()
        self._state: DiscoveryState | None = None
        self._thread: threading.Thread | None = None
        self._last_discovered: list[RemoteNode] = []

    @property
    def is_running(self) -> bool:
        with self._cond:
            return self._state is not None

    @property
    def last_discovered(self) -> list[RemoteNode]:
        with self._cond:
            return list(self._last_discovered)

    def start_discovery_process(self, node_id: str | None = None) -> None:
        """Start a discovery round in the background; no-op while one runs."""
        self._start(() if node_id is None else (node_id,))

    def stop_discovery_process(self) -> None:
        with self._cond:
            state, thread = self._state, self._thread
            if state is None:
                return
            state.stop_requested = True
            self._cond.notify_all()
        self.host.abort_requests(state.cancel)
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def discover_device(self, node_id: str) -> RemoteNode | None:
        """Run a round scoped to node_id and return the node if it answered."""
        started = self._start((node_id,), exclusive=True)
        if started is None:
            return None
        state, thread = started
        thread.join()
        return state.result_for_awaited

    def discover_devices(self, node_ids: Iterable[str]) -> list[RemoteNode]:
        """Run one full round and return the nodes whose identifier is listed."""
        wanted = tuple(dict.fromkeys(node_ids))
        if not wanted:
            return []
        started = self._start(wanted, exclusive=True)
        if started is None:
            return []
        state, thread = started
        thread.join()
        return [node for node in state.seen if node.node_id in wanted]

    def _start(
        self,
        awaited: tuple[str, ...],
        exclusive: bool = False,
    ) -> tuple[DiscoveryState, threading.Thread] | None:
        for node_id in awaited:
            check_node_identifier(node_id)
        with self._cond:
            if self._state is not None:
                if exclusive:
                    raise DiscoveryInProgressError("A discovery process is already running")
                return None
            state = DiscoveryState(awaited=awaited)
            thread = threading.Thread(target=self._run, args=(state,), name="xbee-discovery", daemon=True)
            self._state = state
            self._thread = thread
        thread.start()
        return state, thread

    def _run(self, state: DiscoveryState) -> None:
        LOGGER.info("Discovery started%s", f" for {', '.join(state.awaited)}" if state.awaited else "")
        reason = NetworkDiscoveryStatus.ERROR_GENERAL
        try:
            reason = self._discover(state)
        except XBeeError as exc:
            with self._cond:
                stopped = state.stop_requested
            if stopped:
                reason = NetworkDiscoveryStatus.CANCEL
            else:
                LOGGER.error("Discovery failed: %s", exc)
        finally:
            with self._cond:
                self._last_discovered = list(state.seen)
                if self._state is state:
                    self._state = None
                self._cond.notify_all()
            LOGGER.info("Discovery finished: %s (%d nodes)", reason.name, len(state.seen))
            self.discovery_finished.notify(reason)

    def _discover(self, state: DiscoveryState) -> NetworkDiscoveryStatus:
        if self._is_legacy_802_15_4(state.cancel):
            timeout, read_ok = None, True
        else:
            timeout, read_ok = self.calculate_timeout(state.cancel)

        frame_id = self.host.next_frame_id()
        parameter = check_node_identifier(state.awaited_identifier) if state.awaited_identifier else b""
        with self._cond:
            if state.stop_requested:
                return NetworkDiscoveryStatus.CANCEL
            state.frame_id = frame_id
            state.deadline = None if timeout is None else time.monotonic() + timeout
        self.host.send_frame(ATCommandFrame(frame_id, NODE_DISCOVERY_COMMAND, parameter))

        with self._cond:
            while True:
                if state.stop_requested:
                    return NetworkDiscoveryStatus.CANCEL
                if state.end_reason is not None:
                    reason = state.end_reason
                    break
                if state.all_awaited_found():
                    reason = NetworkDiscoveryStatus.SUCCESS
                    break
                if state.deadline is None:
                    self._cond.wait()
                    continue
                remaining = state.deadline - time.monotonic()
                if remaining <= 0:
                    reason = NetworkDiscoveryStatus.SUCCESS
                    break
                self._cond.wait(remaining)

        if reason is NetworkDiscoveryStatus.SUCCESS and not read_ok:
            return NetworkDiscoveryStatus.ERROR_READ_TIMEOUT
        return reason

    def handle_frame(self, frame: Frame) -> None:
        """Feed an incoming frame to the running round, if it belongs to it."""
        if not isinstance(frame, ATCommandResponseFrame):
            return
        if frame.command.upper() != NODE_DISCOVERY_COMMAND:
            return

        with self._cond:
            state = self._state
            if state is None or state.frame_id != frame.frame_id or state.end_reason is not None:
                return
            if not frame.value or frame.status != ATCommandStatus.OK:
                if frame.status == ATCommandStatus.OK:
                    state.end_reason = NetworkDiscoveryStatus.SUCCESS
                else:
                    state.end_reason = NetworkDiscoveryStatus.ERROR_NET_DISCOVER
                self._cond.notify_all()
                return

            try:
                node = parse_discovered_node(frame.value, self.host.protocol)
            except (MalformedFieldError, ValueError) as exc:
                LOGGER.warning("Ignoring malformed ND response: %s", exc)
                return
            stored = self.registry.upsert(node)
            first = not any(seen == stored for seen in state.seen)
            if first:
                state.seen.append(stored)
            if state.awaited_identifier is not None and stored.node_id == state.awaited_identifier:
                state.result_for_awaited = stored
            self._cond.notify_all()

        if first:
            LOGGER.debug("Discovered %s", stored)
            self.device_discovered.notify(stored)

    def calculate_timeout(self, cancel: threading.Event | None = None) -> tuple[float, bool]:
        """Return the round timeout in seconds and whether it was read from the device.

        A closed or aborted link propagates TransportClosedError instead of
        falling back to defaults.
        """
        protocol = self.host.protocol
        try:
            value = self.host.get_parameter("N?", cancel=cancel)
        except TransportClosedError:
            raise
        except XBeeError as exc:
            LOGGER.debug("N? not available: %s", exc)
            value = b""

        if value:
            base = int.from_bytes(value, "big") / 1000.0
            timeout, read_ok = base, True
        else:
            try:
                base = int.from_bytes(self.host.get_parameter("NT", cancel=cancel), "big") / 10.0
                read_ok = True
            except TransportClosedError:
                raise
            except XBeeError as exc:
                LOGGER.warning("Could not read NT, using %.0fs: %s", DEFAULT_DISCOVERY_TIMEOUT, exc)
                base = DEFAULT_DISCOVERY_TIMEOUT
                read_ok = False
            timeout = base + _TIMEOUT_CORRECTIONS.get(protocol, 0.0)

        if protocol == XBeeProtocol.DIGI_MESH and self._has_sleep_support(cancel):
            timeout += base * SLEEP_TIMEOUT_CORRECTION
        return timeout, read_ok

    def _has_sleep_support(self, cancel: threading.Event | None = None) -> bool:
        try:
            value = self.host.get_parameter("SM", cancel=cancel)
        except TransportClosedError:
            raise
        except XBeeError:
            return False
        return bool(value) and value[-1] == SLEEP_SUPPORT_MODE

    def _is_legacy_802_15_4(self, cancel: threading.Event | None = None) -> bool:
        if self.host.protocol != XBeeProtocol.RAW_802_15_4:
            return False
        try:
            value = self.host.get_parameter("C8", cancel=cancel)
        except TransportClosedError:
            raise
        except XBeeError:
            return True
        return not value or bool(value[0] & 0x02)

    def get_discovery_options(self) -> DiscoveryOptions:
        return DiscoveryOptions(int.from_bytes(self.host.get_parameter("NO"), "big"))

    def set_discovery_options(self, options: DiscoveryOptions) -> None:
        value = calculate_discovery_value(self.host.protocol, options)
        self.host.set_parameter("NO", bytes((value,)))

    def get_discovery_timeout(self) -> float:
        return int.from_bytes(self.host.get_parameter("NT"), "big") / 10.0

    def set_discovery_timeout(self, seconds: float) -> None:
        value = round(seconds * 10)
        if not 0 < value <= 0xFFFF:
            raise ValueError(f"Discovery timeout out of range: {seconds}s")
        self.host.set_parameter("NT", value.to_bytes(2, "big"))
