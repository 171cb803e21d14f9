"""API frame codec: variants, escaping, checksum and length handling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from xbeectl.core.constants import (
    ESCAPE_BYTE,
    ESCAPE_MASK,
    RESERVED_BYTES,
    START_DELIMITER,
    ApiFrameType,
    ATCommandStatus,
    DiscoveryStatus,
    ModemStatus,
    ReceiveOptions,
    TransmitStatus,
    enum_or_raw,
)
from xbeectl.core.errors import (
    ChecksumMismatchError,
    DecodeError,
    LengthMismatchError,
    MalformedFieldError,
)
from xbeectl.core.model import XBee16BitAddress, XBee64BitAddress

# Delimiter, two length bytes, frame type and checksum.
MIN_FRAME_SIZE = 5
MAX_PAYLOAD_SIZE = 0xFFFF


def _check_range(name: str, value: int, upper: int) -> None:
    if not isinstance(value, int) or not 0 <= value <= upper:
        raise ValueError(f"{name} must be an integer in 0..{upper}, got {value!r}")


def _check_command(command: str) -> None:
    if not isinstance(command, str) or len(command) != 2 or not command.isascii():
        raise ValueError(f"AT command must be exactly two ASCII characters, got {command!r}")


def _long(value: XBee64BitAddress | bytes) -> XBee64BitAddress:
    return value if isinstance(value, XBee64BitAddress) else XBee64BitAddress(value)


def _short(value: XBee16BitAddress | bytes) -> XBee16BitAddress:
    return value if isinstance(value, XBee16BitAddress) else XBee16BitAddress(value)


def _set(frame: object, name: str, value: object) -> None:
    object.__setattr__(frame, name, value)


def _u16(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], "big")


def _ascii(data: bytes) -> str:
    return data.decode("ascii")


@dataclass(frozen=True)
class ATCommandFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.AT_COMMAND
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 4

    frame_id: int
    command: str
    parameter: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _check_command(self.command)
        _set(self, "parameter", bytes(self.parameter))

    def body(self) -> bytes:
        return self.command.encode("ascii") + self.parameter

    @classmethod
    def parse(cls, payload: bytes) -> ATCommandFrame:
        return cls(payload[1], _ascii(payload[2:4]), payload[4:])


@dataclass(frozen=True)
class ATCommandQueueFrame(ATCommandFrame):
    """AT command whose value is queued until changes are applied."""

    FRAME_TYPE: ClassVar[int] = ApiFrameType.AT_COMMAND_QUEUE


@dataclass(frozen=True)
class ATCommandResponseFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.AT_COMMAND_RESPONSE
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 5

    frame_id: int
    command: str
    status: int
    value: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _check_command(self.command)
        _check_range("status", self.status, 0xFF)
        _set(self, "status", enum_or_raw(ATCommandStatus, self.status))
        _set(self, "value", bytes(self.value))

    def body(self) -> bytes:
        return self.command.encode("ascii") + bytes((self.status,)) + self.value

    @classmethod
    def parse(cls, payload: bytes) -> ATCommandResponseFrame:
        return cls(payload[1], _ascii(payload[2:4]), payload[4], payload[5:])


@dataclass(frozen=True)
class RemoteATCommandFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.REMOTE_AT_COMMAND_REQUEST
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 15

    frame_id: int
    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    transmit_options: int
    command: str
    parameter: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("transmit_options", self.transmit_options, 0xFF)
        _check_command(self.command)
        _set(self, "parameter", bytes(self.parameter))

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + bytes((self.transmit_options,))
            + self.command.encode("ascii")
            + self.parameter
        )

    @classmethod
    def parse(cls, payload: bytes) -> RemoteATCommandFrame:
        return cls(
            payload[1],
            XBee64BitAddress(payload[2:10]),
            XBee16BitAddress(payload[10:12]),
            payload[12],
            _ascii(payload[13:15]),
            payload[15:],
        )


@dataclass(frozen=True)
class RemoteATCommandResponseFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.REMOTE_AT_COMMAND_RESPONSE
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 15

    frame_id: int
    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    command: str
    status: int
    value: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_command(self.command)
        _check_range("status", self.status, 0xFF)
        _set(self, "status", enum_or_raw(ATCommandStatus, self.status))
        _set(self, "value", bytes(self.value))

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + self.command.encode("ascii")
            + bytes((self.status,))
            + self.value
        )

    @classmethod
    def parse(cls, payload: bytes) -> RemoteATCommandResponseFrame:
        return cls(
            payload[1],
            XBee64BitAddress(payload[2:10]),
            XBee16BitAddress(payload[10:12]),
            _ascii(payload[12:14]),
            payload[14],
            payload[15:],
        )


@dataclass(frozen=True)
class TransmitRequestFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.TRANSMIT_REQUEST
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 14

    frame_id: int
    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    broadcast_radius: int
    transmit_options: int
    rf_data: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("broadcast_radius", self.broadcast_radius, 0xFF)
        _check_range("transmit_options", self.transmit_options, 0xFF)
        _set(self, "rf_data", bytes(self.rf_data))

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + bytes((self.broadcast_radius, self.transmit_options))
            + self.rf_data
        )

    @classmethod
    def parse(cls, payload: bytes) -> TransmitRequestFrame:
        return cls(
            payload[1],
            XBee64BitAddress(payload[2:10]),
            XBee16BitAddress(payload[10:12]),
            payload[12],
            payload[13],
            payload[14:],
        )


@dataclass(frozen=True)
class TransmitStatusFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.TRANSMIT_STATUS
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 7

    frame_id: int
    x16bit_addr: XBee16BitAddress
    transmit_retry_count: int
    transmit_status: int
    discovery_status: int

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("transmit_retry_count", self.transmit_retry_count, 0xFF)
        _check_range("transmit_status", self.transmit_status, 0xFF)
        _check_range("discovery_status", self.discovery_status, 0xFF)
        _set(self, "transmit_status", enum_or_raw(TransmitStatus, self.transmit_status))
        _set(self, "discovery_status", enum_or_raw(DiscoveryStatus, self.discovery_status))

    def body(self) -> bytes:
        return bytes(self.x16bit_addr) + bytes(
            (self.transmit_retry_count, self.transmit_status, self.discovery_status)
        )

    @classmethod
    def parse(cls, payload: bytes) -> TransmitStatusFrame:
        return cls(payload[1], XBee16BitAddress(payload[2:4]), payload[4], payload[5], payload[6])


@dataclass(frozen=True)
class ExplicitAddressingFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.EXPLICIT_ADDRESSING
    NEEDS_ID: ClassVar[bool] = True
    MIN_PAYLOAD: ClassVar[int] = 20

    frame_id: int
    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    source_endpoint: int
    dest_endpoint: int
    cluster_id: int
    profile_id: int
    broadcast_radius: int
    transmit_options: int
    rf_data: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_id", self.frame_id, 0xFF)
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("source_endpoint", self.source_endpoint, 0xFF)
        _check_range("dest_endpoint", self.dest_endpoint, 0xFF)
        _check_range("cluster_id", self.cluster_id, 0xFFFF)
        _check_range("profile_id", self.profile_id, 0xFFFF)
        _check_range("broadcast_radius", self.broadcast_radius, 0xFF)
        _check_range("transmit_options", self.transmit_options, 0xFF)
        _set(self, "rf_data", bytes(self.rf_data))

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + bytes((self.source_endpoint, self.dest_endpoint))
            + self.cluster_id.to_bytes(2, "big")
            + self.profile_id.to_bytes(2, "big")
            + bytes((self.broadcast_radius, self.transmit_options))
            + self.rf_data
        )

    @classmethod
    def parse(cls, payload: bytes) -> ExplicitAddressingFrame:
        return cls(
            payload[1],
            XBee64BitAddress(payload[2:10]),
            XBee16BitAddress(payload[10:12]),
            payload[12],
            payload[13],
            _u16(payload, 14),
            _u16(payload, 16),
            payload[18],
            payload[19],
            payload[20:],
        )


@dataclass(frozen=True)
class ReceiveFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.RECEIVE_PACKET
    NEEDS_ID: ClassVar[bool] = False
    MIN_PAYLOAD: ClassVar[int] = 12

    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    receive_options: int
    rf_data: bytes = b""

    def __post_init__(self) -> None:
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("receive_options", self.receive_options, 0xFF)
        _set(self, "rf_data", bytes(self.rf_data))

    @property
    def is_broadcast(self) -> bool:
        return bool(self.receive_options & ReceiveOptions.BROADCAST_PACKET)

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + bytes((self.receive_options,))
            + self.rf_data
        )

    @classmethod
    def parse(cls, payload: bytes) -> ReceiveFrame:
        return cls(
            XBee64BitAddress(payload[1:9]),
            XBee16BitAddress(payload[9:11]),
            payload[11],
            payload[12:],
        )


@dataclass(frozen=True)
class ExplicitRXIndicatorFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.EXPLICIT_RX_INDICATOR
    NEEDS_ID: ClassVar[bool] = False
    MIN_PAYLOAD: ClassVar[int] = 18

    x64bit_addr: XBee64BitAddress
    x16bit_addr: XBee16BitAddress
    source_endpoint: int
    dest_endpoint: int
    cluster_id: int
    profile_id: int
    receive_options: int
    rf_data: bytes = b""

    def __post_init__(self) -> None:
        _set(self, "x64bit_addr", _long(self.x64bit_addr))
        _set(self, "x16bit_addr", _short(self.x16bit_addr))
        _check_range("source_endpoint", self.source_endpoint, 0xFF)
        _check_range("dest_endpoint", self.dest_endpoint, 0xFF)
        _check_range("cluster_id", self.cluster_id, 0xFFFF)
        _check_range("profile_id", self.profile_id, 0xFFFF)
        _check_range("receive_options", self.receive_options, 0xFF)
        _set(self, "rf_data", bytes(self.rf_data))

    @property
    def is_broadcast(self) -> bool:
        return bool(self.receive_options & ReceiveOptions.BROADCAST_PACKET)

    def body(self) -> bytes:
        return (
            bytes(self.x64bit_addr)
            + bytes(self.x16bit_addr)
            + bytes((self.source_endpoint, self.dest_endpoint))
            + self.cluster_id.to_bytes(2, "big")
            + self.profile_id.to_bytes(2, "big")
            + bytes((self.receive_options,))
            + self.rf_data
        )

    @classmethod
    def parse(cls, payload: bytes) -> ExplicitRXIndicatorFrame:
        return cls(
            XBee64BitAddress(payload[1:9]),
            XBee16BitAddress(payload[9:11]),
            payload[11],
            payload[12],
            _u16(payload, 13),
            _u16(payload, 15),
            payload[17],
            payload[18:],
        )


@dataclass(frozen=True)
class RouteInfoFrame:
    """Trace route hop report emitted by DigiMesh firmware."""

    FRAME_TYPE: ClassVar[int] = ApiFrameType.ROUTE_INFO
    NEEDS_ID: ClassVar[bool] = False
    MIN_PAYLOAD: ClassVar[int] = 42

    source_event: int
    timestamp: int
    ack_timeout_count: int
    x64bit_dest_addr: XBee64BitAddress
    x64bit_src_addr: XBee64BitAddress
    x64bit_responder_addr: XBee64BitAddress
    x64bit_receiver_addr: XBee64BitAddress
    data_length: int = 0x27

    def __post_init__(self) -> None:
        _check_range("source_event", self.source_event, 0xFF)
        _check_range("timestamp", self.timestamp, 0xFFFFFFFF)
        _check_range("ack_timeout_count", self.ack_timeout_count, 0xFF)
        _check_range("data_length", self.data_length, 0xFF)
        for name in (
            "x64bit_dest_addr",
            "x64bit_src_addr",
            "x64bit_responder_addr",
            "x64bit_receiver_addr",
        ):
            _set(self, name, _long(getattr(self, name)))

    def body(self) -> bytes:
        return (
            bytes((self.source_event, self.data_length))
            + self.timestamp.to_bytes(4, "big")
            + bytes((self.ack_timeout_count, 0, 0))
            + bytes(self.x64bit_dest_addr)
            + bytes(self.x64bit_src_addr)
            + bytes(self.x64bit_responder_addr)
            + bytes(self.x64bit_receiver_addr)
        )

    @classmethod
    def parse(cls, payload: bytes) -> RouteInfoFrame:
        return cls(
            source_event=payload[1],
            data_length=payload[2],
            timestamp=int.from_bytes(payload[3:7], "big"),
            ack_timeout_count=payload[7],
            x64bit_dest_addr=XBee64BitAddress(payload[10:18]),
            x64bit_src_addr=XBee64BitAddress(payload[18:26]),
            x64bit_responder_addr=XBee64BitAddress(payload[26:34]),
            x64bit_receiver_addr=XBee64BitAddress(payload[34:42]),
        )


@dataclass(frozen=True)
class ModemStatusFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.MODEM_STATUS
    NEEDS_ID: ClassVar[bool] = False
    MIN_PAYLOAD: ClassVar[int] = 2

    status: int

    def __post_init__(self) -> None:
        _check_range("status", self.status, 0xFF)
        _set(self, "status", enum_or_raw(ModemStatus, self.status))

    def body(self) -> bytes:
        return bytes((self.status,))

    @classmethod
    def parse(cls, payload: bytes) -> ModemStatusFrame:
        return cls(payload[1])


@dataclass(frozen=True)
class GenericFrame:
    FRAME_TYPE: ClassVar[int] = ApiFrameType.GENERIC
    NEEDS_ID: ClassVar[bool] = False
    MIN_PAYLOAD: ClassVar[int] = 1

    rf_data: bytes = b""

    def __post_init__(self) -> None:
        _set(self, "rf_data", bytes(self.rf_data))

    def body(self) -> bytes:
        return self.rf_data

    @classmethod
    def parse(cls, payload: bytes) -> GenericFrame:
        return cls(payload[1:])


@dataclass(frozen=True)
class UnknownFrame:
    """Frame whose type byte has no decoder; kept verbatim."""

    NEEDS_ID: ClassVar[bool] = False

    frame_type: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        _check_range("frame_type", self.frame_type, 0xFF)
        if self.frame_type in _DECODERS:
            raise ValueError(
                f"frame type 0x{self.frame_type:02X} has a dedicated variant; use it instead"
            )
        _set(self, "payload", bytes(self.payload))

    @property
    def FRAME_TYPE(self) -> int:
        return self.frame_type

    def body(self) -> bytes:
        return self.payload


Frame = (
    ATCommandFrame |
    ATCommandQueueFrame |
    ATCommandResponseFrame |
    RemoteATCommandFrame |
    RemoteATCommandResponseFrame |
    TransmitRequestFrame |
    TransmitStatusFrame |
    ExplicitAddressingFrame |
    ReceiveFrame |
    ExplicitRXIndicatorFrame |
    RouteInfoFrame |
    ModemStatusFrame |
    GenericFrame |
    UnknownFrame
)

_DECODERS: dict[int, type] = {
    cls.FRAME_TYPE: cls
    for cls in (
        ATCommandFrame,
        ATCommandQueueFrame,
        ATCommandResponseFrame,
        RemoteATCommandFrame,
        RemoteATCommandResponseFrame,
        TransmitRequestFrame,
        TransmitStatusFrame,
        ExplicitAddressingFrame,
        ReceiveFrame,
        ExplicitRXIndicatorFrame,
        RouteInfoFrame,
        ModemStatusFrame,
        GenericFrame,
    )
}


def needs_id(frame: Frame) -> bool:
    return frame.NEEDS_ID


def frame_id_of(frame: Frame) -> int:
    """Correlation id of a frame, 0 for variants that carry none."""
    return frame.frame_id if frame.NEEDS_ID else 0


def frame_type_of(frame: Frame) -> int:
    return frame.FRAME_TYPE


def checksum(payload: bytes) -> int:
    return 0xFF - (sum(payload) & 0xFF)


def escape(data: bytes) -> bytes:
    out = bytearray()
    for value in data:
        if value in RESERVED_BYTES:
            out.append(ESCAPE_BYTE)
            out.append(value ^ ESCAPE_MASK)
        else:
            out.append(value)
    return bytes(out)


def unescape(data: bytes) -> bytes:
    out = bytearray()
    pending = False
    for value in data:
        if pending:
            out.append(value ^ ESCAPE_MASK)
            pending = False
        elif value == ESCAPE_BYTE:
            pending = True
        else:
            out.append(value)
    if pending:
        raise LengthMismatchError("Frame ends with a dangling escape byte")
    return bytes(out)


def payload_of(frame: Frame) -> bytes:
    """Frame type byte, correlation id when present, then the variant fields."""
    head = bytes((frame.FRAME_TYPE,))
    if frame.NEEDS_ID:
        head += bytes((frame.frame_id,))
    return head + frame.body()


def encode(frame: Frame, escaped: bool = False) -> bytes:
    payload = payload_of(frame)
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise ValueError(f"Frame payload too large: {len(payload)} bytes")
    body = len(payload).to_bytes(2, "big") + payload + bytes((checksum(payload),))
    if escaped:
        body = escape(body)
    return bytes((START_DELIMITER,)) + body


def decode_payload(payload: bytes) -> Frame:
    """Parse a checksum-verified payload into its variant."""
    frame_type = payload[0]
    cls = _DECODERS.get(frame_type)
    if cls is None:
        return UnknownFrame(frame_type, payload[1:])
    if len(payload) < cls.MIN_PAYLOAD:
        raise MalformedFieldError(
            f"{cls.__name__} needs at least {cls.MIN_PAYLOAD} payload bytes, got {len(payload)}"
        )
    try:
        return cls.parse(payload)
    except ValueError as exc:
        raise MalformedFieldError(f"Malformed {cls.__name__}: {exc}") from exc


def decode(data: bytes, escaped: bool = False) -> Frame:
    raw = bytes(data)
    if not raw or raw[0] != START_DELIMITER:
        raise DecodeError("Frame does not start with the 0x7E delimiter")
    if escaped:
        raw = raw[:1] + unescape(raw[1:])
    if len(raw) < MIN_FRAME_SIZE:
        raise LengthMismatchError(f"Frame too short: {len(raw)} bytes")

    length = int.from_bytes(raw[1:3], "big")
    if len(raw) != length + 4:
        raise LengthMismatchError(
            f"Length field says {length} payload bytes but frame carries {len(raw) - 4}"
        )

    payload = raw[3:-1]
    expected = checksum(payload)
    if raw[-1] != expected:
        raise ChecksumMismatchError(
            f"Checksum mismatch: expected 0x{expected:02X}, got 0x{raw[-1]:02X}"
        )
    return decode_payload(payload)


def hex_string(data: bytes) -> str:
    return " ".join(f"{value:02X}" for value in data)
