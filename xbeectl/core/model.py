"""Core data models shared by the codec, listener, registry and device."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from xbeectl.core.constants import XBeeProtocol


def _address_bytes(value: bytes | bytearray | str, size: int, kind: str) -> bytes:
    if isinstance(value, str):
        text = value.strip().lower().removeprefix("0x").replace(":", "").replace(" ", "")
        if not text or len(text) > size * 2:
            raise ValueError(f"{kind} address must have 1 to {size * 2} hex digits: {value!r}")
        try:
            raw = bytes.fromhex(text.zfill(size * 2))
        except ValueError as exc:
            raise ValueError(f"{kind} address is not valid hex: {value!r}") from exc
        return raw
    raw = bytes(value)
    if not 1 <= len(raw) <= size:
        raise ValueError(f"{kind} address must contain 1 to {size} bytes, got {len(raw)}")
    return raw.rjust(size, b"\x00")


@dataclass(frozen=True)
class XBee16BitAddress:
    """Network (short) address of a node."""

    address: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _address_bytes(self.address, 2, "16-bit"))

    @classmethod
    def from_hex(cls, text: str) -> XBee16BitAddress:
        return cls(_address_bytes(text, 2, "16-bit"))

    @property
    def is_known(self) -> bool:
        return self != XBee16BitAddress.UNKNOWN

    def __bytes__(self) -> bytes:
        return self.address

    def __str__(self) -> str:
        return self.address.hex().upper()


@dataclass(frozen=True)
class XBee64BitAddress:
    """IEEE (long) address of a node."""

    address: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _address_bytes(self.address, 8, "64-bit"))

    @classmethod
    def from_hex(cls, text: str) -> XBee64BitAddress:
        return cls(_address_bytes(text, 8, "64-bit"))

    @property
    def is_known(self) -> bool:
        return self != XBee64BitAddress.UNKNOWN

    def __bytes__(self) -> bytes:
        return self.address

    def __str__(self) -> str:
        return self.address.hex().upper()


XBee16BitAddress.COORDINATOR = XBee16BitAddress(b"\x00\x00")
XBee16BitAddress.BROADCAST = XBee16BitAddress(b"\xff\xff")
XBee16BitAddress.UNKNOWN = XBee16BitAddress(b"\xff\xfe")

XBee64BitAddress.COORDINATOR = XBee64BitAddress(bytes(8))
XBee64BitAddress.BROADCAST = XBee64BitAddress(b"\x00\x00\x00\x00\x00\x00\xff\xff")
XBee64BitAddress.UNKNOWN = XBee64BitAddress(b"\xff" * 8)


def _known(address: XBee16BitAddress | XBee64BitAddress | None) -> bool:
    return address is not None and address.is_known


@dataclass(eq=False)
class RemoteNode:
    """A radio reachable through the local device.

    Two nodes are equal when both long addresses are known and equal, or
    failing that when both short addresses are known and equal. Nodes that
    share no known address are never equal, whatever their identifiers.
    """

    x64bit_addr: XBee64BitAddress | None = None
    x16bit_addr: XBee16BitAddress | None = None
    node_id: str | None = None
    protocol: XBeeProtocol = XBeeProtocol.UNKNOWN

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteNode):
            return NotImplemented
        if _known(self.x64bit_addr) and _known(other.x64bit_addr):
            return self.x64bit_addr == other.x64bit_addr
        if _known(self.x16bit_addr) and _known(other.x16bit_addr):
            return self.x16bit_addr == other.x16bit_addr
        return False

    __hash__ = None  # type: ignore[assignment]

    @property
    def has_address(self) -> bool:
        return _known(self.x64bit_addr) or _known(self.x16bit_addr)

    def update_from(self, other: RemoteNode) -> None:
        """Merge the known data of another instance of the same node."""
        if other.node_id:
            self.node_id = other.node_id
        if _known(other.x64bit_addr) and not _known(self.x64bit_addr):
            self.x64bit_addr = other.x64bit_addr
        if _known(other.x16bit_addr):
            self.x16bit_addr = other.x16bit_addr
        if other.protocol != XBeeProtocol.UNKNOWN:
            self.protocol = other.protocol

    def __str__(self) -> str:
        long_addr = str(self.x64bit_addr) if self.x64bit_addr else "-"
        name = self.node_id or ""
        return f"{long_addr} - {name}" if name else long_addr


@dataclass(frozen=True)
class ATCommandResponse:
    command: str
    status: int
    value: bytes = b""


@dataclass(frozen=True)
class XBeeMessage:
    data: bytes
    remote: RemoteNode | None
    timestamp: float = field(default_factory=time.time)
    broadcast: bool = False


@dataclass(frozen=True)
class ExplicitXBeeMessage(XBeeMessage):
    source_endpoint: int = 0
    dest_endpoint: int = 0
    cluster_id: int = 0
    profile_id: int = 0
