"""Stable public API for building tooling on top of xbeectl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from xbeectl.core.config import DeviceProfile, LoadedProfiles, get_profile, load_profiles
from xbeectl.core.constants import (
    ApiFrameType,
    ATCommandStatus,
    DiscoveryOptions,
    ModemStatus,
    NetworkDiscoveryStatus,
    OperatingMode,
    ReceiveOptions,
    RemoteATCmdOptions,
    TransmitOptions,
    TransmitStatus,
    XBeeProtocol,
)
from xbeectl.core.device import DeviceSettings, XBeeDevice
from xbeectl.core.errors import (
    ATCommandError,
    ChecksumMismatchError,
    ConfigLoadError,
    ConfigValidationError,
    DecodeError,
    DiscoveryInProgressError,
    LengthMismatchError,
    MalformedFieldError,
    ProtocolMismatchError,
    QueueFullError,
    ResponseTimeoutError,
    TransmitError,
    TransportClosedError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    UnsupportedModeError,
    XBeeError,
)
from xbeectl.core.frames import (
    ATCommandFrame,
    ATCommandQueueFrame,
    ATCommandResponseFrame,
    ExplicitAddressingFrame,
    ExplicitRXIndicatorFrame,
    Frame,
    GenericFrame,
    ModemStatusFrame,
    ReceiveFrame,
    RemoteATCommandFrame,
    RemoteATCommandResponseFrame,
    RouteInfoFrame,
    TransmitRequestFrame,
    TransmitStatusFrame,
    UnknownFrame,
    decode,
    encode,
)
from xbeectl.core.model import (
    ExplicitXBeeMessage,
    RemoteNode,
    XBee16BitAddress,
    XBee64BitAddress,
    XBeeMessage,
)
from xbeectl.transports.base import Transport
from xbeectl.transports.serial_port import SerialTransport

__all__ = [
    "XBeeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "TransportError",
    "TransportClosedError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "ResponseTimeoutError",
    "DecodeError",
    "ChecksumMismatchError",
    "LengthMismatchError",
    "MalformedFieldError",
    "UnsupportedModeError",
    "QueueFullError",
    "ProtocolMismatchError",
    "ATCommandError",
    "TransmitError",
    "DiscoveryInProgressError",
    "ApiFrameType",
    "ATCommandStatus",
    "DiscoveryOptions",
    "ModemStatus",
    "NetworkDiscoveryStatus",
    "OperatingMode",
    "ReceiveOptions",
    "RemoteATCmdOptions",
    "TransmitOptions",
    "TransmitStatus",
    "XBeeProtocol",
    "Frame",
    "ATCommandFrame",
    "ATCommandQueueFrame",
    "ATCommandResponseFrame",
    "ExplicitAddressingFrame",
    "ExplicitRXIndicatorFrame",
    "GenericFrame",
    "ModemStatusFrame",
    "ReceiveFrame",
    "RemoteATCommandFrame",
    "RemoteATCommandResponseFrame",
    "RouteInfoFrame",
    "TransmitRequestFrame",
    "TransmitStatusFrame",
    "UnknownFrame",
    "encode",
    "decode",
    "XBee16BitAddress",
    "XBee64BitAddress",
    "RemoteNode",
    "XBeeMessage",
    "ExplicitXBeeMessage",
    "DeviceProfile",
    "LoadedProfiles",
    "load_profiles",
    "get_profile",
    "DeviceSettings",
    "XBeeDevice",
    "Transport",
    "SerialTransport",
    "open_device",
]


def open_device(
    profile: str = "default",
    *,
    port: str | None = None,
    transport: Transport | None = None,
) -> XBeeDevice:
    """Open the local radio described by a device profile.

    `port` overrides the profile's serial port. When `transport` is given it
    is used as-is and the profile only contributes the device settings.
    """
    device_profile = get_profile(profile)
    if transport is None:
        transport = SerialTransport(
            port or device_profile.port,
            baudrate=device_profile.baudrate,
            bytesize=device_profile.bytesize,
            parity=device_profile.parity,
            stopbits=device_profile.stopbits,
            rtscts=device_profile.rtscts,
            xonxoff=device_profile.xonxoff,
        )
    device = XBeeDevice(transport, settings=device_profile.to_settings())
    device.open()
    return device
