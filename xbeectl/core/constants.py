"""Protocol constants: frame types, status codes and option flags."""

from __future__ import annotations

from enum import IntEnum, IntFlag

START_DELIMITER = 0x7E
ESCAPE_BYTE = 0x7D
XON_BYTE = 0x11
XOFF_BYTE = 0x13
ESCAPE_MASK = 0x20
RESERVED_BYTES = frozenset((START_DELIMITER, ESCAPE_BYTE, XON_BYTE, XOFF_BYTE))

DEFAULT_QUEUE_CAPACITY = 40
BROADCAST_RADIUS_MAX = 0x00

# Firmware echoes non-explicit traffic on this tuple when explicit output is on.
PASSTHROUGH_ENDPOINT = 0xE8
PASSTHROUGH_CLUSTER = 0x0011
PASSTHROUGH_PROFILE = 0xC105

NODE_DISCOVERY_COMMAND = "ND"


class ApiFrameType(IntEnum):
    TX_64 = 0x00
    TX_16 = 0x01
    AT_COMMAND = 0x08
    AT_COMMAND_QUEUE = 0x09
    TRANSMIT_REQUEST = 0x10
    EXPLICIT_ADDRESSING = 0x11
    REMOTE_AT_COMMAND_REQUEST = 0x17
    TX_IPV4 = 0x20
    RX_64 = 0x80
    RX_16 = 0x81
    RX_IO_64 = 0x82
    RX_IO_16 = 0x83
    AT_COMMAND_RESPONSE = 0x88
    TX_STATUS = 0x89
    MODEM_STATUS = 0x8A
    TRANSMIT_STATUS = 0x8B
    ROUTE_INFO = 0x8D
    RECEIVE_PACKET = 0x90
    EXPLICIT_RX_INDICATOR = 0x91
    IO_DATA_SAMPLE_RX_INDICATOR = 0x92
    NODE_ID_INDICATOR = 0x95
    REMOTE_AT_COMMAND_RESPONSE = 0x97
    RX_SMS = 0x9F
    RX_IPV4 = 0xB0
    FRAME_ERROR = 0xFE
    GENERIC = 0xFF


DATA_FRAME_TYPES = frozenset(
    (ApiFrameType.RECEIVE_PACKET, ApiFrameType.RX_64, ApiFrameType.RX_16)
)


class OperatingMode(IntEnum):
    AT_MODE = 0
    API_MODE = 1
    ESCAPED_API_MODE = 2
    UNKNOWN = 99

    @property
    def is_api(self) -> bool:
        return self in (OperatingMode.API_MODE, OperatingMode.ESCAPED_API_MODE)


class XBeeProtocol(IntEnum):
    ZIGBEE = 0
    RAW_802_15_4 = 1
    XBEE_WIFI = 2
    DIGI_MESH = 3
    XCITE = 4
    XTEND = 5
    XTEND_DM = 6
    SMART_ENERGY = 7
    DIGI_POINT = 8
    ZNET = 9
    XC = 10
    XLR = 11
    XLR_DM = 12
    SX = 13
    XLR_MODULE = 14
    CELLULAR = 15
    CELLULAR_NBIOT = 16
    UNKNOWN = 99


class ATCommandStatus(IntEnum):
    OK = 0
    ERROR = 1
    INVALID_COMMAND = 2
    INVALID_PARAMETER = 3
    TX_FAILURE = 4
    UNKNOWN = 5


class TransmitStatus(IntEnum):
    SUCCESS = 0x00
    NO_ACK = 0x01
    CCA_FAILURE = 0x02
    PURGED = 0x03
    WIFI_PHYSICAL_ERROR = 0x04
    INVALID_DESTINATION = 0x15
    NO_BUFFERS = 0x18
    NETWORK_ACK_FAILURE = 0x21
    NOT_JOINED_NETWORK = 0x22
    SELF_ADDRESSED = 0x23
    ADDRESS_NOT_FOUND = 0x24
    ROUTE_NOT_FOUND = 0x25
    BROADCAST_FAILED = 0x26
    INVALID_BINDING_TABLE_INDEX = 0x2B
    INVALID_ENDPOINT = 0x2C
    BROADCAST_ERROR_APS = 0x2D
    BROADCAST_ERROR_APS_EE0 = 0x2E
    SOFTWARE_ERROR = 0x31
    RESOURCE_ERROR = 0x32
    PAYLOAD_TOO_LARGE = 0x74
    INDIRECT_MESSAGE_UNREQUESTED = 0x75
    SOCKET_CREATION_FAILED = 0x76
    IP_PORT_NOT_EXIST = 0x77
    UDP_SRC_PORT_NOT_MATCH_LISTENING_PORT = 0x78
    KEY_NOT_AUTHORIZED = 0xBB
    UNKNOWN = 0xFF


class DiscoveryStatus(IntEnum):
    NO_DISCOVERY_OVERHEAD = 0x00
    ADDRESS_DISCOVERY = 0x01
    ROUTE_DISCOVERY = 0x02
    ADDRESS_AND_ROUTE = 0x03
    EXTENDED_TIMEOUT_DISCOVERY = 0x40
    UNKNOWN = 0xFF


class ModemStatus(IntEnum):
    HARDWARE_RESET = 0x00
    WATCHDOG_TIMER_RESET = 0x01
    JOINED_NETWORK = 0x02
    DISASSOCIATED = 0x03
    ERROR_SYNCHRONIZATION_LOST = 0x04
    COORDINATOR_REALIGNMENT = 0x05
    COORDINATOR_STARTED = 0x06
    NETWORK_SECURITY_KEY_UPDATED = 0x07
    NETWORK_WOKE_UP = 0x0B
    NETWORK_WENT_TO_SLEEP = 0x0C
    VOLTAGE_SUPPLY_LIMIT_EXCEEDED = 0x0D
    REMOTE_MANAGER_CONNECTED = 0x0E
    REMOTE_MANAGER_DISCONNECTED = 0x0F
    MODEM_CONFIG_CHANGED_WHILE_JOINING = 0x11
    ERROR_STACK = 0x80
    ERROR_AP_NOT_CONNECTED = 0x82
    ERROR_AP_NOT_FOUND = 0x83
    ERROR_PSK_NOT_CONFIGURED = 0x84
    ERROR_SSID_NOT_FOUND = 0x87
    ERROR_FAILED_JOIN_SECURITY = 0x88
    ERROR_INVALID_CHANNEL = 0x8A
    ERROR_FAILED_JOIN_AP = 0x8E
    UNKNOWN = 0xFF


class NetworkDiscoveryStatus(IntEnum):
    SUCCESS = 0x00
    ERROR_READ_TIMEOUT = 0x01
    ERROR_NET_DISCOVER = 0x02
    ERROR_GENERAL = 0x03
    CANCEL = 0x04


class ReceiveOptions(IntFlag):
    NONE = 0x00
    PACKET_ACKNOWLEDGED = 0x01
    BROADCAST_PACKET = 0x02
    APS_ENCRYPTED = 0x20
    SENT_FROM_END_DEVICE = 0x40


class TransmitOptions(IntFlag):
    NONE = 0x00
    DISABLE_ACK = 0x01
    DONT_ATTEMPT_RD = 0x02
    ENABLE_UNICAST_NACK = 0x04
    ENABLE_MULTICAST = 0x08
    ENABLE_APS_ENCRYPTION = 0x20
    USE_EXTENDED_TIMEOUT = 0x40
    REPEATER_MODE = 0x80
    DIGIMESH_MODE = 0xC0


class RemoteATCmdOptions(IntFlag):
    NONE = 0x00
    DISABLE_ACK = 0x01
    APPLY_CHANGES = 0x02
    EXTENDED_TIMEOUT = 0x40


class DiscoveryOptions(IntFlag):
    NONE = 0x00
    APPEND_DD = 0x01
    DISCOVER_MYSELF = 0x02
    APPEND_RSSI = 0x04


def enum_or_raw(enum_cls: type[IntEnum], value: int) -> IntEnum | int:
    """Return the enum member for value, or value itself if it is unlisted."""
    try:
        return enum_cls(value)
    except ValueError:
        return value
