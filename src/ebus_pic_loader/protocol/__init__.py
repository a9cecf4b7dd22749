"""Bootloader protocol layer - frame codec, transport and command set."""

from .frame import (
    Command,
    DeviceStatus,
    Frame,
    SYNC,
    HEADER_LEN,
    MAX_PAYLOAD,
)
from .transport import (
    Transport,
    DeviceSession,
    BAUDRATE_FAST,
    BAUDRATE_SLOW,
)
from .bootloader import (
    BootloaderClient,
    DeviceInfo,
    VersionStamp,
)

__all__ = [
    # Frame codec
    "Command",
    "DeviceStatus",
    "Frame",
    "SYNC",
    "HEADER_LEN",
    "MAX_PAYLOAD",
    # Transport
    "Transport",
    "DeviceSession",
    "BAUDRATE_FAST",
    "BAUDRATE_SLOW",
    # Commands
    "BootloaderClient",
    "DeviceInfo",
    "VersionStamp",
]
