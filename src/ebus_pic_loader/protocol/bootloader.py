"""
PIC16F1 bootloader command set.

Each method is a single request/response exchange through Transport.
Link problems surface as TransportError/ProtocolError, explicit refusals
by the device as DeviceError.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import DeviceError, EraseFailed, UnsupportedVersion, WriteRejected
from .frame import (
    MAJOR_VERSION,
    MAX_PAYLOAD,
    MINOR_VERSION,
    Command,
    DeviceStatus,
    Frame,
)
from .transport import Transport

logger = logging.getLogger(__name__)

# Flash geometry (words)
ERASE_BLOCK_WORDS = 32
READ_FLASH_LENGTH = 0x10
VERSION_RESPONSE_LENGTH = 16

# Extra answer timeouts (seconds)
WRITE_CONFIG_EXTRA = 0.05
WRITE_FLASH_EXTRA_PER_BYTE = 0.03
ERASE_EXTRA_PER_BLOCK = 0.005
CHECKSUM_EXTRA_PER_UNIT = 0.03

KNOWN_DEVICES = {
    0x30B0: "PIC16F15356",
}

BOOTLOADER_MARKER = 0xAB
FIRMWARE_MARKER = 0xAE


@dataclass(frozen=True)
class DeviceInfo:
    """Decoded READ_VERSION answer."""

    minor_version: int
    major_version: int
    max_packet_size: int
    device_id: int
    erase_block_size: int
    write_block_size: int
    user_ids: Tuple[int, int, int, int]

    @property
    def device_name(self) -> Optional[str]:
        return KNOWN_DEVICES.get(self.device_id)

    @classmethod
    def from_payload(cls, data: bytes) -> "DeviceInfo":
        return cls(
            minor_version=data[0],
            major_version=data[1],
            max_packet_size=data[2] | (data[3] << 8),
            device_id=data[6] | (data[7] << 8),
            erase_block_size=data[10],
            write_block_size=data[11],
            user_ids=(data[12], data[13], data[14], data[15]),
        )


@dataclass(frozen=True)
class VersionStamp:
    """Version marker stored in the first flash row of a region."""

    marker: int
    version: int


def decode_version_stamp(row: bytes, marker: int) -> Optional[VersionStamp]:
    """
    Find the version stamp in the first words of a region.

    Word 2 holds the marker as a RETLW instruction (marker, 0x34) and word 3
    holds the version the same way.
    """
    if len(row) < 8:
        return None
    if row[4] == marker and row[5] == 0x34 and row[7] == 0x34:
        return VersionStamp(marker=marker, version=row[6])
    return None


def _check_status(answer: Frame, what: str, address: int, error_cls=DeviceError) -> None:
    if answer.status != DeviceStatus.SUCCESS:
        raise error_cls(
            f"{what} at 0x{address:04x} rejected: {DeviceStatus.describe(answer.status)}",
            status=answer.status,
            address=address,
        )


class BootloaderClient:
    """
    Bootloader command client.

    Example:
        client = BootloaderClient(session.transport)
        info = client.read_version()
        client.erase_flash(0x0400, 0x3C00)
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    def read_version(self) -> DeviceInfo:
        """
        Query bootloader version and device geometry.

        Raises:
            UnsupportedVersion: If the bootloader protocol version differs
        """
        answer = self.transport.exchange(
            Frame(Command.READ_VERSION), response_length=VERSION_RESPONSE_LENGTH
        )
        info = DeviceInfo.from_payload(answer.payload)
        if info.minor_version != MINOR_VERSION or info.major_version != MAJOR_VERSION:
            raise UnsupportedVersion(info.major_version, info.minor_version)
        logger.debug(f"Bootloader info: {info}")
        return info

    def read_config(self, address: int, length: int) -> bytes:
        """Read length bytes of configuration space at word address."""
        request = Frame(Command.READ_CONFIG, address, data_length=length)
        answer = self.transport.exchange(request, response_length=length)
        return answer.payload

    def write_config(self, address: int, data: bytes) -> None:
        """
        Write configuration space (user ID words).

        Raises:
            WriteRejected: If the device does not acknowledge the write
        """
        request = Frame.guarded(Command.WRITE_CONFIG, address, data)
        answer = self.transport.exchange(request, response_length=1, extra_timeout=WRITE_CONFIG_EXTRA)
        _check_status(answer, "config write", address, WriteRejected)

    def read_flash(self, address: int) -> bytes:
        """Read one flash row; the answer length comes from its header."""
        request = Frame(Command.READ_FLASH, address, data_length=READ_FLASH_LENGTH)
        answer = self.transport.exchange(request)
        return answer.payload

    def write_flash(self, address: int, data: bytes, quiet: bool = False) -> None:
        """
        Write up to one block (64 bytes) of flash at word address.

        Args:
            address: Word address
            data: Bytes to write (low byte first per word)
            quiet: Only log failures at DEBUG level

        Raises:
            WriteRejected: If the device does not acknowledge the write
        """
        if len(data) > MAX_PAYLOAD:
            raise ValueError(f"Block too large: {len(data)} bytes (max {MAX_PAYLOAD})")
        request = Frame.guarded(Command.WRITE_FLASH, address, data)
        answer = self.transport.exchange(
            request,
            response_length=1,
            extra_timeout=len(data) * WRITE_FLASH_EXTRA_PER_BYTE,
            quiet=quiet,
        )
        _check_status(answer, "flash write", address, WriteRejected)

    def erase_flash(self, address: int, length_words: int) -> None:
        """
        Erase the flash rows covering length_words words from address.

        Raises:
            EraseFailed: With the device status code on refusal
        """
        blocks = (length_words + ERASE_BLOCK_WORDS - 1) // ERASE_BLOCK_WORDS
        request = Frame.guarded(Command.ERASE_FLASH, address, data_length=blocks)
        answer = self.transport.exchange(
            request, response_length=1, extra_timeout=blocks * ERASE_EXTRA_PER_BLOCK
        )
        _check_status(answer, "erasing flash", address, EraseFailed)

    def calc_checksum(self, address: int, length: int) -> int:
        """
        Let the device sum the flash words of a region.

        Args:
            address: Word address
            length: Region length in bytes (as counted by the device)

        Returns:
            16-bit sum of the words
        """
        request = Frame(Command.CALC_CHECKSUM, address, data_length=length)
        answer = self.transport.exchange(
            request, response_length=2, extra_timeout=length * CHECKSUM_EXTRA_PER_UNIT
        )
        return answer.payload[0] | (answer.payload[1] << 8)

    def reset_device(self) -> None:
        """Leave the bootloader and start the application."""
        answer = self.transport.exchange(Frame(Command.RESET_DEVICE), response_length=1)
        _check_status(answer, "reset", 0)

    def read_version_stamp(self, address: int, marker: int) -> Optional[VersionStamp]:
        """Read the first row at address and decode its version stamp."""
        return decode_version_stamp(self.read_flash(address), marker)
