"""
Bootloader Frame Codec

Wire layout of one request/response frame of the PIC16F1 bootloader
(little-endian numeric fields):

    [ command | data_length (2) | key1 | key2 | addr_L | addr_H | addr_U | unused | data (<=64) ]

Every request is preceded by an out-of-band sync byte (0x55) used by the
device's auto-baud detector, and every response is prefixed with it.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

SYNC = 0x55

HEADER_FORMAT = "<BHBBHBB"
HEADER_LEN = struct.calcsize(HEADER_FORMAT)  # 9
MAX_PAYLOAD = 64

# Guard bytes required by the device for anything that erases or writes
ERASE_WRITE_KEY = (0x55, 0xAA)

# Protocol version expected in the READ_VERSION answer
MINOR_VERSION = 0x08
MAJOR_VERSION = 0x00


class Command(IntEnum):
    READ_VERSION = 0
    READ_FLASH = 1
    WRITE_FLASH = 2
    ERASE_FLASH = 3
    READ_EE_DATA = 4
    WRITE_EE_DATA = 5
    READ_CONFIG = 6
    WRITE_CONFIG = 7
    CALC_CHECKSUM = 8
    RESET_DEVICE = 9
    CALC_CRC = 10


class DeviceStatus(IntEnum):
    """Status byte returned by write/erase/reset commands."""

    SUCCESS = 0x01
    ADDRESS_OUT_OF_RANGE = 0xFE
    INVALID_COMMAND = 0xFF

    @classmethod
    def describe(cls, code: int) -> str:
        """Human readable name for a raw status byte."""
        try:
            return cls(code).name.lower().replace("_", " ")
        except ValueError:
            return f"error code 0x{code:02x}"


@dataclass(frozen=True)
class Frame:
    """
    One protocol message.

    Attributes:
        command: Opcode (see Command)
        address: 24-bit word address
        payload: Command data, at most 64 bytes
        data_length: Length field; defaults to len(payload). Its meaning
            depends on the command (block count for erase, requested
            length for reads).
        key1, key2: Erase/write guard bytes
    """

    command: int
    address: int = 0
    payload: bytes = b""
    data_length: int = -1
    key1: int = 0
    key2: int = 0

    def __post_init__(self) -> None:
        if len(self.payload) > MAX_PAYLOAD:
            raise ValueError(f"Payload too large: {len(self.payload)} bytes (max {MAX_PAYLOAD})")
        if self.data_length < 0:
            object.__setattr__(self, "data_length", len(self.payload))
        if self.data_length > 0xFFFF:
            raise ValueError(f"data_length out of range: {self.data_length}")
        if not 0 <= self.address <= 0xFFFFFF:
            raise ValueError(f"Address out of range: 0x{self.address:x}")
        if not 0 <= self.command <= 0xFF:
            raise ValueError(f"Command out of range: {self.command}")
        object.__setattr__(self, "payload", bytes(self.payload))

    @classmethod
    def guarded(cls, command: int, address: int, payload: bytes = b"", data_length: int = -1) -> "Frame":
        """Build a frame carrying the erase/write guard bytes."""
        key1, key2 = ERASE_WRITE_KEY
        return cls(command, address, payload, data_length, key1, key2)

    @property
    def status(self) -> int:
        """First payload byte, the status code of write/erase/reset answers."""
        return self.payload[0] if self.payload else -1

    def encode(self) -> bytes:
        header = struct.pack(
            HEADER_FORMAT,
            self.command,
            self.data_length,
            self.key1,
            self.key2,
            self.address & 0xFFFF,
            (self.address >> 16) & 0xFF,
            0,
        )
        return header + self.payload

    @classmethod
    def decode(cls, buffer: bytes) -> "Frame":
        """
        Decode a received buffer (header + payload).

        The payload is whatever follows the header; it is not checked
        against data_length since several answers use a fixed length.
        """
        if len(buffer) < HEADER_LEN:
            raise ValueError(f"Frame too short: {len(buffer)} bytes")
        command, data_length, key1, key2, addr_lh, addr_u, _unused = struct.unpack_from(
            HEADER_FORMAT, buffer
        )
        return cls(
            command=command,
            address=(addr_u << 16) | addr_lh,
            payload=bytes(buffer[HEADER_LEN:]),
            data_length=data_length,
            key1=key1,
            key2=key2,
        )

    @staticmethod
    def header_data_length(header: bytes) -> int:
        """data_length field of a raw header."""
        return struct.unpack_from("<H", header, 1)[0]
