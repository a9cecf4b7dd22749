"""
Network identity settings stored in the PIC user ID words.

Identity block layout (8 bytes at config word 0x0000):

    byte 0, 2, 4, 6   IP address octets
    byte 7            bits 0-4: mask length (0x1f = DHCP)
                      bit 5:    MAC source (set = MUI, clear = stored IP octets)
    other odd bytes   high halves of the 14-bit user ID words
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .protocol.bootloader import BootloaderClient

logger = logging.getLogger(__name__)

IDENTITY_ADDRESS = 0x0000
IDENTITY_LENGTH = 8
MUI_MAC_ADDRESS = 0x0106
MUI_MAC_LENGTH = 8

PACKED_OFFSET = 7
MASK_BITS = 0x1F
MAC_FROM_MUI_BIT = 0x20
MASK_DHCP = 0x1F

DEFAULT_BLOCK = bytes([0xFF, 0x3F, 0xFF, 0x3F, 0xFF, 0x3F, 0xFF, 0x3F])

# "Adapter-eBUS3" prefix, the last three bytes come from the MUI or the IP
MAC_PREFIX = bytes([0xAE, 0xB0, 0x53])


@dataclass(frozen=True)
class NetworkIdentity:
    """Decoded identity block."""

    mac: bytes
    ip: Tuple[int, int, int, int]
    mask_len: int
    mac_from_mui: bool

    @property
    def dhcp(self) -> bool:
        return self.mask_len == MASK_DHCP or not any(self.ip)

    @property
    def mac_str(self) -> str:
        return ":".join(f"{b:02x}" for b in self.mac)

    @property
    def ip_str(self) -> str:
        if self.dhcp:
            return "DHCP"
        return ".".join(str(b) for b in self.ip) + f"/{self.mask_len}"


@dataclass(frozen=True)
class IdentityRequest:
    """
    Requested identity change.

    Consistency (DHCP vs. IP, MAC from IP needs an IP) is checked by
    LoaderConfig before this is built.
    """

    ip: Optional[Tuple[int, int, int, int]] = None
    mask_len: int = MASK_DHCP
    mac_from_ip: bool = False

    @property
    def dhcp(self) -> bool:
        return self.ip is None


def decode_identity(block: bytes, mui: Optional[bytes] = None) -> NetworkIdentity:
    """
    Decode an identity block.

    Args:
        block: 8 identity bytes
        mui: 8 bytes read at MUI_MAC_ADDRESS, used when the block selects
            the MUI as MAC source
    """
    packed = block[PACKED_OFFSET]
    mac_from_mui = bool(packed & MAC_FROM_MUI_BIT)
    ip = (block[0], block[2], block[4], block[6])
    if mac_from_mui:
        tail = bytes([mui[0], mui[2], mui[4]]) if mui else bytes(3)
    else:
        tail = bytes(ip[1:])
    return NetworkIdentity(
        mac=MAC_PREFIX + tail,
        ip=ip,
        mask_len=packed & MASK_BITS,
        mac_from_mui=mac_from_mui,
    )


def encode_identity(request: IdentityRequest) -> bytes:
    """Build the identity block for a request, starting from the defaults."""
    block = bytearray(DEFAULT_BLOCK)
    if request.mac_from_ip:
        block[PACKED_OFFSET] &= ~MAC_FROM_MUI_BIT & 0xFF
    block[PACKED_OFFSET] = (block[PACKED_OFFSET] & ~MASK_BITS & 0xFF) | (request.mask_len & MASK_BITS)
    if request.ip is not None:
        for i, octet in enumerate(request.ip):
            block[i * 2] = octet
    return bytes(block)


class IdentityManager:
    """Reads and writes the identity block through the bootloader."""

    def __init__(self, client: BootloaderClient):
        self.client = client

    def read_identity(self) -> NetworkIdentity:
        block = self.client.read_config(IDENTITY_ADDRESS, IDENTITY_LENGTH)
        mui = None
        if block[PACKED_OFFSET] & MAC_FROM_MUI_BIT:
            mui = self.client.read_config(MUI_MAC_ADDRESS, MUI_MAC_LENGTH)
        identity = decode_identity(block, mui)
        logger.debug(f"Identity block {block.hex()} -> {identity}")
        return identity

    def write_identity(self, request: IdentityRequest) -> bytes:
        """
        Write the identity block as one config write.

        Returns:
            The block that was written
        """
        block = encode_identity(request)
        logger.info(f"Writing IP settings: {block.hex()}")
        self.client.write_config(IDENTITY_ADDRESS, block)
        return block
