"""
Firmware image access for the PIC application region.

Wraps an Intel HEX image (via the intelhex package) as a byte source with
a fill policy for addresses the image does not define, validates the
image address range against the flash layout, and computes the checksum
the device reports for a programmed region.

Image addresses are byte addresses; the device is word addressed
(byte address = 2 * word address).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

from intelhex import IntelHex, IntelHexError

from .errors import ImageError, InvalidAddressRange
from .protocol.bootloader import FIRMWARE_MARKER, VersionStamp, decode_version_stamp

# Flash layout (words)
END_BOOT = 0x0400
END_FLASH = 0x4000
# ... and in bytes
END_BOOT_BYTES = END_BOOT * 2
END_FLASH_BYTES = END_FLASH * 2

# Bytes per flash write (one row of 16 words)
WRITE_BLOCK_BYTES = 32
RANGE_ALIGNMENT = 16

# Unprogrammed flash reads as 0x3FFF per 14-bit word
FILL_LOW = 0xFF
FILL_HIGH = 0x3F


def fill_byte(address: int) -> int:
    """Default value for an address the image does not define."""
    return FILL_HIGH if address & 1 else FILL_LOW


@dataclass(frozen=True)
class ImageRange:
    """Byte range [start, end) of an image."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def __str__(self) -> str:
        return f"0x{self.start:04x}-0x{self.end:04x}"


def validate_range(image_range: ImageRange) -> ImageRange:
    """
    Check that a range fits the application region.

    Raises:
        InvalidAddressRange: On any violation
    """
    start, end = image_range.start, image_range.end
    if start < END_BOOT_BYTES:
        raise InvalidAddressRange(
            f"invalid address range {image_range}: start below application region 0x{END_BOOT_BYTES:04x}"
        )
    if end > END_FLASH_BYTES:
        raise InvalidAddressRange(
            f"invalid address range {image_range}: end beyond flash end 0x{END_FLASH_BYTES:04x}"
        )
    if end < start:
        raise InvalidAddressRange(f"invalid address range {image_range}: end before start")
    if start % RANGE_ALIGNMENT:
        raise InvalidAddressRange(
            f"invalid address range {image_range}: start not aligned to {RANGE_ALIGNMENT} bytes"
        )
    return image_range


class FirmwareImage:
    """
    Sparse firmware image.

    Example:
        image = FirmwareImage.from_file("firmware.hex")
        data, blank = image.block(0x0800, WRITE_BLOCK_BYTES)
    """

    def __init__(self, data: Dict[int, int]):
        """
        Args:
            data: Byte value per defined byte address
        """
        self._data = data

    @classmethod
    def from_intelhex(cls, ih: IntelHex) -> "FirmwareImage":
        return cls({address: ih[address] for address in ih.addresses()})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FirmwareImage":
        """
        Load an Intel HEX file.

        Raises:
            ImageError: If the file is missing or malformed
        """
        ih = IntelHex()
        try:
            ih.loadhex(str(path))
        except (IntelHexError, OSError) as e:
            raise ImageError(f"unable to read firmware file {path}: {e}")
        return cls.from_intelhex(ih)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, address: int) -> Optional[int]:
        """Byte at address, or None if the image does not define it."""
        return self._data.get(address)

    def byte_at(self, address: int) -> int:
        """Byte at address with the fill policy applied."""
        value = self._data.get(address)
        return fill_byte(address) if value is None else value

    def address_range(self) -> ImageRange:
        """
        Range spanned by the defined addresses (not validated).

        Raises:
            ImageError: If the image is empty
        """
        if not self._data:
            raise ImageError("firmware image contains no data")
        return ImageRange(min(self._data), max(self._data) + 1)

    def block(self, start: int, size: int = WRITE_BLOCK_BYTES) -> Tuple[bytes, bool]:
        """
        Bytes of one block with defaults filled in.

        Returns:
            Tuple of (data, blank) where blank is True if the image defines
            no byte in the block
        """
        blank = True
        out = bytearray()
        for address in range(start, start + size):
            value = self._data.get(address)
            if value is None:
                value = fill_byte(address)
            else:
                blank = False
            out.append(value)
        return bytes(out), blank

    def blocks(self, start: int, end: int, size: int = WRITE_BLOCK_BYTES) -> Iterator[Tuple[int, bytes, bool]]:
        """Iterate (address, data, blank) over blocks in ascending order."""
        for block_start in range(start, end, size):
            data, blank = self.block(block_start, size)
            yield block_start, data, blank


def add_checksum(checksum: int, data: bytes) -> int:
    """
    Add block bytes to a running 16-bit word sum.

    Even offsets are the low byte, odd offsets the high byte of a word.
    """
    for pos, value in enumerate(data):
        checksum += value << ((pos & 1) * 8)
    return checksum & 0xFFFF


def image_checksum(image: FirmwareImage, start: int = END_BOOT_BYTES, end: int = END_FLASH_BYTES) -> int:
    """Checksum the device reports after programming image into [start, end)."""
    checksum = 0
    for _, data, _ in image.blocks(start, end):
        checksum = add_checksum(checksum, data)
    return checksum


def describe_image(image: FirmwareImage) -> Dict[str, object]:
    """
    Offline summary of an image: range, version stamp and the checksum over
    the whole application region.
    """
    first_row, _ = image.block(END_BOOT_BYTES, 0x10)
    stamp: Optional[VersionStamp] = decode_version_stamp(first_row, FIRMWARE_MARKER)
    return {
        "range": image.address_range(),
        "bytes": len(image),
        "version": stamp.version if stamp else None,
        "checksum": image_checksum(image),
    }
