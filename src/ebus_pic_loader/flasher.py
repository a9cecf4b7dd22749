"""
Flash programming: erase, block-write and checksum-verify an image region.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import BlockWriteFailed, ChecksumMismatch, DeviceError, LoaderError
from .firmware import (
    WRITE_BLOCK_BYTES,
    FirmwareImage,
    ImageRange,
    add_checksum,
    validate_range,
)
from .protocol.bootloader import BootloaderClient

logger = logging.getLogger(__name__)


class FlashState(Enum):
    IDLE = "idle"
    VALIDATED = "validated"
    ERASED = "erased"
    WRITING = "writing"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class FlashReport:
    """Outcome of a successful programming run."""

    image_range: ImageRange
    blocks_written: int = 0
    blocks_skipped: int = 0
    retries: int = 0
    checksum: int = 0


class FlashProgrammer:
    """
    Programs an image into the application region.

    Erase is issued once for the whole range, blocks are written in
    ascending order (blank ones skipped) and the device checksum over the
    range is compared to the sum of all default-filled block bytes.

    Example:
        programmer = FlashProgrammer(client, verbose=True)
        report = programmer.program(FirmwareImage.from_file("fw.hex"))
    """

    def __init__(
        self,
        client: BootloaderClient,
        verbose: bool = False,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ):
        self.client = client
        self.verbose = verbose
        self.progress_cb = progress_cb
        self.state = FlashState.IDLE

    def program(self, image: FirmwareImage, image_range: Optional[ImageRange] = None) -> FlashReport:
        """
        Erase, write and verify.

        Args:
            image: Firmware image source
            image_range: Range to program; defaults to the image's own range

        Returns:
            FlashReport

        Raises:
            InvalidAddressRange: Before any device I/O
            EraseFailed, BlockWriteFailed, ChecksumMismatch, TransportError,
            ProtocolError: Programming aborted, flash content undefined
        """
        self.state = FlashState.IDLE
        try:
            return self._program(image, image_range)
        except LoaderError:
            self.state = FlashState.FAILED
            raise

    def _program(self, image: FirmwareImage, image_range: Optional[ImageRange]) -> FlashReport:
        if image_range is None:
            image_range = image.address_range()
        validate_range(image_range)
        self.state = FlashState.VALIDATED
        if self.verbose:
            logger.info(f"flashing bytes {image_range}")

        start, end = image_range.start, image_range.end
        self.client.erase_flash(start // 2, (end - start + 1) // 2)
        self.state = FlashState.ERASED
        logger.info("erasing flash: done.")

        report = FlashReport(image_range=image_range)
        self.state = FlashState.WRITING
        checksum = 0
        total = (image_range.size + WRITE_BLOCK_BYTES - 1) // WRITE_BLOCK_BYTES
        block_end = start
        for index, (address, data, blank) in enumerate(image.blocks(start, end, WRITE_BLOCK_BYTES)):
            checksum = add_checksum(checksum, data)
            block_end = address + WRITE_BLOCK_BYTES
            if blank:
                report.blocks_skipped += 1
            else:
                if self._write_block(address, data):
                    report.retries += 1
                report.blocks_written += 1
            if self.progress_cb:
                self.progress_cb(index + 1, total)
        logger.info(
            f"flashing finished: {report.blocks_written} blocks written, "
            f"{report.blocks_skipped} blank blocks skipped"
        )

        self.state = FlashState.VERIFYING
        device_sum = self.client.calc_checksum(start // 2, block_end - start)
        if device_sum != checksum:
            raise ChecksumMismatch(checksum, device_sum, address=start // 2)
        report.checksum = checksum
        self.state = FlashState.SUCCEEDED
        logger.info(f"flashing succeeded [{checksum:04x}]")
        return report

    def _write_block(self, address: int, data: bytes) -> bool:
        """
        Write one block, retrying once.

        Returns:
            True if the retry was needed

        Raises:
            BlockWriteFailed: The device refused the block twice
            TransportError, ProtocolError: The retry failed on the link,
                raised unchanged
        """
        word_address = address // 2
        try:
            self.client.write_flash(word_address, data, quiet=True)
            return False
        except LoaderError as e:
            logger.debug(f"Write at 0x{word_address:04x} failed, repeating once: {e}")
        try:
            self.client.write_flash(word_address, data)
        except DeviceError as e:
            raise BlockWriteFailed(
                f"unable to write flash at 0x{word_address:04x}: {e}",
                status=e.status,
                address=word_address,
            ) from e
        return True
