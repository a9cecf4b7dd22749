"""
Core workflow actions for the PIC loader.

This module exposes the functions the CLI calls: device information
queries and the complete load run (info, flash, identity, reset).
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

from ..errors import LoaderError, ValidationError, ImageError
from ..firmware import (
    END_BOOT,
    END_BOOT_BYTES,
    END_FLASH_BYTES,
    FirmwareImage,
    describe_image,
    validate_range,
)
from ..flasher import FlashProgrammer
from ..identity import IdentityManager
from ..protocol.bootloader import BOOTLOADER_MARKER, FIRMWARE_MARKER, BootloaderClient
from ..protocol.transport import DeviceSession
from .config import LoaderConfig
from .results import OperationResult

logger = logging.getLogger(__name__)

REVISION_ADDRESS = 0x0005

# (label, word address, length, skip high bytes) for verbose dumps
CONFIG_DUMPS = (
    ("User ID", 0x0000, 8, False),
    ("Configuration words", 0x0007, 5 * 2, False),
    ("MUI", 0x0100, 9 * 2, True),
    ("EUI", 0x010A, 8 * 2, False),
)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "ebus_pic_loader"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def decode_revision(data: bytes) -> str:
    """Device revision "major.minor" from the REVISIONID word."""
    major = ((data[1] & 0x0F) << 2) | ((data[0] & 0xC0) >> 6)
    minor = data[0] & 0x3F
    return f"{major}.{minor}"


def read_device_info(client: BootloaderClient, verbose: bool = False) -> Dict[str, Any]:
    """
    Query bootloader, device and version information.

    Returns:
        Dict with device_id, device_name, revision, bootloader/firmware
        version and checksum (None when no version stamp is found) and,
        in verbose mode, raw config dumps keyed by label.

    Raises:
        LoaderError: If the bootloader does not answer properly
    """
    version = client.read_version()
    info: Dict[str, Any] = {
        "device_id": version.device_id,
        "device_name": version.device_name,
        "max_packet_size": version.max_packet_size,
        "erase_block_size": version.erase_block_size,
        "write_block_size": version.write_block_size,
        "user_ids": version.user_ids,
    }
    name = f" ({version.device_name})" if version.device_name else ""
    logger.info(f"Device ID: {version.device_id:04x}{name}")

    if verbose:
        info["dumps"] = {
            label: (address, client.read_config(address, length), skip_high)
            for label, address, length, skip_high in CONFIG_DUMPS
        }

    info["revision"] = decode_revision(client.read_config(REVISION_ADDRESS, 4))
    logger.info(f"Device revision: {info['revision']}")

    info["bootloader_version"] = None
    info["bootloader_checksum"] = None
    stamp = client.read_version_stamp(0x0000, BOOTLOADER_MARKER)
    if stamp:
        info["bootloader_version"] = stamp.version
        info["bootloader_checksum"] = client.calc_checksum(0x0000, END_BOOT_BYTES)
        logger.info(f"Bootloader version: {stamp.version} [{info['bootloader_checksum']:04x}]")
    else:
        logger.warning("Bootloader version not found")

    info["firmware_version"] = None
    info["firmware_checksum"] = None
    stamp = client.read_version_stamp(END_BOOT, FIRMWARE_MARKER)
    if stamp:
        info["firmware_version"] = stamp.version
        info["firmware_checksum"] = client.calc_checksum(END_BOOT, END_FLASH_BYTES - END_BOOT_BYTES)
        logger.info(f"Firmware version: {stamp.version} [{info['firmware_checksum']:04x}]")
    else:
        logger.info("Firmware version not found")
    return info


def load_image(config: LoaderConfig) -> Optional[FirmwareImage]:
    """
    Load and validate the configured image without touching the device.

    Raises:
        ImageError, ValidationError
    """
    if config.flash_file is None:
        return None
    image = FirmwareImage.from_file(config.flash_file)
    validate_range(image.address_range())
    return image


def run_loader(
    config: LoaderConfig,
    session_factory: Callable[..., DeviceSession] = DeviceSession,
    progress_cb: Optional[Callable[[int, int], None]] = None,
) -> OperationResult:
    """
    Complete run: device info, optional flash, optional identity write,
    optional reset.

    Args:
        config: Validated run configuration
        session_factory: Called with (port, baudrate), returns a session
            context manager
        progress_cb: Optional progress callback(blocks_done, blocks_total)

    Returns:
        OperationResult; ok is False if any step failed
    """
    result = OperationResult(ok=True, operation="load", port=config.port or "")

    try:
        image = load_image(config)
    except (ImageError, ValidationError) as e:
        return OperationResult.failure("load", str(e), port=config.port or "")
    if image is not None:
        result.metadata["image"] = describe_image(image)
        result.image_bytes = len(image)
        start = image.address_range().start
        if start != END_BOOT_BYTES:
            # erase works on whole rows, so the row below start is cleared too
            message = (
                f"image starts at 0x{start:04x} instead of 0x{END_BOOT_BYTES:04x}, "
                f"application code below it will be erased"
            )
            logger.warning(message)
            result.add_warning(message)

    with _capture_logs() as logs:
        try:
            with session_factory(config.port, config.baudrate) as session:
                result.baudrate = config.baudrate
                client = BootloaderClient(session.transport)
                result.metadata["device"] = read_device_info(client, config.verbose)
                identity = IdentityManager(client)
                result.metadata["identity"] = identity.read_identity()

                if image is not None:
                    programmer = FlashProgrammer(client, verbose=config.verbose, progress_cb=progress_cb)
                    try:
                        report = programmer.program(image)
                        result.region = str(report.image_range)
                        result.metadata["flash"] = report
                    except LoaderError as e:
                        logger.error(f"flashing failed: {e}")
                        result.add_error(f"flashing failed: {e}")
                        result.add_warning("flash content is undefined, erase and flash again")

                if config.identity is not None:
                    try:
                        identity.write_identity(config.identity)
                        result.metadata["identity"] = identity.read_identity()
                        result.metadata["identity_written"] = True
                    except LoaderError as e:
                        logger.error(f"writing IP settings failed: {e}")
                        result.add_error(f"writing IP settings failed: {e}")

                if config.reset and result.ok:
                    logger.info("resetting device.")
                    client.reset_device()
                    result.metadata["reset"] = True
        except LoaderError as e:
            result.add_error(str(e))
        result.logs = list(logs)

    return result
