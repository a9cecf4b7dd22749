"""
eBUS PIC Loader - firmware and IP settings loader for the eBUS adapter PIC

Flashes Intel HEX firmware through the PIC16F1 serial bootloader and
reads/writes the adapter's network identity settings.
"""

__version__ = "0.1.0"

from ebus_pic_loader.protocol import BootloaderClient, DeviceSession, Transport
from ebus_pic_loader.flasher import FlashProgrammer
from ebus_pic_loader.identity import IdentityManager

__all__ = [
    "BootloaderClient",
    "DeviceSession",
    "Transport",
    "FlashProgrammer",
    "IdentityManager",
    "__version__",
]
