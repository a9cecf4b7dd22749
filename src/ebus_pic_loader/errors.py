"""
Exception hierarchy for the PIC loader.

Callers distinguish link-level problems (TransportError, ProtocolError)
from explicit device refusals (DeviceError) to decide retry eligibility.
ValidationError and ImageError are raised before any device I/O.
"""

from typing import Optional


class LoaderError(Exception):
    """Base exception for all loader errors."""


# -- transport -------------------------------------------------------------

class TransportError(LoaderError):
    """Base exception for serial link failures."""


class SyncWriteFailed(TransportError):
    """The auto-baud sync byte could not be written in time."""


class WriteFailed(TransportError):
    """A frame could not be written completely."""


class SyncMismatch(TransportError):
    """The response did not start with the sync byte."""


class ReadTimeout(TransportError):
    """The device did not answer (or stalled) within the timeout."""


class LinkError(TransportError):
    """The serial port reported an error or hangup."""


# -- protocol --------------------------------------------------------------

class ProtocolError(LoaderError):
    """Base exception for malformed or unexpected responses."""


class UnexpectedCommand(ProtocolError):
    """The response echoed a different command than was sent."""

    def __init__(self, sent: int, received: int):
        super().__init__(
            f"unexpected answer: sent command 0x{sent:02x}, got 0x{received:02x}"
        )
        self.sent = sent
        self.received = received


class UnsupportedVersion(ProtocolError):
    """The bootloader speaks a protocol version we do not support."""

    def __init__(self, major: int, minor: int):
        super().__init__(f"unexpected bootloader protocol version {major}.{minor}")
        self.major = major
        self.minor = minor


class MalformedResponse(ProtocolError):
    """The response header announced an impossible payload."""


# -- device ----------------------------------------------------------------

class DeviceError(LoaderError):
    """The device explicitly rejected an operation."""

    def __init__(self, message: str, status: Optional[int] = None, address: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.address = address


class WriteRejected(DeviceError):
    """A config or flash write returned a non-success status."""


class EraseFailed(DeviceError):
    """Flash erase returned a non-success status."""


class BlockWriteFailed(DeviceError):
    """A flash block could not be written even after the retry."""


class ChecksumMismatch(DeviceError):
    """Device checksum does not match the checksum of the written image."""

    def __init__(self, expected: int, actual: int, address: Optional[int] = None):
        super().__init__(
            f"unexpected checksum: expected {expected:04x}, device reported {actual:04x}",
            address=address,
        )
        self.expected = expected
        self.actual = actual


# -- validation / image ----------------------------------------------------

class ValidationError(LoaderError):
    """Invalid input detected before contacting the device."""


class InvalidAddressRange(ValidationError):
    """The firmware image does not fit the application flash region."""


class ConflictingSettings(ValidationError):
    """Mutually exclusive or incomplete identity settings."""


class ImageError(LoaderError):
    """The firmware image file could not be read or parsed."""
