"""
PIC Bootloader Transport Layer

Handles low-level serial communication with the eBUS adapter PIC bootloader.

This module provides:
- Serial port session (exclusive lock, terminal state capture/restore)
- Auto-baud sync handshake before every request
- Timeout-bounded send/receive of exactly one frame per exchange
"""

import logging
import os
import time
from typing import Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

try:
    import termios
except ImportError:  # not available on Windows
    termios = None

from ..errors import (
    LinkError,
    MalformedResponse,
    ProtocolError,
    ReadTimeout,
    SyncMismatch,
    SyncWriteFailed,
    TransportError,
    UnexpectedCommand,
    WriteFailed,
)
from .frame import HEADER_LEN, MAX_PAYLOAD, SYNC, Frame

logger = logging.getLogger(__name__)

BAUDRATE_SLOW = 115200
BAUDRATE_FAST = 921600

# Timeouts in seconds
WAIT_BYTE_TRANSFERRED = 0.2
WAIT_BITRATE_DETECTION = 0.0001
WAIT_RESPONSE_TIMEOUT = 0.1
TAIL_MAX_BYTES = 4


class Transport:
    """
    Frame exchange over an open serial port.

    The device detects the baud rate from a leading 0x55 byte, so every
    request starts with a sync byte followed by a short pause. The answer
    starts with the same sync byte, followed by a header echoing the
    command and the payload.

    Example:
        transport = Transport(ser)
        answer = transport.exchange(Frame(Command.READ_VERSION), response_length=16)
    """

    def __init__(self, ser):
        """
        Args:
            ser: Open pyserial port (or any object with read/write/timeout)
        """
        self.ser = ser

    def _set_timeout(self, timeout: float) -> None:
        if self.ser.timeout != timeout:
            self.ser.timeout = timeout

    def _write_all(self, data: bytes, error_cls, what: str) -> None:
        pos = 0
        while pos < len(data):
            try:
                written = self.ser.write(data[pos:])
            except serial.SerialTimeoutException:
                raise error_cls(f"write {what} timed out")
            except serial.SerialException as e:
                raise error_cls(f"write {what} failed: {e}")
            if not written:
                raise error_cls(f"write {what} timed out")
            pos += written
        logger.debug(f">>> {data.hex().upper()}")

    def _read_exact(self, length: int, timeout: float, what: str) -> bytes:
        self._set_timeout(timeout)
        out = bytearray()
        while len(out) < length:
            try:
                chunk = self.ser.read(length - len(out))
            except serial.SerialException as e:
                raise LinkError(f"read {what} failed: {e}")
            if not chunk:
                raise ReadTimeout(
                    f"read {what} timed out ({len(out)}/{length} bytes received)"
                )
            out.extend(chunk)
        return bytes(out)

    def _drain_tail(self) -> bytes:
        """Read away a potential nonsense tail after the frame."""
        self._set_timeout(WAIT_BYTE_TRANSFERRED)
        try:
            junk = self.ser.read(TAIL_MAX_BYTES)
        except serial.SerialException as e:
            logger.debug(f"Ignoring error while draining tail: {e}")
            return b""
        if junk:
            logger.debug(f"Drained {len(junk)} trailing bytes: {junk.hex().upper()}")
        return junk

    def exchange(
        self,
        request: Frame,
        response_length: Optional[int] = None,
        extra_timeout: float = 0.0,
        quiet: bool = False,
    ) -> Frame:
        """
        Send one frame and receive the answer.

        Args:
            request: Frame to send
            response_length: Fixed payload length of the answer, or None to
                take it from the data_length field of the answer header
            extra_timeout: Additional seconds to wait for the answer sync
                (slow flash operations)
            quiet: Log failures at DEBUG instead of ERROR; the exception
                is raised either way

        Returns:
            Decoded answer frame

        Raises:
            TransportError: Sync/write/read failure or timeout
            ProtocolError: Answer does not match the request
        """
        try:
            return self._exchange(request, response_length, extra_timeout)
        except (TransportError, ProtocolError) as e:
            level = logging.DEBUG if quiet else logging.ERROR
            logger.log(level, f"command 0x{request.command:02x} at 0x{request.address:04x}: {e}")
            raise

    def _exchange(self, request: Frame, response_length: Optional[int], extra_timeout: float) -> Frame:
        self._write_all(bytes([SYNC]), SyncWriteFailed, "sync")
        time.sleep(WAIT_BITRATE_DETECTION)
        self._write_all(request.encode(), WriteFailed, "data")

        sync = self._read_exact(1, WAIT_RESPONSE_TIMEOUT + extra_timeout, "sync")
        if sync[0] != SYNC:
            raise SyncMismatch(f"did not receive sync: 0x{sync[0]:02x}")

        header = self._read_exact(HEADER_LEN, WAIT_BYTE_TRANSFERRED, "header")
        if response_length is None:
            response_length = Frame.header_data_length(header)
            if response_length > MAX_PAYLOAD:
                raise MalformedResponse(
                    f"answer announces {response_length} bytes (max {MAX_PAYLOAD}): {header.hex()}"
                )
        payload = b""
        if response_length:
            payload = self._read_exact(response_length, WAIT_BYTE_TRANSFERRED, "data")
        logger.debug(f"<<< {(header + payload).hex().upper()}")

        self._drain_tail()

        answer = Frame.decode(header + payload)
        if answer.command != request.command:
            raise UnexpectedCommand(request.command, answer.command)
        return answer


def _capture_terminal(port: str):
    """Snapshot the terminal attributes of port before it gets configured."""
    if termios is None:
        return None
    try:
        fd = os.open(port, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
    except OSError:
        return None
    try:
        return termios.tcgetattr(fd)
    except termios.error:
        return None
    finally:
        os.close(fd)


def _restore_terminal(ser, attrs) -> None:
    try:
        termios.tcsetattr(ser.fileno(), termios.TCSANOW, attrs)
    except (termios.error, OSError) as e:
        logger.warning(f"Unable to restore terminal settings: {e}")


class DeviceSession:
    """
    Exclusive serial session with the bootloader.

    Opens and locks the port, captures the original terminal settings and
    restores them on close. Use as a context manager so the port is
    released on every exit path.

    Example:
        with DeviceSession("/dev/ttyUSB0") as session:
            client = BootloaderClient(session.transport)
            info = client.read_version()
    """

    def __init__(self, port: str, baudrate: int = BAUDRATE_FAST):
        """
        Args:
            port: Serial port (e.g., "/dev/ttyUSB0")
            baudrate: BAUDRATE_FAST or BAUDRATE_SLOW
        """
        self.port = port
        self.baudrate = baudrate
        self.ser: Optional[serial.Serial] = None
        self.transport: Optional[Transport] = None
        self._saved_attrs = None

    def open(self) -> None:
        """
        Open and lock the serial port (8N1, no flow control).

        Raises:
            LinkError: If the port cannot be opened or locked
        """
        self._saved_attrs = _capture_terminal(self.port)
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=WAIT_RESPONSE_TIMEOUT,
                write_timeout=WAIT_BYTE_TRANSFERRED,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                exclusive=True,
            )
        except (serial.SerialException, ValueError) as e:
            raise LinkError(f"unable to open {self.port}: {e}")

        self.ser.reset_input_buffer()
        self.ser.reset_output_buffer()
        self.transport = Transport(self.ser)
        logger.debug(f"Opened {self.port} at {self.baudrate} bps")

    def close(self) -> None:
        """Restore terminal settings and close the port."""
        ser, self.ser = self.ser, None
        self.transport = None
        if ser is None:
            return
        try:
            if self._saved_attrs is not None and ser.is_open:
                _restore_terminal(ser, self._saved_attrs)
        finally:
            if ser.is_open:
                ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "DeviceSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
