"""Shared fixtures: a scripted PIC bootloader behind a fake serial port."""

import pytest

from ebus_pic_loader.protocol.bootloader import BootloaderClient
from ebus_pic_loader.protocol.frame import HEADER_LEN, SYNC, Command, Frame
from ebus_pic_loader.protocol.transport import Transport

FLASH_BYTES = 0x8000
CONFIG_BYTES = 0x400


class FakeBootloader:
    """
    Serial-port stand-in answering like the PIC16F1 bootloader.

    Frames written by the host are parsed as soon as they are complete and
    the answer is queued for read().
    """

    def __init__(self):
        self.timeout = 0.1
        self.write_timeout = 0.2
        self.is_open = True
        self.inbound = bytearray()
        self.outbound = bytearray()
        self.requests = []
        self.flash = bytearray(FLASH_BYTES)
        self.config = bytearray(CONFIG_BYTES)
        self.version = (0x08, 0x00)
        self.device_id = 0x30B0
        # word address -> number of write attempts to reject
        self.reject_writes = {}
        # word address -> number of write attempts to leave unanswered
        self.drop_writes = {}
        self.erase_status = 0x01
        self.checksum_offset = 0
        self.tail = b""

    # -- serial API --------------------------------------------------------

    def write(self, data):
        self.inbound.extend(data)
        self._process()
        return len(data)

    def read(self, size=1):
        chunk = bytes(self.outbound[:size])
        del self.outbound[:size]
        return chunk

    def reset_input_buffer(self):
        self.outbound.clear()

    # -- device ------------------------------------------------------------

    def erased(self, start, end):
        for address in range(start, end):
            if self.flash[address] != (0x3F if address & 1 else 0xFF):
                return False
        return True

    def _process(self):
        while self.inbound:
            if self.inbound[0] == SYNC and len(self.inbound) >= 1 + HEADER_LEN:
                header = bytes(self.inbound[1:1 + HEADER_LEN])
                command = header[0]
                data_length = Frame.header_data_length(header)
                payload_len = data_length if command in (Command.WRITE_FLASH, Command.WRITE_CONFIG) else 0
                total = 1 + HEADER_LEN + payload_len
                if len(self.inbound) < total:
                    return
                request = Frame.decode(bytes(self.inbound[1:total]))
                del self.inbound[:total]
                self.requests.append(request)
                answer = self._handle(request)
                if answer is not None:
                    echo = Frame(request.command, request.address, answer, data_length=request.data_length)
                    self.outbound.extend(bytes([SYNC]) + echo.encode() + self.tail)
            elif self.inbound[0] != SYNC:
                del self.inbound[0]
            else:
                return

    def _handle(self, request):
        command = request.command
        start = request.address * 2
        if command == Command.READ_VERSION:
            minor, major = self.version
            return bytes([
                minor, major, 0x49, 0x00, 0x00, 0x00,
                self.device_id & 0xFF, self.device_id >> 8,
                0x00, 0x00, 0x20, 0x20, 0x01, 0x02, 0x03, 0x04,
            ])
        if command == Command.READ_CONFIG:
            return bytes(self.config[start:start + request.data_length])
        if command == Command.WRITE_CONFIG:
            self.config[start:start + len(request.payload)] = request.payload
            return b"\x01"
        if command == Command.READ_FLASH:
            return bytes(self.flash[start:start + request.data_length])
        if command == Command.WRITE_FLASH:
            if self.drop_writes.get(request.address, 0) > 0:
                self.drop_writes[request.address] -= 1
                return None
            if self.reject_writes.get(request.address, 0) > 0:
                self.reject_writes[request.address] -= 1
                return b"\xff"
            self.flash[start:start + len(request.payload)] = request.payload
            return b"\x01"
        if command == Command.ERASE_FLASH:
            if self.erase_status != 0x01:
                return bytes([self.erase_status])
            end = start + request.data_length * 64
            for address in range(start, min(end, FLASH_BYTES)):
                self.flash[address] = 0x3F if address & 1 else 0xFF
            return b"\x01"
        if command == Command.CALC_CHECKSUM:
            total = self.checksum_offset
            for address in range(start, start + request.data_length, 2):
                total += self.flash[address] | (self.flash[address + 1] << 8)
            total &= 0xFFFF
            return bytes([total & 0xFF, total >> 8])
        if command == Command.RESET_DEVICE:
            return b"\x01"
        return b"\xff"


@pytest.fixture
def device():
    dev = FakeBootloader()
    # something already programmed so erase is observable
    dev.flash[0x0800:0x8000] = bytes([0x12, 0x34]) * ((0x8000 - 0x0800) // 2)
    return dev


@pytest.fixture
def client(device):
    return BootloaderClient(Transport(device))


class FakeSession:
    """Session factory and context manager wrapping a fake device."""

    def __init__(self, device):
        self.device = device
        self.opened = []
        self.closed = False

    def __call__(self, port, baudrate):
        self.opened.append((port, baudrate))
        return self

    def __enter__(self):
        self.transport = Transport(self.device)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


@pytest.fixture
def session(device):
    return FakeSession(device)
