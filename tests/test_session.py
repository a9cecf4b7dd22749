"""Tests for serial session setup and teardown."""

from unittest.mock import MagicMock

import pytest
import serial

from ebus_pic_loader.errors import LinkError
from ebus_pic_loader.protocol import transport
from ebus_pic_loader.protocol.transport import BAUDRATE_SLOW, DeviceSession


@pytest.fixture
def fake_serial(monkeypatch):
    port = MagicMock()
    port.is_open = True
    factory = MagicMock(return_value=port)
    monkeypatch.setattr(transport.serial, "Serial", factory)
    return factory


@pytest.fixture
def terminal(monkeypatch):
    restored = []
    monkeypatch.setattr(transport, "_capture_terminal", lambda port: ["saved", port])
    monkeypatch.setattr(transport, "_restore_terminal", lambda ser, attrs: restored.append(attrs))
    return restored


def test_open_configures_exclusive_8n1(fake_serial, terminal):
    with DeviceSession("/dev/ttyUSB0", BAUDRATE_SLOW) as session:
        assert session.transport is not None

    kwargs = fake_serial.call_args[1]
    assert kwargs["port"] == "/dev/ttyUSB0"
    assert kwargs["baudrate"] == BAUDRATE_SLOW
    assert kwargs["exclusive"] is True
    assert kwargs["bytesize"] == serial.EIGHTBITS
    assert kwargs["parity"] == serial.PARITY_NONE
    assert not kwargs["rtscts"]


def test_terminal_restored_and_port_closed(fake_serial, terminal):
    with DeviceSession("/dev/ttyUSB0"):
        pass

    assert terminal == [["saved", "/dev/ttyUSB0"]]
    fake_serial.return_value.close.assert_called_once()


def test_cleanup_on_error(fake_serial, terminal):
    with pytest.raises(RuntimeError):
        with DeviceSession("/dev/ttyUSB0") as session:
            raise RuntimeError("boom")

    assert terminal == [["saved", "/dev/ttyUSB0"]]
    fake_serial.return_value.close.assert_called_once()
    assert session.ser is None


def test_close_twice_is_harmless(fake_serial, terminal):
    session = DeviceSession("/dev/ttyUSB0")
    session.open()
    session.close()
    session.close()
    fake_serial.return_value.close.assert_called_once()


def test_open_failure_is_link_error(monkeypatch, terminal):
    monkeypatch.setattr(
        transport.serial, "Serial", MagicMock(side_effect=serial.SerialException("could not exclusively lock port"))
    )
    with pytest.raises(LinkError):
        DeviceSession("/dev/ttyUSB0").open()


def test_no_restore_without_snapshot(fake_serial, monkeypatch):
    restored = []
    monkeypatch.setattr(transport, "_capture_terminal", lambda port: None)
    monkeypatch.setattr(transport, "_restore_terminal", lambda ser, attrs: restored.append(attrs))

    with DeviceSession("/dev/ttyUSB0"):
        pass

    assert restored == []
