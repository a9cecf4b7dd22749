"""Tests for the command-line interface."""

from unittest.mock import MagicMock

import pytest
from intelhex import IntelHex
from typer.testing import CliRunner

from ebus_pic_loader import cli
from ebus_pic_loader.core.results import OperationResult

runner = CliRunner()


@pytest.fixture
def fake_run(monkeypatch):
    run = MagicMock(return_value=OperationResult(ok=True, operation="load", port="/dev/ttyUSB0"))
    monkeypatch.setattr(cli, "run_loader", run)
    return run


class TestLoadCommand:
    @pytest.mark.parametrize(
        "args",
        [
            ["--dhcp", "--ip", "192.168.0.10", "--mask", "24"],
            ["--macip"],
            ["--ip", "192.168.0.10"],
            ["--ip", "999.1.1.1", "--mask", "24"],
            ["--flash", "missing.hex"],
        ],
    )
    def test_rejected_before_opening_port(self, fake_run, args):
        result = runner.invoke(cli.app, ["load", "/dev/ttyUSB0"] + args)
        assert result.exit_code == 1
        fake_run.assert_not_called()

    def test_passes_config(self, fake_run):
        result = runner.invoke(cli.app, ["load", "/dev/ttyUSB0", "-i", "192.168.0.10", "-m", "24", "-M", "-r", "-s"])

        assert result.exit_code == 0
        config = fake_run.call_args[0][0]
        assert config.port == "/dev/ttyUSB0"
        assert config.identity.ip == (192, 168, 0, 10)
        assert config.identity.mac_from_ip
        assert config.reset
        assert config.baudrate == 115200

    def test_failed_run_exits_nonzero(self, fake_run):
        fake_run.return_value = OperationResult.failure("load", "did not receive sync", port="/dev/ttyUSB0")
        result = runner.invoke(cli.app, ["load", "/dev/ttyUSB0"])
        assert result.exit_code == 1


def test_file_info(tmp_path):
    ih = IntelHex()
    ih[0x0800] = 0x01
    path = tmp_path / "fw.hex"
    ih.write_hex_file(str(path))

    result = runner.invoke(cli.app, ["file-info", str(path)])
    assert result.exit_code == 0


def test_file_info_bad_file(tmp_path):
    result = runner.invoke(cli.app, ["file-info", str(tmp_path / "missing.hex")])
    assert result.exit_code == 1


def test_format_hex_dump():
    data = bytes(range(32))
    assert cli.format_hex_dump(0x0100, data) == [
        "0100: " + " ".join(f"{b:02x}" for b in range(16)),
        "0108: " + " ".join(f"{b:02x}" for b in range(16, 32)),
    ]
    assert cli.format_hex_dump(0x0100, bytes([1, 0, 2, 0]), skip_high=True) == ["0100: 01 02"]


def test_verbose_load_prints_device_details(monkeypatch, session):
    from ebus_pic_loader.core import actions

    monkeypatch.setattr(
        cli, "run_loader", lambda config, progress_cb=None: actions.run_loader(config, session, progress_cb)
    )

    result = runner.invoke(cli.app, ["load", "/dev/ttyUSB0", "-v", "-d"])

    assert result.exit_code == 0, result.output
    assert "30b0" in result.output
    assert "DHCP" in result.output
    assert "SUCCESS" in result.output
    assert session.opened == [("/dev/ttyUSB0", 921600)]
