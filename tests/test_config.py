"""Tests for option parsing and LoaderConfig validation."""

import pytest

from ebus_pic_loader.core.config import LoaderConfig
from ebus_pic_loader.core.parsing import parse_ip, parse_mask
from ebus_pic_loader.errors import ConflictingSettings, ValidationError
from ebus_pic_loader.identity import MASK_DHCP
from ebus_pic_loader.protocol.transport import BAUDRATE_FAST, BAUDRATE_SLOW


class TestParsing:
    def test_parse_ip(self):
        assert parse_ip("192.168.0.10") == (192, 168, 0, 10)
        assert parse_ip(" 10.0.0.1 ") == (10, 0, 0, 1)
        assert parse_ip(None) is None

    @pytest.mark.parametrize("value", ["192.168.0", "1.2.3.256", "a.b.c.d", "0.0.0.0", "1.2.3.-4"])
    def test_parse_ip_invalid(self, value):
        with pytest.raises(ValueError):
            parse_ip(value)

    def test_parse_mask(self):
        assert parse_mask("24") == 24
        assert parse_mask("0") == 0
        assert parse_mask("30") == 30
        assert parse_mask(None) is None

    @pytest.mark.parametrize("value", ["31", "-1", "x"])
    def test_parse_mask_invalid(self, value):
        with pytest.raises(ValueError):
            parse_mask(value)


class TestLoaderConfig:
    def test_defaults(self):
        config = LoaderConfig.from_options("/dev/ttyUSB0")
        assert config.identity is None
        assert config.flash_file is None
        assert config.baudrate == BAUDRATE_FAST

    def test_slow(self):
        assert LoaderConfig.from_options("/dev/ttyUSB0", slow=True).baudrate == BAUDRATE_SLOW

    def test_dhcp(self):
        config = LoaderConfig.from_options("/dev/ttyUSB0", dhcp=True)
        assert config.identity.dhcp
        assert config.identity.mask_len == MASK_DHCP

    def test_fixed_ip(self):
        config = LoaderConfig.from_options("/dev/ttyUSB0", ip="192.168.0.10", mask="24", mac_from_ip=True)
        assert config.identity.ip == (192, 168, 0, 10)
        assert config.identity.mask_len == 24
        assert config.identity.mac_from_ip

    @pytest.mark.parametrize(
        "options",
        [
            {"dhcp": True, "ip": "192.168.0.10", "mask": "24"},
            {"dhcp": True, "mask": "24"},
            {"ip": "192.168.0.10"},
            {"mask": "24"},
            {"mac_from_ip": True},
            {"dhcp": True, "mac_from_ip": True},
        ],
    )
    def test_conflicting_settings(self, options):
        with pytest.raises(ConflictingSettings):
            LoaderConfig.from_options("/dev/ttyUSB0", **options)

    def test_malformed_ip(self):
        with pytest.raises(ValidationError):
            LoaderConfig.from_options("/dev/ttyUSB0", ip="300.1.1.1", mask="24")

    def test_missing_flash_file(self, tmp_path):
        with pytest.raises(ValidationError):
            LoaderConfig.from_options("/dev/ttyUSB0", flash_file=str(tmp_path / "missing.hex"))

    def test_flash_file(self, tmp_path):
        path = tmp_path / "fw.hex"
        path.write_text(":00000001FF\n")
        assert LoaderConfig.from_options("/dev/ttyUSB0", flash_file=str(path)).flash_file == path
