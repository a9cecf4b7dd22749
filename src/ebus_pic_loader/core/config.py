"""
Run configuration.

LoaderConfig is built once from the command line and passed explicitly to
the components that need it: the session (baud rate), the flash programmer
(verbosity) and the identity manager (requested settings).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ConflictingSettings, ValidationError
from ..identity import MASK_DHCP, IdentityRequest
from ..protocol.transport import BAUDRATE_FAST, BAUDRATE_SLOW
from .parsing import parse_ip, parse_mask


@dataclass(frozen=True)
class LoaderConfig:
    """
    Attributes:
        port: Serial port path
        verbose: Print extended device information and progress
        flash_file: Intel HEX file to program, if any
        identity: Identity change to write, if any
        reset: Reset the device at the end when everything succeeded
        slow: Use the low baud rate
    """

    port: Optional[str] = None
    verbose: bool = False
    flash_file: Optional[Path] = None
    identity: Optional[IdentityRequest] = None
    reset: bool = False
    slow: bool = False

    @property
    def baudrate(self) -> int:
        return BAUDRATE_SLOW if self.slow else BAUDRATE_FAST

    @classmethod
    def from_options(
        cls,
        port: Optional[str] = None,
        *,
        verbose: bool = False,
        dhcp: bool = False,
        ip: Optional[str] = None,
        mask: Optional[str] = None,
        mac_from_ip: bool = False,
        flash_file: Optional[str] = None,
        reset: bool = False,
        slow: bool = False,
    ) -> "LoaderConfig":
        """
        Validate raw option values and build the config.

        Raises:
            ConflictingSettings: For DHCP together with IP/mask, IP without
                mask (or vice versa), or MAC from IP without IP
            ValidationError: For malformed IP/mask values or a missing file
        """
        if dhcp and (ip is not None or mask is not None):
            raise ConflictingSettings("either DHCP or IP address is needed")
        try:
            ip_octets = parse_ip(ip)
            mask_len = parse_mask(mask)
        except ValueError as e:
            raise ValidationError(str(e))
        if (ip_octets is None) != (mask_len is None):
            raise ConflictingSettings("incomplete IP arguments: IP address and mask are both needed")
        if mac_from_ip and ip_octets is None:
            raise ConflictingSettings("incomplete IP arguments: MAC from IP needs an IP address")

        identity = None
        if dhcp:
            identity = IdentityRequest(ip=None, mask_len=MASK_DHCP, mac_from_ip=False)
        elif ip_octets is not None:
            identity = IdentityRequest(ip=ip_octets, mask_len=mask_len, mac_from_ip=mac_from_ip)

        flash_path = None
        if flash_file is not None:
            flash_path = Path(flash_file)
            if not flash_path.is_file():
                raise ValidationError(f"invalid flash file: {flash_file}")

        return cls(
            port=port,
            verbose=verbose,
            flash_file=flash_path,
            identity=identity,
            reset=reset,
            slow=slow,
        )
