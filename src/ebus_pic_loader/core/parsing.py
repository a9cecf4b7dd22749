"""
Centralized parsing helpers for identity option values.

Both the CLI and LoaderConfig use these rather than re-implementing them.
"""

from typing import Optional, Tuple

MAX_MASK_LEN = 0x1E


def parse_byte(value: str, min_value: int = 0, max_value: int = 255) -> int:
    """
    Parse a decimal byte value within [min_value, max_value].

    Raises:
        ValueError: If value is not a decimal number in range.
    """
    text = value.strip()
    if not text.isdigit():
        raise ValueError(f"Invalid number '{value}'")
    number = int(text)
    if not min_value <= number <= max_value:
        raise ValueError(f"Value {number} out of range {min_value}..{max_value}")
    return number


def parse_ip(value: Optional[str]) -> Optional[Tuple[int, int, int, int]]:
    """
    Parse a dotted IPv4 address like "192.168.0.10".

    Returns:
        Tuple of four octets, or None if value is None.

    Raises:
        ValueError: If the address is malformed or all zero.
    """
    if value is None:
        return None
    parts = value.strip().split(".")
    if len(parts) != 4:
        raise ValueError(f"Invalid IP address '{value}'")
    try:
        octets = tuple(parse_byte(part) for part in parts)
    except ValueError:
        raise ValueError(f"Invalid IP address '{value}'")
    if not any(octets):
        raise ValueError(f"Invalid IP address '{value}'")
    return octets


def parse_mask(value: Optional[str]) -> Optional[int]:
    """
    Parse an IP mask length like "24".

    Returns:
        Mask length 0..30, or None if value is None.

    Raises:
        ValueError: If the mask length is invalid.
    """
    if value is None:
        return None
    try:
        return parse_byte(value, 0, MAX_MASK_LEN)
    except ValueError:
        raise ValueError(f"Invalid IP mask '{value}'. Use a length 0..{MAX_MASK_LEN} (e.g. 24).")
