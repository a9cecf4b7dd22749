"""
Core module for the eBUS PIC loader.

This module provides the single source of truth for:
- Run configuration (config.py)
- IP/mask parsing (parsing.py)
- Result objects (results.py)
- Device info and load workflows (actions.py)

The CLI calls into this module rather than implementing its own logic.
"""

from .parsing import parse_ip, parse_mask
from .config import LoaderConfig
from .results import OperationResult
from .actions import read_device_info, load_image, run_loader

__all__ = [
    # Parsing
    "parse_ip",
    "parse_mask",
    # Config
    "LoaderConfig",
    # Results
    "OperationResult",
    # Actions
    "read_device_info",
    "load_image",
    "run_loader",
]
