"""
Outcome of a loader run, as reported by the CLI.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


@dataclass
class OperationResult:
    """
    Collected outcome of one run against a device.

    Attributes:
        ok: False as soon as any step failed
        operation: Run name ("load")
        port: Serial port the run used
        baudrate: Link speed, 0 if the port was never opened
        region: Programmed byte range (e.g. "0x0800-0x1000")
        image_bytes: Number of bytes defined by the firmware file
        warnings / errors: Messages for the user
        metadata: "device", "identity", "image", "flash", ... keyed step data
        logs: Log lines captured while the port was open
    """
    ok: bool
    operation: str
    port: str = ""
    baudrate: int = 0
    region: str = ""
    image_bytes: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Record a failed step; the run is no longer ok."""
        self.errors.append(message)
        self.ok = False

    def to_summary(self) -> str:
        status = "SUCCESS" if self.ok else "FAILED"
        link = f" on {self.port}" if self.port else ""
        if self.port and self.baudrate:
            link += f" @ {self.baudrate}"
        lines = [f"[{status}] {self.operation}{link}"]

        if self.region:
            lines.append(f"  Flashed {self.region} ({self.image_bytes:,} image bytes)")
        elif self.image_bytes:
            lines.append(f"  Image: {self.image_bytes:,} bytes, not flashed")
        for key in ("identity_written", "reset"):
            if self.metadata.get(key):
                lines.append(f"  {key.replace('_', ' ').capitalize()}: yes")

        lines.extend(f"  warning: {warn}" for warn in self.warnings)
        lines.extend(f"  error: {err}" for err in self.errors)
        return "\n".join(lines)

    @classmethod
    def failure(cls, operation: str, error: str, port: Optional[str] = None) -> "OperationResult":
        """Result of a run that stopped before the port was opened."""
        result = cls(ok=False, operation=operation, port=port or "")
        result.add_error(error)
        return result
