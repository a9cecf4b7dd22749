"""
eBUS PIC Loader CLI

Command-line interface for flashing the eBUS adapter PIC and changing its
IP settings.
"""

import sys
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from ebus_pic_loader.core.config import LoaderConfig
from ebus_pic_loader.core.actions import run_loader
from ebus_pic_loader.core.results import OperationResult
from ebus_pic_loader.errors import LoaderError, ValidationError
from ebus_pic_loader.firmware import FirmwareImage, describe_image

# Setup Rich console
console = Console()

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)
logger = logging.getLogger("ebus_pic_loader")

app = typer.Typer(help="eBUS adapter PIC firmware loader")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def format_hex_dump(address: int, data: bytes, skip_high: bool = False) -> List[str]:
    """
    Format config/flash bytes as lines of "wordaddr: bytes".

    Each line covers 8 words. With skip_high only the low byte of each
    word is shown (for MUI words whose high byte is unused).
    """
    lines = []
    for offset in range(0, len(data), 16):
        chunk = data[offset:offset + 16]
        values = chunk[::2] if skip_high else chunk
        lines.append(f"{address + offset // 2:04x}: " + " ".join(f"{b:02x}" for b in values))
    return lines


def configure_logging(verbose: bool, trace: bool) -> None:
    logger.setLevel(logging.DEBUG if verbose or trace else logging.INFO)
    transport_level = logging.DEBUG if trace else logging.INFO
    logging.getLogger("ebus_pic_loader.protocol.transport").setLevel(transport_level)


def print_result(result: OperationResult, verbose: bool) -> None:
    """Print device info, identity and flash outcome of a run."""
    device = result.metadata.get("device")
    if device:
        table = Table(title="Device")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")
        name = f" ({device['device_name']})" if device.get("device_name") else ""
        table.add_row("Device ID", f"{device['device_id']:04x}{name}")
        table.add_row("Device revision", device.get("revision") or "-")
        for label in ("bootloader", "firmware"):
            version = device.get(f"{label}_version")
            value = "not found"
            if version is not None:
                value = f"{version} (checksum {device[f'{label}_checksum']:04x})"
            table.add_row(f"{label.capitalize()} version", value)
        if verbose:
            table.add_row("Max packet size", str(device["max_packet_size"]))
            table.add_row("Blocksize erase", str(device["erase_block_size"]))
            table.add_row("Blocksize write", str(device["write_block_size"]))
            table.add_row("User IDs", " ".join(f"{b:02x}" for b in device["user_ids"]))
        console.print(table)
        for label, (address, data, skip_high) in device.get("dumps", {}).items():
            console.print(f"[cyan]{label}:[/cyan]")
            for line in format_hex_dump(address, data, skip_high):
                console.print(f"  {line}")

    identity = result.metadata.get("identity")
    if identity:
        if result.metadata.get("identity_written"):
            console.print("IP settings changed to:")
        console.print(f"MAC address: {identity.mac_str}")
        console.print(f"IP address: {identity.ip_str}")

    image = result.metadata.get("image")
    if image:
        version = image["version"] if image["version"] is not None else "not found"
        console.print(f"New firmware version: {version} (checksum {image['checksum']:04x})")

    if verbose:
        console.print(result.to_summary(), markup=False)
    for warn in result.warnings:
        print_warning(warn)
    for err in result.errors:
        print_error(err)


@app.command()
def load(
    port: str = typer.Argument(..., help="Serial port to use (e.g. /dev/ttyUSB0)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    dhcp: bool = typer.Option(False, "--dhcp", "-d", help="Set dynamic IP address via DHCP"),
    ip: Optional[str] = typer.Option(None, "--ip", "-i", help="Set fix IP address (e.g. 192.168.0.10)"),
    mask: Optional[str] = typer.Option(None, "--mask", "-m", help="Set fix IP mask (e.g. 24)"),
    macip: bool = typer.Option(False, "--macip", "-M", help="Set the MAC address suffix from the IP address"),
    flash: Optional[str] = typer.Option(None, "--flash", "-f", help="Flash the Intel HEX FILE to the device"),
    reset: bool = typer.Option(False, "--reset", "-r", help="Reset the device at the end on success"),
    slow: bool = typer.Option(False, "--slow", "-s", help="Use low speed for transfer"),
    trace: bool = typer.Option(False, "--trace", help="Log every frame sent and received"),
) -> None:
    """
    Show device info, then optionally flash firmware and change IP settings.
    """
    configure_logging(verbose, trace)
    try:
        config = LoaderConfig.from_options(
            port,
            verbose=verbose,
            dhcp=dhcp,
            ip=ip,
            mask=mask,
            mac_from_ip=macip,
            flash_file=flash,
            reset=reset,
            slow=slow,
        )
    except ValidationError as e:
        print_error(str(e))
        sys.exit(1)

    print_header("eBUS Adapter PIC Loader")
    console.print(f"Port: {port} ({config.baudrate} bps)")

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = None

        def _progress(done: int, total: int) -> None:
            nonlocal task
            if task is None:
                task = progress.add_task("Flashing...", total=total)
            progress.update(task, completed=done)

        result = run_loader(config, progress_cb=_progress)

    print_result(result, verbose)
    if not result.ok:
        sys.exit(1)
    print_success("Done.")


@app.command("file-info")
def file_info(
    file: str = typer.Argument(..., help="Intel HEX firmware file"),
) -> None:
    """Show version and checksum of a firmware file without a device."""
    try:
        info = describe_image(FirmwareImage.from_file(file))
    except LoaderError as e:
        print_error(str(e))
        sys.exit(1)

    table = Table(title="Firmware File")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Range", str(info["range"]))
    table.add_row("Bytes", f"{info['bytes']:,}")
    table.add_row("Version", str(info["version"]) if info["version"] is not None else "not found")
    table.add_row("Checksum", f"{info['checksum']:04x}")
    console.print(table)


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
