"""Rich CLI formatting helpers for npzcodec commands."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()


def print_header(title: str):
    """Print a styled section header."""
    console.print(Panel(Text(title, style="bold cyan"), border_style="dim"))


def print_npy_info(path: str, header, file_size: int):
    """Print the header fields of a .npy file."""
    table = Table(title=f"NPY File Info: {path}", border_style="cyan", show_header=False, padding=(0, 2))
    table.add_column("Property", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Format version", f"{header.major}.{header.minor}")
    table.add_row("Descriptor", f"{header.byte_order}{header.class_code}{header.word_size}")
    table.add_row("Shape", str(header.shape))
    table.add_row("Fortran order", str(header.fortran_order))
    table.add_row("Header size", f"{header.header_size:,} bytes")
    table.add_row("Payload size", f"{header.payload_size:,} bytes")
    table.add_row("File size", f"{file_size:,} bytes")
    console.print(table)


def print_npz_entries(path: str, rows: list):
    """Print one row per archive entry.

    Args:
        rows: (entry info, NpyHeader) pairs.
    """
    table = Table(title=f"NPZ Archive: {path}", border_style="cyan", padding=(0, 1))
    table.add_column("Entry", style="bold")
    table.add_column("Descriptor")
    table.add_column("Shape")
    table.add_column("Size", justify="right")
    table.add_column("Offset", justify="right", style="dim")
    table.add_column("CRC32", style="dim")

    for entry, header in rows:
        table.add_row(
            entry.name,
            f"{header.byte_order}{header.class_code}{header.word_size}",
            str(header.shape),
            f"{entry.size:,}",
            f"{entry.offset:,}",
            f"{entry.crc32:08x}",
        )

    console.print(table)
    console.print(f"\n  [dim]{len(rows)} entries[/dim]")


def print_check(label: str, ok: bool):
    mark = "[green]ok[/green]" if ok else "[bold red]FAILED[/bold red]"
    console.print(f"  {label:<48} {mark}")
