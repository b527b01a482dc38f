"""Utility functions for the Meldoc CLI."""

import shutil
import subprocess
import sys

import click
from rich.console import Console
from rich.table import Table

console = Console()

_CLIPBOARD_COMMANDS = {
    "darwin": [["pbcopy"]],
    "win32": [["clip"]],
    "linux": [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ],
}


def echo_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓ {message}[/green]")


def echo_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]✗ {message}[/red]")


def echo_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def echo_info(message: str) -> None:
    """Print info message."""
    console.print(f"[blue]ℹ {message}[/blue]")


def copy_to_clipboard(text: str) -> bool:
    """Best-effort copy using the platform's clipboard tool."""
    platform = "linux" if sys.platform.startswith("linux") else sys.platform
    for command in _CLIPBOARD_COMMANDS.get(platform, []):
        if shutil.which(command[0]) is None:
            continue
        try:
            subprocess.run(command, input=text, text=True, check=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError):
            continue
    return False


def open_browser(url: str) -> bool:
    """Best-effort open of ``url`` in the default browser."""
    try:
        return click.launch(url) == 0
    except OSError:
        return False


def print_table(
    data: list[dict], title: str = "", headers: list[str] | None = None
) -> None:
    """Print data as a rich table."""
    if not data:
        console.print(f"[yellow]No {title.lower()} found.[/yellow]")
        return

    table = Table(title=title)
    headers = headers or list(data[0].keys())
    for header in headers:
        table.add_column(header.replace("_", " ").title())

    for row in data:
        table.add_row(*[str(row.get(header, "") or "") for header in headers])

    console.print(table)
