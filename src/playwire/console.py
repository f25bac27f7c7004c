"""Status lines for the playwire CLI.

Status and progress go to stderr so that command data (driver command,
page titles, browser tables) on stdout stays pipeable.
"""

from __future__ import annotations

from rich.console import Console

err_console = Console(stderr=True)


def success(message: str, *, console: Console | None = None) -> None:
    """Report a completed step, e.g. a finished driver handshake."""
    (console or err_console).print(f"[green]  ✓ {message}[/green]")


def error(message: str, *, console: Console | None = None) -> None:
    """Report a failure before the command exits non-zero."""
    (console or err_console).print(f"[red]  ✗ {message}[/red]")


def info(message: str, *, console: Console | None = None) -> None:
    (console or err_console).print(f"[dim]  {message}[/dim]")
