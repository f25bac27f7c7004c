"""playwire CLI - inspect configuration and exercise the driver connection."""

import asyncio
import os
from typing import Annotated

import click
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import playwire
from playwire import console as status
from playwire.async_api import async_playwright
from playwire.config import get_settings
from playwire.driver import compute_driver_command
from playwire.exceptions import DriverNotFoundError, PlaywireError
from playwire.logging import configure_logging, enable_protocol_debug, get_logger

# Configure logging early using env vars directly; -v/-vv and --log-format in
# main_callback() may reconfigure later.
configure_logging(
    level=os.environ.get("PLAYWIRE_LOG_LEVEL", "WARNING"),
    json_output=os.environ.get("PLAYWIRE_LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

BROWSER_NAMES = ("chromium", "firefox", "webkit")

app = typer.Typer(
    name="playwire",
    help="""
    playwire - browser automation over a persistent driver process

    \b
    Quick start:
      playwire driver --check    Start the driver and list browser types
      playwire open <url>        Launch a browser and print the page title
      playwire config            Show current configuration
    """,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


@app.callback(invoke_without_command=True)
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
    debug_protocol: Annotated[
        bool,
        typer.Option(
            "--debug-protocol",
            help="Log every frame exchanged with the driver (implies -vv)",
        ),
    ] = False,
) -> None:
    """playwire - browser automation over a persistent driver process."""
    settings = get_settings()
    json_output = (log_format or settings.log_format) == "json"

    if debug_protocol or settings.debug_protocol:
        enable_protocol_debug()
        verbose = max(verbose, 2)

    if verbose >= 2:
        configure_logging(level="DEBUG", json_output=json_output)
    elif verbose >= 1:
        configure_logging(level="INFO", json_output=json_output)
    elif log_format is not None:
        configure_logging(level=settings.log_level, json_output=json_output)


@app.command("version")
def version() -> None:
    """Show playwire version and driver info."""
    try:
        driver = " ".join(compute_driver_command())
    except DriverNotFoundError:
        driver = "[yellow]not found[/yellow]"
    console.print(
        Panel(
            f"[bold cyan]playwire[/bold cyan] v{playwire.__version__}\n\n[dim]Driver:[/dim]  {driver}",
            title="Browser automation protocol client",
            border_style="cyan",
        )
    )


@app.command("config")
def config() -> None:
    """Show current playwire configuration."""
    settings = get_settings()

    info = f"""
[dim]Driver path:[/dim]          {settings.driver_path or "(PATH lookup)"}
[dim]Node path:[/dim]            {settings.node_path}
[dim]Default timeout:[/dim]      {settings.default_timeout_ms:.0f}ms
[dim]Navigation timeout:[/dim]   {settings.default_navigation_timeout_ms:.0f}ms
[dim]Launch timeout:[/dim]       {settings.launch_timeout_ms:.0f}ms
[dim]Handshake timeout:[/dim]    {settings.initialize_timeout_ms:.0f}ms
[dim]Driver close timeout:[/dim] {settings.close_timeout_s}s
[dim]Log level:[/dim]            {settings.log_level}
[dim]Log format:[/dim]           {settings.log_format}
[dim]Protocol debug:[/dim]       {settings.debug_protocol}"""

    console.print(Panel(info.strip(), title="⚙ Configuration", border_style="cyan"))


@app.command("driver")
def driver(
    check: Annotated[
        bool,
        typer.Option("--check", help="Start the driver, perform the handshake and list browser types"),
    ] = False,
) -> None:
    """Show the resolved driver command."""
    try:
        command = compute_driver_command()
    except DriverNotFoundError as exc:
        status.error(str(exc))
        raise typer.Exit(1) from None

    console.print(" ".join(command))
    if not check:
        return

    status.info("Starting driver...")
    try:
        browser_types = asyncio.run(_list_browser_types())
    except PlaywireError as exc:
        LOG.error("driver_check_failed", error=str(exc))
        status.error(f"Driver check failed: {exc}")
        raise typer.Exit(1) from None

    table = Table(title="Browser Types", header_style="bold cyan", border_style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Executable", style="white")
    for name, executable in browser_types:
        table.add_row(name, executable or "[dim]not installed[/dim]")
    console.print(table)
    status.success("Driver handshake succeeded")


async def _list_browser_types() -> list[tuple[str, str]]:
    async with async_playwright() as p:
        return [(bt.name, bt.executable_path) for bt in (p.chromium, p.firefox, p.webkit)]


@app.command("open")
def open_url(
    url: Annotated[str, typer.Argument(help="URL to open")],
    browser: Annotated[
        str,
        typer.Option(
            "--browser",
            "-b",
            click_type=click.Choice(BROWSER_NAMES),
            help="Browser engine",
        ),
    ] = "chromium",
    headed: Annotated[bool, typer.Option("--headed", help="Show the browser window")] = False,
) -> None:
    """Launch a browser, navigate to URL and print the page title."""
    if browser not in BROWSER_NAMES:
        status.error(f"Unknown browser: {browser}")
        raise typer.Exit(2)
    status.info(f"Opening {url} in {browser}")
    try:
        title = asyncio.run(_open(url, browser, headless=not headed))
    except PlaywireError as exc:
        LOG.error("open_failed", url=url, error=str(exc))
        status.error(str(exc))
        raise typer.Exit(1) from None
    console.print(title)


async def _open(url: str, browser_name: str, *, headless: bool) -> str:
    async with async_playwright() as p:
        browser = await p[browser_name].launch(headless=headless)
        try:
            page = await browser.new_page()
            await page.goto(url)
            return await page.title()
        finally:
            await browser.close()


if __name__ == "__main__":
    app()
