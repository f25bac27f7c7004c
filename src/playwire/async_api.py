"""asyncio entry point.

Example:
    >>> from playwire.async_api import async_playwright
    >>> async with async_playwright() as p:
    ...     browser = await p.chromium.launch()
    ...     page = await browser.new_page()
    ...     await page.goto("https://example.com")
    ...     print(await page.title())
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from playwire.config import PlaywireSettings, get_settings
from playwire.connection import Connection
from playwire.driver import compute_driver_command, compute_driver_env
from playwire.logging import get_logger
from playwire.transport import PipeTransport, Transport

if TYPE_CHECKING:
    from types import TracebackType

    from playwire.playwright import Playwright

LOG = get_logger(__name__)

TransportFactory = Callable[[PlaywireSettings, Mapping[str, str | None] | None], Transport]


def default_transport_factory(
    settings: PlaywireSettings,
    env: Mapping[str, str | None] | None,
) -> Transport:
    """Spawn the configured driver over stdio pipes."""
    return PipeTransport(
        compute_driver_command(settings),
        env=compute_driver_env(env),
        close_timeout=settings.close_timeout_s,
    )


class PlaywrightContextManager:
    """Start a driver on enter, stop it on exit.

    Also usable without ``async with`` through ``start()`` and
    ``Playwright.stop()``.
    """

    def __init__(
        self,
        *,
        env: Mapping[str, str | None] | None = None,
        settings: PlaywireSettings | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._env = env
        self._settings = settings
        self._transport_factory = transport_factory or default_transport_factory
        self._connection: Connection | None = None

    async def start(self) -> Playwright:
        """Spawn the driver and complete the handshake.

        If anything fails, the driver process is terminated before the
        error propagates.

        Raises:
            DriverNotFoundError: If no driver is configured or on PATH.
            TransportError: If the driver cannot be started.
            TimeoutError: If the handshake does not complete in time.
        """
        settings = self._settings or get_settings()
        transport = self._transport_factory(settings, self._env)
        connection = Connection(transport, settings=settings)
        self._connection = connection
        try:
            await connection.start()
            playwright = await connection.initialize()
        except BaseException:
            await connection.close()
            raise
        LOG.info("playwright_started", transport=repr(transport))
        return playwright

    async def __aenter__(self) -> Playwright:
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._connection is not None:
            await self._connection.close()


def async_playwright(
    *,
    env: Mapping[str, str | None] | None = None,
    settings: PlaywireSettings | None = None,
    transport_factory: TransportFactory | None = None,
) -> PlaywrightContextManager:
    """Create a context manager that yields a started ``Playwright``.

    Args:
        env: Per-key overrides of the driver's inherited environment; a None
            value removes the variable.
        settings: Settings to use instead of the global ones.
        transport_factory: Builds the transport; defaults to spawning the
            driver over pipes.
    """
    return PlaywrightContextManager(env=env, settings=settings, transport_factory=transport_factory)
