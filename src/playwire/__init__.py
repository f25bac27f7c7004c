"""playwire - browser automation over a persistent driver process.

Drive Chromium, Firefox and WebKit through one out-of-process driver.
A single pipe to the driver is multiplexed across every browser, context,
page and frame, whose local proxies follow the driver's object lifecycle.

This package provides:
- asyncio and blocking entry points (``async_playwright``, ``sync_playwright``)
- Browser, BrowserContext, Page, Frame, handle and Locator proxies
- Persistent contexts bound to a user-data directory
- Custom selector engines
- Event waiting with timeouts

Example:
    >>> from playwire import async_playwright
    >>> async with async_playwright() as p:
    ...     context = await p.chromium.launch_persistent_context("profile")
    ...     page = context.pages[0]
    ...     await page.goto("https://example.com")
    ...     await context.close()
"""

from playwire.async_api import async_playwright
from playwire.browser import Browser
from playwire.browser_context import BrowserContext
from playwire.browser_type import BrowserType
from playwire.config import PlaywireSettings, get_settings
from playwire.console_message import ConsoleMessage
from playwire.exceptions import (
    DriverNotFoundError,
    PlaywireError,
    ProtocolError,
    TargetClosedError,
    TimeoutError,
    TransportError,
    ValidationError,
)
from playwire.frame import Frame
from playwire.js_handle import ElementHandle, JSHandle
from playwire.locator import Locator
from playwire.network import Request, Response
from playwire.page import Page
from playwire.playwright import Playwright
from playwire.selectors import Selectors
from playwire.sync_api import sync_playwright

__version__ = "0.3.0"

__all__ = [
    # Version
    "__version__",
    # Entry points
    "async_playwright",
    "sync_playwright",
    # Proxies
    "Playwright",
    "BrowserType",
    "Browser",
    "BrowserContext",
    "Page",
    "Frame",
    "JSHandle",
    "ElementHandle",
    "Locator",
    "Request",
    "Response",
    "ConsoleMessage",
    "Selectors",
    # Configuration
    "PlaywireSettings",
    "get_settings",
    # Exceptions
    "PlaywireError",
    "TransportError",
    "DriverNotFoundError",
    "ProtocolError",
    "TargetClosedError",
    "TimeoutError",
    "ValidationError",
]
