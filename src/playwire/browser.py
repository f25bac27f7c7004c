"""Browser proxy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.events import BrowserEvents
from playwire.exceptions import TargetClosedError
from playwire.logging import get_logger
from playwire.options import ContextOptions
from playwire.selectors import context_selector_params

if TYPE_CHECKING:
    from playwire.browser_context import BrowserContext
    from playwire.browser_type import BrowserType
    from playwire.page import Page

LOG = get_logger(__name__)


class Browser(ChannelOwner):
    """A launched browser instance.

    Example:
        >>> browser = await playwright.chromium.launch(headless=True)
        >>> context = await browser.new_context(locale="en-US")
        >>> page = await context.new_page()
        >>> await browser.close()
    """

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self._browser_type: BrowserType | None = None
        self._contexts: list[BrowserContext] = []
        self._is_connected = True
        self._event_handlers["close"] = lambda _: self._on_close()

    @property
    def version(self) -> str:
        return self._initializer.get("version", "")

    @property
    def name(self) -> str:
        return self._initializer.get("name", "")

    @property
    def browser_type(self) -> BrowserType | None:
        return self._browser_type

    @property
    def contexts(self) -> list[BrowserContext]:
        """Open contexts, from local state."""
        return list(self._contexts)

    def is_connected(self) -> bool:
        return self._is_connected

    def _on_close(self) -> None:
        if not self._is_connected:
            return
        self._is_connected = False
        for context in list(self._contexts):
            context._on_close()
        self._contexts.clear()
        self._emit(BrowserEvents.Disconnected, self)
        LOG.debug("browser_disconnected", guid=self.guid)

    def _on_dispose(self, reason: str | None) -> None:
        self._on_close()

    async def new_context(self, **options: Any) -> BrowserContext:
        """Create an isolated context.

        Args:
            **options: See ``playwire.options.ContextOptions``.

        Raises:
            ValidationError: On invalid or conflicting options.
        """
        params = ContextOptions.from_kwargs(**options).to_params()
        params.update(context_selector_params(self._connection))
        result = await self._send("newContext", params)
        context: BrowserContext = result["context"]
        if context not in self._contexts:
            self._contexts.append(context)
        return context

    async def new_page(self, **options: Any) -> Page:
        """Create a page in a fresh context that closes with the page."""
        context = await self.new_context(**options)
        page = await context.new_page()
        page._owned_context = context
        context._owner_page = page
        return page

    async def close(self, *, reason: str | None = None) -> None:
        """Close the browser and all of its contexts."""
        try:
            await self._send("close", {"reason": reason})
        except TargetClosedError:
            LOG.debug("browser_already_closed", guid=self.guid)
        self._on_close()

    def __repr__(self) -> str:
        return f"<Browser name={self.name!r} version={self.version!r}>"
