"""BrowserContext proxy.

A context is an isolated browser session (cookies, storage, permissions).
It owns its pages, forwards network and console events to the page they
belong to, and holds the timeout defaults its pages inherit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.console_message import ConsoleMessage
from playwire.events import BrowserContextEvents, PageEvents
from playwire.exceptions import ProtocolError, TargetClosedError, ValidationError
from playwire.logging import get_logger
from playwire.options import parse_geolocation
from playwire.timeout_settings import TimeoutSettings
from playwire.waiter import EventContextManager

if TYPE_CHECKING:
    from playwire.browser import Browser
    from playwire.page import Page

LOG = get_logger(__name__)


class BrowserContext(ChannelOwner):
    """An isolated browser session holding zero or more pages."""

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        from playwire.browser import Browser

        self._browser: Browser | None = parent if isinstance(parent, Browser) else None
        if self._browser is not None:
            self._browser._contexts.append(self)
        self._pages: list[Page] = []
        self._timeout_settings = TimeoutSettings()
        self._closed = False
        self._close_event = asyncio.Event()
        self._user_data_dir: str | None = None
        self._owner_page: Page | None = None
        self._event_handlers.update(
            {
                "page": self._on_page_event,
                "close": lambda _: self._on_close(),
                "console": self._on_console,
                "request": lambda params: self._on_network_event(
                    BrowserContextEvents.Request, params["request"], params.get("page")
                ),
                "response": lambda params: self._on_network_event(
                    BrowserContextEvents.Response, params["response"], params.get("page")
                ),
                "requestFinished": self._on_request_finished,
                "requestFailed": self._on_request_failed,
            }
        )

    # -- accessors ----------------------------------------------------------

    @property
    def pages(self) -> list[Page]:
        """Open pages, from local state."""
        return list(self._pages)

    @property
    def browser(self) -> Browser | None:
        """Owning browser, including for a persistent context."""
        return self._browser

    def is_closed(self) -> bool:
        return self._closed

    # -- inbound events -----------------------------------------------------

    def _on_page_event(self, params: dict[str, Any]) -> None:
        page = params.get("page")
        if page is None:
            raise ProtocolError(f"page event without a page on {self.guid!r}")
        self._on_page(page)

    def _on_page(self, page: Page) -> None:
        if page in self._pages:
            return
        self._pages.append(page)
        self._emit(BrowserContextEvents.Page, page)
        if page._opener is not None and not page._opener.is_closed():
            page._opener._emit(PageEvents.Popup, page)

    def _on_console(self, params: dict[str, Any]) -> None:
        page = params.get("page")
        message = ConsoleMessage(params, page)
        self._emit(BrowserContextEvents.Console, message)
        if page is not None:
            page._emit(PageEvents.Console, message)

    def _on_network_event(self, event: str, payload: Any, page: Page | None) -> None:
        self._emit(event, payload)
        if page is not None:
            page._emit(event, payload)

    def _on_request_finished(self, params: dict[str, Any]) -> None:
        self._on_network_event(BrowserContextEvents.RequestFinished, params["request"], params.get("page"))

    def _on_request_failed(self, params: dict[str, Any]) -> None:
        request = params["request"]
        request._failure_text = params.get("failureText")
        self._on_network_event(BrowserContextEvents.RequestFailed, request, params.get("page"))

    def _on_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for page in list(self._pages):
            page._on_close()
        self._pages.clear()
        if self._browser is not None and self in self._browser._contexts:
            self._browser._contexts.remove(self)
        self._close_event.set()
        self._emit(BrowserContextEvents.Close, self)
        LOG.debug("context_closed", guid=self.guid, user_data_dir=self._user_data_dir)

    def _on_dispose(self, reason: str | None) -> None:
        self._on_close()

    def _waiter_reject_on(self, event: str) -> list[tuple[ChannelOwner, str]]:
        if event == BrowserContextEvents.Close:
            return []
        return [(self, BrowserContextEvents.Close)]

    # -- operations ---------------------------------------------------------

    async def new_page(self) -> Page:
        """Open a new page in this context.

        Raises:
            ValidationError: If the context was created by ``Browser.new_page``.
        """
        if self._owner_page is not None:
            raise ValidationError("Please use browser.new_context() to create more pages")
        result = await self._send("newPage")
        page = result["page"]
        self._on_page(page)
        return page

    async def close(self, *, reason: str | None = None) -> None:
        """Close the context and all of its pages.

        Waits for the driver's close notification. No-op once closed.
        """
        if self._closed:
            return
        try:
            await self._send("close", {"reason": reason})
        except TargetClosedError:
            LOG.debug("context_already_closed", guid=self.guid)
        if not self._closed:
            await self._close_event.wait()

    async def grant_permissions(self, permissions: list[str], *, origin: str | None = None) -> None:
        await self._send("grantPermissions", {"permissions": permissions, "origin": origin})

    async def clear_permissions(self) -> None:
        await self._send("clearPermissions")

    async def set_geolocation(self, geolocation: dict[str, float] | None) -> None:
        """Emulate a position. None clears the emulation.

        Raises:
            ValidationError: If latitude/longitude are out of range.
        """
        params: dict[str, Any] = {}
        if geolocation is not None:
            params["geolocation"] = parse_geolocation(geolocation)
        await self._send("setGeolocation", params)

    async def set_extra_http_headers(self, headers: dict[str, str]) -> None:
        await self._send(
            "setExtraHTTPHeaders",
            {"headers": [{"name": name, "value": value} for name, value in headers.items()]},
        )

    async def set_offline(self, offline: bool) -> None:
        await self._send("setOffline", {"offline": offline})

    async def add_init_script(self, script: str | None = None, *, path: str | Path | None = None) -> None:
        """Run ``script`` (or the contents of ``path``) in every new document."""
        if (script is None) == (path is None):
            raise ValidationError("Either script or path must be provided")
        source = script if script is not None else Path(path).read_text(encoding="utf-8")
        await self._send("addInitScript", {"source": source})

    async def cookies(self, urls: str | list[str] | None = None) -> list[dict[str, Any]]:
        if isinstance(urls, str):
            urls = [urls]
        return (await self._send("cookies", {"urls": urls or []}))["cookies"]

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        await self._send("addCookies", {"cookies": cookies})

    async def clear_cookies(self) -> None:
        await self._send("clearCookies")

    async def storage_state(self) -> dict[str, Any]:
        """Cookies and local storage of the context."""
        return await self._send("storageState")

    def set_default_timeout(self, timeout: float | None) -> None:
        self._timeout_settings.set_default_timeout(timeout)

    def set_default_navigation_timeout(self, timeout: float | None) -> None:
        self._timeout_settings.set_default_navigation_timeout(timeout)

    def expect_page(
        self,
        predicate: Callable[[Page], bool] | None = None,
        *,
        timeout: float | None = None,
    ) -> EventContextManager:
        return self.expect_event(BrowserContextEvents.Page, predicate, timeout)

    def __repr__(self) -> str:
        return f"<BrowserContext guid={self.guid} pages={len(self._pages)}>"
