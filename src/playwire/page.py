"""Page proxy.

Most page operations are shortcuts for the same operation on the main
frame. The page itself tracks its frames, its closed state and its own
timeout defaults, which take precedence over the context's.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.events import PageEvents
from playwire.exceptions import ProtocolError, TargetClosedError
from playwire.logging import get_logger
from playwire.timeout_settings import TimeoutSettings
from playwire.waiter import EventContextManager

if TYPE_CHECKING:
    from playwire.browser_context import BrowserContext
    from playwire.console_message import ConsoleMessage
    from playwire.frame import Frame, LoadState, SelectorState
    from playwire.js_handle import ElementHandle, JSHandle
    from playwire.locator import Locator
    from playwire.network import Request, Response

LOG = get_logger(__name__)

URLMatcher = str | re.Pattern[str] | Callable[[str], bool]


class Page(ChannelOwner):
    """A single tab or popup window."""

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self._browser_context: BrowserContext = parent  # type: ignore[assignment]
        self._timeout_settings = TimeoutSettings(parent._timeout_settings)
        main_frame = initializer.get("mainFrame")
        if main_frame is None:
            raise ProtocolError(f"Page {guid!r} was created without a main frame")
        self._main_frame: Frame = main_frame
        self._frames: list[Frame] = [self._main_frame]
        self._attach_frame(self._main_frame)
        self._viewport_size: dict[str, int] | None = initializer.get("viewportSize")
        self._opener: Page | None = initializer.get("opener")
        self._closed = bool(initializer.get("isClosed"))
        self._owned_context: BrowserContext | None = None
        self._event_handlers.update(
            {
                "close": lambda _: self._on_close(),
                "crash": lambda _: self._emit(PageEvents.Crash, self),
                "frameAttached": lambda params: self._on_frame_attached(params["frame"]),
                "frameDetached": lambda params: self._on_frame_detached(params["frame"]),
                "viewportSizeChanged": self._on_viewport_size_changed,
            }
        )

    def _attach_frame(self, frame: Frame) -> None:
        frame._page = self
        frame._timeout_settings = self._timeout_settings

    # -- accessors ----------------------------------------------------------

    @property
    def context(self) -> BrowserContext:
        return self._browser_context

    @property
    def main_frame(self) -> Frame:
        return self._main_frame

    @property
    def frames(self) -> list[Frame]:
        return list(self._frames)

    @property
    def url(self) -> str:
        return self._main_frame.url

    @property
    def viewport_size(self) -> dict[str, int] | None:
        return self._viewport_size

    def is_closed(self) -> bool:
        return self._closed

    async def opener(self) -> Page | None:
        if self._opener is None or self._opener.is_closed():
            return None
        return self._opener

    # -- inbound events -----------------------------------------------------

    def _on_frame_attached(self, frame: Frame) -> None:
        self._attach_frame(frame)
        self._frames.append(frame)
        if frame.parent_frame is not None:
            frame.parent_frame._child_frames.append(frame)
        self._emit(PageEvents.FrameAttached, frame)

    def _on_frame_detached(self, frame: Frame) -> None:
        if frame in self._frames:
            self._frames.remove(frame)
        frame._on_detached()
        self._emit(PageEvents.FrameDetached, frame)

    def _on_viewport_size_changed(self, params: dict[str, Any]) -> None:
        self._viewport_size = params.get("viewportSize")

    def _on_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self in self._browser_context._pages:
            self._browser_context._pages.remove(self)
        self._emit(PageEvents.Close, self)
        LOG.debug("page_closed", guid=self.guid)

    def _on_dispose(self, reason: str | None) -> None:
        self._on_close()

    def _waiter_reject_on(self, event: str) -> list[tuple[ChannelOwner, str]]:
        reject_on: list[tuple[ChannelOwner, str]] = []
        if event != PageEvents.Close:
            reject_on.append((self, PageEvents.Close))
        if event != PageEvents.Crash:
            reject_on.append((self, PageEvents.Crash))
        return reject_on

    # -- timeouts -----------------------------------------------------------

    def set_default_timeout(self, timeout: float | None) -> None:
        self._timeout_settings.set_default_timeout(timeout)

    def set_default_navigation_timeout(self, timeout: float | None) -> None:
        self._timeout_settings.set_default_navigation_timeout(timeout)

    # -- lifecycle ----------------------------------------------------------

    async def close(self, *, run_before_unload: bool | None = None) -> None:
        """Close the page. Closing a page created by ``Browser.new_page``
        also closes its context."""
        if self._closed:
            return
        try:
            await self._send("close", {"runBeforeUnload": run_before_unload})
        except TargetClosedError:
            LOG.debug("page_already_closed", guid=self.guid)
        if self._owned_context is not None:
            await self._owned_context.close()

    # -- main frame shortcuts -----------------------------------------------

    async def goto(
        self,
        url: str,
        *,
        timeout: float | None = None,
        wait_until: LoadState | None = None,
        referer: str | None = None,
    ) -> Response | None:
        return await self._main_frame.goto(url, timeout=timeout, wait_until=wait_until, referer=referer)

    async def reload(self, *, timeout: float | None = None, wait_until: LoadState | None = None) -> Response | None:
        result = await self._send(
            "reload",
            {
                "timeout": self._timeout_settings.navigation_timeout(timeout),
                "waitUntil": wait_until,
            },
        )
        return result.get("response")

    async def wait_for_load_state(self, state: LoadState = "load", *, timeout: float | None = None) -> None:
        await self._main_frame.wait_for_load_state(state, timeout=timeout)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._main_frame.evaluate(expression, arg)

    async def evaluate_handle(self, expression: str, arg: Any = None) -> JSHandle:
        return await self._main_frame.evaluate_handle(expression, arg)

    async def set_content(
        self,
        html: str,
        *,
        timeout: float | None = None,
        wait_until: LoadState | None = None,
    ) -> None:
        await self._main_frame.set_content(html, timeout=timeout, wait_until=wait_until)

    async def content(self) -> str:
        return await self._main_frame.content()

    async def title(self) -> str:
        return await self._main_frame.title()

    async def query_selector(self, selector: str) -> ElementHandle | None:
        return await self._main_frame.query_selector(selector)

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        return await self._main_frame.query_selector_all(selector)

    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: SelectorState | None = None,
        timeout: float | None = None,
    ) -> ElementHandle | None:
        return await self._main_frame.wait_for_selector(selector, state=state, timeout=timeout)

    def locator(self, selector: str) -> Locator:
        return self._main_frame.locator(selector)

    def get_by_test_id(self, test_id: str) -> Locator:
        """Locate the element whose test id attribute equals ``test_id`` exactly."""
        return self._main_frame.get_by_test_id(test_id)

    async def inner_html(self, selector: str, *, timeout: float | None = None) -> str:
        return await self._main_frame.inner_html(selector, timeout=timeout)

    async def inner_text(self, selector: str, *, timeout: float | None = None) -> str:
        return await self._main_frame.inner_text(selector, timeout=timeout)

    async def text_content(self, selector: str, *, timeout: float | None = None) -> str | None:
        return await self._main_frame.text_content(selector, timeout=timeout)

    async def click(self, selector: str, *, timeout: float | None = None, force: bool | None = None) -> None:
        await self._main_frame.click(selector, timeout=timeout, force=force)

    async def fill(
        self,
        selector: str,
        value: str,
        *,
        timeout: float | None = None,
        force: bool | None = None,
    ) -> None:
        await self._main_frame.fill(selector, value, timeout=timeout, force=force)

    async def set_input_files(
        self,
        selector: str,
        files: str | Path | dict[str, Any] | list[str | Path | dict[str, Any]],
        *,
        timeout: float | None = None,
    ) -> None:
        await self._main_frame.set_input_files(selector, files, timeout=timeout)

    # -- waiting ------------------------------------------------------------

    def expect_request(
        self,
        url_or_predicate: URLMatcher | Callable[[Request], bool],
        *,
        timeout: float | None = None,
    ) -> EventContextManager:
        """Wait for a request whose URL matches (glob, regex or predicate)."""
        return self.expect_event(PageEvents.Request, _request_matcher(url_or_predicate), timeout)

    def expect_response(
        self,
        url_or_predicate: URLMatcher | Callable[[Response], bool],
        *,
        timeout: float | None = None,
    ) -> EventContextManager:
        return self.expect_event(PageEvents.Response, _request_matcher(url_or_predicate), timeout)

    def expect_console_message(
        self,
        predicate: Callable[[ConsoleMessage], bool] | None = None,
        *,
        timeout: float | None = None,
    ) -> EventContextManager:
        return self.expect_event(PageEvents.Console, predicate, timeout)

    def expect_popup(
        self,
        predicate: Callable[[Page], bool] | None = None,
        *,
        timeout: float | None = None,
    ) -> EventContextManager:
        return self.expect_event(PageEvents.Popup, predicate, timeout)

    def __repr__(self) -> str:
        return f"<Page url={self.url!r}>"


def url_matches(matcher: URLMatcher, url: str) -> bool:
    """Match a URL against a glob string, a compiled regex or a predicate."""
    if isinstance(matcher, str):
        return url == matcher or fnmatch.fnmatchcase(url, matcher)
    if isinstance(matcher, re.Pattern):
        return matcher.search(url) is not None
    return bool(matcher(url))


def _request_matcher(matcher: URLMatcher | Callable[[Any], bool]) -> Callable[[Any], bool]:
    if isinstance(matcher, str | re.Pattern):
        return lambda event: url_matches(matcher, event.url)
    return matcher
