"""Frame proxy: the protocol implementation behind the Page shortcuts."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from playwire.channel_owner import ChannelOwner
from playwire.events import LOAD_STATES, FrameEvents, PageEvents
from playwire.exceptions import ValidationError
from playwire.input_files import convert_input_files
from playwire.js_handle import ElementHandle, JSHandle, parse_result, serialize_argument
from playwire.locator import Locator
from playwire.selectors import build_test_id_selector
from playwire.waiter import Waiter

if TYPE_CHECKING:
    from playwire.network import Response
    from playwire.page import Page

LoadState = Literal["load", "domcontentloaded", "networkidle", "commit"]
SelectorState = Literal["attached", "detached", "visible", "hidden"]


class Frame(ChannelOwner):
    """A frame within a page.

    Load states are tracked locally from the driver's ``loadstate`` events,
    so ``wait_for_load_state`` returns immediately for states already
    reached.
    """

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self._url: str = initializer.get("url", "")
        self._name: str = initializer.get("name", "")
        self._parent_frame: Frame | None = initializer.get("parentFrame")
        self._child_frames: list[Frame] = []
        self._load_states: set[str] = set(initializer.get("loadStates", []))
        self._detached = False
        self._page: Page | None = None
        self._event_handlers.update(
            {
                "loadstate": self._on_load_state,
                "navigated": self._on_frame_navigated,
            }
        )

    @property
    def page(self) -> Page | None:
        return self._page

    @property
    def url(self) -> str:
        return self._url

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent_frame(self) -> Frame | None:
        return self._parent_frame

    @property
    def child_frames(self) -> list[Frame]:
        return list(self._child_frames)

    def is_detached(self) -> bool:
        return self._detached

    # -- inbound events -----------------------------------------------------

    def _on_load_state(self, params: dict[str, Any]) -> None:
        added = params.get("add")
        removed = params.get("remove")
        if added:
            self._load_states.add(added)
            self._emit(FrameEvents.LoadState, added)
            if self._page is not None and self._parent_frame is None:
                if added == "load":
                    self._page._emit(PageEvents.Load, self._page)
                elif added == "domcontentloaded":
                    self._page._emit(PageEvents.DOMContentLoaded, self._page)
        if removed:
            self._load_states.discard(removed)

    def _on_frame_navigated(self, params: dict[str, Any]) -> None:
        self._url = params.get("url", self._url)
        self._name = params.get("name", self._name)
        if not params.get("error") and params.get("newDocument") is not None:
            self._load_states.clear()
        self._emit(FrameEvents.Navigated, params)
        if self._page is not None and not params.get("error"):
            self._page._emit(PageEvents.FrameNavigated, self)

    def _on_detached(self) -> None:
        self._detached = True
        if self._parent_frame is not None and self in self._parent_frame._child_frames:
            self._parent_frame._child_frames.remove(self)
        self._emit(FrameEvents.Detached, self)

    def _waiter_reject_on(self, event: str) -> list[tuple[ChannelOwner, str]]:
        reject_on: list[tuple[ChannelOwner, str]] = [(self, FrameEvents.Detached)]
        if self._page is not None:
            reject_on.extend([(self._page, PageEvents.Close), (self._page, PageEvents.Crash)])
        return reject_on

    def _navigation_timeout(self, timeout: float | None) -> float:
        owner: ChannelOwner | None = self
        while owner is not None:
            if owner._timeout_settings is not None:
                return owner._timeout_settings.navigation_timeout(timeout)
            owner = owner._parent
        return self._wait_timeout(timeout)

    # -- navigation ---------------------------------------------------------

    async def goto(
        self,
        url: str,
        *,
        timeout: float | None = None,
        wait_until: LoadState | None = None,
        referer: str | None = None,
    ) -> Response | None:
        result = await self._send(
            "goto",
            {
                "url": url,
                "timeout": self._navigation_timeout(timeout),
                "waitUntil": _check_load_state(wait_until),
                "referer": referer,
            },
        )
        return result.get("response")

    async def wait_for_load_state(
        self,
        state: LoadState = "load",
        *,
        timeout: float | None = None,
    ) -> None:
        """Wait until the frame reaches ``state``.

        Raises:
            TimeoutError: If the state is not reached in time.
            TargetClosedError: If the page closes or the frame detaches first.
        """
        state = _check_load_state(state) or "load"
        if state in self._load_states:
            return
        waiter = Waiter(
            self,
            FrameEvents.LoadState,
            predicate=lambda added: added == state,
            timeout=self._navigation_timeout(timeout),
            reject_on=self._waiter_reject_on(FrameEvents.LoadState),
        )
        await waiter.result()

    async def set_content(
        self,
        html: str,
        *,
        timeout: float | None = None,
        wait_until: LoadState | None = None,
    ) -> None:
        await self._send(
            "setContent",
            {
                "html": html,
                "timeout": self._navigation_timeout(timeout),
                "waitUntil": _check_load_state(wait_until),
            },
        )

    async def content(self) -> str:
        return (await self._send("content"))["value"]

    async def title(self) -> str:
        return (await self._send("title"))["value"]

    # -- evaluation ---------------------------------------------------------

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        result = await self._send(
            "evaluateExpression",
            {"expression": expression, "arg": serialize_argument(arg)},
        )
        return parse_result(result.get("value"))

    async def evaluate_handle(self, expression: str, arg: Any = None) -> JSHandle:
        result = await self._send(
            "evaluateExpressionHandle",
            {"expression": expression, "arg": serialize_argument(arg)},
        )
        return result["handle"]

    async def eval_on_selector(
        self,
        selector: str,
        expression: str,
        arg: Any = None,
        *,
        strict: bool | None = None,
    ) -> Any:
        result = await self._send(
            "evalOnSelector",
            {
                "selector": selector,
                "expression": expression,
                "arg": serialize_argument(arg),
                "strict": strict,
            },
        )
        return parse_result(result.get("value"))

    # -- querying -----------------------------------------------------------

    async def query_selector(self, selector: str, *, strict: bool | None = None) -> ElementHandle | None:
        result = await self._send("querySelector", {"selector": selector, "strict": strict})
        return result.get("element")

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        result = await self._send("querySelectorAll", {"selector": selector})
        return list(result.get("elements", []))

    async def query_count(self, selector: str) -> int:
        return (await self._send("queryCount", {"selector": selector}))["value"]

    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: SelectorState | None = None,
        timeout: float | None = None,
        strict: bool | None = None,
    ) -> ElementHandle | None:
        result = await self._send(
            "waitForSelector",
            {
                "selector": selector,
                "state": state,
                "timeout": self._wait_timeout(timeout),
                "strict": strict,
            },
        )
        return result.get("element")

    def locator(self, selector: str) -> Locator:
        return Locator(self, selector)

    def get_by_test_id(self, test_id: str) -> Locator:
        return self.locator(build_test_id_selector(self._connection, test_id))

    # -- element shortcuts --------------------------------------------------

    async def inner_html(self, selector: str, *, strict: bool | None = None, timeout: float | None = None) -> str:
        return (await self._selector_call("innerHTML", selector, strict, timeout))["value"]

    async def inner_text(self, selector: str, *, strict: bool | None = None, timeout: float | None = None) -> str:
        return (await self._selector_call("innerText", selector, strict, timeout))["value"]

    async def text_content(
        self,
        selector: str,
        *,
        strict: bool | None = None,
        timeout: float | None = None,
    ) -> str | None:
        return (await self._selector_call("textContent", selector, strict, timeout)).get("value")

    async def click(
        self,
        selector: str,
        *,
        strict: bool | None = None,
        timeout: float | None = None,
        force: bool | None = None,
    ) -> None:
        await self._selector_call("click", selector, strict, timeout, force=force)

    async def fill(
        self,
        selector: str,
        value: str,
        *,
        strict: bool | None = None,
        timeout: float | None = None,
        force: bool | None = None,
    ) -> None:
        await self._selector_call("fill", selector, strict, timeout, value=value, force=force)

    async def set_input_files(
        self,
        selector: str,
        files: str | Path | dict[str, Any] | list[str | Path | dict[str, Any]],
        *,
        strict: bool | None = None,
        timeout: float | None = None,
    ) -> None:
        await self._selector_call("setInputFiles", selector, strict, timeout, **convert_input_files(files))

    async def _selector_call(
        self,
        method: str,
        selector: str,
        strict: bool | None,
        timeout: float | None,
        **params: Any,
    ) -> dict[str, Any]:
        return await self._send(
            method,
            {
                "selector": selector,
                "strict": strict,
                "timeout": self._wait_timeout(timeout),
                **params,
            },
        )

    def __repr__(self) -> str:
        return f"<Frame name={self._name!r} url={self._url!r}>"


def _check_load_state(state: str | None) -> str | None:
    if state is None:
        return None
    if state not in LOAD_STATES:
        raise ValidationError(f"state: expected one of {', '.join(sorted(LOAD_STATES))}")
    return state
