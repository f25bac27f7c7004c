"""Locators: lazily-resolved, strict selectors bound to a frame.

A Locator holds no remote object. Each operation re-resolves its selector
on the driver in strict mode, so it fails if the selector matches more
than one element.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from playwire.exceptions import TargetClosedError
from playwire.selectors import build_test_id_selector

if TYPE_CHECKING:
    from playwire.frame import Frame
    from playwire.js_handle import ElementHandle, JSHandle

T = TypeVar("T")


class Locator:
    """Strict selector bound to a frame.

    Example:
        >>> button = page.locator("form").locator("button.submit")
        >>> await button.click()
        >>> await page.locator("li").nth(2).text_content()
    """

    def __init__(self, frame: Frame, selector: str) -> None:
        self._frame = frame
        self._selector = selector

    @property
    def selector(self) -> str:
        return self._selector

    @property
    def frame(self) -> Frame:
        return self._frame

    def locator(self, selector: str) -> Locator:
        """Scope ``selector`` to the elements matched by this locator."""
        return Locator(self._frame, f"{self._selector} >> {selector}")

    def get_by_test_id(self, test_id: str) -> Locator:
        return self.locator(build_test_id_selector(self._frame._connection, test_id))

    @property
    def first(self) -> Locator:
        return Locator(self._frame, f"{self._selector} >> nth=0")

    @property
    def last(self) -> Locator:
        return Locator(self._frame, f"{self._selector} >> nth=-1")

    def nth(self, index: int) -> Locator:
        return Locator(self._frame, f"{self._selector} >> nth={index}")

    async def count(self) -> int:
        return await self._frame.query_count(self._selector)

    async def click(self, *, timeout: float | None = None, force: bool | None = None) -> None:
        await self._frame.click(self._selector, strict=True, timeout=timeout, force=force)

    async def fill(self, value: str, *, timeout: float | None = None, force: bool | None = None) -> None:
        await self._frame.fill(self._selector, value, strict=True, timeout=timeout, force=force)

    async def inner_html(self, *, timeout: float | None = None) -> str:
        return await self._frame.inner_html(self._selector, strict=True, timeout=timeout)

    async def inner_text(self, *, timeout: float | None = None) -> str:
        return await self._frame.inner_text(self._selector, strict=True, timeout=timeout)

    async def text_content(self, *, timeout: float | None = None) -> str | None:
        return await self._frame.text_content(self._selector, strict=True, timeout=timeout)

    async def set_input_files(
        self,
        files: str | Path | dict[str, Any] | list[str | Path | dict[str, Any]],
        *,
        timeout: float | None = None,
    ) -> None:
        await self._frame.set_input_files(self._selector, files, strict=True, timeout=timeout)

    async def element_handle(self, *, timeout: float | None = None) -> ElementHandle:
        """Resolve to the single matching element.

        Raises:
            TimeoutError: If no element is attached in time.
        """
        handle = await self._frame.wait_for_selector(
            self._selector, strict=True, state="attached", timeout=timeout
        )
        if handle is None:
            raise TargetClosedError(f"Element for {self._selector!r} is gone")
        return handle

    async def evaluate(self, expression: str, arg: Any = None, *, timeout: float | None = None) -> Any:
        return await self._with_element(lambda handle: handle.evaluate(expression, arg), timeout)

    async def evaluate_handle(
        self,
        expression: str,
        arg: Any = None,
        *,
        timeout: float | None = None,
    ) -> JSHandle:
        return await self._with_element(lambda handle: handle.evaluate_handle(expression, arg), timeout)

    async def _with_element(
        self,
        task: Callable[[ElementHandle], Awaitable[T]],
        timeout: float | None,
    ) -> T:
        handle = await self.element_handle(timeout=timeout)
        try:
            return await task(handle)
        finally:
            if not handle.is_disposed:
                await handle.dispose()

    def __repr__(self) -> str:
        return f"<Locator frame={self._frame!r} selector={self._selector!r}>"
