"""Console messages reported by pages."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwire.js_handle import JSHandle
    from playwire.page import Page


class ConsoleMessage:
    """A ``console.*`` call made by page script.

    Built from the context's ``console`` event, not a remote object itself.
    """

    def __init__(self, event: dict[str, Any], page: Page | None) -> None:
        self._event = event
        self._page = page

    @property
    def type(self) -> str:
        return self._event.get("type", "log")

    @property
    def text(self) -> str:
        return self._event.get("text", "")

    @property
    def args(self) -> list[JSHandle]:
        return list(self._event.get("args", []))

    @property
    def location(self) -> dict[str, Any]:
        return self._event.get("location", {})

    @property
    def page(self) -> Page | None:
        return self._page

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"<ConsoleMessage type={self.type} text={self.text!r}>"
