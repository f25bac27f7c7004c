"""Playwright root proxy: entry point to the browser types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.selectors import Selectors

if TYPE_CHECKING:
    from playwire.browser_type import BrowserType


class Playwright(ChannelOwner):
    """The object returned by the driver handshake.

    Example:
        >>> async with async_playwright() as p:
        ...     browser = await p.chromium.launch()
    """

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self.chromium: BrowserType = initializer["chromium"]
        self.firefox: BrowserType = initializer["firefox"]
        self.webkit: BrowserType = initializer["webkit"]
        self.selectors = Selectors(self._connection, initializer.get("selectors"))
        self.devices: dict[str, dict[str, Any]] = {
            device["name"]: device["descriptor"] for device in initializer.get("deviceDescriptors", [])
        }

    def __getitem__(self, name: str) -> BrowserType:
        """Look up a browser type by name, e.g. ``playwright["firefox"]``."""
        if name not in ("chromium", "firefox", "webkit"):
            raise KeyError(name)
        return getattr(self, name)

    async def stop(self) -> None:
        """Close the connection and terminate the driver."""
        await self._connection.close()

    def __repr__(self) -> str:
        return f"<Playwright guid={self.guid}>"
