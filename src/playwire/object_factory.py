"""Map protocol type tags to proxy classes."""

from __future__ import annotations

from typing import Any

from playwire.browser import Browser
from playwire.browser_context import BrowserContext
from playwire.browser_type import BrowserType
from playwire.channel_owner import ChannelOwner
from playwire.frame import Frame
from playwire.js_handle import ElementHandle, JSHandle
from playwire.logging import get_logger
from playwire.network import Request, Response
from playwire.page import Page
from playwire.playwright import Playwright
from playwire.selectors import SelectorsOwner

LOG = get_logger(__name__)

PROXY_TYPES: dict[str, type[ChannelOwner]] = {
    "Playwright": Playwright,
    "BrowserType": BrowserType,
    "Browser": Browser,
    "BrowserContext": BrowserContext,
    "Page": Page,
    "Frame": Frame,
    "JSHandle": JSHandle,
    "ElementHandle": ElementHandle,
    "Request": Request,
    "Response": Response,
    "Selectors": SelectorsOwner,
}


def create_remote_object(
    parent: ChannelOwner,
    type_: str,
    guid: str,
    initializer: dict[str, Any],
) -> ChannelOwner:
    """Instantiate the proxy for a newly created remote object.

    Types without a dedicated proxy get a plain ChannelOwner, which still
    takes part in the lifecycle graph and re-emits its raw events.
    """
    cls = PROXY_TYPES.get(type_)
    if cls is None:
        LOG.debug("generic_proxy_for_type", type=type_, guid=guid)
        cls = ChannelOwner
    return cls(parent, type_, guid, initializer)
