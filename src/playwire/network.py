"""Request and Response proxies."""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner

if TYPE_CHECKING:
    from playwire.frame import Frame


class Request(ChannelOwner):
    """A network request issued by a page."""

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self._redirected_from: Request | None = initializer.get("redirectedFrom")
        self._redirected_to: Request | None = None
        if self._redirected_from is not None:
            self._redirected_from._redirected_to = self
        self._failure_text: str | None = None

    @property
    def url(self) -> str:
        return self._initializer["url"]

    @property
    def method(self) -> str:
        return self._initializer["method"]

    @property
    def resource_type(self) -> str:
        return self._initializer.get("resourceType", "")

    @property
    def headers(self) -> dict[str, str]:
        return {h["name"].lower(): h["value"] for h in self._initializer.get("headers", [])}

    @property
    def post_data(self) -> str | None:
        data = self._initializer.get("postData")
        return base64.b64decode(data).decode("utf-8") if data else None

    @property
    def frame(self) -> Frame | None:
        return self._initializer.get("frame")

    @property
    def redirected_from(self) -> Request | None:
        return self._redirected_from

    @property
    def redirected_to(self) -> Request | None:
        return self._redirected_to

    @property
    def failure(self) -> str | None:
        return self._failure_text

    def is_navigation_request(self) -> bool:
        return bool(self._initializer.get("isNavigationRequest"))

    async def response(self) -> Response | None:
        return (await self._send("response")).get("response")

    def __repr__(self) -> str:
        return f"<Request method={self.method} url={self.url!r}>"


class Response(ChannelOwner):
    """The response to a Request."""

    @property
    def url(self) -> str:
        return self._initializer["url"]

    @property
    def status(self) -> int:
        return self._initializer["status"]

    @property
    def status_text(self) -> str:
        return self._initializer.get("statusText", "")

    @property
    def ok(self) -> bool:
        return self.status == 0 or 200 <= self.status <= 299

    @property
    def headers(self) -> dict[str, str]:
        return {h["name"].lower(): h["value"] for h in self._initializer.get("headers", [])}

    @property
    def request(self) -> Request:
        return self._initializer["request"]

    async def body(self) -> bytes:
        result = await self._send("body")
        return base64.b64decode(result["binary"])

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    async def json(self) -> Any:
        return json.loads(await self.text())

    def __repr__(self) -> str:
        return f"<Response status={self.status} url={self.url!r}>"
