"""JavaScript handles and evaluate-argument (de)serialization.

Values cross the wire in the driver's tagged format, e.g. ``{"n": 1}``,
``{"s": "text"}``, ``{"a": [...], "id": 1}``. Handles passed as arguments
travel out-of-band in a ``handles`` list and are referenced by index.
"""

from __future__ import annotations

import base64
import datetime
import math
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import ParseResult, urlparse

from playwire.channel_owner import ChannelOwner
from playwire.exceptions import TargetClosedError, ValidationError
from playwire.input_files import convert_input_files

if TYPE_CHECKING:
    from playwire.frame import Frame

_SPECIAL_NUMBERS = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
    "-0": -0.0,
}


class JSHandle(ChannelOwner):
    """Reference to an in-page JavaScript object."""

    def __init__(self, parent: ChannelOwner, type_: str, guid: str, initializer: dict[str, Any]) -> None:
        super().__init__(parent, type_, guid, initializer)
        self._preview = initializer.get("preview", "")
        self._event_handlers["previewUpdated"] = self._on_preview_updated

    def _on_preview_updated(self, params: dict[str, Any]) -> None:
        self._preview = params["preview"]

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate ``expression`` with this handle as its first argument."""
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

    async def get_property(self, name: str) -> JSHandle:
        result = await self._send("getProperty", {"name": name})
        return result["handle"]

    async def get_properties(self) -> dict[str, JSHandle]:
        result = await self._send("getPropertyList")
        return {prop["name"]: prop["value"] for prop in result.get("properties", [])}

    async def json_value(self) -> Any:
        result = await self._send("jsonValue")
        return parse_result(result.get("value"))

    async def dispose(self) -> None:
        """Release the in-page object. The proxy is disposed by the driver."""
        try:
            await self._send("dispose")
        except TargetClosedError:
            return

    def as_element(self) -> ElementHandle | None:
        return None

    def __repr__(self) -> str:
        return f"<JSHandle preview={self._preview!r}>"


class ElementHandle(JSHandle):
    """Reference to a DOM element."""

    def as_element(self) -> ElementHandle | None:
        return self

    async def owner_frame(self) -> Frame | None:
        result = await self._send("ownerFrame")
        return result.get("frame")

    async def content_frame(self) -> Frame | None:
        result = await self._send("contentFrame")
        return result.get("frame")

    async def click(self, *, timeout: float | None = None, force: bool | None = None) -> None:
        await self._send(
            "click",
            {"timeout": self._wait_timeout(timeout), "force": force},
        )

    async def fill(self, value: str, *, timeout: float | None = None, force: bool | None = None) -> None:
        await self._send(
            "fill",
            {"value": value, "timeout": self._wait_timeout(timeout), "force": force},
        )

    async def inner_html(self) -> str:
        return (await self._send("innerHTML"))["value"]

    async def inner_text(self) -> str:
        return (await self._send("innerText"))["value"]

    async def text_content(self) -> str | None:
        return (await self._send("textContent")).get("value")

    async def get_attribute(self, name: str) -> str | None:
        return (await self._send("getAttribute", {"name": name})).get("value")

    async def set_input_files(
        self,
        files: str | Path | dict[str, Any] | list[str | Path | dict[str, Any]],
        *,
        timeout: float | None = None,
    ) -> None:
        """Set the files of an ``<input type=file>``.

        See ``playwire.input_files.convert_input_files`` for accepted values.
        """
        params = convert_input_files(files)
        params["timeout"] = self._wait_timeout(timeout)
        await self._send("setInputFiles", params)

    async def query_selector(self, selector: str) -> ElementHandle | None:
        return (await self._send("querySelector", {"selector": selector})).get("element")

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        return list((await self._send("querySelectorAll", {"selector": selector})).get("elements", []))

    def __repr__(self) -> str:
        return f"<ElementHandle preview={self._preview!r}>"


def serialize_argument(arg: Any = None) -> dict[str, Any]:
    """Serialize an evaluate argument into ``{"value", "handles"}``.

    Raises:
        ValidationError: If the argument contains an unsupported type.
    """
    handles: list[JSHandle] = []
    value = serialize_value(arg, handles, {})
    return {"value": value, "handles": handles}


def serialize_value(value: Any, handles: list[JSHandle], visited: dict[int, int]) -> dict[str, Any]:
    if isinstance(value, JSHandle):
        handles.append(value)
        return {"h": len(handles) - 1}
    if value is None:
        return {"v": "null"}
    if isinstance(value, bool):
        return {"b": value}
    if isinstance(value, float):
        if math.isnan(value):
            return {"v": "NaN"}
        if math.isinf(value):
            return {"v": "Infinity" if value > 0 else "-Infinity"}
        if value == 0 and math.copysign(1.0, value) < 0:
            return {"v": "-0"}
        return {"n": value}
    if isinstance(value, int):
        return {"n": value}
    if isinstance(value, str):
        return {"s": value}
    if isinstance(value, datetime.datetime):
        return {"d": value.isoformat()}
    if isinstance(value, re.Pattern):
        return {"r": {"p": value.pattern, "f": _regex_flags(value)}}
    if isinstance(value, ParseResult):
        return {"u": value.geturl()}
    if isinstance(value, Exception):
        return {"e": {"m": str(value), "n": type(value).__name__, "s": ""}}

    if id(value) in visited:
        return {"ref": visited[id(value)]}
    if isinstance(value, list | tuple):
        ref = len(visited) + 1
        visited[id(value)] = ref
        return {"a": [serialize_value(item, handles, visited) for item in value], "id": ref}
    if isinstance(value, dict):
        ref = len(visited) + 1
        visited[id(value)] = ref
        entries = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"Object keys must be strings, got {type(key).__name__}")
            entries.append({"k": key, "v": serialize_value(item, handles, visited)})
        return {"o": entries, "id": ref}
    raise ValidationError(f"Unsupported evaluate argument type: {type(value).__name__}")


def parse_result(value: Any) -> Any:
    """Deserialize an evaluate result."""
    return parse_value(value, {})


def parse_value(value: Any, refs: dict[int, Any]) -> Any:
    if value is None:
        return None
    if not isinstance(value, dict):
        return value
    if "ref" in value:
        return refs.get(value["ref"])
    if "v" in value:
        special = value["v"]
        if special in ("undefined", "null"):
            return None
        if special in _SPECIAL_NUMBERS:
            return _SPECIAL_NUMBERS[special]
        return None
    if "n" in value:
        return value["n"]
    if "s" in value:
        return value["s"]
    if "b" in value:
        return value["b"]
    if "d" in value:
        return datetime.datetime.fromisoformat(value["d"].replace("Z", "+00:00"))
    if "u" in value:
        return urlparse(value["u"])
    if "bi" in value:
        return int(value["bi"])
    if "r" in value:
        return re.compile(value["r"]["p"], _python_flags(value["r"].get("f", "")))
    if "e" in value:
        error = value["e"]
        return {"name": error.get("n"), "message": error.get("m"), "stack": error.get("s")}
    if "a" in value:
        items: list[Any] = []
        if "id" in value:
            refs[value["id"]] = items
        items.extend(parse_value(item, refs) for item in value["a"])
        return items
    if "o" in value:
        obj: dict[str, Any] = {}
        if "id" in value:
            refs[value["id"]] = obj
        for entry in value["o"]:
            obj[entry["k"]] = parse_value(entry["v"], refs)
        return obj
    if "ta" in value:
        return base64.b64decode(value["ta"]["b"])
    return None


def _regex_flags(pattern: re.Pattern) -> str:
    flags = ""
    if pattern.flags & re.IGNORECASE:
        flags += "i"
    if pattern.flags & re.MULTILINE:
        flags += "m"
    if pattern.flags & re.DOTALL:
        flags += "s"
    return flags


def _python_flags(flags: str) -> int:
    result = 0
    if "i" in flags:
        result |= re.IGNORECASE
    if "m" in flags:
        result |= re.MULTILINE
    if "s" in flags:
        result |= re.DOTALL
    return result
