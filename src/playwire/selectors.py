"""Custom selector engine registry.

Custom engines are injected into a context's execution environments when
the context is created, so they must be registered before the connection
creates its first BrowserContext. Each connection has its own registry;
registering on one connection never affects another.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.exceptions import ValidationError
from playwire.logging import get_logger

if TYPE_CHECKING:
    from playwire.connection import Connection

LOG = get_logger(__name__)

BUILTIN_ENGINES = frozenset(
    {
        "css",
        "css:light",
        "xpath",
        "xpath:light",
        "text",
        "text:light",
        "id",
        "id:light",
        "data-testid",
        "data-testid:light",
        "data-test-id",
        "data-test-id:light",
        "data-test",
        "data-test:light",
        "nth",
        "visible",
        "role",
        "has",
        "has-not",
        "has-text",
        "left-of",
        "right-of",
        "above",
        "below",
        "near",
        "control",
    }
)

DEFAULT_TEST_ID_ATTRIBUTE = "data-testid"

_ENGINE_NAME = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass(frozen=True)
class SelectorEngine:
    """A registered engine. ``source`` evaluates to the engine object."""

    name: str
    source: str
    content_script: bool = False


class SelectorsOwner(ChannelOwner):
    """Driver-side Selectors object that receives registrations."""


class Selectors:
    """Per-connection registry of custom selector engines.

    Example:
        >>> await playwright.selectors.register(
        ...     "tag",
        ...     "({ query: (root, s) => root.querySelector(s),"
        ...     " queryAll: (root, s) => Array.from(root.querySelectorAll(s)) })",
        ... )
        >>> page = await browser.new_page()
        >>> await page.inner_html("tag=div")
    """

    def __init__(self, connection: Connection, channel: SelectorsOwner | None = None) -> None:
        self._connection = connection
        self._channel = channel
        self._engines: dict[str, SelectorEngine] = {}
        self._context_created = False
        self._test_id_attribute: str | None = None
        connection.on_object_created(self._on_object_created)

    def _on_object_created(self, obj: ChannelOwner) -> None:
        if obj.type == "BrowserContext" and not self._context_created:
            self._context_created = True
            LOG.debug("selectors_frozen", engines=sorted(self._engines))

    @property
    def engines(self) -> list[SelectorEngine]:
        return list(self._engines.values())

    async def register(
        self,
        name: str,
        script: str | None = None,
        *,
        path: str | Path | None = None,
        content_script: bool = False,
    ) -> None:
        """Register a custom engine, usable as ``name=body`` in selectors.

        Args:
            name: Engine name, letters, digits, ``-`` and ``_`` only.
            script: Script evaluating to ``{query(root, selector),
                queryAll(root, selector)}``.
            path: File to read the script from, instead of ``script``.
            content_script: Run the engine in an isolated world.

        Raises:
            ValidationError: If a context already exists on this connection,
                the name is invalid, built in or taken, or not exactly one of
                ``script``/``path`` is given.
        """
        if self._context_created:
            raise ValidationError(
                "Selector engines must be registered before any browser context is created"
            )
        if not _ENGINE_NAME.match(name):
            raise ValidationError(
                f"Selector engine name may only contain [a-zA-Z0-9_-] characters: {name!r}"
            )
        if name in BUILTIN_ENGINES or name.startswith("internal:"):
            raise ValidationError(f'"{name}" is a predefined selector engine')
        if name in self._engines:
            raise ValidationError(f'"{name}" selector engine has been already registered')
        if (script is None) == (path is None):
            raise ValidationError("Either script or path must be provided")
        source = script if script is not None else Path(path).read_text(encoding="utf-8")

        engine = SelectorEngine(name=name, source=source, content_script=content_script)
        if self._channel is not None:
            await self._channel._send(
                "register",
                {"name": name, "source": source, "contentScript": content_script},
            )
        self._engines[name] = engine
        LOG.info("selector_engine_registered", engine=name, content_script=content_script)

    async def set_test_id_attribute(self, attribute_name: str) -> None:
        """Attribute used by ``get_by_test_id`` (``data-testid`` by default)."""
        self._test_id_attribute = attribute_name
        if self._channel is not None:
            await self._channel._send("setTestIdAttributeName", {"testIdAttributeName": attribute_name})

    @property
    def test_id_attribute(self) -> str:
        return self._test_id_attribute or DEFAULT_TEST_ID_ATTRIBUTE

    def context_params(self) -> dict[str, Any]:
        """Params that carry the registry into ``newContext``-style calls.

        Drivers that expose a Selectors object receive registrations through
        it and get nothing here. Drivers without one take the engines and
        the test id attribute with each new context.
        """
        if self._channel is not None:
            return {}
        params: dict[str, Any] = {}
        if self._engines:
            params["selectorEngines"] = [
                {"name": engine.name, "source": engine.source, "contentScript": engine.content_script}
                for engine in self._engines.values()
            ]
        if self._test_id_attribute is not None:
            params["testIdAttributeName"] = self._test_id_attribute
        return params


def context_selector_params(connection: Connection) -> dict[str, Any]:
    playwright = connection.playwright
    return playwright.selectors.context_params() if playwright is not None else {}


def build_test_id_selector(connection: Connection, test_id: str) -> str:
    """Exact-match selector for elements whose test id attribute is ``test_id``."""
    playwright = connection.playwright
    attribute = playwright.selectors.test_id_attribute if playwright is not None else DEFAULT_TEST_ID_ATTRIBUTE
    escaped = test_id.replace("\\", "\\\\").replace('"', '\\"')
    return f'internal:testid=[{attribute}="{escaped}"s]'
