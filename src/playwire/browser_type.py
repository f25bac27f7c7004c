"""BrowserType proxy: launching browsers and persistent contexts."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.config import get_settings
from playwire.exceptions import ValidationError
from playwire.logging import get_logger
from playwire.options import LaunchOptions, PersistentContextOptions
from playwire.selectors import context_selector_params

if TYPE_CHECKING:
    from playwire.browser import Browser
    from playwire.browser_context import BrowserContext

LOG = get_logger(__name__)


class BrowserType(ChannelOwner):
    """One browser engine: ``chromium``, ``firefox`` or ``webkit``."""

    @property
    def name(self) -> str:
        return self._initializer["name"]

    @property
    def executable_path(self) -> str:
        return self._initializer.get("executablePath", "")

    async def launch(self, **options: Any) -> Browser:
        """Launch a browser.

        Args:
            **options: See ``playwire.options.LaunchOptions``.

        Raises:
            ValidationError: On invalid or conflicting options (no driver
                round trip is made).
            TimeoutError: If the browser does not start in time.
        """
        params = LaunchOptions.from_kwargs(**options).to_params()
        params.setdefault("timeout", get_settings().launch_timeout_ms)
        LOG.info("browser_launching", browser_type=self.name, headless=params.get("headless"))
        result = await self._send("launch", params)
        browser: Browser = result["browser"]
        browser._browser_type = self
        return browser

    async def launch_persistent_context(self, user_data_dir: str | Path, **options: Any) -> BrowserContext:
        """Launch a browser bound to an on-disk user-data directory.

        The returned context already holds the page the browser opens at
        startup, available through ``context.pages``. The directory is
        exclusive: it cannot be launched again until this context closes.

        Args:
            user_data_dir: Profile directory. Relative paths are resolved
                against the current directory. Created if missing.
            **options: See ``playwire.options.PersistentContextOptions``.

        Raises:
            ValidationError: On invalid options, if ``user_data_dir`` is an
                existing file, or if the directory is already in use.
        """
        directory = Path(user_data_dir).expanduser().resolve()
        if directory.exists() and not directory.is_dir():
            raise ValidationError(f"user_data_dir is not a directory: {directory}")
        params = PersistentContextOptions.from_kwargs(**options).to_params()
        params.update(context_selector_params(self._connection))
        key = str(directory)
        _claim_user_data_dir(key)
        params["userDataDir"] = key
        params.setdefault("timeout", get_settings().launch_timeout_ms)
        LOG.info("persistent_context_launching", browser_type=self.name, user_data_dir=key)
        self._connection._pending_user_data_dirs.add(key)
        try:
            result = await self._send("launchPersistentContext", params)
        finally:
            self._connection._pending_user_data_dirs.discard(key)
        context: BrowserContext = result["context"]
        context._user_data_dir = key
        if context.browser is not None:
            context.browser._browser_type = self
        return context

    def __repr__(self) -> str:
        return f"<BrowserType name={self.name!r}>"


def _claim_user_data_dir(directory: str) -> None:
    from playwire.browser_context import BrowserContext
    from playwire.connection import live_connections

    for connection in live_connections():
        if directory in connection._pending_user_data_dirs:
            raise ValidationError(f"user_data_dir is already being launched: {directory}")
        for obj in connection.registry.objects():
            if isinstance(obj, BrowserContext) and not obj.is_closed() and obj._user_data_dir == directory:
                raise ValidationError(f"user_data_dir is in use by another open context: {directory}")
