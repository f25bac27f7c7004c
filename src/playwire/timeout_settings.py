"""Default timeout hierarchy: page → context → global settings."""

from __future__ import annotations

from playwire.config import get_settings


class TimeoutSettings:
    """Resolve effective timeouts in milliseconds.

    An explicit timeout always wins. Otherwise the object's own default is
    used, then its parent's, then the global settings.
    """

    def __init__(self, parent: TimeoutSettings | None = None) -> None:
        self._parent = parent
        self._default_timeout: float | None = None
        self._default_navigation_timeout: float | None = None

    def set_default_timeout(self, timeout: float | None) -> None:
        self._default_timeout = timeout

    def set_default_navigation_timeout(self, timeout: float | None) -> None:
        self._default_navigation_timeout = timeout

    def timeout(self, timeout: float | None = None) -> float:
        if timeout is not None:
            return timeout
        if self._default_timeout is not None:
            return self._default_timeout
        if self._parent is not None:
            return self._parent.timeout()
        return get_settings().default_timeout_ms

    def navigation_timeout(self, timeout: float | None = None) -> float:
        if timeout is not None:
            return timeout
        if self._default_navigation_timeout is not None:
            return self._default_navigation_timeout
        if self._default_timeout is not None:
            return self._default_timeout
        if self._parent is not None:
            return self._parent.navigation_timeout()
        return get_settings().default_navigation_timeout_ms
