"""Base class for local proxies of remote protocol objects.

Every object the driver creates (Browser, BrowserContext, Page, Frame,
handles, requests...) is represented by a ChannelOwner subclass chosen by the
object's type tag. A ChannelOwner:

- turns method calls into round-trips through its Connection,
- turns inbound protocol events into local listener callbacks,
- tracks its children for cascading disposal,
- hosts the Waiters that are waiting on its events.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from playwire.config import get_settings
from playwire.exceptions import TargetClosedError
from playwire.logging import get_logger
from playwire.waiter import EventContextManager, Waiter

if TYPE_CHECKING:
    from playwire.connection import Connection
    from playwire.timeout_settings import TimeoutSettings

LOG = get_logger(__name__)

Listener = Callable[..., Any]


class ChannelOwner:
    """Local proxy of one remote object.

    Attributes:
        guid: Driver-assigned identifier, unique for the connection's lifetime.
        type: Protocol type tag, e.g. ``"Page"``.
    """

    def __init__(
        self,
        parent: ChannelOwner | Connection,
        type_: str,
        guid: str,
        initializer: dict[str, Any],
    ) -> None:
        if isinstance(parent, ChannelOwner):
            self._connection: Connection = parent._connection
            self._parent: ChannelOwner | None = parent
        else:
            self._connection = parent
            self._parent = None
        self._type = type_
        self._guid = guid
        self._initializer = initializer
        self._objects: dict[str, ChannelOwner] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._waiters: set[Waiter] = set()
        self._event_handlers: dict[str, Callable[[dict[str, Any]], None]] = {}
        self._timeout_settings: TimeoutSettings | None = None
        self._disposed = False

    @property
    def guid(self) -> str:
        return self._guid

    @property
    def type(self) -> str:
        return self._type

    @property
    def parent(self) -> ChannelOwner | None:
        return self._parent

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # -- events -------------------------------------------------------------

    def on(self, event: str, callback: Listener) -> Callable[[], None]:
        """Subscribe to an event.

        Callbacks may be plain functions or coroutine functions; coroutines
        are scheduled as tasks on the running loop.

        Returns:
            A callable that removes this subscription.
        """
        self._listeners.setdefault(event, []).append(callback)
        return lambda: self.remove_listener(event, callback)

    def once(self, event: str, callback: Listener) -> Callable[[], None]:
        """Subscribe to the next occurrence of an event only."""

        def _once(*args: Any) -> Any:
            self.remove_listener(event, _once)
            return callback(*args)

        _once.__wrapped__ = callback  # type: ignore[attr-defined]
        return self.on(event, _once)

    def remove_listener(self, event: str, callback: Listener) -> None:
        """Remove a subscription. Unknown callbacks are ignored."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        target = inspect.unwrap(callback)
        for index, listener in enumerate(listeners):
            if inspect.unwrap(listener) == target:
                del listeners[index]
                break
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                result = listener(*args)
            except Exception as exc:
                LOG.error("listener_failed", event_name=event, guid=self._guid, error=str(exc))
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(_log_listener_task_error)

    def _on_event(self, method: str, params: dict[str, Any]) -> None:
        """Route an inbound protocol event.

        Events without a registered handler are re-emitted under their
        protocol name with the raw params.
        """
        handler = self._event_handlers.get(method)
        if handler is None:
            self._emit(method, params)
            return
        handler(params)

    # -- calls --------------------------------------------------------------

    async def _send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Call a method on the remote object.

        None-valued params are dropped before sending.

        Args:
            method: Protocol method name.
            params: Method parameters.
            timeout: Optional client-side deadline in milliseconds.

        Returns:
            The reply's result object (empty dict when there is none).

        Raises:
            TargetClosedError: If this object has already been disposed.
        """
        if self._disposed:
            raise TargetClosedError(f"{self._type} has been disposed; cannot call {method}")
        filtered = {k: v for k, v in (params or {}).items() if v is not None}
        result = await self._connection.send_message_to_server(
            self._guid, method, filtered, timeout=timeout
        )
        return result if isinstance(result, dict) else {}

    # -- waiting ------------------------------------------------------------

    def _wait_timeout(self, timeout: float | None) -> float:
        """Resolve a timeout against the nearest ancestor with timeout settings."""
        owner: ChannelOwner | None = self
        while owner is not None:
            if owner._timeout_settings is not None:
                return owner._timeout_settings.timeout(timeout)
            owner = owner._parent
        if timeout is not None:
            return timeout
        return get_settings().default_timeout_ms

    def _waiter_reject_on(self, event: str) -> list[tuple[ChannelOwner, str]]:
        """Events on which a waiter for ``event`` should fail instead of hanging."""
        return []

    def expect_event(
        self,
        event: str,
        predicate: Callable[[Any], bool] | None = None,
        timeout: float | None = None,
    ) -> EventContextManager:
        """Wait for an event triggered by the body of an ``async with`` block.

        Example:
            >>> async with context.expect_event("page") as page_info:
            ...     await page.click("a[target=_blank]")
            >>> popup = await page_info.value
        """
        return EventContextManager(
            self,
            event,
            predicate=predicate,
            timeout=self._wait_timeout(timeout),
            reject_on=self._waiter_reject_on(event),
        )

    async def wait_for_event(
        self,
        event: str,
        predicate: Callable[[Any], bool] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for the first ``event`` accepted by ``predicate``.

        Raises:
            TimeoutError: If no matching event arrives within ``timeout`` ms.
            TargetClosedError: If this object is disposed (or closes) first.
        """
        waiter = Waiter(
            self,
            event,
            predicate=predicate,
            timeout=self._wait_timeout(timeout),
            reject_on=self._waiter_reject_on(event),
        )
        return await waiter.result()

    # -- lifecycle ----------------------------------------------------------

    def _on_dispose(self, reason: str | None) -> None:
        """Subclass hook run while this object is being disposed."""

    def _did_dispose(self, reason: str | None) -> None:
        self._disposed = True
        self._on_dispose(reason)
        for waiter in list(self._waiters):
            waiter.reject(
                TargetClosedError(
                    f"{self._type} was disposed while waiting for event {waiter.event!r}"
                    + (f": {reason}" if reason else "")
                )
            )
        self._waiters.clear()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} type={self._type} guid={self._guid}>"


def _log_listener_task_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOG.error("listener_failed", error=str(exc))
