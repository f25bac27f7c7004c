"""Blocking facade over the asyncio API.

One event loop runs in a dedicated daemon thread and owns the connection.
Every blocking call submits a coroutine to that loop and waits on its own
future, so any number of caller threads can share one connection. Event
listeners run on the loop thread and must not call back into blocking
methods.

Example:
    >>> from playwire.sync_api import sync_playwright
    >>> with sync_playwright() as p:
    ...     browser = p.chromium.launch()
    ...     page = browser.new_page()
    ...     page.goto("https://example.com")
    ...     print(page.title())
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import threading
from collections.abc import Callable, Coroutine, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from playwire.async_api import PlaywrightContextManager, TransportFactory
from playwire.channel_owner import ChannelOwner
from playwire.console_message import ConsoleMessage
from playwire.locator import Locator
from playwire.logging import get_logger, suppress_asyncio_noise
from playwire.selectors import Selectors
from playwire.waiter import EventContextManager, EventInfo

if TYPE_CHECKING:
    from types import TracebackType

    from playwire.config import PlaywireSettings

LOG = get_logger(__name__)

T = TypeVar("T")

_WRAPPED_TYPES = (ChannelOwner, Locator, ConsoleMessage, Selectors)


class _LoopThread(threading.Thread):
    """Daemon thread running the event loop that owns the connection."""

    def __init__(self) -> None:
        super().__init__(name="playwire-loop", daemon=True)
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()

    def run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        self.loop.run_forever()

    def start(self) -> None:
        super().start()
        self._ready.wait()

    def call(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the loop and block until it finishes."""
        if threading.current_thread() is self:
            coro.close()
            raise RuntimeError("Blocking playwire calls cannot be made from an event listener")
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def stop(self) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.join()
        with suppress_asyncio_noise():
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()
            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self.loop.run_until_complete(self.loop.shutdown_asyncgens())
            self.loop.close()


class SyncProxy:
    """Blocking view of an async proxy.

    Coroutine methods block until done, plain methods run on the loop
    thread, and returned proxies are wrapped in turn.
    """

    def __init__(self, target: Any, loop_thread: _LoopThread) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_loop_thread", loop_thread)

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._target, name)
        if not callable(attr) or isinstance(attr, type):
            return _wrap(attr, self._loop_thread)
        if inspect.iscoroutinefunction(attr):
            return self._blocking(attr)
        return self._on_loop(attr)

    def _blocking(self, method: Callable[..., Coroutine[Any, Any, Any]]) -> Callable[..., Any]:
        @functools.wraps(method)
        def call(*args: Any, **kwargs: Any) -> Any:
            args, kwargs = _unwrap(args), _unwrap(kwargs)
            args = tuple(_sync_callback(arg, self._loop_thread) for arg in args)
            kwargs = {key: _sync_callback(arg, self._loop_thread) for key, arg in kwargs.items()}
            return _wrap(self._loop_thread.call(method(*args, **kwargs)), self._loop_thread)

        return call

    def _on_loop(self, method: Callable[..., Any]) -> Callable[..., Any]:
        loop_thread = self._loop_thread

        @functools.wraps(method)
        def call(*args: Any, **kwargs: Any) -> Any:
            args, kwargs = _unwrap(args), _unwrap(kwargs)
            args = tuple(_sync_callback(arg, loop_thread) for arg in args)
            kwargs = {key: _sync_callback(arg, loop_thread) for key, arg in kwargs.items()}

            async def invoke() -> Any:
                return method(*args, **kwargs)

            result = loop_thread.call(invoke())
            if callable(result) and not isinstance(result, _WRAPPED_TYPES):
                # Unsubscribe callables returned by on() and once().
                return lambda: loop_thread.loop.call_soon_threadsafe(result)
            return _wrap(result, loop_thread)

        return call

    def __getitem__(self, key: Any) -> Any:
        return _wrap(self._target[key], self._loop_thread)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SyncProxy):
            return self._target is other._target
        return self._target is other

    def __hash__(self) -> int:
        return hash(id(self._target))

    def __repr__(self) -> str:
        return f"<Sync {self._target!r}>"


class SyncEventInfo:
    """Blocking view of an ``EventInfo``."""

    def __init__(self, info: EventInfo, loop_thread: _LoopThread) -> None:
        self._info = info
        self._loop_thread = loop_thread

    @property
    def value(self) -> Any:
        async def resolve() -> Any:
            return await self._info.value

        return _wrap(self._loop_thread.call(resolve()), self._loop_thread)

    def is_done(self) -> bool:
        return self._info.is_done()


class SyncEventContextManager:
    """Blocking ``with`` form of ``expect_event``."""

    def __init__(self, manager: EventContextManager, loop_thread: _LoopThread) -> None:
        self._manager = manager
        self._loop_thread = loop_thread

    def __enter__(self) -> SyncEventInfo:
        return SyncEventInfo(self._loop_thread.call(self._manager.__aenter__()), self._loop_thread)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._loop_thread.call(self._manager.__aexit__(exc_type, exc_val, exc_tb))


def _wrap(value: Any, loop_thread: _LoopThread) -> Any:
    if isinstance(value, _WRAPPED_TYPES):
        return SyncProxy(value, loop_thread)
    if isinstance(value, EventContextManager):
        return SyncEventContextManager(value, loop_thread)
    if isinstance(value, list):
        return [_wrap(item, loop_thread) for item in value]
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, SyncProxy):
        return value._target
    if isinstance(value, list):
        return [_unwrap(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_unwrap(item) for item in value)
    if isinstance(value, dict):
        return {key: _unwrap(item) for key, item in value.items()}
    return value


def _sync_callback(value: Any, loop_thread: _LoopThread) -> Any:
    if not callable(value) or isinstance(value, (type, SyncProxy)) or inspect.iscoroutinefunction(value):
        return value

    @functools.wraps(value)
    def callback(*args: Any) -> Any:
        return value(*(_wrap(arg, loop_thread) for arg in args))

    return callback


class SyncPlaywrightContextManager:
    """Start the loop thread and the driver on enter; stop both on exit."""

    def __init__(
        self,
        *,
        env: Mapping[str, str | None] | None = None,
        settings: PlaywireSettings | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._async_manager = PlaywrightContextManager(
            env=env, settings=settings, transport_factory=transport_factory
        )
        self._loop_thread: _LoopThread | None = None

    def start(self) -> SyncProxy:
        loop_thread = _LoopThread()
        loop_thread.start()
        self._loop_thread = loop_thread
        try:
            playwright = loop_thread.call(self._async_manager.start())
        except BaseException:
            loop_thread.stop()
            self._loop_thread = None
            raise
        return SyncProxy(playwright, loop_thread)

    def stop(self) -> None:
        if self._loop_thread is None:
            return
        try:
            self._loop_thread.call(self._async_manager.__aexit__(None, None, None))
        finally:
            self._loop_thread.stop()
            self._loop_thread = None

    def __enter__(self) -> SyncProxy:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()


def sync_playwright(
    *,
    env: Mapping[str, str | None] | None = None,
    settings: PlaywireSettings | None = None,
    transport_factory: TransportFactory | None = None,
) -> SyncPlaywrightContextManager:
    """Blocking counterpart of ``async_playwright``."""
    return SyncPlaywrightContextManager(env=env, settings=settings, transport_factory=transport_factory)
