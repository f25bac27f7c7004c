"""Waiting for events on a live event stream.

A Waiter subscribes to one object's events, resolves with the first event
its predicate accepts, and fails on timeout or when its object goes away.
Whatever the outcome, it removes every subscription and timer it created.
Several waiters on the same object are independent: each sees every event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from playwire.exceptions import TargetClosedError
from playwire.exceptions import TimeoutError as WaitTimeoutError
from playwire.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from playwire.channel_owner import ChannelOwner

LOG = get_logger(__name__)


class Waiter:
    """Single-shot subscription to an object's events.

    Args:
        owner: Object whose events are watched.
        event: Event name to wait for.
        predicate: Accepts or rejects each event payload. Defaults to
            accepting the first event. An exception raised by the predicate
            fails the waiter.
        timeout: Milliseconds before failing with TimeoutError. 0 disables it.
        reject_on: ``(emitter, event)`` pairs that fail the waiter with
            TargetClosedError, e.g. the page's ``close`` event.
    """

    def __init__(
        self,
        owner: ChannelOwner,
        event: str,
        *,
        predicate: Callable[[Any], bool] | None = None,
        timeout: float = 0,
        reject_on: Iterable[tuple[ChannelOwner, str]] = (),
    ) -> None:
        self._owner = owner
        self._event = event
        self._predicate = predicate
        self._timeout = timeout
        loop = asyncio.get_running_loop()
        self._future: asyncio.Future[Any] = loop.create_future()
        self._cleanups: list[Callable[[], None]] = []

        if owner.is_disposed:
            self.reject(TargetClosedError(f"{owner.type} is already disposed"))
            return

        self._cleanups.append(owner.on(event, self._on_event))
        for emitter, name in reject_on:
            self._cleanups.append(emitter.on(name, self._rejector(emitter, name)))
        owner._waiters.add(self)
        self._cleanups.append(lambda: owner._waiters.discard(self))
        if timeout:
            handle = loop.call_later(timeout / 1000, self._on_timeout)
            self._cleanups.append(handle.cancel)
        LOG.debug("waiter_started", guid=owner.guid, wait_event=event, timeout=timeout)

    @property
    def event(self) -> str:
        return self._event

    def done(self) -> bool:
        return self._future.done()

    def _on_event(self, *args: Any) -> None:
        if self._future.done():
            return
        value = args[0] if args else None
        if self._predicate is not None:
            try:
                matched = self._predicate(value)
            except Exception as exc:
                self.reject(exc)
                return
            if not matched:
                return
        self._resolve(value)

    def _rejector(self, emitter: ChannelOwner, name: str) -> Callable[..., None]:
        def _reject(*_: Any) -> None:
            self.reject(
                TargetClosedError(
                    f"{emitter.type} emitted {name!r} while waiting for event {self._event!r}"
                )
            )

        return _reject

    def _on_timeout(self) -> None:
        self.reject(
            WaitTimeoutError(
                f"Timeout {self._timeout:.0f}ms exceeded while waiting for event {self._event!r}"
            )
        )

    def _resolve(self, value: Any) -> None:
        if self._future.done():
            return
        self._future.set_result(value)
        self._cleanup()

    def reject(self, error: BaseException) -> None:
        """Fail the waiter. No-op once it has completed."""
        if self._future.done():
            return
        self._future.set_exception(error)
        self._cleanup()

    def cancel(self) -> None:
        """Stop waiting without a result."""
        if not self._future.done():
            self._future.cancel()
        self._cleanup()

    def _cleanup(self) -> None:
        cleanups, self._cleanups = self._cleanups, []
        for cleanup in reversed(cleanups):
            cleanup()

    async def result(self) -> Any:
        """Wait for the outcome.

        Raises:
            TimeoutError: The timeout elapsed first.
            TargetClosedError: The owner was disposed or closed first.
        """
        try:
            return await self._future
        finally:
            self._cleanup()


class EventInfo:
    """Handle to the outcome of an ``expect_event`` block."""

    def __init__(self, waiter: Waiter) -> None:
        self._waiter = waiter

    @property
    async def value(self) -> Any:
        return await self._waiter.result()

    def is_done(self) -> bool:
        return self._waiter.done()


class EventContextManager:
    """Async context manager that starts waiting before its body runs.

    On a clean exit it waits for the event, so a timeout surfaces at the end
    of the ``async with`` block. If the body raises, the wait is cancelled.
    """

    def __init__(
        self,
        owner: ChannelOwner,
        event: str,
        *,
        predicate: Callable[[Any], bool] | None = None,
        timeout: float = 0,
        reject_on: Iterable[tuple[ChannelOwner, str]] = (),
    ) -> None:
        self._owner = owner
        self._event = event
        self._predicate = predicate
        self._timeout = timeout
        self._reject_on = list(reject_on)
        self._info: EventInfo | None = None

    async def __aenter__(self) -> EventInfo:
        waiter = Waiter(
            self._owner,
            self._event,
            predicate=self._predicate,
            timeout=self._timeout,
            reject_on=self._reject_on,
        )
        self._info = EventInfo(waiter)
        return self._info

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._info is None:
            raise RuntimeError("expect_event block exited without being entered")
        if exc_type is not None:
            self._info._waiter.cancel()
            return
        await self._info.value
