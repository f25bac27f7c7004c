"""Protocol dispatcher: one multiplexed session with one driver process.

The Connection owns the transport, allocates message ids, keeps the table
of pending calls, and runs the single reader task that applies inbound
frames strictly in arrival order:

    reply           {"id", "result"} | {"id", "error"}
    create          {"guid": parent, "method": "__create__", "params": {"type", "guid", "initializer"}}
    dispose         {"guid", "method": "__dispose__", "params": {"reason"?}}
    adopt           {"guid": new_parent, "method": "__adopt__", "params": {"guid"}}
    event           {"guid", "method": <event name>, "params"}

The reader task is the only code that mutates the registry or completes
pending calls, so neither needs a lock. Callers only ever await their own
call's future.

Logging:
    - ERROR: fatal connection failures
    - INFO: connection start/close
    - DEBUG: individual frames (when protocol debugging is on), late replies,
      ignored events for disposed objects
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from playwire.channel_owner import ChannelOwner
from playwire.config import PlaywireSettings, get_settings
from playwire.exceptions import (
    PlaywireError,
    ProtocolError,
    TargetClosedError,
    TransportError,
    clone_error,
    error_from_driver,
)
from playwire.exceptions import TimeoutError as CallTimeoutError
from playwire.logging import get_logger, protocol_debug_enabled
from playwire.object_factory import create_remote_object
from playwire.registry import ObjectRegistry

if TYPE_CHECKING:
    from playwire.playwright import Playwright
    from playwire.transport import Transport

LOG = get_logger(__name__)

MAX_DISCARDED_IDS = 1000

ObjectFactory = Callable[[ChannelOwner, str, str, dict[str, Any]], ChannelOwner]

_live_connections: weakref.WeakSet[Connection] = weakref.WeakSet()


def live_connections() -> list[Connection]:
    """Connections that are started and not yet closed, in this process."""
    return list(_live_connections)


@dataclass
class PendingCall:
    """An outstanding request awaiting its reply."""

    id: int
    guid: str
    method: str
    future: asyncio.Future[Any]


class RootChannelOwner(ChannelOwner):
    """The implicit root object (GUID ``""``) that every tree hangs from."""

    def __init__(self, connection: Connection) -> None:
        super().__init__(connection, "Root", "", {})

    async def initialize(self, timeout: float | None = None) -> Playwright:
        result = await self._send("initialize", {"sdkLanguage": "python"}, timeout=timeout)
        playwright = result.get("playwright")
        if playwright is None:
            raise ProtocolError("Driver did not return a Playwright object from initialize")
        return playwright


class Connection:
    """One multiplexed session with a driver process.

    Example:
        >>> connection = Connection(PipeTransport(["playwright", "run-driver"]))
        >>> await connection.start()
        >>> playwright = await connection.initialize()
        >>> browser = await playwright.chromium.launch()
        >>> await connection.close()
    """

    def __init__(
        self,
        transport: Transport,
        *,
        settings: PlaywireSettings | None = None,
        object_factory: ObjectFactory | None = None,
    ) -> None:
        self._transport = transport
        self._settings = settings or get_settings()
        self._object_factory = object_factory or create_remote_object
        self._ids = itertools.count(1)
        self._callbacks: dict[int, PendingCall] = {}
        self._discarded_ids: dict[int, None] = {}
        self._discard_floor = 0
        self._registry = ObjectRegistry(on_disposed=self._on_object_disposed)
        self._root = RootChannelOwner(self)
        self._registry.register(self._root)
        self._reader: asyncio.Task[None] | None = None
        self._transport_close: asyncio.Task[None] | None = None
        self._closed_error: PlaywireError | None = None
        self._object_created_hooks: list[Callable[[ChannelOwner], None]] = []
        self._close_hooks: list[Callable[[PlaywireError], None]] = []
        self._pending_user_data_dirs: set[str] = set()
        self.playwright: Playwright | None = None

    @property
    def registry(self) -> ObjectRegistry:
        return self._registry

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def is_closed(self) -> bool:
        return self._closed_error is not None

    @property
    def closed_error(self) -> PlaywireError | None:
        """The error that closed the connection, if it is closed."""
        return self._closed_error

    @property
    def pending_call_count(self) -> int:
        return len(self._callbacks)

    def _debug(self) -> bool:
        return self._settings.debug_protocol or protocol_debug_enabled()

    # -- hooks --------------------------------------------------------------

    def on_object_created(self, callback: Callable[[ChannelOwner], None]) -> Callable[[], None]:
        """Call ``callback`` for every object registered from now on.

        Returns:
            A callable that removes the hook.
        """
        self._object_created_hooks.append(callback)
        return lambda: _discard(self._object_created_hooks, callback)

    def on_close(self, callback: Callable[[PlaywireError], None]) -> Callable[[], None]:
        """Call ``callback`` with the closing error when the connection closes."""
        self._close_hooks.append(callback)
        return lambda: _discard(self._close_hooks, callback)

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Open the transport and start the reader task.

        Raises:
            TransportError: If the driver cannot be started.
        """
        if self._reader is not None:
            return
        if self._closed_error is not None:
            raise clone_error(self._closed_error)
        try:
            await self._transport.start()
        except PlaywireError as exc:
            self._closed_error = exc
            await self._transport.close()
            raise
        _live_connections.add(self)
        self._reader = asyncio.create_task(self._read_loop(), name="playwire-connection-reader")
        LOG.info("connection_started")

    async def initialize(self) -> Playwright:
        """Perform the handshake and return the Playwright root object.

        The connection is closed (and the driver killed) if the handshake
        fails.
        """
        try:
            playwright = await self._root.initialize(timeout=self._settings.initialize_timeout_ms)
        except BaseException:
            await self.close()
            raise
        self.playwright = playwright
        return playwright

    async def close(self) -> None:
        """Close the connection and terminate the driver.

        Pending calls fail with TargetClosedError. Idempotent.
        """
        if self._closed_error is None:
            self._shutdown(TargetClosedError("Connection closed"))
            LOG.info("connection_closed")
        await self._transport.close()
        if self._transport_close is not None:
            await self._transport_close
        reader = self._reader
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    def _fail(self, error: PlaywireError) -> None:
        """Close the connection permanently after a fatal error."""
        if self._closed_error is not None:
            return
        LOG.error("connection_failed", error=str(error), kind=type(error).__name__)
        self._shutdown(error)
        self._transport_close = asyncio.ensure_future(self._transport.close())

    def _shutdown(self, error: PlaywireError) -> None:
        self._closed_error = error
        _live_connections.discard(self)
        callbacks, self._callbacks = self._callbacks, {}
        for call in callbacks.values():
            self._discard_id(call.id)
            if not call.future.done():
                call.future.set_exception(clone_error(error))
        self._registry.dispose(self._root.guid, reason=str(error))
        for hook in list(self._close_hooks):
            try:
                hook(error)
            except Exception as exc:
                LOG.error("close_hook_failed", error=str(exc))

    # -- outbound -----------------------------------------------------------

    async def send_message_to_server(
        self,
        guid: str,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send a call and wait for its reply.

        Args:
            guid: Target object.
            method: Protocol method.
            params: Method parameters; proxies are sent as ``{"guid": ...}``.
            timeout: Optional client-side deadline in milliseconds. On expiry
                the call is dropped locally and its late reply is discarded.

        Raises:
            TimeoutError: The client-side deadline passed.
            TargetClosedError: The target was disposed, or the connection was
                closed, before the reply.
            TransportError, ProtocolError: The connection failed.
        """
        if self._closed_error is not None:
            raise clone_error(self._closed_error)
        loop = asyncio.get_running_loop()
        call_id = next(self._ids)
        future: asyncio.Future[Any] = loop.create_future()
        self._callbacks[call_id] = PendingCall(call_id, guid, method, future)
        message = {
            "id": call_id,
            "guid": guid,
            "method": method,
            "params": _replace_channels_with_guids(params or {}),
            "metadata": {"wallTime": int(time.time() * 1000)},
        }
        if self._debug():
            LOG.debug("frame_sent", id=call_id, guid=guid, method=method, params=message["params"])
        try:
            await self._transport.send(message)
        except TransportError as exc:
            self._fail(exc)
        try:
            if not timeout:
                return await future
            return await asyncio.wait_for(asyncio.shield(future), timeout / 1000)
        except asyncio.TimeoutError:
            raise CallTimeoutError(
                f"Timeout {timeout:.0f}ms exceeded while calling {method}"
            ) from None
        finally:
            if self._callbacks.pop(call_id, None) is not None:
                self._discard_id(call_id)

    # -- inbound ------------------------------------------------------------

    async def _read_loop(self) -> None:
        try:
            while True:
                message = await self._transport.receive()
                if message is None:
                    if self._closed_error is None:
                        raise TransportError("Driver process closed the pipe")
                    return
                self.dispatch(message)
        except PlaywireError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(ProtocolError(f"Failed to process frame: {exc!r}"))

    def dispatch(self, message: dict[str, Any]) -> None:
        """Apply one inbound frame.

        Raises:
            ProtocolError: For malformed frames, unknown reply ids, or
                references to objects that never existed.
        """
        if self._closed_error is not None:
            return
        if self._debug():
            LOG.debug(
                "frame_received",
                id=message.get("id"),
                guid=message.get("guid"),
                method=message.get("method"),
                params=message.get("params", message.get("result")),
            )
        if "id" in message:
            self._dispatch_reply(message)
            return

        guid = message.get("guid")
        method = message.get("method")
        params = message.get("params") or {}
        if not isinstance(guid, str) or not isinstance(method, str) or not isinstance(params, dict):
            raise ProtocolError(f"Malformed frame: {_abbreviate(message)}")

        if method == "__create__":
            self._dispatch_create(guid, params)
            return
        if method == "__dispose__":
            self._registry.dispose(guid, reason=params.get("reason"))
            return
        if method == "__adopt__":
            self._dispatch_adopt(guid, params)
            return

        obj = self._registry.lookup(guid)
        if obj is None:
            if self._registry.was_disposed(guid):
                LOG.debug("event_for_disposed_object", guid=guid, method=method)
                return
            raise ProtocolError(f"Event {method!r} for unknown object {guid!r}")
        obj._on_event(method, self._replace_guids_with_channels(params))

    def _dispatch_reply(self, message: dict[str, Any]) -> None:
        call_id = message["id"]
        if not isinstance(call_id, int) or isinstance(call_id, bool):
            raise ProtocolError(f"Malformed reply id: {call_id!r}")
        call = self._callbacks.pop(call_id, None)
        if call is None:
            if call_id in self._discarded_ids or call_id <= self._discard_floor:
                self._discarded_ids.pop(call_id, None)
                LOG.debug("late_reply_discarded", id=call_id)
                return
            raise ProtocolError(f"Reply for unknown call id {call_id}")
        error = message.get("error")
        if error is not None:
            payload = error.get("error", error) if isinstance(error, dict) else None
            if not isinstance(payload, dict):
                malformed = ProtocolError(f"Malformed error reply: {_abbreviate(message)}")
                if not call.future.done():
                    call.future.set_exception(clone_error(malformed))
                raise malformed
            if not call.future.done():
                call.future.set_exception(error_from_driver(payload))
            return
        try:
            result = self._replace_guids_with_channels(message.get("result") or {})
        except ProtocolError as exc:
            if not call.future.done():
                call.future.set_exception(clone_error(exc))
            raise
        if not call.future.done():
            call.future.set_result(result)

    def _dispatch_create(self, parent_guid: str, params: dict[str, Any]) -> None:
        parent = self._registry.lookup(parent_guid)
        if parent is None:
            raise ProtocolError(f"Cannot create object under unknown parent {parent_guid!r}")
        type_ = params.get("type")
        guid = params.get("guid")
        initializer = params.get("initializer") or {}
        if not isinstance(type_, str) or not isinstance(guid, str) or not isinstance(initializer, dict):
            raise ProtocolError(f"Malformed __create__ params: {_abbreviate(params)}")
        if guid in self._registry or self._registry.was_disposed(guid):
            raise ProtocolError(f"Duplicate object guid: {guid!r}")
        initializer = self._replace_guids_with_channels(initializer)
        try:
            obj = self._object_factory(parent, type_, guid, initializer)
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProtocolError(f"Invalid initializer for {type_} {guid!r}: {exc!r}") from exc
        self._registry.register(obj)
        for hook in list(self._object_created_hooks):
            try:
                hook(obj)
            except Exception as exc:
                LOG.error("object_created_hook_failed", guid=guid, error=str(exc))

    def _dispatch_adopt(self, parent_guid: str, params: dict[str, Any]) -> None:
        parent = self._registry.lookup(parent_guid)
        child = self._registry.lookup(params.get("guid", ""))
        if parent is None or child is None:
            raise ProtocolError(f"Cannot adopt {params.get('guid')!r} into {parent_guid!r}")
        self._registry.adopt(parent, child)

    def _discard_id(self, call_id: int) -> None:
        """Remember a dropped call so its late reply is ignored.

        Only the newest MAX_DISCARDED_IDS ids are kept. Older ones fold into
        ``_discard_floor``; any unknown reply at or below it is ignored too.
        """
        self._discarded_ids[call_id] = None
        while len(self._discarded_ids) > MAX_DISCARDED_IDS:
            oldest = next(iter(self._discarded_ids))
            del self._discarded_ids[oldest]
            self._discard_floor = max(self._discard_floor, oldest)

    def _on_object_disposed(self, obj: ChannelOwner, reason: str | None) -> None:
        for call_id, call in list(self._callbacks.items()):
            if call.guid != obj.guid:
                continue
            del self._callbacks[call_id]
            self._discard_id(call_id)
            if not call.future.done():
                call.future.set_exception(
                    TargetClosedError(f"Target closed while calling {call.method}")
                )
        obj._did_dispose(reason)

    def _replace_guids_with_channels(self, payload: Any) -> Any:
        if isinstance(payload, list):
            return [self._replace_guids_with_channels(item) for item in payload]
        if isinstance(payload, dict):
            guid = payload.get("guid")
            if len(payload) == 1 and isinstance(guid, str):
                obj = self._registry.lookup(guid)
                if obj is not None:
                    return obj
                if self._registry.was_disposed(guid):
                    return None
                raise ProtocolError(f"Reference to unknown object {guid!r}")
            return {key: self._replace_guids_with_channels(value) for key, value in payload.items()}
        return payload

    def __repr__(self) -> str:
        status = "closed" if self.is_closed else "open"
        return f"<Connection {status} objects={len(self._registry)} pending={len(self._callbacks)}>"


def _replace_channels_with_guids(payload: Any) -> Any:
    if isinstance(payload, ChannelOwner):
        return {"guid": payload.guid}
    if isinstance(payload, list | tuple):
        return [_replace_channels_with_guids(item) for item in payload]
    if isinstance(payload, dict):
        return {key: _replace_channels_with_guids(value) for key, value in payload.items()}
    return payload


def _discard(items: list[Any], item: Any) -> None:
    with contextlib.suppress(ValueError):
        items.remove(item)


def _abbreviate(payload: Any, limit: int = 200) -> str:
    text = repr(payload)
    return text if len(text) <= limit else text[:limit] + "..."
