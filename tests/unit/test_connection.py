"""Tests for the protocol dispatcher."""

import asyncio

import pytest
from fakes import DriverFailure, FakeDriver, FakeTransport, FakeWorld, connect, settle, start_playwright

from playwire.browser_type import BrowserType
from playwire.channel_owner import ChannelOwner
from playwire.connection import Connection, live_connections
from playwire.exceptions import (
    ProtocolError,
    TargetClosedError,
    TimeoutError,
    TransportError,
)
from playwire.playwright import Playwright


async def wait_closed(connection: Connection) -> None:
    for _ in range(100):
        if connection.is_closed:
            return
        await asyncio.sleep(0)
    raise AssertionError("connection did not close")


class TestHandshake:
    """Tests for start() and initialize()."""

    @pytest.mark.asyncio
    async def test_initialize_sends_sdk_language_to_root(self):
        """The handshake is an initialize call on the root object."""
        connection, world, playwright = await start_playwright()

        first = world.transport.sent[0]
        assert first["id"] == 1
        assert first["guid"] == ""
        assert first["method"] == "initialize"
        assert first["params"] == {"sdkLanguage": "python"}
        assert isinstance(first["metadata"]["wallTime"], int)
        await connection.close()

    @pytest.mark.asyncio
    async def test_initialize_returns_playwright_with_browser_types(self):
        connection, _, playwright = await start_playwright()

        assert isinstance(playwright, Playwright)
        assert connection.playwright is playwright
        assert isinstance(playwright.chromium, BrowserType)
        assert playwright.chromium.name == "chromium"
        assert playwright["webkit"] is playwright.webkit
        assert playwright.devices["Pixel 5"]["viewport"] == {"width": 393, "height": 851}
        await connection.close()

    @pytest.mark.asyncio
    async def test_failed_handshake_closes_connection(self):
        """A handshake error tears the driver down before propagating."""
        driver = FakeDriver()

        def refuse(message):
            raise DriverFailure("unsupported client")

        driver.handle("initialize", refuse)
        connection, _ = await connect(driver)

        with pytest.raises(ProtocolError, match="unsupported client"):
            await connection.initialize()

        assert connection.is_closed
        assert driver.transport.close_count >= 1

    @pytest.mark.asyncio
    async def test_start_registers_live_connection(self):
        connection, _ = await connect(FakeDriver())
        assert connection in live_connections()

        await connection.close()
        assert connection not in live_connections()

    @pytest.mark.asyncio
    async def test_start_failure_marks_connection_closed(self):
        transport = FakeTransport()

        async def broken_start():
            raise TransportError("spawn failed")

        transport.start = broken_start
        connection = Connection(transport)

        with pytest.raises(TransportError, match="spawn failed"):
            await connection.start()
        assert connection.is_closed
        assert transport.is_closed


class TestCalls:
    """Tests for request/reply correlation."""

    @pytest.mark.asyncio
    async def test_replies_matched_by_id_in_any_order(self):
        """Concurrent calls resolve with their own replies, however ordered."""
        connection, driver = await connect(FakeDriver())
        first = asyncio.create_task(connection.send_message_to_server("", "first"))
        second = asyncio.create_task(connection.send_message_to_server("", "second"))
        await settle()

        assert [call["id"] for call in driver.calls] == [1, 2]
        driver.reply(2, {"value": "two"})
        driver.reply(1, {"value": "one"})

        assert await first == {"value": "one"}
        assert await second == {"value": "two"}
        assert connection.pending_call_count == 0
        await connection.close()

    @pytest.mark.asyncio
    async def test_ids_are_strictly_increasing(self):
        connection, driver = await connect(FakeDriver())
        driver.handle("ping", lambda message: {})

        for _ in range(3):
            await connection.send_message_to_server("", "ping")

        assert [call["id"] for call in driver.calls] == [1, 2, 3]
        await connection.close()

    @pytest.mark.asyncio
    async def test_error_reply_fails_only_that_call(self):
        connection, driver = await connect(FakeDriver())

        def boom(message):
            raise DriverFailure("element is not attached", name="Error")

        driver.handle("click", boom)
        driver.handle("ping", lambda message: {"pong": True})

        with pytest.raises(ProtocolError, match="element is not attached"):
            await connection.send_message_to_server("", "click")

        assert not connection.is_closed
        assert await connection.send_message_to_server("", "ping") == {"pong": True}
        await connection.close()

    @pytest.mark.asyncio
    async def test_driver_timeout_error_maps_to_timeout_error(self):
        connection, driver = await connect(FakeDriver())

        def slow(message):
            raise DriverFailure("Timeout 10ms exceeded", name="TimeoutError")

        driver.handle("goto", slow)

        with pytest.raises(TimeoutError, match="10ms"):
            await connection.send_message_to_server("", "goto")
        await connection.close()

    @pytest.mark.asyncio
    async def test_client_timeout_discards_late_reply(self):
        """A call that times out locally ignores its reply when it arrives."""
        connection, driver = await connect(FakeDriver())

        with pytest.raises(TimeoutError, match="Timeout 20ms exceeded while calling slow"):
            await connection.send_message_to_server("", "slow", timeout=20)

        driver.reply(1, {"value": "late"})
        await settle()
        assert not connection.is_closed

        driver.handle("ping", lambda message: {"pong": True})
        assert await connection.send_message_to_server("", "ping") == {"pong": True}
        await connection.close()

    @pytest.mark.asyncio
    async def test_cancelled_call_discards_late_reply(self):
        connection, driver = await connect(FakeDriver())
        task = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        driver.reply(1)
        await settle()
        assert not connection.is_closed
        await connection.close()

    @pytest.mark.asyncio
    async def test_discarded_ids_are_bounded(self, monkeypatch):
        """Old discarded ids fold into a floor; their late replies are still ignored."""
        monkeypatch.setattr("playwire.connection.MAX_DISCARDED_IDS", 2)
        connection, driver = await connect(FakeDriver())
        tasks = [asyncio.create_task(connection.send_message_to_server("", "slow")) for _ in range(3)]
        await settle()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        assert list(connection._discarded_ids) == [2, 3]
        assert connection._discard_floor == 1

        for call_id in (1, 2, 3):
            driver.reply(call_id)
        await settle()
        assert not connection.is_closed
        assert connection._discarded_ids == {}

        driver.reply(4)
        await wait_closed(connection)
        assert "unknown call id 4" in str(connection.closed_error)
        await connection.close()

    @pytest.mark.asyncio
    async def test_proxies_in_params_are_sent_as_guids(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        driver.handle("use", lambda message: {})
        await settle()
        thing = connection.registry.lookup(guid)

        await connection.send_message_to_server("", "use", {"target": thing, "list": [thing]})

        assert driver.calls[-1]["params"] == {"target": {"guid": guid}, "list": [{"guid": guid}]}
        await connection.close()

    @pytest.mark.asyncio
    async def test_guids_in_results_become_proxies(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        driver.handle("get", lambda message: {"thing": {"guid": guid}, "nested": [{"guid": guid}]})

        result = await connection.send_message_to_server("", "get")

        thing = connection.registry.lookup(guid)
        assert result["thing"] is thing
        assert result["nested"] == [thing]
        await connection.close()

    @pytest.mark.asyncio
    async def test_disposed_guid_in_result_becomes_none(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        driver.dispose(guid)
        driver.handle("get", lambda message: {"thing": {"guid": guid}})

        result = await connection.send_message_to_server("", "get")

        assert result == {"thing": None}
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_failure_closes_connection(self):
        connection, driver = await connect(FakeDriver())
        driver.transport.fail_sends = True

        with pytest.raises(TransportError):
            await connection.send_message_to_server("", "ping")
        assert connection.is_closed
        await connection.close()


class TestFatalErrors:
    """Tests for frames that close the connection."""

    @pytest.mark.asyncio
    async def test_reply_for_unknown_id_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        driver.reply(99)

        with pytest.raises(ProtocolError, match="unknown call id 99"):
            await pending
        await wait_closed(connection)
        assert isinstance(connection.closed_error, ProtocolError)
        await connection.close()
        assert driver.transport.close_count >= 1

    @pytest.mark.asyncio
    async def test_duplicate_reply_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.handle("ping", lambda message: {})
        await connection.send_message_to_server("", "ping")

        driver.reply(1)
        await wait_closed(connection)

        assert isinstance(connection.closed_error, ProtocolError)
        await connection.close()

    @pytest.mark.asyncio
    async def test_pipe_closed_fails_pending_calls(self):
        connection, driver = await connect(FakeDriver())
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        driver.transport.feed_eof()

        with pytest.raises(TransportError, match="closed the pipe"):
            await pending
        with pytest.raises(TransportError):
            await connection.send_message_to_server("", "ping")
        await connection.close()

    @pytest.mark.asyncio
    async def test_create_under_unknown_parent_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.create("nobody", "Thing")
        await wait_closed(connection)
        assert "unknown parent" in str(connection.closed_error)
        await connection.close()

    @pytest.mark.asyncio
    async def test_duplicate_guid_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.create("", "Thing", guid="thing@1")
        driver.create("", "Thing", guid="thing@1")
        await wait_closed(connection)
        assert "Duplicate object guid" in str(connection.closed_error)
        await connection.close()

    @pytest.mark.asyncio
    async def test_guid_reused_after_dispose_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.create("", "Thing", guid="thing@1")
        driver.dispose("thing@1")
        driver.create("", "Thing", guid="thing@1")
        await wait_closed(connection)
        assert isinstance(connection.closed_error, ProtocolError)
        await connection.close()

    @pytest.mark.asyncio
    async def test_event_for_unknown_object_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.event("ghost@1", "something")
        await wait_closed(connection)
        assert isinstance(connection.closed_error, ProtocolError)
        await connection.close()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_fatal(self):
        connection, driver = await connect(FakeDriver())
        driver.transport.feed({"guid": "", "method": 42})
        await wait_closed(connection)
        assert "Malformed frame" in str(connection.closed_error)
        await connection.close()

    @pytest.mark.asyncio
    async def test_malformed_error_reply_is_fatal(self):
        """An error reply whose payload is not an object rejects the call and closes."""
        connection, driver = await connect(FakeDriver())
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        driver.transport.feed({"id": 1, "error": {"error": "boom"}})

        with pytest.raises(ProtocolError, match="Malformed error reply"):
            await pending
        await wait_closed(connection)
        with pytest.raises(ProtocolError):
            await connection.send_message_to_server("", "ping")
        await connection.close()

    @pytest.mark.asyncio
    async def test_page_without_main_frame_is_fatal(self):
        connection, world, playwright = await start_playwright()
        browser = await playwright.chromium.launch()
        context = await browser.new_context()
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        world.create(context.guid, "Page", {"mainFrame": None})

        with pytest.raises(ProtocolError, match="without a main frame"):
            await pending
        await wait_closed(connection)
        assert context.is_closed()
        await connection.close()

    @pytest.mark.asyncio
    async def test_context_page_event_without_page_is_fatal(self):
        connection, world, playwright = await start_playwright()
        browser = await playwright.chromium.launch()
        context = await browser.new_context()

        world.event(context.guid, "page", {"page": None})

        await wait_closed(connection)
        assert "page event without a page" in str(connection.closed_error)
        await connection.close()

    @pytest.mark.asyncio
    async def test_unexpected_dispatch_error_fails_pending_calls(self):
        """Errors outside the playwire taxonomy still close the connection."""

        def broken_factory(parent, type_, guid, initializer):
            raise ValueError("factory exploded")

        connection, driver = await connect(FakeDriver(), object_factory=broken_factory)
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        driver.create("", "Thing")

        with pytest.raises(ProtocolError, match="factory exploded"):
            await pending
        assert connection.is_closed
        await connection.close()

    @pytest.mark.asyncio
    async def test_close_hooks_receive_error(self):
        connection, driver = await connect(FakeDriver())
        errors = []
        connection.on_close(errors.append)

        driver.transport.feed_eof()
        await wait_closed(connection)

        assert len(errors) == 1
        assert isinstance(errors[0], TransportError)
        await connection.close()


class TestObjectLifecycle:
    """Tests for __create__, __dispose__, __adopt__ and events."""

    @pytest.mark.asyncio
    async def test_create_registers_proxy_under_parent(self):
        connection, driver = await connect(FakeDriver())
        parent = driver.create("", "Thing")
        child = driver.create(parent, "Thing", {"answer": 42})
        await settle()

        parent_obj = connection.registry.lookup(parent)
        child_obj = connection.registry.lookup(child)
        assert child_obj.parent is parent_obj
        assert child_obj._initializer == {"answer": 42}
        await connection.close()

    @pytest.mark.asyncio
    async def test_unknown_type_gets_generic_proxy(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Tracing")
        await settle()

        obj = connection.registry.lookup(guid)
        assert type(obj) is ChannelOwner
        assert obj.type == "Tracing"
        await connection.close()

    @pytest.mark.asyncio
    async def test_object_created_hook(self):
        connection, driver = await connect(FakeDriver())
        created = []
        unsubscribe = connection.on_object_created(lambda obj: created.append(obj.guid))

        first = driver.create("", "Thing")
        await settle()
        unsubscribe()
        driver.create("", "Thing")
        await settle()

        assert created == [first]
        await connection.close()

    @pytest.mark.asyncio
    async def test_dispose_cascades_to_descendants(self):
        connection, driver = await connect(FakeDriver())
        parent = driver.create("", "Thing")
        child = driver.create(parent, "Thing")
        grandchild = driver.create(child, "Thing")
        await settle()
        objects = [connection.registry.lookup(guid) for guid in (parent, child, grandchild)]

        driver.dispose(parent)
        await settle()

        for guid, obj in zip((parent, child, grandchild), objects, strict=True):
            assert connection.registry.lookup(guid) is None
            assert obj.is_disposed
        await connection.close()

    @pytest.mark.asyncio
    async def test_dispose_fails_pending_calls_on_target(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        await settle()

        pending = asyncio.create_task(connection.send_message_to_server(guid, "slow"))
        other = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()
        driver.dispose(guid)

        with pytest.raises(TargetClosedError, match="slow"):
            await pending
        assert not other.done()

        driver.reply(1)
        driver.reply(2, {"ok": True})
        assert await other == {"ok": True}
        assert not connection.is_closed
        await connection.close()

    @pytest.mark.asyncio
    async def test_dispose_of_unknown_guid_is_ignored(self):
        connection, driver = await connect(FakeDriver())
        driver.dispose("never@1")
        await settle()
        assert not connection.is_closed
        await connection.close()

    @pytest.mark.asyncio
    async def test_event_for_disposed_object_is_ignored(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        driver.dispose(guid)
        driver.event(guid, "late")
        await settle()
        assert not connection.is_closed
        await connection.close()

    @pytest.mark.asyncio
    async def test_unhandled_event_is_emitted_with_params(self):
        connection, driver = await connect(FakeDriver())
        guid = driver.create("", "Thing")
        await settle()
        received = []
        connection.registry.lookup(guid).on("custom", received.append)

        driver.event(guid, "custom", {"value": 1})
        await settle()

        assert received == [{"value": 1}]
        await connection.close()

    @pytest.mark.asyncio
    async def test_events_are_applied_in_arrival_order(self):
        """A create followed by an event on the new object is always valid."""
        connection, driver = await connect(FakeDriver())
        received = []
        connection.on_object_created(lambda obj: obj.on("hello", lambda params: received.append(obj.guid)))

        guid = driver.create("", "Thing")
        driver.event(guid, "hello")
        await settle()

        assert received == [guid]
        await connection.close()

    @pytest.mark.asyncio
    async def test_adopt_moves_object(self):
        connection, driver = await connect(FakeDriver())
        first = driver.create("", "Thing")
        second = driver.create("", "Thing")
        child = driver.create(first, "Thing")
        driver.transport.feed({"guid": second, "method": "__adopt__", "params": {"guid": child}})
        await settle()

        child_obj = connection.registry.lookup(child)
        assert child_obj.parent is connection.registry.lookup(second)

        driver.dispose(first)
        await settle()
        assert connection.registry.lookup(child) is child_obj
        await connection.close()


class TestClose:
    """Tests for Connection.close()."""

    @pytest.mark.asyncio
    async def test_close_fails_pending_calls(self):
        connection, driver = await connect(FakeDriver())
        pending = asyncio.create_task(connection.send_message_to_server("", "slow"))
        await settle()

        await connection.close()

        with pytest.raises(TargetClosedError):
            await pending
        assert driver.transport.is_closed

    @pytest.mark.asyncio
    async def test_calls_after_close_fail_fast(self):
        connection, driver = await connect(FakeDriver())
        await connection.close()

        with pytest.raises(TargetClosedError):
            await connection.send_message_to_server("", "ping")
        assert driver.calls == []

    @pytest.mark.asyncio
    async def test_close_disposes_all_objects(self):
        connection, world, playwright = await start_playwright(FakeWorld())
        chromium = playwright.chromium

        await connection.close()

        assert playwright.is_disposed
        assert chromium.is_disposed
        assert len(connection.registry) == 0

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        connection, driver = await connect(FakeDriver())
        await connection.close()
        await connection.close()
        assert connection.is_closed
        assert isinstance(connection.closed_error, TargetClosedError)

    @pytest.mark.asyncio
    async def test_playwright_stop_closes_connection(self):
        connection, world, playwright = await start_playwright()
        await playwright.stop()
        assert connection.is_closed
        assert world.transport.is_closed
