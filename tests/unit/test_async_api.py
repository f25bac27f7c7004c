"""Tests for the asyncio entry point."""

import pytest
from fakes import DriverFailure, FakeTransport, FakeWorld

from playwire.async_api import async_playwright
from playwire.config import PlaywireSettings
from playwire.exceptions import ProtocolError, TargetClosedError, TimeoutError, TransportError


class RecordingFactory:
    """Transport factory returning a prepared FakeWorld's transport."""

    def __init__(self, world: FakeWorld | None = None) -> None:
        self.world = world or FakeWorld()
        self.calls: list[tuple] = []

    def __call__(self, settings, env):
        self.calls.append((settings, env))
        return self.world.transport


class BrokenTransport(FakeTransport):
    async def start(self) -> None:
        raise TransportError("spawn failed")


class TestAsyncPlaywright:
    """Tests for async_playwright."""

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self):
        factory = RecordingFactory()

        async with async_playwright(transport_factory=factory) as p:
            assert p.chromium.name == "chromium"
            assert p["webkit"].executable_path == "/opt/webkit"
            assert factory.world.transport.started

        assert factory.world.transport.is_closed
        assert p._connection.is_closed

    @pytest.mark.asyncio
    async def test_settings_and_env_reach_factory(self):
        factory = RecordingFactory()
        settings = PlaywireSettings(default_timeout_ms=100)

        async with async_playwright(env={"DEBUG": None}, settings=settings, transport_factory=factory):
            pass

        assert factory.calls == [(settings, {"DEBUG": None})]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        factory = RecordingFactory()

        p = await async_playwright(transport_factory=factory).start()
        await p.stop()

        assert factory.world.transport.is_closed
        with pytest.raises(TargetClosedError):
            await p.chromium.launch()

    @pytest.mark.asyncio
    async def test_transport_start_failure(self):
        transport = BrokenTransport()

        with pytest.raises(TransportError, match="spawn failed"):
            await async_playwright(transport_factory=lambda settings, env: transport).start()

        assert transport.close_count >= 1

    @pytest.mark.asyncio
    async def test_handshake_failure_closes_driver(self):
        world = FakeWorld()

        def refuse(message):
            raise DriverFailure("Unsupported client version")

        world.handle("initialize", refuse)

        with pytest.raises(ProtocolError, match="Unsupported client version"):
            async with async_playwright(transport_factory=RecordingFactory(world)):
                pass

        assert world.transport.is_closed

    @pytest.mark.asyncio
    async def test_handshake_timeout(self):
        world = FakeWorld()
        del world.handlers["initialize"]
        settings = PlaywireSettings(initialize_timeout_ms=20)

        with pytest.raises(TimeoutError, match="initialize"):
            await async_playwright(settings=settings, transport_factory=RecordingFactory(world)).start()

        assert world.transport.is_closed
