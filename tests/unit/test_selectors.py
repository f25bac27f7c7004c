"""Tests for the custom selector engine registry."""

import pytest
from fakes import FakeWorld, start_playwright

from playwire.exceptions import ValidationError
from playwire.selectors import SelectorEngine

TAG_ENGINE = """({
    query(root, selector) { return root.querySelector(selector); },
    queryAll(root, selector) { return Array.from(root.querySelectorAll(selector)); }
})"""


class TestRegister:
    """Tests for Selectors.register."""

    @pytest.mark.asyncio
    async def test_register_sends_engine_to_driver(self):
        connection, world, playwright = await start_playwright()

        await playwright.selectors.register("tag", TAG_ENGINE)

        calls = world.calls_to("register")
        assert len(calls) == 1
        assert calls[0]["guid"] == world.selectors_guid
        assert calls[0]["params"] == {"name": "tag", "source": TAG_ENGINE, "contentScript": False}
        assert playwright.selectors.engines == [SelectorEngine("tag", TAG_ENGINE)]
        await connection.close()

    @pytest.mark.asyncio
    async def test_register_from_path(self, tmp_path):
        connection, world, playwright = await start_playwright()
        script = tmp_path / "engine.js"
        script.write_text(TAG_ENGINE, encoding="utf-8")

        await playwright.selectors.register("tag", path=script, content_script=True)

        params = world.calls_to("register")[0]["params"]
        assert params["source"] == TAG_ENGINE
        assert params["contentScript"] is True
        await connection.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["has space", "dots.not.allowed", "", "internal:thing"])
    async def test_invalid_name_rejected(self, name):
        connection, world, playwright = await start_playwright()

        with pytest.raises(ValidationError, match="may only contain"):
            await playwright.selectors.register(name, TAG_ENGINE)

        assert world.calls_to("register") == []
        await connection.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["css", "xpath", "text", "data-testid", "nth"])
    async def test_builtin_name_rejected(self, name):
        connection, world, playwright = await start_playwright()

        with pytest.raises(ValidationError, match="predefined selector engine"):
            await playwright.selectors.register(name, TAG_ENGINE)
        await connection.close()

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self):
        connection, world, playwright = await start_playwright()
        await playwright.selectors.register("foo", TAG_ENGINE)

        with pytest.raises(ValidationError, match="already registered"):
            await playwright.selectors.register("foo", TAG_ENGINE)

        assert len(world.calls_to("register")) == 1
        await connection.close()

    @pytest.mark.asyncio
    async def test_script_or_path_required(self, tmp_path):
        connection, world, playwright = await start_playwright()

        with pytest.raises(ValidationError, match="Either script or path"):
            await playwright.selectors.register("foo")
        with pytest.raises(ValidationError, match="Either script or path"):
            await playwright.selectors.register("foo", TAG_ENGINE, path=tmp_path / "engine.js")
        await connection.close()

    @pytest.mark.asyncio
    async def test_register_after_context_created_rejected(self):
        """Engines are frozen once the connection has created a context."""
        connection, world, playwright = await start_playwright()
        browser = await playwright.chromium.launch()
        await browser.new_context()

        with pytest.raises(ValidationError, match="before any browser context"):
            await playwright.selectors.register("foo", TAG_ENGINE)

        assert world.calls_to("register") == []
        await connection.close()

    @pytest.mark.asyncio
    async def test_launch_alone_does_not_freeze_engines(self):
        connection, world, playwright = await start_playwright()
        await playwright.chromium.launch()

        await playwright.selectors.register("foo", TAG_ENGINE)

        assert len(world.calls_to("register")) == 1
        await connection.close()

    @pytest.mark.asyncio
    async def test_registries_are_per_connection(self):
        """A context on one connection does not freeze another's engines."""
        first_connection, _, first = await start_playwright()
        second_connection, second_world, second = await start_playwright()
        browser = await first.chromium.launch()
        await browser.new_context()

        await second.selectors.register("foo", TAG_ENGINE)

        assert len(second_world.calls_to("register")) == 1
        assert first.selectors.engines == []
        await first_connection.close()
        await second_connection.close()

    @pytest.mark.asyncio
    async def test_set_test_id_attribute(self):
        connection, world, playwright = await start_playwright()
        world.handle("setTestIdAttributeName", lambda message: {})

        await playwright.selectors.set_test_id_attribute("data-qa")

        assert world.calls_to("setTestIdAttributeName")[0]["params"] == {"testIdAttributeName": "data-qa"}
        await connection.close()


class TestContextParams:
    """Tests for drivers that take selector engines with each new context."""

    @pytest.mark.asyncio
    async def test_engines_sent_with_new_context(self):
        connection, world, playwright = await start_playwright(FakeWorld(selectors_channel=False))
        await playwright.selectors.register("tag", TAG_ENGINE, content_script=True)
        await playwright.selectors.set_test_id_attribute("data-qa")
        browser = await playwright.chromium.launch()

        await browser.new_context()

        params = world.calls_to("newContext")[0]["params"]
        assert params["selectorEngines"] == [{"name": "tag", "source": TAG_ENGINE, "contentScript": True}]
        assert params["testIdAttributeName"] == "data-qa"
        assert world.calls_to("register") == []
        await connection.close()

    @pytest.mark.asyncio
    async def test_engines_sent_with_persistent_context(self, tmp_path):
        connection, world, playwright = await start_playwright(FakeWorld(selectors_channel=False))
        await playwright.selectors.register("tag", TAG_ENGINE)

        await playwright.chromium.launch_persistent_context(tmp_path / "profile")

        params = world.calls_to("launchPersistentContext")[0]["params"]
        assert params["selectorEngines"][0]["name"] == "tag"
        assert "testIdAttributeName" not in params
        await connection.close()

    @pytest.mark.asyncio
    async def test_nothing_extra_when_driver_has_selectors_object(self):
        connection, world, playwright = await start_playwright()
        world.handle("setTestIdAttributeName", lambda message: {})
        await playwright.selectors.register("tag", TAG_ENGINE)
        await playwright.selectors.set_test_id_attribute("data-qa")
        browser = await playwright.chromium.launch()

        await browser.new_context()

        params = world.calls_to("newContext")[0]["params"]
        assert "selectorEngines" not in params
        assert "testIdAttributeName" not in params
        await connection.close()


class TestGetByTestId:
    """Tests for get_by_test_id selectors."""

    @pytest.mark.asyncio
    async def test_default_attribute(self):
        connection, world, playwright = await start_playwright()
        browser = await playwright.chromium.launch()
        page = await browser.new_page()

        assert page.get_by_test_id("submit").selector == 'internal:testid=[data-testid="submit"s]'
        await connection.close()

    @pytest.mark.asyncio
    async def test_configured_attribute_and_escaping(self):
        connection, world, playwright = await start_playwright(FakeWorld(selectors_channel=False))
        await playwright.selectors.set_test_id_attribute("data-qa")
        browser = await playwright.chromium.launch()
        page = await browser.new_page()

        locator = page.locator("form").get_by_test_id('say "hi"')

        assert locator.selector == 'form >> internal:testid=[data-qa="say \\"hi\\""s]'
        await connection.close()
