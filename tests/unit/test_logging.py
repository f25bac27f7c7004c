"""Tests for playwire logging utilities."""

from __future__ import annotations

import json
import logging

import pytest

from playwire.logging import (
    MAX_VALUE_LENGTH,
    configure_logging,
    enable_protocol_debug,
    get_logger,
    protocol_debug_enabled,
    shorten_long_values,
    suppress_asyncio_noise,
)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_to_stderr(self, capsys) -> None:
        configure_logging(level="INFO", json_output=True)

        get_logger("playwire.test").info("browser_launched", browser="chromium")

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip().splitlines()[-1])
        assert record["event"] == "browser_launched"
        assert record["browser"] == "chromium"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filters(self, capsys) -> None:
        configure_logging(level="WARNING", json_output=True)

        logger = get_logger("playwire.test")
        logger.info("hidden")
        logger.warning("shown")

        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["shown"]


class TestShortenLongValues:
    """Tests for the shorten_long_values processor."""

    def test_long_strings_cut_at_any_depth(self) -> None:
        payload = "A" * (MAX_VALUE_LENGTH + 50)

        event = shorten_long_values(
            None, "debug", {"event": "frame_received", "params": {"files": [{"buffer": payload}]}}
        )

        buffer = event["params"]["files"][0]["buffer"]
        assert buffer == "A" * MAX_VALUE_LENGTH + "...(+50 chars)"

    def test_short_values_and_event_untouched(self) -> None:
        event_name = "x" * (MAX_VALUE_LENGTH + 1)
        event = shorten_long_values(None, "debug", {"event": event_name, "guid": "page@3", "id": 7})
        assert event == {"event": event_name, "guid": "page@3", "id": 7}


class TestProtocolDebug:
    """Tests for the per-frame protocol logging switch."""

    def test_toggle(self) -> None:
        assert protocol_debug_enabled() is False
        enable_protocol_debug()
        assert protocol_debug_enabled() is True
        enable_protocol_debug(False)
        assert protocol_debug_enabled() is False


class TestSuppressAsyncioNoise:
    """Tests for suppress_asyncio_noise context manager."""

    def test_suppresses_asyncio_warnings(self) -> None:
        asyncio_logger = logging.getLogger("asyncio")
        original_level = asyncio_logger.level

        with suppress_asyncio_noise():
            assert asyncio_logger.level == logging.CRITICAL

        assert asyncio_logger.level == original_level

    def test_restores_level_on_exception(self) -> None:
        asyncio_logger = logging.getLogger("asyncio")
        original_level = asyncio_logger.level

        with pytest.raises(RuntimeError), suppress_asyncio_noise():
            raise RuntimeError("test")

        assert asyncio_logger.level == original_level
