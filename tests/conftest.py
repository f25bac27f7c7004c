"""Pytest configuration for playwire tests."""

import os
import shutil
import sys
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

# Captured before isolated_config scrubs PLAYWIRE_* from the environment.
REAL_DRIVER_PATH = os.environ.get("PLAYWIRE_DRIVER_PATH") or shutil.which("playwright")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate each test from the developer's environment.

    This fixture:
    - Runs each test from its own temporary directory (no stray .env)
    - Removes PLAYWIRE_* variables from the environment
    - Resets the global settings instance and protocol debugging
    """
    for name in list(os.environ):
        if name.startswith("PLAYWIRE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    from playwire.config import reset_settings
    from playwire.logging import enable_protocol_debug

    reset_settings()
    enable_protocol_debug(False)

    return tmp_path


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test to prevent closed file handle errors.

    CliRunner captures stderr with a temporary file. When configure_logging()
    runs inside CliRunner, structlog binds loggers to that temp file. After
    the test, CliRunner closes the file. We reset structlog to prevent stale
    references.
    """
    yield
    structlog.reset_defaults()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)


@pytest.fixture
def real_driver_path() -> str:
    """Driver configured in the outer environment; skips the test if none."""
    if REAL_DRIVER_PATH is None:
        pytest.skip("no driver: set PLAYWIRE_DRIVER_PATH or put playwright on PATH")
    return REAL_DRIVER_PATH
