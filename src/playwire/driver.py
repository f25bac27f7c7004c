"""Locate the driver executable and build its environment."""

from __future__ import annotations

import os
import platform
import shutil
from collections.abc import Mapping
from pathlib import Path

from playwire.config import PlaywireSettings, get_settings
from playwire.exceptions import DriverNotFoundError
from playwire.logging import get_logger

LOG = get_logger(__name__)

DRIVER_COMMAND = "run-driver"
_SCRIPT_SUFFIXES = (".js", ".mjs", ".cjs")


def compute_driver_command(settings: PlaywireSettings | None = None) -> list[str]:
    """Return the command line that starts the driver.

    The configured ``driver_path`` wins; otherwise a ``playwright`` executable
    on PATH is used. A ``.js`` driver is run under node.

    Raises:
        DriverNotFoundError: If no driver can be found.
    """
    settings = settings or get_settings()
    if settings.driver_path is not None:
        driver = Path(settings.driver_path).expanduser()
        if not driver.exists():
            raise DriverNotFoundError(f"Driver not found at {driver}")
    else:
        found = shutil.which("playwright")
        if found is None:
            raise DriverNotFoundError(
                "No driver found. Install the playwright driver or set PLAYWIRE_DRIVER_PATH"
            )
        driver = Path(found)

    if driver.suffix in _SCRIPT_SUFFIXES:
        command = [settings.node_path, str(driver), DRIVER_COMMAND]
    else:
        command = [str(driver), DRIVER_COMMAND]
    LOG.debug("driver_command_resolved", command=command)
    return command


def compute_driver_env(
    overrides: Mapping[str, str | None] | None = None,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the driver environment.

    The driver inherits ``base`` (our own environment by default). Each key
    in ``overrides`` replaces the inherited value; a None value removes it.
    """
    from playwire import __version__

    env = dict(os.environ if base is None else base)
    for key, value in (overrides or {}).items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = str(value)
    env["PW_LANG_NAME"] = "python"
    env["PW_LANG_NAME_VERSION"] = platform.python_version()
    env["PW_CLI_DISPLAY_VERSION"] = __version__
    return env
