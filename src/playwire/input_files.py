"""Convert ``set_input_files`` arguments into protocol params.

The driver runs on this machine, so files on disk are sent as absolute
paths and read by the driver directly; large uploads never cross the pipe.
In-memory payloads are sent base64-encoded.
"""

from __future__ import annotations

import base64
import mimetypes
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from playwire.exceptions import ValidationError

FilePayload = dict[str, Any]
InputFiles = str | Path | FilePayload | Sequence[str | Path | FilePayload]


def convert_input_files(files: InputFiles) -> dict[str, Any]:
    """Build the ``setInputFiles`` params for ``files``.

    Args:
        files: A path, a ``{"name", "mimeType", "buffer"}`` payload, or a
            list of either kind. A single directory uploads its contents.
            An empty list clears the input.

    Returns:
        One of ``{"localPaths": [...]}``, ``{"localDirectory": ...}`` or
        ``{"payloads": [...]}``.

    Raises:
        ValidationError: If a path does not exist, paths and payloads are
            mixed, or a directory is combined with anything else.
    """
    items = list(files) if isinstance(files, list | tuple) else [files]
    if not items:
        return {"payloads": []}

    if all(isinstance(item, dict) for item in items):
        return {"payloads": [_payload(item) for item in items]}
    if any(isinstance(item, dict) for item in items):
        raise ValidationError("Cannot mix file paths and in-memory payloads")

    paths = [Path(item).expanduser().resolve() for item in items]
    directories = [path for path in paths if path.is_dir()]
    if directories:
        if len(paths) > 1:
            raise ValidationError(
                "Multiple directories are not supported"
                if len(directories) > 1
                else "File paths cannot be mixed with a directory upload"
            )
        return {"localDirectory": str(directories[0])}
    for path in paths:
        if not path.is_file():
            raise ValidationError(f"File not found: {path}")
    return {"localPaths": [str(path) for path in paths]}


def _payload(item: FilePayload) -> dict[str, str]:
    if "name" not in item or "buffer" not in item:
        raise ValidationError("File payloads need 'name' and 'buffer'")
    buffer = item["buffer"]
    if isinstance(buffer, str):
        buffer = buffer.encode("utf-8")
    mime_type = item.get("mimeType") or mimetypes.guess_type(item["name"])[0]
    return {
        "name": item["name"],
        "mimeType": mime_type or "application/octet-stream",
        "buffer": base64.b64encode(buffer).decode("ascii"),
    }
