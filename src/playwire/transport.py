"""Duplex frame transport to the driver process.

Every message is a JSON object framed by a 4-byte little-endian unsigned
length prefix. ``encode_frame`` and ``decode_frame`` are the only places
that know the framing, so the write and read paths stay symmetric.

The Transport protocol is deliberately small so tests (and alternative
channels such as a socket to a remote driver) can supply their own
implementation to ``Connection``.
"""

import asyncio
import json
import struct
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from playwire.exceptions import ProtocolError, TransportError
from playwire.logging import get_logger

LOG = get_logger(__name__)

FRAME_HEADER = struct.Struct("<I")


def encode_frame(message: dict[str, Any]) -> bytes:
    """Serialize a message into a length-prefixed frame."""
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return FRAME_HEADER.pack(len(payload)) + payload


def decode_frame(payload: bytes) -> dict[str, Any]:
    """Parse the body of a frame.

    Raises:
        ProtocolError: If the payload is not a UTF-8 JSON object.
    """
    try:
        message = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Malformed frame: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError(f"Malformed frame: expected an object, got {type(message).__name__}")
    return message


@runtime_checkable
class Transport(Protocol):
    """Protocol for the byte channel underneath a Connection.

    ``receive`` is only ever called from the connection's reader task.
    ``send`` may be called from many tasks concurrently.
    """

    async def start(self) -> None:
        """Open the channel.

        Raises:
            TransportError: If the channel cannot be opened.
        """
        ...

    async def send(self, message: dict[str, Any]) -> None:
        """Write one message.

        Raises:
            TransportError: If the channel is closed or broken.
        """
        ...

    async def receive(self) -> dict[str, Any] | None:
        """Read the next message, or None on a clean end of stream.

        Raises:
            TransportError: If the stream ends in the middle of a frame.
            ProtocolError: If a frame cannot be decoded.
        """
        ...

    async def close(self) -> None:
        """Close the channel. Must be idempotent."""
        ...

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called or the channel has failed."""
        ...


class PipeTransport:
    """Transport over the stdin/stdout pipes of a spawned driver process.

    Example:
        >>> transport = PipeTransport(["playwright", "run-driver"])
        >>> await transport.start()
        >>> await transport.send({"id": 1, "guid": "", "method": "initialize", "params": {}})
        >>> reply = await transport.receive()
        >>> await transport.close()
    """

    def __init__(
        self,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
        close_timeout: float = 5.0,
    ) -> None:
        """Initialize the transport.

        Args:
            command: Driver command line, executable first.
            env: Full environment for the driver process. None inherits ours.
            close_timeout: Seconds to wait for the driver to exit on close
                before it is killed.
        """
        if not command:
            raise ValueError("Driver command must not be empty")
        self._command = list(command)
        self._env = dict(env) if env is not None else None
        self._close_timeout = close_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._closed = False

    @property
    def pid(self) -> int | None:
        """PID of the driver process, if started."""
        return self._process.pid if self._process is not None else None

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        if self._process is not None:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=self._env,
            )
        except OSError as exc:
            LOG.error("driver_start_failed", command=self._command, error=str(exc))
            self._closed = True
            raise TransportError(f"Failed to start driver {self._command[0]}: {exc}") from exc
        LOG.info("driver_started", pid=self._process.pid, command=self._command)

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed or self._process is None or self._process.stdin is None:
            raise TransportError("Driver pipe is closed")
        stdin = self._process.stdin
        try:
            stdin.write(encode_frame(message))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TransportError(f"Driver pipe closed unexpectedly: {exc}") from exc

    async def receive(self) -> dict[str, Any] | None:
        if self._process is None or self._process.stdout is None:
            raise TransportError("Driver pipe is not open")
        stdout = self._process.stdout
        try:
            header = await stdout.readexactly(FRAME_HEADER.size)
        except asyncio.IncompleteReadError as exc:
            if not exc.partial:
                return None
            raise TransportError("Driver pipe closed in the middle of a frame header") from exc
        (length,) = FRAME_HEADER.unpack(header)
        try:
            payload = await stdout.readexactly(length)
        except asyncio.IncompleteReadError as exc:
            raise TransportError(
                f"Driver pipe closed after {len(exc.partial)} of {length} frame bytes"
            ) from exc
        return decode_frame(payload)

    async def close(self) -> None:
        if self._closed and (self._process is None or self._process.returncode is not None):
            return
        self._closed = True
        process = self._process
        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            LOG.warning("driver_kill_after_timeout", pid=process.pid, timeout=self._close_timeout)
            try:
                process.kill()
            except ProcessLookupError:
                LOG.debug("driver_already_exited", pid=process.pid)
            await process.wait()
        LOG.info("driver_stopped", pid=process.pid, returncode=process.returncode)

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"<PipeTransport pid={self.pid} {status}>"
