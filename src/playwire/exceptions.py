"""Custom exceptions for playwire package."""


class PlaywireError(Exception):
    """Base exception class for all playwire errors."""

    def __init__(self, message: str, *, name: str | None = None, stack: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.name = name or type(self).__name__
        self.stack = stack


class TransportError(PlaywireError):
    """Raised when the driver process fails to start or its pipe closes unexpectedly.

    Fatal: the owning connection is closed and every in-flight call fails.
    """


class DriverNotFoundError(TransportError):
    """Raised when no driver executable can be located."""


class ProtocolError(PlaywireError):
    """Raised for malformed or semantically invalid frames.

    When raised by the reader loop the connection is closed. When it carries
    an error reply from the driver it only affects the call that produced it.
    """


class TargetClosedError(PlaywireError):
    """Raised when a call targets, or is answered after, a disposed object."""

    def __init__(self, message: str | None = None, **kwargs: str | None) -> None:
        super().__init__(message or "Target page, context or browser has been closed", **kwargs)


class TimeoutError(PlaywireError):  # noqa: A001
    """Raised when a call or a wait exceeds its deadline."""


class ValidationError(PlaywireError):
    """Raised when a client-side parameter check fails.

    These errors never reach the driver.
    """


def clone_error(error: PlaywireError) -> PlaywireError:
    """Return a fresh exception of the same class and message.

    Used to fail fast on a closed connection without re-raising (and growing
    the traceback of) the original exception object.
    """
    return type(error)(error.message, name=error.name, stack=error.stack)


def error_from_driver(payload: dict) -> PlaywireError:
    """Translate a driver error reply into the local error taxonomy.

    Args:
        payload: The ``error`` object of a reply frame,
            ``{"name": ..., "message": ..., "stack": ...}``.

    Returns:
        TimeoutError or TargetClosedError when the driver names one of them,
        otherwise a call-local ProtocolError.
    """
    name = payload.get("name") or ""
    message = payload.get("message") or "Unknown driver error"
    stack = payload.get("stack")
    if name == "TimeoutError":
        return TimeoutError(message, name=name, stack=stack)
    if name == "TargetClosedError":
        return TargetClosedError(message, name=name, stack=stack)
    return ProtocolError(message, name=name or None, stack=stack)
