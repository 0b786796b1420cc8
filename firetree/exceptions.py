"""
FireTree - Custom exceptions for error handling.
"""

from typing import Any, Optional


class FireTreeError(Exception):
    """Base exception for all FireTree errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class RequestTimeoutError(FireTreeError):
    """
    Raised when a request could not connect and receive response headers
    within the configured timeout.

    The underlying ``httpx`` timeout is kept in ``original`` (and as the
    exception's ``__cause__``).
    """

    def __init__(self, message: str, original: Optional[BaseException] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.original = original


class RemoteError(FireTreeError):
    """Raised when the server answers with a non-2xx status.

    ``str(error)`` is the raw response body, as sent by the server.
    """

    def __init__(self, body: str, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(body, status_code=status_code, **kwargs)
        self.body = body


class DecodeError(FireTreeError):
    """Raised when an event-stream frame or its JSON payload is malformed."""

    def __init__(self, message: str, frame: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.frame = frame


class WatchError(FireTreeError):
    """Base class for errors that end a watch."""

    pass


class AlreadyWatchingError(WatchError):
    """Raised when a watch is started on a handle that is already watching."""

    pass


class StreamCancelledError(WatchError):
    """The server cancelled the stream (e.g. rules no longer allow reading)."""

    pass


class AuthRevokedError(WatchError):
    """The server revoked the credential used by the stream."""

    pass


class StreamClosedError(WatchError):
    """The server closed the stream without a control event."""

    pass
