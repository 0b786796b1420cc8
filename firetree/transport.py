"""
FireTree - Timeout-safe HTTP transport.

A single user-facing timeout budget covers both establishing the connection
and waiting for the response headers. Two ``httpx`` transports cooperate to
enforce it:

- ``LockingTransport`` owns the response-header timeout. It can be read and
  rewritten from any thread while requests are in flight, and it applies the
  allowance at the moment the header-wait phase begins.
- ``TimeoutCoordinator`` reads the budget when a request is issued, measures
  how long dialing took and hands the remainder to the header-wait phase. It
  also turns ``httpx`` timeouts into ``RequestTimeoutError``.

Phase boundaries are observed through the httpcore ``trace`` request
extension, so the allowance is computed per request and concurrent requests
never overwrite each other's deadline.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

import httpx

from .config import DEFAULT_TIMEOUT
from .exceptions import RequestTimeoutError

logger = logging.getLogger("firetree.transport")

# Request extension holding the header allowance computed for one request.
HEADER_TIMEOUT_EXTENSION = "firetree.response_header_timeout"

_DIAL_STARTED = "connection.connect_tcp.started"
_DIAL_ENDED = ("connection.connect_tcp.complete", "connection.connect_tcp.failed")
# prefixed with "http11." or "http2." depending on the connection
_HEADERS_STARTED = "receive_response_headers.started"
_HEADERS_COMPLETE = "receive_response_headers.complete"

TraceHook = Callable[[str, dict[str, Any]], None]


def chain_trace(request: httpx.Request, hook: TraceHook) -> None:
    """Install ``hook`` as the request's trace callback, after any existing one."""
    previous = request.extensions.get("trace")

    def trace(event_name: str, info: dict[str, Any]) -> None:
        if previous is not None:
            previous(event_name, info)
        hook(event_name, info)

    request.extensions["trace"] = trace


class LockingTransport(httpx.BaseTransport):
    """
    Transport decorator whose response-header timeout may be changed while
    requests are running.

    The header timeout a request observes is, in order of preference, the
    allowance its coordinator stored on the request, or the value that was
    current when ``handle_request`` was called. A zero or negative allowance
    fails the request with ``httpx.ReadTimeout`` before any blocking read.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        response_header_timeout: Optional[float] = None,
    ):
        self._transport = transport or httpx.HTTPTransport()
        self._lock = threading.Lock()
        self._response_header_timeout = response_header_timeout

    def set_response_header_timeout(self, seconds: Optional[float]) -> None:
        with self._lock:
            self._response_header_timeout = seconds

    def response_header_timeout(self) -> Optional[float]:
        with self._lock:
            return self._response_header_timeout

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        current = self.response_header_timeout()
        body_read: dict[str, Optional[float]] = {}

        def enforce(event_name: str, info: dict[str, Any]) -> None:
            if event_name.endswith(_HEADERS_STARTED):
                allowance = request.extensions.get(HEADER_TIMEOUT_EXTENSION, current)
                if allowance is None:
                    return
                if allowance <= 0:
                    raise httpx.ReadTimeout(
                        f"No time left to wait for response headers ({allowance:.6f}s)",
                        request=request,
                    )
                timeouts = dict(request.extensions.get("timeout") or {})
                body_read["read"] = timeouts.get("read")
                timeouts["read"] = allowance
                request.extensions["timeout"] = timeouts
            elif event_name.endswith(_HEADERS_COMPLETE) and "read" in body_read:
                timeouts = dict(request.extensions.get("timeout") or {})
                timeouts["read"] = body_read["read"]
                request.extensions["timeout"] = timeouts

        chain_trace(request, enforce)
        return self._transport.handle_request(request)

    def close(self) -> None:
        self._transport.close()


class _RequestClock:
    """Timing of one request: when it was issued and when dialing began."""

    def __init__(self, budget: float):
        self.budget = budget
        self.dial_started = time.monotonic()

    def remaining(self) -> float:
        return self.budget - (time.monotonic() - self.dial_started)


class TimeoutCoordinator(httpx.BaseTransport):
    """
    Splits one timeout budget between the dial and the header-wait phase.

    Example:
        ```python
        locking = LockingTransport()
        coordinator = TimeoutCoordinator(locking, timeout=5.0)
        client = httpx.Client(transport=coordinator)

        coordinator.timeout = 0.5  # applies to the next request issued
        ```
    """

    def __init__(self, transport: LockingTransport, timeout: float = DEFAULT_TIMEOUT):
        self._transport = transport
        self._lock = threading.Lock()
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        """The budget, in seconds, read by every request when it is issued."""
        with self._lock:
            return self._timeout

    @timeout.setter
    def timeout(self, seconds: float) -> None:
        with self._lock:
            self._timeout = seconds

    @property
    def locking_transport(self) -> LockingTransport:
        return self._transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        budget = self.timeout
        clock = _RequestClock(budget)

        # A bounded body read shares the budget; an unbounded one (streams)
        # stays unbounded.
        timeouts = dict(request.extensions.get("timeout") or {})
        timeouts["connect"] = budget
        timeouts["write"] = budget
        timeouts["pool"] = budget
        if timeouts.get("read") is not None:
            timeouts["read"] = budget
        request.extensions["timeout"] = timeouts
        request.extensions[HEADER_TIMEOUT_EXTENSION] = budget

        def allot(event_name: str, info: dict[str, Any]) -> None:
            if event_name == _DIAL_STARTED:
                clock.dial_started = time.monotonic()
            elif event_name in _DIAL_ENDED or event_name.endswith(_HEADERS_STARTED):
                remaining = clock.remaining()
                request.extensions[HEADER_TIMEOUT_EXTENSION] = remaining
                self._transport.set_response_header_timeout(remaining)
                logger.debug("%s: %.6fs left for response headers", event_name, remaining)

        chain_trace(request, allot)
        try:
            return self._transport.handle_request(request)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"{request.method} {request.url} timed out after {budget}s: {e}",
                original=e,
            ) from e

    def close(self) -> None:
        self._transport.close()
