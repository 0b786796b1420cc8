"""
FireTree - HTTP client for a hierarchical JSON store.

A ``FireTree`` handle points at one location of the remote tree. Reads and
writes are plain blocking HTTP calls; ``watch`` opens a streaming connection
and delivers change events on a background thread.
"""

import json
import logging
from typing import Any, Optional

import httpx

from .config import ClientConfig
from .exceptions import DecodeError, RemoteError
from .transport import LockingTransport, TimeoutCoordinator
from .watch import WatchCallback, Watcher, WatchQueue

logger = logging.getLogger("firetree.client")

# query parameter constants
AUTH_PARAM = "auth"
FORMAT_PARAM = "format"
SHALLOW_PARAM = "shallow"
FORMAT_EXPORT = "export"


def sanitize_url(url: str) -> str:
    """Default the scheme to https and drop a trailing slash."""
    if not url.startswith("https://") and not url.startswith("http://"):
        url = "https://" + url

    if url.endswith("/"):
        url = url[:-1]

    return url


class Session:
    """
    The HTTP machinery shared by a handle and every handle derived from it.

    It owns the connection pool and the live timeout budget, so changing the
    timeout through any handle affects all of them, starting with the next
    request issued.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or ClientConfig()
        if transport is None:
            transport = httpx.HTTPTransport(
                limits=httpx.Limits(keepalive_expiry=self.config.keepalive_expiry),
            )
        self.locking_transport = LockingTransport(transport)
        self.coordinator = TimeoutCoordinator(self.locking_transport, timeout=self.config.timeout)
        self.http = httpx.Client(
            transport=self.coordinator,
            headers={
                "User-Agent": self.config.user_agent,
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout,
            follow_redirects=True,
        )

    @property
    def timeout(self) -> float:
        return self.coordinator.timeout

    @timeout.setter
    def timeout(self, seconds: float) -> None:
        self.coordinator.timeout = seconds

    def close(self) -> None:
        """Close the HTTP client connection."""
        self.http.close()


class FireTree:
    """
    A reference to one location in the remote tree.

    Example:
        ```python
        ref = FireTree("my-app.example.com")
        users = ref.child("users")

        users.child("alice").set({"name": "Alice"})
        users.update({"bob": {"name": "Bob"}})
        print(users.value())

        users.watch(lambda event: print(event.type, event.path, event.data))
        # ... later
        users.stop_watching()
        ```
    """

    def __init__(
        self,
        url: str,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        session: Optional[Session] = None,
        params: Optional[dict[str, str]] = None,
    ):
        self._url = sanitize_url(url)
        self._session = session or Session(config, transport=transport)
        # copied so derived handles never share option state
        self._params: dict[str, str] = dict(params or {})
        self.watcher = Watcher(
            self._open_stream,
            name=self._url,
            stop_timeout=self._session.config.stop_timeout,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def session(self) -> Session:
        return self._session

    @property
    def params(self) -> dict[str, str]:
        """A copy of the query options sent with every request."""
        return dict(self._params)

    @property
    def timeout(self) -> float:
        """Seconds a request has to connect and receive response headers."""
        return self._session.timeout

    @timeout.setter
    def timeout(self, seconds: float) -> None:
        self._session.timeout = seconds

    def __str__(self) -> str:
        return self._url

    def __repr__(self) -> str:
        return f"FireTree({self._url!r})"

    def child(self, path: str) -> "FireTree":
        """
        Create a reference to ``path`` below this one.

        The child shares this handle's session and starts with a copy of its
        query options.
        """
        return FireTree(
            f"{self._url}/{path.strip('/')}",
            session=self._session,
            params=self._params,
        )

    # ==================== Query options ====================

    def shallow(self, value: bool) -> None:
        """
        Limit the depth of the data returned by ``value``.

        Primitives are returned as is; for an object, each child is
        truncated to ``True``.
        """
        if value:
            self._params[SHALLOW_PARAM] = "true"
        else:
            self._params.pop(SHALLOW_PARAM, None)

    def include_priority(self, value: bool) -> None:
        """Ask the server to include each value's priority (``format=export``)."""
        if value:
            self._params[FORMAT_PARAM] = FORMAT_EXPORT
        else:
            self._params.pop(FORMAT_PARAM, None)

    def auth(self, token: str) -> None:
        """Send ``token`` as the ``auth`` query parameter."""
        self._params[AUTH_PARAM] = token

    def unauth(self) -> None:
        self._params.pop(AUTH_PARAM, None)

    # ==================== Reads and writes ====================

    def value(self) -> Any:
        """Return the JSON value stored at this location (None if empty)."""
        return self._request("GET")

    def set(self, value: Any) -> Any:
        """Replace the value at this location."""
        return self._request("PUT", value)

    def update(self, values: dict[str, Any]) -> Any:
        """Merge ``values`` into the object at this location."""
        return self._request("PATCH", values)

    def push(self, value: Any) -> "FireTree":
        """Add ``value`` under a server-generated key and return its reference."""
        data = self._request("POST", value)
        return self.child(data["name"])

    def remove(self) -> None:
        """Delete the value at this location."""
        self._request("DELETE")

    # ==================== Watching ====================

    @property
    def watching(self) -> bool:
        return self.watcher.watching

    def watch(self, callback: WatchCallback) -> None:
        """
        Start delivering change events at this location to ``callback``.

        Returns once the stream is connected. Terminal errors arrive through
        the same callback as a ``StreamEvent`` whose ``is_error`` is true.

        Raises:
            AlreadyWatchingError: This handle already has an active watch.
        """
        self.watcher.start(callback)

    def watch_queue(self, maxsize: int = 0) -> WatchQueue:
        """
        Create a queue-based watch; start it with ``start()`` or ``with``.

        Example:
            ```python
            with ref.watch_queue() as events:
                event = events.get(timeout=30)
            ```
        """
        return WatchQueue(self.watcher, maxsize=maxsize)

    def stop_watching(self) -> None:
        self.watcher.stop()

    # ==================== Plumbing ====================

    def _json_url(self) -> str:
        return self._url + "/.json"

    def _query(self) -> Optional[list[tuple[str, str]]]:
        if not self._params:
            return None
        return sorted(self._params.items())

    def _request(self, method: str, body: Any = None) -> Any:
        content = None
        if method in ("PUT", "PATCH", "POST"):
            content = json.dumps(body).encode("utf-8")
        response = self._session.http.request(
            method,
            self._json_url(),
            params=self._query(),
            content=content,
        )
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle HTTP response and raise appropriate exceptions."""
        if not response.is_success:
            raise RemoteError(response.text, status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise DecodeError(
                f"Response is not valid JSON: {e}",
                frame=response.text,
                status_code=response.status_code,
                response=response,
            ) from e

    def _open_stream(self) -> httpx.Response:
        http = self._session.http
        request = http.build_request(
            "GET",
            self._json_url(),
            params=self._query(),
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(self.timeout, read=None),
        )
        response = http.send(request, stream=True)
        if not response.is_success:
            try:
                response.read()
            finally:
                response.close()
            raise RemoteError(response.text, status_code=response.status_code)
        logger.debug("Stream open for %s (HTTP %s)", self._url, response.status_code)
        return response

    def close(self) -> None:
        """Stop watching and close the shared session."""
        self.watcher.stop()
        self._session.close()

    def __enter__(self) -> "FireTree":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
