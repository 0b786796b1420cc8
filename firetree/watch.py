"""
FireTree - Real-time watches

A ``Watcher`` keeps at most one streaming connection open for a handle and
processes its events on a background thread:

    IDLE -> STARTING -> STREAMING -> STOPPING -> IDLE
                 \\           \\
                  +-----------+--> FAILED -> IDLE

``start`` returns once the connection is established; events are then
delivered to the callback, in wire order, until ``stop`` is called or the
stream fails. A failure puts the watcher back to IDLE and is then delivered
once as an ``error`` event, so the callback may start a new watch; the
watcher never reconnects on its own.
"""

import copy
import logging
import socket
import threading
from enum import Enum
from queue import Empty, Queue
from typing import Any, Callable, Optional

import httpx

from . import tree
from .exceptions import (
    AlreadyWatchingError,
    AuthRevokedError,
    DecodeError,
    StreamCancelledError,
    StreamClosedError,
)
from .streaming import EventStreamReader, EventType, StreamEvent

logger = logging.getLogger("firetree.watch")

WatchCallback = Callable[[StreamEvent], None]


class WatchState(str, Enum):
    """Lifecycle states of a Watcher."""

    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    STOPPING = "stopping"
    FAILED = "failed"


def _interrupt(response: httpx.Response) -> None:
    """Unblock a thread reading ``response`` by shutting down its socket."""
    stream = response.extensions.get("network_stream")
    if stream is None:
        return
    sock = stream.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        # already closed by the other side
        logger.debug("Socket shutdown failed: %s", e)


class Watcher:
    """
    Owns the single watch allowed on one handle.

    Usage:
        ```python
        def on_event(event):
            if event.is_error:
                print(f"Watch ended: {event.error}")
            else:
                print(event.type, event.path, event.data)

        watcher.start(on_event)
        # ... do other work ...
        watcher.stop()
        ```
    """

    def __init__(
        self,
        open_stream: Callable[[], httpx.Response],
        name: str = "",
        stop_timeout: float = 5.0,
    ):
        self._open_stream = open_stream
        self._name = name
        self._stop_timeout = stop_timeout

        # guards state, the stop signal, the live response and the thread
        self._lock = threading.Lock()
        # notified when start leaves STARTING
        self._settled = threading.Condition(self._lock)
        self._state = WatchState.IDLE
        self._stop_event = threading.Event()
        self._response: Optional[httpx.Response] = None
        self._thread: Optional[threading.Thread] = None
        self._last_error: Optional[BaseException] = None

        self._snapshot_lock = threading.Lock()
        self._snapshot: Any = None

    @property
    def state(self) -> WatchState:
        with self._lock:
            return self._state

    @property
    def watching(self) -> bool:
        """True from the moment a watch starts until it is back to IDLE."""
        return self.state is not WatchState.IDLE

    @property
    def last_error(self) -> Optional[BaseException]:
        """The error that ended the most recent watch, if it failed."""
        with self._lock:
            return self._last_error

    def snapshot(self) -> Any:
        """Return a copy of the value assembled from the events received so far."""
        with self._snapshot_lock:
            return copy.deepcopy(self._snapshot)

    def start(self, callback: WatchCallback) -> None:
        """
        Open the stream and start delivering events to ``callback``.

        Blocks until the connection is established. Connection failures,
        timeouts and error statuses are raised here rather than delivered.

        Raises:
            AlreadyWatchingError: A watch is already active on this handle.
        """
        with self._lock:
            if self._state is not WatchState.IDLE:
                raise AlreadyWatchingError(f"{self._name or 'handle'} is already being watched")
            self._state = WatchState.STARTING
            self._stop_event = threading.Event()
            self._last_error = None
            stop_event = self._stop_event

        with self._snapshot_lock:
            self._snapshot = None

        try:
            response = self._open_stream()
        except BaseException:
            with self._lock:
                self._state = WatchState.IDLE
                self._settled.notify_all()
            raise

        with self._lock:
            cancelled = stop_event.is_set()
            if cancelled:
                self._state = WatchState.IDLE
            else:
                self._state = WatchState.STREAMING
                self._response = response
                self._thread = threading.Thread(
                    target=self._pump,
                    args=(response, callback, stop_event),
                    name=f"firetree-watch {self._name}".strip(),
                    daemon=True,
                )
                self._thread.start()
            self._settled.notify_all()

        if cancelled:
            logger.info("Watch on %s stopped while connecting", self._name)
            response.close()
        else:
            logger.info("Watching %s", self._name)

    def stop(self) -> None:
        """
        Stop the active watch, if any.

        Safe to call any number of times and from any thread, including from
        inside the callback. Once it returns (outside the callback), no more
        events of the stopped watch are delivered.

        A stop that arrives while ``start`` is still connecting waits up to
        ``stop_timeout`` for the connection attempt to settle; ``start`` then
        drops the connection and the watcher is back to IDLE. The connect
        itself is not interrupted, so a slow one can outlast the wait.
        """
        with self._lock:
            if self._state is WatchState.IDLE:
                return
            self._stop_event.set()
            if self._state is WatchState.STARTING:
                if not self._settled.wait_for(
                    lambda: self._state is not WatchState.STARTING, timeout=self._stop_timeout
                ):
                    logger.warning(
                        "Watch on %s still connecting after %.1fs", self._name, self._stop_timeout
                    )
                return
            if self._state is WatchState.STREAMING:
                self._state = WatchState.STOPPING
            # interrupt under the lock: the pump clears _response before it
            # hands the connection back to the pool
            if self._response is not None:
                _interrupt(self._response)
            thread = self._thread

        if thread is None or thread is threading.current_thread():
            return

        thread.join(timeout=self._stop_timeout)
        if thread.is_alive():
            logger.warning(
                "Watch thread for %s did not finish within %.1fs", self._name, self._stop_timeout
            )
        else:
            logger.info("Stopped watching %s", self._name)

    def _pump(self, response: httpx.Response, callback: WatchCallback, stop_event: threading.Event) -> None:
        """Background thread that reads the stream and dispatches events."""
        error: Optional[BaseException] = None
        try:
            error = self._dispatch(response, callback, stop_event)
        except (DecodeError, httpx.HTTPError, httpx.StreamError) as e:
            if stop_event.is_set():
                logger.debug("Stream for %s closed on stop: %s", self._name, e)
            else:
                error = e
        except Exception as e:
            logger.exception("Watch on %s crashed", self._name)
            error = e
        finally:
            failed = error is not None and not stop_event.is_set()
            with self._lock:
                self._response = None
                if failed:
                    self._state = WatchState.FAILED
                    self._last_error = error
            if failed:
                logger.warning("Watch on %s failed: %s", self._name, error)
            try:
                response.close()
            finally:
                with self._lock:
                    self._state = WatchState.IDLE
                    self._thread = None

        # delivered once IDLE so the callback may start a new watch
        if failed:
            self._deliver(callback, StreamEvent.failure(error))

    def _dispatch(
        self, response: httpx.Response, callback: WatchCallback, stop_event: threading.Event
    ) -> Optional[BaseException]:
        """Forward events until the stream ends; return the error that ended it."""
        for event in EventStreamReader(response.iter_bytes()):
            if stop_event.is_set():
                return None
            if event.type is EventType.KEEP_ALIVE:
                logger.debug("keep-alive on %s", self._name)
                continue
            if event.type is EventType.CANCEL:
                return StreamCancelledError(event.reason or "stream cancelled by server")
            if event.type is EventType.AUTH_REVOKED:
                return AuthRevokedError(event.reason or "credential revoked by server")
            self._apply(event)
            self._deliver(callback, event)
        if stop_event.is_set():
            return None
        return StreamClosedError("stream closed by server")

    def _apply(self, event: StreamEvent) -> None:
        with self._snapshot_lock:
            if event.type is EventType.PUT:
                self._snapshot = tree.set_at(self._snapshot, event.path, event.data)
            else:
                self._snapshot = tree.update_at(self._snapshot, event.path, event.data)

    def _deliver(self, callback: WatchCallback, event: StreamEvent) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception("Watch callback for %s raised", self._name)


class WatchQueue:
    """
    A queue-based watch for pull-style processing.

    Usage:
        ```python
        with WatchQueue(ref.watcher) as queue:
            while True:
                event = queue.get(timeout=10)
                if event is None:
                    continue
                if event.is_error:
                    break
                process(event)
        ```
    """

    def __init__(self, watcher: Watcher, maxsize: int = 0):
        self._watcher = watcher
        self._queue: Queue[StreamEvent] = Queue(maxsize=maxsize)

    def start(self) -> None:
        self._watcher.start(self._queue.put)

    def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Get the next event, or None if none arrived within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def stop(self) -> None:
        self._watcher.stop()

    def __enter__(self) -> "WatchQueue":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()
