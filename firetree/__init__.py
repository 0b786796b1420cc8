"""
FireTree - Python client for hierarchical JSON stores over HTTP.

Reads and writes map to one HTTP request each; watches keep a streaming
connection open and deliver typed change events.
"""

from .client import FireTree, Session, sanitize_url
from .config import ClientConfig
from .exceptions import (
    AlreadyWatchingError,
    AuthRevokedError,
    DecodeError,
    FireTreeError,
    RemoteError,
    RequestTimeoutError,
    StreamCancelledError,
    StreamClosedError,
    WatchError,
)
from .streaming import (
    EventStreamDecoder,
    EventStreamReader,
    EventType,
    StreamEvent,
)
from .transport import LockingTransport, TimeoutCoordinator
from .watch import Watcher, WatchQueue, WatchState

__version__ = "0.1.0"
__all__ = [
    # Client
    "FireTree",
    "Session",
    "ClientConfig",
    "sanitize_url",
    # Transport
    "LockingTransport",
    "TimeoutCoordinator",
    # Streaming
    "EventStreamDecoder",
    "EventStreamReader",
    "EventType",
    "StreamEvent",
    # Watching
    "Watcher",
    "WatchQueue",
    "WatchState",
    # Exceptions
    "FireTreeError",
    "RequestTimeoutError",
    "RemoteError",
    "DecodeError",
    "WatchError",
    "AlreadyWatchingError",
    "StreamCancelledError",
    "AuthRevokedError",
    "StreamClosedError",
]
