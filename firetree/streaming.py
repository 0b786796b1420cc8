"""
FireTree - Event stream decoding

Turns the bytes of a streaming ``GET`` into typed change events. The server
frames events the Server-Sent Events way: records are separated by a blank
line, ``event:`` names the kind and ``data:`` carries a JSON payload:

    event: put
    data: {"path": "/", "data": {"foo": "bar"}}

    event: keep-alive
    data: null

"""

import codecs
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from .exceptions import DecodeError

logger = logging.getLogger("firetree.streaming")


class EventType(str, Enum):
    """Types of events that can be received on a watch stream."""

    PUT = "put"
    PATCH = "patch"
    KEEP_ALIVE = "keep-alive"
    CANCEL = "cancel"
    AUTH_REVOKED = "auth_revoked"
    # Not sent by the server: a terminal watch error delivered to callers.
    ERROR = "error"


# Wire names accepted for each event type.
_WIRE_NAMES = {
    "put": EventType.PUT,
    "patch": EventType.PATCH,
    "keep-alive": EventType.KEEP_ALIVE,
    "cancel": EventType.CANCEL,
    "auth_revoked": EventType.AUTH_REVOKED,
    "auth-revoked": EventType.AUTH_REVOKED,
}

DATA_EVENTS = frozenset({EventType.PUT, EventType.PATCH})
TERMINAL_EVENTS = frozenset({EventType.CANCEL, EventType.AUTH_REVOKED})


@dataclass
class StreamEvent:
    """An event received from a watch stream."""

    type: EventType
    path: Optional[str] = None
    data: Any = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def from_raw(cls, event_name: str, data_str: Optional[str]) -> Optional["StreamEvent"]:
        """
        Create a StreamEvent from one decoded record.

        Returns None for event names this client does not know about.

        Raises:
            DecodeError: A put/patch record without a usable payload, such as
                a non-string path or a patch key that names no child.
        """
        event_type = _WIRE_NAMES.get(event_name)
        if event_type is None:
            return None

        if event_type in DATA_EVENTS:
            if data_str is None:
                raise DecodeError(f"'{event_name}' event has no data", frame=event_name)
            try:
                payload = json.loads(data_str)
            except json.JSONDecodeError as e:
                raise DecodeError(f"'{event_name}' event has invalid JSON: {e}", frame=data_str) from e
            if not isinstance(payload, dict) or "path" not in payload or "data" not in payload:
                raise DecodeError(
                    f"'{event_name}' payload must be an object with 'path' and 'data'",
                    frame=data_str,
                )
            if not isinstance(payload["path"], str):
                raise DecodeError(f"'{event_name}' path must be a string", frame=data_str)
            if event_type is EventType.PATCH:
                if not isinstance(payload["data"], dict):
                    raise DecodeError("'patch' data must be an object", frame=data_str)
                # every key must name a child below path
                if any(not key.strip("/") for key in payload["data"]):
                    raise DecodeError("'patch' data has an empty key", frame=data_str)
            return cls(type=event_type, path=payload["path"], data=payload["data"])

        return cls(type=event_type, reason=_control_reason(data_str))

    @classmethod
    def failure(cls, error: BaseException) -> "StreamEvent":
        """Wrap a terminal watch error so it can travel with data events."""
        return cls(type=EventType.ERROR, error=error, reason=str(error))

    @property
    def is_error(self) -> bool:
        return self.type is EventType.ERROR


def _control_reason(data_str: Optional[str]) -> Optional[str]:
    # Control payloads are usually `null` or a JSON string, sometimes bare text.
    if data_str is None:
        return None
    try:
        value = json.loads(data_str)
    except json.JSONDecodeError:
        return data_str
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value)


class EventStreamDecoder:
    """
    Incremental decoder for the event framing.

    Bytes may be fed in arbitrary chunks: partial lines and partial UTF-8
    sequences are kept until the rest arrives.
    """

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._event_name: Optional[str] = None
        self._data_lines: list[str] = []

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Decode a chunk of bytes and return the events it completes."""
        self._buffer += self._text.decode(chunk)
        events: list[StreamEvent] = []

        while True:
            line, found = self._next_line()
            if not found:
                break
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def _next_line(self) -> tuple[str, bool]:
        lf = self._buffer.find("\n")
        cr = self._buffer.find("\r")
        if lf == -1 and cr == -1:
            return "", False

        if cr == -1 or (lf != -1 and lf < cr):
            line, self._buffer = self._buffer[:lf], self._buffer[lf + 1:]
            return line, True

        # A CR at the very end of the buffer may be the first half of CRLF.
        if cr + 1 == len(self._buffer):
            return "", False
        skip = 2 if self._buffer[cr + 1] == "\n" else 1
        line, self._buffer = self._buffer[:cr], self._buffer[cr + skip:]
        return line, True

    def _process_line(self, line: str) -> Optional[StreamEvent]:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        if ":" in line:
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
        else:
            field = line
            value = ""

        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data_lines.append(value)
        # id and retry are not used by this protocol
        return None

    def _dispatch(self) -> Optional[StreamEvent]:
        event_name = self._event_name
        data_str = "\n".join(self._data_lines) if self._data_lines else None
        self._event_name = None
        self._data_lines = []

        if event_name is None:
            if data_str is not None:
                logger.debug("Skipping record without an event name")
            return None

        event = StreamEvent.from_raw(event_name, data_str)
        if event is None:
            logger.debug("Skipping unknown event '%s'", event_name)
        return event


class EventStreamReader:
    """
    A one-shot iterator of StreamEvents over the chunks of one connection.

    The sequence ends when the chunks run out or right after a ``cancel`` or
    ``auth_revoked`` event. A malformed frame raises ``DecodeError`` and ends
    it as well. A reader cannot be restarted; a new connection needs a new
    reader.

    Usage:
        ```python
        with client.stream("GET", url, headers=headers) as response:
            for event in EventStreamReader(response.iter_bytes()):
                handle(event)
        ```
    """

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._decoder = EventStreamDecoder()
        self._consumed = False

    def __iter__(self) -> Iterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("EventStreamReader can only be iterated once")
        self._consumed = True
        return self._events()

    def _events(self) -> Iterator[StreamEvent]:
        for chunk in self._chunks:
            for event in self._decoder.feed(chunk):
                yield event
                if event.type in TERMINAL_EVENTS:
                    return
