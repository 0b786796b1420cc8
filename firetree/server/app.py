"""
FastAPI application for the FireTree fake server.

An in-memory stand-in for the remote tree store, for local development and
integration tests. It serves the same REST surface the client uses:

    GET/PUT/PATCH/POST/DELETE /{path}.json

and, for a GET with ``Accept: text/event-stream``, a watch stream of
``put``/``patch``/``keep-alive`` events.
"""

import asyncio
import itertools
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from .. import tree
from .config import ServerConfig

logger = logging.getLogger("firetree.server")


def format_event(event_type: str, path: str, data: Any) -> dict[str, str]:
    """Build one SSE record in the shape EventSourceResponse expects."""
    return {"event": event_type, "data": json.dumps({"path": path, "data": data})}


def normalize_path(raw: str) -> str:
    """Map a request path like ``users/alice.json`` or ``users/.json`` to ``/users/alice``."""
    if raw.endswith(".json"):
        raw = raw[: -len(".json")]
    return tree.join_path(raw)


class _Subscriber:
    def __init__(self, path: str):
        self.path = path
        self.queue: asyncio.Queue = asyncio.Queue()


class TreeStore:
    """
    The data held by the fake server, plus the watch streams listening to it.

    Only touched from the event loop, so it needs no locking.
    """

    def __init__(self, data: Any = None):
        self.data = data
        self._subscribers: list[_Subscriber] = []
        self._push_counter = itertools.count()

    def get(self, path: str, shallow: bool = False) -> Any:
        value = tree.get_at(self.data, path)
        if shallow and isinstance(value, dict):
            return {key: True for key in value}
        return value

    def set(self, path: str, value: Any) -> None:
        self.data = tree.set_at(self.data, path, value)
        self._broadcast("put", path, value)

    def update(self, path: str, changes: dict[str, Any]) -> None:
        self.data = tree.update_at(self.data, path, changes)
        self._broadcast("patch", path, changes)

    def push(self, path: str, value: Any) -> str:
        # chronologically sortable keys
        key = f"-{int(time.time() * 1000):013d}{next(self._push_counter):07d}"
        self.set(tree.join_path(path, key), value)
        return key

    def remove(self, path: str) -> None:
        self.set(path, None)

    def subscribe(self, path: str) -> _Subscriber:
        subscriber = _Subscriber(path)
        subscriber.queue.put_nowait(format_event("put", "/", self.get(path)))
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: _Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def _broadcast(self, event_type: str, path: str, data: Any) -> None:
        """Queue the change for every subscriber whose location it touches."""
        for subscriber in self._subscribers:
            relative = tree.relative_path(path, subscriber.path)
            if relative is not None:
                event = format_event(event_type, relative, data)
            elif tree.relative_path(subscriber.path, path) is not None:
                # the write replaced an ancestor: resend the whole location
                event = format_event("put", "/", self.get(subscriber.path))
            else:
                continue
            subscriber.queue.put_nowait(event)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(config: Optional[ServerConfig] = None, data: Any = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if config is None:
        config = ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = TreeStore(data)
        app.state.config = config
        yield

    app = FastAPI(
        title="FireTree Fake Server",
        description="In-memory hierarchical JSON store with watch streams",
        lifespan=lifespan,
    )

    def authorized(request: Request) -> bool:
        token = app.state.config.auth_token
        return token is None or request.query_params.get("auth") == token

    async def read_body(request: Request) -> Any:
        raw = await request.body()
        return json.loads(raw) if raw else None

    @app.get("/{raw_path:path}")
    async def read(raw_path: str, request: Request):
        if not authorized(request):
            return _error(401, "Permission denied")
        store: TreeStore = app.state.store
        path = normalize_path(raw_path)

        if "text/event-stream" in request.headers.get("accept", ""):
            return EventSourceResponse(watch_events(request, store, path))

        shallow = request.query_params.get("shallow") == "true"
        return JSONResponse(store.get(path, shallow=shallow))

    async def watch_events(request: Request, store: TreeStore, path: str):
        subscriber = store.subscribe(path)
        logger.info("Watch opened on %s", path)
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    yield await asyncio.wait_for(
                        subscriber.queue.get(), timeout=app.state.config.keepalive_interval
                    )
                except asyncio.TimeoutError:
                    yield {"event": "keep-alive", "data": "null"}
        finally:
            store.unsubscribe(subscriber)
            logger.info("Watch closed on %s", path)

    @app.put("/{raw_path:path}")
    async def write(raw_path: str, request: Request):
        if not authorized(request):
            return _error(401, "Permission denied")
        try:
            value = await read_body(request)
        except json.JSONDecodeError:
            return _error(400, "Invalid data; couldn't parse JSON object.")
        app.state.store.set(normalize_path(raw_path), value)
        return JSONResponse(value)

    @app.patch("/{raw_path:path}")
    async def merge(raw_path: str, request: Request):
        if not authorized(request):
            return _error(401, "Permission denied")
        try:
            changes = await read_body(request)
        except json.JSONDecodeError:
            return _error(400, "Invalid data; couldn't parse JSON object.")
        if not isinstance(changes, dict):
            return _error(400, "Invalid data; couldn't parse JSON object.")
        app.state.store.update(normalize_path(raw_path), changes)
        return JSONResponse(changes)

    @app.post("/{raw_path:path}")
    async def append(raw_path: str, request: Request):
        if not authorized(request):
            return _error(401, "Permission denied")
        try:
            value = await read_body(request)
        except json.JSONDecodeError:
            return _error(400, "Invalid data; couldn't parse JSON object.")
        key = app.state.store.push(normalize_path(raw_path), value)
        return JSONResponse({"name": key})

    @app.delete("/{raw_path:path}")
    async def delete(raw_path: str, request: Request):
        if not authorized(request):
            return _error(401, "Permission denied")
        app.state.store.remove(normalize_path(raw_path))
        return JSONResponse(None)

    return app


class FakeTreeServer:
    """High-level server class for running the fake store."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9000,
        data: Any = None,
        **kwargs,
    ):
        self.config = ServerConfig(host=host, port=port, **kwargs)
        self.app = create_app(self.config, data=data)

    def run(self):
        """Run the server (blocking)."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )

    async def run_async(self):
        """Run the server asynchronously."""
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )
        server = uvicorn.Server(config)
        await server.serve()
