"""
Shared fixtures: small local HTTP servers for timeout and streaming tests.
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class LocalServer:
    """A threaded HTTP server whose GET handler is supplied by the test."""

    def __init__(self, handle_get):
        self.requests = []
        self.release = threading.Event()
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                server.requests.append({"path": self.path, "headers": self.headers})
                handle_get(self, server)

            def log_message(self, format, *args):
                pass

        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._httpd.daemon_threads = True
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> "LocalServer":
        self._thread.start()
        return self

    def close(self) -> None:
        self.release.set()
        self._httpd.shutdown()
        self._httpd.server_close()


def write_stream(handler: BaseHTTPRequestHandler, chunks, server: LocalServer, hold: bool = True):
    """Send an event-stream response made of ``chunks``, then optionally hold it open."""
    handler.send_response(200)
    handler.send_header("Content-Type", "text/event-stream")
    handler.end_headers()
    for chunk in chunks:
        handler.wfile.write(chunk)
        handler.wfile.flush()
    if hold:
        server.release.wait(10)


@pytest.fixture
def local_server():
    """Factory fixture: ``local_server(handle_get)`` returns a started server."""
    servers = []

    def factory(handle_get):
        server = LocalServer(handle_get).start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.close()


@pytest.fixture
def silent_server(local_server):
    """A server that accepts connections but never sends response headers."""

    def never_answer(handler, server):
        server.release.wait(10)

    return local_server(never_answer)


@pytest.fixture
def stream_server(local_server):
    """Factory fixture: ``stream_server([chunks], hold=True)`` serves one event stream per GET."""

    def factory(chunks, hold=True):
        return local_server(lambda handler, server: write_stream(handler, chunks, server, hold=hold))

    return factory
