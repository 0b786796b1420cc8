"""
Integration tests: the FireTree client against the fake server over HTTP.
"""

import threading
import time

import pytest

from firetree import FireTree, RemoteError
from firetree.server import ServerConfig, create_app


@pytest.fixture
def server_url():
    import uvicorn

    app = create_app(ServerConfig(auth_token=None))
    config = uvicorn.Config(app, host="127.0.0.1", port=0, log_level="warning")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline:
            raise RuntimeError("fake server did not start")
        time.sleep(0.01)

    port = server.servers[0].sockets[0].getsockname()[1]
    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    thread.join(timeout=5)


class TestCrud:
    """Reads and writes round-trip through the fake server."""

    def test_update(self, server_url):
        payload = {"foo": "bar"}
        with FireTree(server_url) as ref:
            ref.update(payload)
            assert ref.value() == payload

    def test_set_child_and_read_parent(self, server_url):
        with FireTree(server_url) as ref:
            ref.child("users/alice").set({"age": 30})
            ref.child("users/bob").set({"age": 25})
            assert ref.child("users").value() == {"alice": {"age": 30}, "bob": {"age": 25}}

    def test_shallow(self, server_url):
        with FireTree(server_url) as ref:
            ref.set({"a": {"deep": 1}, "b": 2})
            shallow = ref.child("")
            shallow.shallow(True)
            assert shallow.value() == {"a": True, "b": True}
            assert ref.value() == {"a": {"deep": 1}, "b": 2}

    def test_push_and_remove(self, server_url):
        with FireTree(server_url) as ref:
            messages = ref.child("messages")
            first = messages.push("hello")
            second = messages.push("world")

            assert first.value() == "hello"
            assert list(messages.value()) == [first.url.rsplit("/", 1)[1], second.url.rsplit("/", 1)[1]]

            first.remove()
            assert first.value() is None
            assert messages.value() == {second.url.rsplit("/", 1)[1]: "world"}


class TestErrors:
    """Server errors surface as RemoteError."""

    def test_remote_error_body(self, server_url):
        with FireTree(server_url) as ref:
            with pytest.raises(RemoteError) as exc_info:
                ref.update([1, 2])  # PATCH needs an object
            assert exc_info.value.status_code == 400
            assert "error" in str(exc_info.value)
