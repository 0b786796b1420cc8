"""
FireTree fake server - an in-memory tree store for local development and tests.

Run with:
    firetree-server                 # CLI entry point
    python -m firetree.server       # Module entry point

Or programmatically:
    from firetree.server import FakeTreeServer
    server = FakeTreeServer(port=9000)
    server.run()
"""

from .app import FakeTreeServer, TreeStore, create_app, format_event
from .config import ServerConfig

__all__ = [
    "create_app",
    "format_event",
    "FakeTreeServer",
    "ServerConfig",
    "TreeStore",
]
