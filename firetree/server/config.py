"""
Server configuration for the FireTree fake server.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """Configuration for the fake tree server."""

    host: str = "127.0.0.1"
    port: int = 9000

    # When set, every request must carry ?auth=<token>.
    auth_token: Optional[str] = None

    keepalive_interval: float = 30.0

    log_level: str = "info"

    def __post_init__(self):
        if self.auth_token is None:
            self.auth_token = os.environ.get("FIRETREE_SERVER_AUTH") or None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        return cls(
            host=os.environ.get("FIRETREE_SERVER_HOST", "127.0.0.1"),
            port=int(os.environ.get("FIRETREE_SERVER_PORT", "9000")),
            keepalive_interval=float(os.environ.get("FIRETREE_SERVER_KEEPALIVE", "30")),
            log_level=os.environ.get("FIRETREE_SERVER_LOG_LEVEL", "info"),
        )
