"""
Client configuration for FireTree.
"""

import os
from dataclasses import dataclass


DEFAULT_TIMEOUT = 30.0


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class ClientConfig:
    """Configuration shared by a FireTree handle and all of its children.

    ``timeout`` is the budget, in seconds, that a request has to establish a
    connection and receive response headers. It is only the starting value:
    the live budget belongs to the session and may be changed at any time.
    """

    timeout: float = DEFAULT_TIMEOUT

    keepalive_expiry: float = 30.0

    # How long stop() waits for the watch thread to finish.
    stop_timeout: float = 5.0

    user_agent: str = "firetree-python"

    def __post_init__(self):
        if self.timeout is None:
            raise ValueError("timeout must be a number of seconds")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        return cls(
            timeout=_env_float("FIRETREE_TIMEOUT", DEFAULT_TIMEOUT),
            keepalive_expiry=_env_float("FIRETREE_KEEPALIVE_EXPIRY", 30.0),
            stop_timeout=_env_float("FIRETREE_STOP_TIMEOUT", 5.0),
        )
