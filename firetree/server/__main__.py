"""
Entry point for running the fake server as a module.

Usage:
    python -m firetree.server
    python -m firetree.server --port 9000 --host 127.0.0.1
"""

from .cli import main

if __name__ == "__main__":
    main()
