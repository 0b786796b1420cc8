"""
Command-line interface for the FireTree fake server.
"""

import argparse
import json
import sys


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="firetree-server",
        description="FireTree fake server - an in-memory JSON tree with watch streams",
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=9000,
        help="Port to bind to (default: 9000)",
    )
    parser.add_argument(
        "--auth-token",
        default=None,
        help="Require ?auth=<token> on every request",
    )
    parser.add_argument(
        "--seed",
        default=None,
        help="JSON file with the initial contents of the tree",
    )
    parser.add_argument(
        "--keepalive",
        type=float,
        default=30.0,
        help="Seconds between keep-alive events on idle watch streams (default: 30)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    args = parser.parse_args()

    data = None
    if args.seed:
        with open(args.seed) as f:
            data = json.load(f)

    from .app import FakeTreeServer

    print(f"FireTree fake server on http://{args.host}:{args.port}/.json")
    print("Press Ctrl+C to stop the server.")

    try:
        server = FakeTreeServer(
            host=args.host,
            port=args.port,
            data=data,
            auth_token=args.auth_token,
            keepalive_interval=args.keepalive,
            log_level=args.log_level,
        )
        server.run()
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)


if __name__ == "__main__":
    main()
