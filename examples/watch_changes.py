#!/usr/bin/env python3
"""
FireTree - Watch Example

Follows changes below /rooms/lobby until interrupted. Write to the tree from
another process (e.g. basic_usage.py) to see events arrive.

Usage:
    export FIRETREE_URL=http://localhost:9000
    python watch_changes.py
"""

import logging
import os

from firetree import FireTree


def main():
    logging.basicConfig(level=logging.INFO)
    url = os.getenv("FIRETREE_URL", "http://localhost:9000")

    with FireTree(url) as ref:
        lobby = ref.child("rooms/lobby")

        with lobby.watch_queue() as events:
            print(f"Watching {lobby} (Ctrl+C to stop)")
            try:
                while True:
                    event = events.get(timeout=1.0)
                    if event is None:
                        continue
                    if event.is_error:
                        print(f"Watch ended: {event.error!r}")
                        break
                    print(f"{event.type.value:<6} {event.path} -> {event.data}")
                    print(f"       now: {lobby.watcher.snapshot()}")
            except KeyboardInterrupt:
                pass


if __name__ == "__main__":
    main()
