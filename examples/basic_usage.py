#!/usr/bin/env python3
"""
FireTree - Basic Usage Example

Reads and writes against a tree store.

Prerequisites:
    pip install firetree[server]
    firetree-server --port 9000      # in another terminal

Usage:
    export FIRETREE_URL=http://localhost:9000
    python basic_usage.py
"""

import os

from firetree import FireTree, RemoteError, RequestTimeoutError


def main():
    url = os.getenv("FIRETREE_URL", "http://localhost:9000")

    with FireTree(url) as ref:
        users = ref.child("users")

        # 1. Replace a value
        print("1. Writing users...")
        users.child("alice").set({"name": "Alice", "age": 30})
        users.child("bob").set({"name": "Bob", "age": 25})

        # 2. Merge into an object
        print("\n2. Updating bob...")
        users.child("bob").update({"age": 26})
        print(f"   bob = {users.child('bob').value()}")

        # 3. Shallow read: only the keys
        print("\n3. Shallow read of /users...")
        keys = users.child("")
        keys.shallow(True)
        print(f"   keys = {sorted(keys.value())}")

        # 4. Server-generated keys
        print("\n4. Pushing messages...")
        messages = ref.child("messages")
        for text in ("hello", "world"):
            pushed = messages.push({"text": text})
            print(f"   {pushed}")

        # 5. Timeouts
        print("\n5. Tight timeout...")
        ref.timeout = 0.001
        try:
            ref.value()
            print("   answered in time")
        except RequestTimeoutError as e:
            print(f"   timed out: {e}")
        except RemoteError as e:
            print(f"   server error: {e}")
        finally:
            ref.timeout = 30.0

        # 6. Clean up
        print("\n6. Removing everything...")
        ref.remove()
        print(f"   root = {ref.value()}")


if __name__ == "__main__":
    main()
