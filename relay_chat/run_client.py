"""
Relay Client Runner

Starts the interactive relay client.
"""

import argparse
import logging
import sys
from relay_chat.common.server_base import DEFAULT_HOST, DEFAULT_PORT
from relay_chat.pipe_protocol.client import RelayChatClient


def main(argv=None):
    parser = argparse.ArgumentParser(description="Relay chat client")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument("--username", help="Username to register (prompted if omitted)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        username = args.username or input("Username: ").strip()
        if not username:
            print("Error: a username is required")
            sys.exit(1)
        client = RelayChatClient(args.host, args.port, username)

        if not client.connect():
            if client.last_error is not None:
                print(f"Error: {client.last_error.code}: {client.last_error.detail}")
            else:
                print(f"Error: could not connect to {args.host}:{args.port}")
            sys.exit(1)
        try:
            client.main_loop()
        finally:
            client.disconnect()

    except (KeyboardInterrupt, EOFError):
        print("\nShutting down client...")


if __name__ == "__main__":
    main()
