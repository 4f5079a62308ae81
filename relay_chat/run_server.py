"""
Relay Server Runner

Starts the relay server.
"""

import argparse
import logging
import signal
import sys
import threading
from relay_chat.common.server_base import RelayConfig, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_SEND_TIMEOUT
from relay_chat.common.connection import MAX_FRAME_SIZE
from relay_chat.pipe_protocol.server import RelayChatServer


def signal_handler(sig, frame):
    """Handle Ctrl+C gracefully"""
    print("\nShutting down server...")
    # Raise KeyboardInterrupt so main() can clean up
    raise KeyboardInterrupt()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Relay chat server")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Close connections idle for this many seconds (default: never)"
    )
    parser.add_argument(
        "--send-timeout",
        type=float,
        default=DEFAULT_SEND_TIMEOUT,
        help="Drop a client whose socket stays unwritable this many seconds"
    )
    parser.add_argument(
        "--max-frame-size",
        type=int,
        default=MAX_FRAME_SIZE,
        help="Largest accepted frame in bytes"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the relay server"""
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = RelayConfig(
        host=args.host,
        port=args.port,
        idle_timeout=args.idle_timeout,
        max_frame_size=args.max_frame_size,
        send_timeout=args.send_timeout
    )

    try:
        server = RelayChatServer((config.host, config.port), config)
    except OSError as e:
        logging.error(f"Could not bind {config.host}:{config.port}: {e}")
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logging.info(f"Relay server listening on {config.host}:{config.port}")

    try:
        while thread.is_alive():
            thread.join(timeout=1.0)
        logging.error("Server thread died unexpectedly")
        sys.exit(1)
    except KeyboardInterrupt:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5.0)
        logging.info("Server shutdown complete")


if __name__ == "__main__":
    main()
