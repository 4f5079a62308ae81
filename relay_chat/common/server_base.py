"""
Common Relay Server Functionality

Data types and the threaded TCP server shared by the relay,
independent of the wire protocol used.
"""

import socketserver
from dataclasses import dataclass
from typing import Optional

from .connection import MAX_FRAME_SIZE
from .registry import UserRegistry

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_SEND_TIMEOUT = 5.0


@dataclass(frozen=True)
class User:
    """
    A connected user, identified only by username.

    Uniqueness is enforced by the registry, not by this type.
    """
    username: str

    def __str__(self):
        return self.username


@dataclass
class Message:
    """
    A message relayed from one user to another. Never stored.

    Attributes:
        sender: Username of sender
        receiver: Username of recipient
        message: Message body
    """
    sender: str
    receiver: str
    message: str


@dataclass
class RelayConfig:
    """
    Server settings.

    Attributes:
        host: Address to listen on
        port: Port to listen on
        idle_timeout: Seconds a connection may stay silent, None for no limit
        max_frame_size: Largest accepted frame in bytes
        send_timeout: Seconds a write to a client may take before that client
            is dropped as stalled, None for no limit
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    idle_timeout: Optional[float] = None
    max_frame_size: int = MAX_FRAME_SIZE
    send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """Threaded TCP server; every accepted client gets its own handler thread."""
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, server_address, RequestHandlerClass, config: Optional[RelayConfig] = None):
        """Initialize server with a shared UserRegistry"""
        super().__init__(server_address, RequestHandlerClass)
        self.config = config or RelayConfig()
        self.registry = UserRegistry()
