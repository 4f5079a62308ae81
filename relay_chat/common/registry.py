"""
User Registry

The server-side mapping from username to live connection, shared by all
connection handlers.
"""

import threading
import logging
from typing import Dict, List, Optional, Union, TYPE_CHECKING

from .connection import Connection
from .errors import (
    AlreadyRegisteredError,
    RecipientNotFoundError,
    DeliveryFailedError,
    TransportError,
)

if TYPE_CHECKING:
    from .server_base import User


def _name(user) -> str:
    # Accepts a User or a bare username
    return getattr(user, "username", user)


class UserRegistry:
    """
    Thread-safe username to connection mapping.

    All reads and writes of the mapping happen under one lock, so two
    concurrent registrations of the same name cannot both succeed. Writes to
    a routed connection happen outside the lock.

    Attributes:
        connections (Dict[str, Connection]): Live connection per username
        lock (threading.Lock): Guards connections
    """

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.lock = threading.Lock()

    def register(self, user: "User", connection: Connection):
        """
        Bind a username to a connection.

        Raises:
            AlreadyRegisteredError: If the username is already bound
        """
        with self.lock:
            if user.username in self.connections:
                raise AlreadyRegisteredError(user.username)
            self.connections[user.username] = connection
        logging.info(f"Registered {user.username} from {connection.peer}")

    def lookup(self, user: Union["User", str]) -> Optional[Connection]:
        """Return the live connection for a username, or None."""
        with self.lock:
            connection = self.connections.get(_name(user))
        if connection is None or connection.closed:
            return None
        return connection

    def unregister(self, user: Union["User", str], connection: Optional[Connection] = None) -> bool:
        """
        Remove a username's entry.

        Args:
            user: The user or username to remove
            connection: If given, only remove the entry if it still points here

        Returns:
            True if an entry was removed
        """
        username = _name(user)
        with self.lock:
            current = self.connections.get(username)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self.connections[username]
        logging.info(f"Unregistered {username}")
        return True

    def route(self, receiver: str, frame: bytes):
        """
        Write an encoded frame to the receiver's connection.

        Raises:
            RecipientNotFoundError: If the receiver has no live connection
            DeliveryFailedError: If writing to the receiver fails
        """
        connection = self.lookup(receiver)
        if connection is None:
            raise RecipientNotFoundError(receiver)
        try:
            connection.send_frame(frame)
        except TransportError as e:
            logging.warning(f"Delivery to {receiver} failed: {e}")
            raise DeliveryFailedError(receiver) from e

    def users(self) -> List[str]:
        """Sorted list of registered usernames."""
        with self.lock:
            return sorted(self.connections)

    def __contains__(self, user) -> bool:
        with self.lock:
            return _name(user) in self.connections

    def __len__(self) -> int:
        with self.lock:
            return len(self.connections)
