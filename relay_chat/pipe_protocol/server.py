"""
Pipe Protocol Server Implementation

Request handler running one client's session:
AWAITING_CONNECT -> REGISTERED -> CLOSED.
"""

import socketserver
import logging
from enum import Enum, auto
from typing import Optional

from ..common.server_base import ThreadedTCPServer, RelayConfig, User
from ..common.connection import Connection
from ..common.errors import (
    RelayError,
    EncodingError,
    ParseError,
    AlreadyRegisteredError,
    ProtocolViolationError,
    InvalidSenderError,
    TransportError,
    FrameTooLargeError,
)
from . import protocol


class SessionState(Enum):
    AWAITING_CONNECT = auto()
    REGISTERED = auto()
    CLOSED = auto()


class RelayRequestHandler(socketserver.BaseRequestHandler):
    """Handler for one pipe protocol client connection"""

    def setup(self):
        """Wrap the socket and get a reference to the shared registry"""
        config = self.server.config
        if config.idle_timeout:
            self.request.settimeout(config.idle_timeout)
        self.registry = self.server.registry
        self.connection = Connection(self.request, config.max_frame_size, config.send_timeout)
        self.state = SessionState.AWAITING_CONNECT
        self.user: Optional[User] = None

    def handle(self):
        """Read and dispatch commands until the session closes."""
        logging.info(f"New client connection from {self.client_address}")

        while self.state is not SessionState.CLOSED:
            try:
                command = protocol.receive_command(self.connection)
                if command is None:
                    logging.info(f"Client {self.client_address} closed connection")
                    break
                self.handle_command(command)

            except ParseError as e:
                # Bad command, but the stream is still in sync
                logging.warning(f"Rejected command from {self.client_address}: {e}")
                self.send_error(e)

            except (EncodingError, ProtocolViolationError, AlreadyRegisteredError,
                    FrameTooLargeError) as e:
                logging.warning(f"Closing {self.client_address}: {e}")
                self.send_error(e)
                break

            except TransportError as e:
                logging.info(f"Connection from {self.client_address} lost: {e}")
                break

            except Exception as e:
                logging.error(f"Error handling client {self.client_address}: {e}", exc_info=True)
                break

        self.state = SessionState.CLOSED

    def handle_command(self, command: protocol.Command):
        """Dispatch one decoded command according to the session state"""
        if self.state is SessionState.AWAITING_CONNECT:
            if not isinstance(command, protocol.Connect):
                raise ProtocolViolationError("Send Connect before any other command")
            self.register(command.user)

        elif self.state is SessionState.REGISTERED:
            if not isinstance(command, protocol.Msg):
                raise ProtocolViolationError(f"Already connected as {self.user}")
            self.relay(command)

    def register(self, user: User):
        self.registry.register(user, self.connection)
        self.user = user
        self.state = SessionState.REGISTERED
        self.connection.send_frame(protocol.encode_ok(user.username))

    def relay(self, command: protocol.Msg):
        """Forward a message to its receiver, reporting failures to the sender"""
        message = command.message
        if message.sender != self.user.username:
            self.send_error(InvalidSenderError(
                f"Sender {message.sender} does not match session user {self.user}"))
            return

        logging.debug(f"Routing message from {message.sender} to {message.receiver}")
        try:
            self.registry.route(message.receiver, protocol.encode_command(command))
        except RelayError as e:
            # RecipientNotFound or DeliveryFailed
            logging.warning(f"Message from {message.sender} not delivered: {e}")
            self.send_error(e)

    def send_error(self, error: RelayError):
        """Send an Err frame to this client, ignoring a dead socket"""
        try:
            self.connection.send_frame(protocol.encode_error(error.code, str(error)))
        except TransportError as e:
            logging.debug(f"Could not send error to {self.client_address}: {e}")

    def finish(self):
        """Unregister the session user and release the connection"""
        self.state = SessionState.CLOSED
        if self.user is not None:
            self.registry.unregister(self.user, self.connection)
        self.connection.close()
        logging.info(f"Client connection closed from {self.client_address}")


class RelayChatServer(ThreadedTCPServer):
    """Relay server using the pipe protocol"""
    def __init__(self, server_address, config: Optional[RelayConfig] = None):
        super().__init__(server_address, RelayRequestHandler, config)
