"""
Pipe Protocol Chat Client

A command-line client for the relay. Registers one username, then sends and
receives messages concurrently: a background thread prints incoming frames
while the main thread reads the prompt.
"""

import socket
import threading
import logging
from typing import Callable, Optional

from ..common.connection import Connection
from ..common.errors import RelayError, TransportError
from ..common.server_base import User, Message, DEFAULT_HOST, DEFAULT_PORT
from . import protocol

HELP_TEXT = """Commands:
  @<user> <message>   Send a message to <user>
  /help               Show this help
  /quit               Disconnect and exit"""


def print_message(message: Message):
    print(f"\r[{message.sender}] {message.message}")


def print_error(error: protocol.Err):
    print(f"\r[server] {error.code}: {error.detail}")


class RelayChatClient:
    """Interactive relay client using the pipe protocol"""

    def __init__(self, host=DEFAULT_HOST, port=DEFAULT_PORT, username=None,
                 on_message: Optional[Callable[[Message], None]] = None,
                 on_error: Optional[Callable[[protocol.Err], None]] = None):
        """Initialize the client"""
        self.host = host
        self.port = port
        self.username = username
        self.on_message = on_message or print_message
        self.on_error = on_error or print_error
        self.connection: Optional[Connection] = None
        self.receiver_thread: Optional[threading.Thread] = None
        self.last_error: Optional[protocol.Err] = None
        logging.debug(f"Initialized client for {host}:{port}")

    @property
    def connected(self) -> bool:
        return self.connection is not None and not self.connection.closed

    def connect(self, username=None) -> bool:
        """
        Connect to the server and register a username.

        Args:
            username: Optional username, overriding the one given at init

        Returns:
            bool: True if the server accepted the registration
        """
        if self.connected:
            if username is not None and username != self.username:
                raise ValueError(f"Already connected as {self.username}; disconnect first")
            logging.warning(f"Already connected as {self.username}")
            return True

        if username is not None:
            self.username = username
        if not self.username:
            raise ValueError("A username is required to connect")

        try:
            sock = socket.create_connection((self.host, self.port))
        except OSError as e:
            logging.error(f"Connection failed: {e}")
            return False
        self.connection = Connection(sock)

        try:
            protocol.send_command(self.connection, protocol.Connect(User(self.username)))
            frame = self.connection.read_frame()
            if frame is None:
                raise TransportError("Server closed the connection during registration")
            reply = protocol.decode_server_frame(frame)
        except (RelayError, ValueError) as e:
            logging.error(f"Registration failed: {e}")
            self.connection.close()
            return False

        if isinstance(reply, protocol.Err):
            self.last_error = reply
            logging.error(f"Registration rejected: {reply.code}: {reply.detail}")
            self.connection.close()
            return False
        if not isinstance(reply, protocol.Ok):
            logging.error(f"Unexpected registration reply: {reply}")
            self.connection.close()
            return False

        logging.info(f"Connected to {self.host}:{self.port} as {self.username}")
        self.receiver_thread = threading.Thread(target=self.receive_loop, daemon=True)
        self.receiver_thread.start()
        return True

    def receive_loop(self):
        """Read frames from the server until the connection closes"""
        while True:
            try:
                frame = self.connection.read_frame()
            except TransportError as e:
                if not self.connection.closed:
                    logging.error(f"Lost connection to server: {e}")
                break
            if frame is None:
                break

            try:
                incoming = protocol.decode_server_frame(frame)
            except RelayError as e:
                logging.warning(f"Ignoring malformed frame {frame!r}: {e}")
                continue

            if isinstance(incoming, protocol.Msg):
                self.on_message(incoming.message)
            elif isinstance(incoming, protocol.Err):
                self.last_error = incoming
                self.on_error(incoming)
            else:
                logging.debug(f"Ignoring frame: {incoming}")

        logging.info("Receiver stopped")
        self.connection.close()

    def send_message(self, receiver: str, text: str) -> bool:
        """
        Send a message to another user.

        Delivery failures arrive asynchronously as Err frames.

        Returns:
            bool: True if the frame was written to the server
        """
        if not self.connected:
            logging.error("Not connected")
            return False

        message = Message(sender=self.username, receiver=receiver, message=text)
        try:
            protocol.send_command(self.connection, protocol.Msg(message))
        except ValueError as e:
            logging.error(f"Cannot send message: {e}")
            return False
        except TransportError as e:
            logging.error(f"Error sending message: {e}")
            return False
        return True

    def handle_input(self, line: str) -> bool:
        """
        Act on one line typed at the prompt.

        Returns:
            bool: False when the user asked to quit
        """
        line = line.strip()
        if not line:
            return True
        if line == "/quit":
            return False
        if line == "/help":
            print(HELP_TEXT)
            return True
        if line.startswith("@"):
            receiver, _, text = line[1:].partition(" ")
            if receiver and text:
                self.send_message(receiver, text)
                return True
        print("Usage: @<user> <message>  (/help for commands)")
        return True

    def main_loop(self):
        """Prompt for messages until /quit, EOF or server disconnect"""
        print(f"Connected as {self.username}. Type /help for commands.")
        while self.connected:
            try:
                line = input("> ")
            except EOFError:
                break
            if not self.handle_input(line):
                break

    def disconnect(self):
        """Close the connection and wait for the receiver thread"""
        if self.connection is not None:
            self.connection.close()
        if self.receiver_thread is not None and self.receiver_thread is not threading.current_thread():
            self.receiver_thread.join(timeout=2.0)
        logging.info("Disconnected")
