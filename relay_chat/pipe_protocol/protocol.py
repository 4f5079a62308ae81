"""
Pipe Protocol Implementation

Defines the pipe-delimited text protocol for the relay.

Client commands:
    Connect|<username>
    Msg|<sender>|<receiver>|<message>

Server responses:
    Ok|<username>
    Err|<code>|<detail>

Frames carry no terminator at this layer; the Connection appends one.
Message bodies may contain the delimiter: every field after the receiver is
joined back together, so a body is never truncated. Usernames may not contain
the delimiter, and no field may contain a line break.
"""

from dataclasses import dataclass
from typing import Optional, Union
import logging

from ..common.connection import Connection
from ..common.errors import EncodingError, ParseError
from ..common.server_base import User, Message

DELIMITER = "|"
ENCODING = "utf-8"

CONNECT_TAG = "Connect"
MSG_TAG = "Msg"
OK_TAG = "Ok"
ERR_TAG = "Err"

_LINE_BREAKS = ("\n", "\r")


@dataclass(frozen=True)
class Connect:
    """Registers the session's username."""
    user: User


@dataclass(frozen=True)
class Msg:
    """Asks the server to relay a message to another user."""
    message: Message


@dataclass(frozen=True)
class Ok:
    """Server reply accepting a registration."""
    username: str


@dataclass(frozen=True)
class Err:
    """Server reply rejecting a command."""
    code: str
    detail: str = ""


Command = Union[Connect, Msg]
ServerFrame = Union[Msg, Ok, Err]


def _check_field(name: str, value: str, is_body: bool = False):
    # Names are non-empty and delimiter-free; a body may be empty or contain it
    if not is_body and not value:
        raise ValueError(f"{name} must not be empty")
    if any(ch in value for ch in _LINE_BREAKS):
        raise ValueError(f"{name} must not contain line breaks")
    if not is_body and DELIMITER in value:
        raise ValueError(f"{name} must not contain '{DELIMITER}'")


def encode_command(command: Command) -> bytes:
    """
    Encode a command as a pipe-delimited frame.

    Args:
        command: A Connect or Msg value

    Returns:
        The encoded frame, without a terminator

    Raises:
        ValueError: If a field cannot be represented on the wire
    """
    if isinstance(command, Connect):
        _check_field("username", command.user.username)
        text = DELIMITER.join([CONNECT_TAG, command.user.username])
    elif isinstance(command, Msg):
        msg = command.message
        _check_field("sender", msg.sender)
        _check_field("receiver", msg.receiver)
        _check_field("message", msg.message, is_body=True)
        text = DELIMITER.join([MSG_TAG, msg.sender, msg.receiver, msg.message])
    else:
        raise TypeError(f"Cannot encode {type(command).__name__}")
    return text.encode(ENCODING)


def _decode_text(data: bytes) -> str:
    try:
        text = bytes(data).decode(ENCODING)
    except UnicodeDecodeError as e:
        raise EncodingError(f"Frame is not valid {ENCODING}: {e.reason}") from e
    if any(ch in text for ch in _LINE_BREAKS):
        raise ParseError("Frame must not contain line breaks")
    return text


def _parse_msg(fields) -> Msg:
    # Msg|sender|receiver|message
    if len(fields) < 4:
        raise ParseError(f"Msg needs sender, receiver and message, got {len(fields) - 1} field(s)")
    sender, receiver = fields[1], fields[2]
    if not sender or not receiver:
        raise ParseError("Msg sender and receiver must not be empty")
    body = DELIMITER.join(fields[3:])
    return Msg(Message(sender=sender, receiver=receiver, message=body))


def decode_command(data: bytes) -> Command:
    """
    Decode one frame sent by a client.

    Args:
        data: The frame bytes, without terminator

    Returns:
        The decoded Connect or Msg command

    Raises:
        EncodingError: If the bytes are not valid UTF-8
        ParseError: If the text is not a well-formed command
    """
    fields = _decode_text(data).split(DELIMITER)
    tag = fields[0]

    if tag == CONNECT_TAG:
        # Connect|username
        if len(fields) < 2 or not fields[1]:
            raise ParseError("Connect needs a username")
        return Connect(User(fields[1]))
    elif tag == MSG_TAG:
        return _parse_msg(fields)
    elif not tag:
        raise ParseError("Empty command tag")
    raise ParseError(f"Unknown command: {tag}")


def encode_ok(username: str) -> bytes:
    """Encode the reply to a successful Connect."""
    return DELIMITER.join([OK_TAG, username]).encode(ENCODING)


def encode_error(code: str, detail: str = "") -> bytes:
    """Encode an error reply. Line breaks in the detail are flattened."""
    for ch in _LINE_BREAKS:
        detail = detail.replace(ch, " ")
    return DELIMITER.join([ERR_TAG, code, detail]).encode(ENCODING)


def decode_server_frame(data: bytes) -> ServerFrame:
    """
    Decode one frame sent by the server.

    Returns:
        Msg for relayed messages, Ok or Err for replies

    Raises:
        EncodingError: If the bytes are not valid UTF-8
        ParseError: If the frame is not a known server frame
    """
    fields = _decode_text(data).split(DELIMITER)
    tag = fields[0]

    if tag == MSG_TAG:
        return _parse_msg(fields)
    elif tag == OK_TAG:
        if len(fields) < 2:
            raise ParseError("Ok needs a username")
        return Ok(fields[1])
    elif tag == ERR_TAG:
        if len(fields) < 2 or not fields[1]:
            raise ParseError("Err needs a code")
        return Err(fields[1], DELIMITER.join(fields[2:]))
    raise ParseError(f"Unknown server frame: {tag}")


def send_command(connection: Connection, command: Command):
    """Encode a command and write it to the connection as one frame."""
    frame = encode_command(command)
    logging.debug(f"Sending frame to {connection.peer}: {frame!r}")
    connection.send_frame(frame)


def receive_command(connection: Connection) -> Optional[Command]:
    """
    Read and decode the next command from a connection.

    Returns:
        The command, or None if the peer closed the connection
    """
    frame = connection.read_frame()
    if frame is None:
        return None
    logging.debug(f"Received frame from {connection.peer}: {frame!r}")
    return decode_command(frame)
