"""
Relay Errors

Exceptions raised by the codec, connections and registry. Each one carries
the code sent back to the client in an ``Err`` frame.
"""


class RelayError(Exception):
    """Base class for all relay errors."""
    code = "Error"


class EncodingError(RelayError):
    """Raised when frame bytes are not valid text."""
    code = "EncodingError"


class ParseError(RelayError):
    """Raised when text does not match a known command grammar."""
    code = "ParseError"


class AlreadyRegisteredError(RelayError):
    """Raised when a username is already bound to a live connection."""
    code = "AlreadyRegistered"

    def __init__(self, username: str):
        super().__init__(f"Username {username} is already registered")
        self.username = username


class RecipientNotFoundError(RelayError):
    """Raised when a message targets a username with no live connection."""
    code = "RecipientNotFound"

    def __init__(self, username: str):
        super().__init__(f"Recipient {username} is not connected")
        self.username = username


class DeliveryFailedError(RelayError):
    """Raised when writing a routed message to the recipient fails."""
    code = "DeliveryFailed"

    def __init__(self, username: str):
        super().__init__(f"Could not deliver message to {username}")
        self.username = username


class ProtocolViolationError(RelayError):
    """Raised when a valid command arrives in the wrong session state."""
    code = "ProtocolViolation"


class InvalidSenderError(RelayError):
    """Raised when a message names a sender other than the session user."""
    code = "InvalidSender"


class TransportError(RelayError):
    """I/O failure or disconnect. Fatal to the affected connection only."""
    code = "TransportError"


class FrameTooLargeError(TransportError):
    code = "FrameTooLarge"


class SendTimeoutError(TransportError):
    """Raised when a peer stops reading and a frame cannot be written in time."""
    code = "SendTimeout"
