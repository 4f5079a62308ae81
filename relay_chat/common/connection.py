"""
Framed Connection

Wraps a connected socket and exchanges newline-terminated frames over it.
"""

import select
import socket
import threading
import time
import logging
from typing import Optional

from .errors import TransportError, FrameTooLargeError, SendTimeoutError

TERMINATOR = b"\n"
MAX_FRAME_SIZE = 512
RECV_SIZE = 4096

# Not available on Windows, where send() may block past the deadline
MSG_DONTWAIT = getattr(socket, "MSG_DONTWAIT", 0)


class Connection:
    """
    One client's byte stream, framed by newlines.

    Reads are meant to be driven by a single thread. Writes may come from any
    thread; each frame is written whole under the send lock.

    Attributes:
        sock: The underlying connected socket
        peer: Remote address, for logging
        max_frame_size: Largest frame accepted by read_frame, terminator excluded
        send_timeout: Seconds a frame may take to be written, None for no limit.
            A write that misses it closes the connection.
    """

    def __init__(self, sock: socket.socket, max_frame_size: int = MAX_FRAME_SIZE,
                 send_timeout: Optional[float] = None):
        self.sock = sock
        self.max_frame_size = max_frame_size
        self.send_timeout = send_timeout
        try:
            self.peer = sock.getpeername()
        except OSError:
            self.peer = None
        self._buffer = bytearray()
        self._send_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read_frame(self) -> Optional[bytes]:
        """
        Read the next frame.

        Returns:
            The frame bytes without terminator, or None once the peer has closed

        Raises:
            FrameTooLargeError: If a frame exceeds max_frame_size
            TransportError: If the socket fails or times out
        """
        while True:
            nl = self._buffer.find(TERMINATOR)
            if nl != -1:
                frame = bytes(self._buffer[:nl])
                del self._buffer[:nl + 1]
                if frame.endswith(b"\r"):
                    frame = frame[:-1]
                if len(frame) > self.max_frame_size:
                    raise FrameTooLargeError(
                        f"Frame of {len(frame)} bytes exceeds {self.max_frame_size}")
                return frame

            # +1 leaves room for a CR before the terminator
            if len(self._buffer) > self.max_frame_size + 1:
                raise FrameTooLargeError(
                    f"No terminator within {self.max_frame_size} bytes")

            try:
                chunk = self.sock.recv(RECV_SIZE)
            except socket.timeout as e:
                raise TransportError(f"Connection from {self.peer} timed out") from e
            except OSError as e:
                if self._closed:
                    return None
                raise TransportError(f"Read from {self.peer} failed: {e}") from e

            if not chunk:
                if self._buffer:
                    logging.warning(
                        f"Discarding {len(self._buffer)} unterminated bytes from {self.peer}")
                    self._buffer.clear()
                return None
            self._buffer.extend(chunk)

    def send_frame(self, data: bytes):
        """
        Write one frame followed by the terminator.

        With a send_timeout, waiting for the send lock and writing the frame
        are each bounded by it, so a peer that stops reading cannot hold the
        caller indefinitely.

        Raises:
            ValueError: If the frame contains the terminator
            SendTimeoutError: If the frame could not be written in time
            TransportError: If the connection is closed or the write fails
        """
        if TERMINATOR in data:
            raise ValueError("Frame must not contain the terminator")
        frame = bytes(data) + TERMINATOR

        lock_timeout = -1 if self.send_timeout is None else self.send_timeout
        if not self._send_lock.acquire(timeout=lock_timeout):
            raise SendTimeoutError(f"Connection to {self.peer} is busy with a stalled write")
        try:
            if self._closed:
                raise TransportError(f"Connection to {self.peer} is closed")
            try:
                if self.send_timeout is None:
                    self.sock.sendall(frame)
                else:
                    self._send_before_deadline(frame)
            except SendTimeoutError:
                # Partial frame already on the wire
                logging.warning(f"Closing {self.peer}: write stalled for {self.send_timeout}s")
                self.close()
                raise
            except (OSError, ValueError) as e:
                # ValueError: socket closed by another thread mid-write
                raise TransportError(f"Write to {self.peer} failed: {e}") from e
        finally:
            self._send_lock.release()

    def _send_before_deadline(self, frame: bytes):
        deadline = time.monotonic() + self.send_timeout
        view = memoryview(frame)
        while view:
            if self._closed:
                raise TransportError(f"Connection to {self.peer} closed during write")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SendTimeoutError(
                    f"Write to {self.peer} did not finish within {self.send_timeout}s")
            _, writable, _ = select.select([], [self.sock], [], remaining)
            if not writable:
                continue
            try:
                sent = self.sock.send(view, MSG_DONTWAIT)
            except BlockingIOError:
                continue
            view = view[sent:]

    def close(self):
        """Close the connection, waking up any thread blocked reading it."""
        if self._closed:
            return
        self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass
        self.sock.close()

    def __repr__(self):
        state = "closed" if self._closed else "open"
        return f"<Connection {self.peer} {state}>"
