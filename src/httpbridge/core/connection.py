"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered reading of whole requests,
writing responses, and closing.

=============================================================================
WHY CONNECTIONS GET PARKED
=============================================================================

In a classic threaded server one worker owns a connection from read to
write. Here the answer comes from somewhere else, later:

    engine worker                     handler thread (any time later)
    ─────────────                     ───────────────────────────────
    read_request()
    parse
    bridging handler ──► event ──────► handler(body)
    state = PARKED                          │
    worker returns to pool                  ▼
                                      respond(id, status, data)
                                            │
                                      Completion.fulfil()
                                      send_response()  ◄── same Connection

While PARKED nobody reads from the socket; the connection simply waits
for its Completion. That is why writes and closes take a lock: the
handler thread writing and a stop() closing can race.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PARKED ──► WRITING ──► KEEP_ALIVE ──► READING ...
     │         │           │                        │
     │         │           │ (stop / expiry)        │ (idle timeout)
     ▼         ▼           ▼                        ▼
     └──────► CLOSING ◄────┴────────────────────────┘
                 │
                 ▼
               CLOSED

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"
    READING = "reading"
    PARKED = "parked"          # request handed off, waiting for its completion
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client (ip, port).
        id: Short id for log lines.
        state: Current ConnectionState.
        requests_handled: Requests read on this connection so far.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request: headers up to \\r\\n\\r\\n, then exactly
        Content-Length body bytes. Extra bytes stay buffered for the next
        call (pipelining).

        Returns:
            The request bytes, or None if the client closed the connection
            (or went idle on a kept-alive connection).

        Raises:
            TimeoutError: First request not received in time.
            ValueError: Request larger than max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # truncated; the parser reports it
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if not self.is_closed:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes; 0 if absent or invalid."""
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # PARKING / WRITING
    # =========================================================================

    def park(self):
        """Mark the connection as waiting for an asynchronous completion."""
        self.state = ConnectionState.PARKED

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def send_response(self, data: bytes) -> bool:
        """
        Write a full response.

        Returns:
            True if every byte was sent, False if the connection is gone.
        """
        with self._lock:
            if self.is_closed:
                return False

            self.state = ConnectionState.WRITING
            try:
                self.socket.sendall(data)
                self.last_activity = time.time()
                return True
            except OSError as e:
                logger.warning(f"[{self.id}] Send failed: {e}")
                return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close after a response: FIN, brief drain, release the socket.
        Safe to call more than once.
        """
        with self._lock:
            if self.is_closed:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()

    def abort(self):
        """
        Drop the connection without writing anything.

        Used for abandoned requests: no response, no drain, the client
        just sees the connection go away.
        """
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        self._release()

    def _release(self):
        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
