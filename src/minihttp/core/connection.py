"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with a higher-level API: read a request
head, write response bytes, close properly, and track where in its
lifecycle the connection is.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A request head sent as

    GET /index.html HTTP/1.1\r\n
    Host: localhost\r\n
    \r\n

may arrive as one recv() or as a dozen. We buffer until the empty line
that ends the head shows up, and give up once the buffer passes the
configured bound (8 KiB by default) without one.

=============================================================================
CONNECTION STATES
=============================================================================

    AWAITING_REQUEST_LINE ──► PARSING_HEADERS ──► RESOLVING_RESOURCE
            │                       │                     │
            │                       ▼                     ▼
            │                     ERROR ◄─────────────────┤
            │                       │                     │
            │         ┌─────────────┴──────────┐          │
            │         ▼                        ▼          ▼
            │       CLOSED              WRITING_RESPONSE ◄┘
            │         ▲                        │
            └─────────┴────────────────────────┘

ERROR moves on to WRITING_RESPONSE when an error page can still be sent,
or straight to CLOSED when response bytes already went out.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import IOFailure, MalformedRequest, RequestTimeout, RequestTooLarge


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    AWAITING_REQUEST_LINE = "awaiting_request_line"  # Accepted, nothing read yet
    PARSING_HEADERS = "parsing_headers"              # Request line seen, reading headers
    RESOLVING_RESOURCE = "resolving_resource"        # Head parsed, mapping path to file
    WRITING_RESPONSE = "writing_response"            # Sending bytes
    ERROR = "error"                                  # Something failed, deciding how to end
    CLOSED = "closed"                                # Socket released


_TRANSITIONS = {
    ConnectionState.AWAITING_REQUEST_LINE: {
        ConnectionState.PARSING_HEADERS,
        ConnectionState.ERROR,
    },
    ConnectionState.PARSING_HEADERS: {
        ConnectionState.RESOLVING_RESOURCE,
        ConnectionState.ERROR,
    },
    ConnectionState.RESOLVING_RESOURCE: {
        ConnectionState.WRITING_RESPONSE,
        ConnectionState.ERROR,
    },
    ConnectionState.ERROR: {
        ConnectionState.WRITING_RESPONSE,
    },
    ConnectionState.WRITING_RESPONSE: set(),
    ConnectionState.CLOSED: set(),
}


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED READING                                                 │
    │     └── Accumulate recv() chunks until the head is complete          │
    │     └── Enforce max_header_size while doing so                       │
    │                                                                      │
    │  2. TIMEOUTS                                                         │
    │     └── Every recv()/sendall() is bounded by `timeout`               │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── Legal transitions only (see module docstring)                │
    │                                                                      │
    │  4. COMMIT TRACKING                                                  │
    │     └── bytes_sent > 0 means an error page can no longer be sent     │
    │                                                                      │
    │  5. GRACEFUL CLOSE                                                   │
    │     └── shutdown(SHUT_WR), drain, close                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        bytes_sent: Response bytes written so far.
    """

    # Required parameters
    socket: socket.socket
    address: tuple[str, int]

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.AWAITING_REQUEST_LINE
    created_at: float = field(default_factory=time.time)
    bytes_sent: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    timeout: Optional[float] = 30.0
    max_header_size: int = 8 * 1024

    # Internal state (not shown in repr for cleaner logs)
    _buffer: bytes = field(default=b"", repr=False)

    # Upper bound on what close() is willing to drain
    DRAIN_LIMIT = 64 * 1024

    def __post_init__(self):
        # Blocking mode with a timeout: recv() waits at most `timeout` seconds
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def committed(self) -> bool:
        """True once any response byte has been written."""
        return self.bytes_sent > 0

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # STATE
    # =========================================================================

    def transition(self, new_state: ConnectionState) -> None:
        """
        Move to new_state.

        Raises:
            RuntimeError: The transition is not part of the lifecycle.
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"[{self.id}] Illegal state transition {self.state.name} -> {new_state.name}"
            )
        logger.debug(f"[{self.id}] {self.state.name} -> {new_state.name}")
        self.state = new_state

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self) -> Optional[bytes]:
        """
        Read a complete request head (request line + headers + empty line).

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_head() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while no empty line in buffer:                                │
        │       buffer > max_header_size?   → RequestTooLarge             │
        │       recv() → chunk                                            │
        │       chunk empty (EOF)?                                        │
        │           buffer empty            → return None                 │
        │           otherwise               → MalformedRequest            │
        │       first line complete?        → PARSING_HEADERS             │
        │                                                                  │
        │   head longer than the bound?     → RequestTooLarge             │
        │   return head (terminator included)                             │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Bytes after the head (a body the client insisted on sending) are
        left unread; close() drains them.

        Returns:
            Head bytes, or None if the client closed without sending anything.

        Raises:
            RequestTooLarge: Head exceeds max_header_size.
            MalformedRequest: Client closed mid-head.
            RequestTimeout: Client stopped sending for `timeout` seconds.
        """
        try:
            while True:
                head_end = self._find_head_end()
                if head_end != -1:
                    break

                if len(self._buffer) > self.max_header_size:
                    raise RequestTooLarge(f"Request head exceeds {self.max_header_size} bytes")

                chunk = self._recv()
                if not chunk:
                    if not self._buffer:
                        return None  # Connection closed by client
                    raise MalformedRequest("Connection closed before end of request head")

                self._buffer += chunk

                if (self.state is ConnectionState.AWAITING_REQUEST_LINE
                        and b"\n" in self._buffer):
                    self.transition(ConnectionState.PARSING_HEADERS)

        except socket.timeout:
            raise RequestTimeout("Timed out waiting for request head")

        if head_end > self.max_header_size:
            raise RequestTooLarge(f"Request head exceeds {self.max_header_size} bytes")

        # A head that arrived in one piece skips straight past the request line
        if self.state is ConnectionState.AWAITING_REQUEST_LINE:
            self.transition(ConnectionState.PARSING_HEADERS)

        head = self._buffer[:head_end]
        self._buffer = self._buffer[head_end:]
        return head

    def _find_head_end(self) -> int:
        """Offset just past the empty line ending the head, or -1."""
        ends = []
        crlf = self._buffer.find(b"\r\n\r\n")
        if crlf != -1:
            ends.append(crlf + 4)
        lf = self._buffer.find(b"\n\n")
        if lf != -1:
            ends.append(lf + 2)
        return min(ends) if ends else -1

    def _recv(self) -> bytes:
        """
        Receive data from socket.

        Returns:
            Received bytes, or empty bytes if the peer went away.
        """
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> None:
        """
        Write bytes to the client.

        Uses sendall() so partial writes are retried until everything is
        out or the socket fails.

        Raises:
            IOFailure: The write failed or timed out. The connection is
                       unusable afterwards.
        """
        try:
            self.socket.sendall(data)
        except OSError as e:
            raise IOFailure(f"Send failed after {self.bytes_sent} bytes: {e}") from e
        self.bytes_sent += len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self, drain: bool = True, drain_timeout: float = 0.5):
        """
        Close the connection.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    TCP Close Sequence                            │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. shutdown(SHUT_WR)   FIN to client: "response complete"     │
        │   2. drain               read what the client still sends, so   │
        │                          the kernel does not answer with RST    │
        │                          and destroy the response in flight     │
        │   3. close()             release the file descriptor            │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            drain: False skips steps 1-2 for an abortive close (connection-fatal
                   errors, where the client must see a truncated response).
            drain_timeout: How long to wait for client bytes while draining.
                           0 drains only what has already arrived.
        """
        if self.state is ConnectionState.CLOSED:
            return

        if drain:
            try:
                self.socket.shutdown(socket.SHUT_WR)
            except OSError:
                pass  # Already disconnected

            try:
                self.socket.settimeout(drain_timeout)
                drained = 0
                while drained < self.DRAIN_LIMIT:
                    data = self.socket.recv(4096)
                    if not data:
                        break
                    drained += len(data)
            except OSError:
                pass  # Timeout or reset, closing anyway

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s, {self.bytes_sent} bytes sent")
