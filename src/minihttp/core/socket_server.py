"""
=============================================================================
TCP LISTENER
=============================================================================

Binds the listening socket and turns accepted client sockets into a lazy
stream of Connection objects. It knows nothing about HTTP.

=============================================================================
SOCKET LIFECYCLE (server side)
=============================================================================

    1. socket()    Create the listening socket
    2. bind()      Reserve host:port          ── failure → BindFailure
    3. listen()    Let the OS queue incoming connections (backlog)
    4. accept()    One NEW socket per client; the listening socket stays
    5. close()     Release the listening socket on shutdown

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once, bound to
                    └───────────┬───────────┘     host:port, never carries data
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    Connection 1            Connection 2            Connection 3

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Rebind right after a restart instead of failing while old sockets sit
    in TIME_WAIT.

SO_REUSEPORT:
    Not set. A port that is already in use must fail with BindFailure.

TCP_NODELAY:
    Disable Nagle's algorithm. Response heads are small and should go out
    immediately.

accept() timeout (1s):
    accept() would otherwise block forever. Waking up once a second lets
    the loop notice shutdown().

=============================================================================
SIGNALS
=============================================================================

    SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd, kill) → shutdown().

Python only allows signal handlers on the main thread. When the server is
driven from another thread (tests, embedding), signals are left alone and
shutdown() must be called explicitly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Iterator, Optional

from ..config import ServerConfig
from ..errors import BindFailure
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()            socket() + setsockopt() + bind() + listen()    │
    │        │             install SIGINT/SIGTERM handlers (main thread)  │
    │        ▼                                                             │
    │    connections()     Generator: accept() → Connection → yield       │
    │        │             until shutdown() is called                     │
    │        ▼                                                             │
    │    close()           Restore signal handlers, close the socket      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        listener = SocketServer(config)
        listener.bind()                       # may raise BindFailure
        for conn in listener.connections():   # blocks, lazily, forever
            dispatch(conn)
    """

    ACCEPT_POLL_INTERVAL = 1.0

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Host, port, backlog and the per-connection settings
                    handed to every Connection.

        Nothing is created here; bind() does the work.
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._consumed = False

        # Set once the socket is listening, cleared again on close()
        self._ready = threading.Event()
        # Set when shutdown is requested
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def address(self) -> tuple[str, int]:
        """
        The bound (host, port).

        With port 0 the OS picks a free port; this reports the real one
        once bind() has succeeded.
        """
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        """Create the IPv4 TCP socket with its options set."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self):
        """
        Bind and start listening.

        Raises:
            BindFailure: Port in use, permission denied, or an address that
                         cannot be bound. Never retried.
        """
        if self._socket is not None:
            return

        sock = self._create_socket()

        try:
            # Common errors:
            # - Address already in use: another process has this port
            # - Permission denied: ports < 1024 require root
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise BindFailure(self.config.host, self.config.port, e) from e

        self._socket = sock
        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self.address
        logger.info(f"Listening on http://{host}:{port}")
        self._ready.set()

    def _setup_signals(self):
        """Route SIGINT/SIGTERM to shutdown(). Main thread only."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        # Keep the originals so an embedding application gets them back
        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPTING
    # =========================================================================

    def connections(self) -> Iterator[Connection]:
        """
        Yield one Connection per accepted client socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │                     Accept Loop                                  │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while running:                                                 │
        │       accept()          at most 1s                               │
        │           ├── timeout   → loop, re-check running                 │
        │           ├── OSError   → log, keep accepting (EMFILE, aborted   │
        │           │               handshakes) unless shutting down       │
        │           └── socket    → wrap in Connection, yield              │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        The sequence is unbounded and single-use: it ends only at
        shutdown(), and the listening socket is closed when it does.

        Raises:
            RuntimeError: bind() was not called, or the sequence was
                          already consumed.
        """
        if self._socket is None:
            raise RuntimeError("bind() must be called before connections()")
        if self._consumed:
            raise RuntimeError("connections() can only be iterated once")
        self._consumed = True

        try:
            while self._running:
                try:
                    client_socket, client_address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._running:
                        break
                    logger.error(f"Accept error: {e}")
                    # Back off briefly, e.g. out of file descriptors
                    self._shutdown_event.wait(0.1)
                    continue

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                yield Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_header_size=self.config.max_header_size,
                )
        finally:
            self.close()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self):
        """
        Ask the accept loop to stop.

        Safe from a signal handler or any thread, and idempotent. The loop
        notices within ACCEPT_POLL_INTERVAL.
        """
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False
        self._shutdown_event.set()

    def close(self):
        """Release the listening socket and restore signal handlers."""
        self._running = False
        self._restore_signals()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            logger.info("Listener stopped")

        self._ready.clear()
