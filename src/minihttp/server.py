"""
=============================================================================
HTTP SERVER
=============================================================================

Wires the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.connections()          accept loop (main thread)     │
    │          │                                                           │
    │          ▼                                                           │
    │   ThreadPool.submit(handler, conn)    queue full? → 503, close      │
    │          │                                                           │
    │          ▼                                                           │
    │   ConnectionHandler(conn)             worker thread                 │
    │          │                                                           │
    │          ├── read head    (Connection)                               │
    │          ├── parse        (RequestParser)                            │
    │          ├── resolve      (StaticFileHandler)                        │
    │          └── write, close                                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    SIGINT / SIGTERM / shutdown()
        1. Listener stops accepting, socket closed
        2. Queued and in-flight connections finish (bounded wait); any
           still queued after that are answered 503
        3. Workers receive poison pills and exit

=============================================================================
"""

import logging
from functools import partial
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .handlers import ConnectionHandler


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Static-file HTTP/1.1 server.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=8080, root_dir="public"))
        server.run()    # Blocks until SIGINT/SIGTERM or shutdown()

    From another thread (tests):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(timeout=5)
        host, port = server.address
        ...
        server.shutdown()

    =========================================================================
    """

    SHUTDOWN_TIMEOUT = 10.0

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().

        Raises:
            ValueError: Invalid configuration (e.g. missing content root).
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._listener = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._handler = ConnectionHandler(self.config)

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the real port once listening, even with port 0."""
        return self._listener.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server accepts connections. False on timeout."""
        return self._listener.wait_until_ready(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind, then accept and dispatch connections until shutdown.

        Raises:
            BindFailure: The address could not be bound. Nothing else was
                         started in that case.
        """
        self._setup_logging()

        self._listener.bind()
        self._thread_pool.start()

        host, port = self.address
        logger.info(
            f"{self.config.server_name} serving {self.config.root_path} "
            f"on http://{host}:{port} "
            f"({self.config.min_workers}-{self.config.max_workers} workers)"
        )

        try:
            for conn in self._listener.connections():
                self._dispatch(conn)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Request a graceful stop. Safe from any thread; run() returns shortly."""
        self._listener.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._listener.close()
        logger.debug(f"Thread pool at shutdown: {self._thread_pool.stats}")
        self._thread_pool.shutdown(wait=True, timeout=self.SHUTDOWN_TIMEOUT)
        logger.info("Server stopped")

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("minihttp").setLevel(level)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, conn: Connection):
        """
        Hand conn to the pool without ever blocking the accept loop.

        A full queue means the server is overloaded: the client gets a 503
        right away instead of waiting in line.
        """
        try:
            submitted = self._thread_pool.submit(
                self._handler,
                args=(conn,),
                block=False,
                on_discard=partial(self._handler.reject, conn),
            )
        except RuntimeError:
            # Pool already shutting down
            submitted = False

        if not submitted:
            logger.warning(
                f"[{conn.id}] Worker queue full ({self._thread_pool.worker_count} workers), "
                f"rejecting {conn.client_ip}"
            )
            self._handler.reject(conn)
