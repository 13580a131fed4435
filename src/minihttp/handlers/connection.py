"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs one HTTP exchange on one accepted connection: read the head, parse
it, resolve the file, write the response, close. This is the task every
pool worker executes.

=============================================================================
LIFECYCLE
=============================================================================

    AWAITING_REQUEST_LINE    conn.read_head()
            │                    EOF before any byte → close silently
            ▼
    PARSING_HEADERS          parser.parse(head)
            │
            ▼
    RESOLVING_RESOURCE       static.handle(request)
            │
            ▼
    WRITING_RESPONSE         head (+ body, or streamed chunks; no body for HEAD)
            │
            ▼
    CLOSED

=============================================================================
FAILURE BOUNDARY
=============================================================================

Every per-connection error stops here:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Raised                      Nothing sent yet     Bytes already sent│
    ├─────────────────────────────────────────────────────────────────────┤
    │   HTTPError (400/404/...)     error page           -                 │
    │   unexpected exception        500 page             abortive close    │
    │   IOFailure                   -                    abortive close    │
    └─────────────────────────────────────────────────────────────────────┘

Nothing propagates to the worker, so one bad connection never affects
the listener or any other connection.

=============================================================================
"""

import time
import logging
from typing import Optional

from ..config import ServerConfig
from ..core.connection import Connection, ConnectionState
from ..errors import HTTPError, IOFailure
from ..http.request import HTTPRequest, RequestParser
from ..http.response import HTTPResponse, HTTPStatus, error_response, internal_error
from .static import StaticFileHandler


logger = logging.getLogger(__name__)

# One line per exchange, separate from the diagnostic loggers:
#   logging.getLogger("minihttp.access").addHandler(file_handler)
access_logger = logging.getLogger("minihttp.access")


class ConnectionHandler:
    """
    Callable run by a worker for each accepted connection.

    Usage:
        handler = ConnectionHandler(config)
        pool.submit(handler, args=(conn,))
    """

    def __init__(
        self,
        config: ServerConfig,
        static_handler: Optional[StaticFileHandler] = None,
        parser: Optional[RequestParser] = None,
    ):
        self.config = config
        self.static = static_handler or StaticFileHandler.from_config(config)
        self.parser = parser or RequestParser()

    def __call__(self, conn: Connection) -> None:
        self.handle(conn)

    def handle(self, conn: Connection) -> None:
        """Serve exactly one request on conn, then close it."""
        start_time = time.time()
        request: Optional[HTTPRequest] = None
        response: Optional[HTTPResponse] = None
        logged: Optional[HTTPResponse] = None

        try:
            head = conn.read_head()
            if head is None:
                logger.debug(f"[{conn.id}] Client closed without sending a request")
                return

            request = self.parser.parse(head, conn.address)

            conn.transition(ConnectionState.RESOLVING_RESOURCE)
            response = self.static.handle(request)

            conn.transition(ConnectionState.WRITING_RESPONSE)
            logged = response
            self._write(conn, response, head_only=request.is_head)

        except HTTPError as e:
            logger.debug(f"[{conn.id}] {type(e).__name__}: {e}")
            logged = self._fail(conn, error_response(e.status, headers=e.headers), request)

        except IOFailure as e:
            logger.warning(f"[{conn.id}] Connection aborted: {e}")
            conn.close(drain=False)

        except Exception as e:
            logger.exception(f"[{conn.id}] Unhandled error: {e}")
            logged = self._fail(conn, internal_error(), request)

        finally:
            if response is not None:
                response.close()
            if logged is not None:
                self._log_access(conn, request, logged, start_time)
            conn.close()

    def reject(self, conn: Connection, status: HTTPStatus = HTTPStatus.SERVICE_UNAVAILABLE) -> None:
        """
        Answer conn with an error page without reading the request.

        Used from the accept loop when the pool queue is full, so it must
        not block: the close only drains what has already arrived.
        """
        try:
            sent = self._fail(conn, error_response(status))
            if sent is not None:
                self._log_access(conn, None, sent, conn.created_at)
        finally:
            conn.close(drain_timeout=0)

    # =========================================================================
    # WRITING
    # =========================================================================

    def _write(self, conn: Connection, response: HTTPResponse, head_only: bool = False) -> None:
        """
        Send response on conn.

        In-memory bodies go out with the head in one write. Streamed bodies
        follow the head chunk by chunk; a read error there surfaces as
        IOFailure with the head already sent.
        """
        server_name = self.config.server_name

        if response.stream is None:
            conn.send(response.to_bytes(server_name, include_body=not head_only))
            return

        conn.send(response.head_bytes(server_name))
        if head_only:
            return

        for chunk in response.stream:
            conn.send(chunk)

    def _fail(
        self,
        conn: Connection,
        response: HTTPResponse,
        request: Optional[HTTPRequest] = None,
    ) -> Optional[HTTPResponse]:
        """
        Finish conn with an error response, if one can still be sent.

        Returns:
            The response that was written, or None if the connection had to
            be closed without one.
        """
        if conn.committed or conn.state in (ConnectionState.WRITING_RESPONSE, ConnectionState.CLOSED):
            # Mid-response: a second status line would corrupt the stream
            conn.close(drain=False)
            return None

        conn.transition(ConnectionState.ERROR)
        conn.transition(ConnectionState.WRITING_RESPONSE)

        head_only = request is not None and request.is_head
        try:
            conn.send(response.to_bytes(self.config.server_name, include_body=not head_only))
        except IOFailure as e:
            logger.debug(f"[{conn.id}] Could not deliver {int(response.status)} response: {e}")
            conn.close(drain=False)
            return None

        return response

    def _log_access(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        response: HTTPResponse,
        start_time: float,
    ) -> None:
        """client "METHOD target" status length duration"""
        request_line = f"{request.method} {request.target}" if request else "-"
        duration_ms = (time.time() - start_time) * 1000
        access_logger.info(
            f'{conn.client_ip} "{request_line}" {int(response.status)} '
            f'{response.content_length} {duration_ms:.2f}ms'
        )
