"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can hit falls into one of three groups:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR GROUPS                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTPError            Client-visible. Nothing has been written     │
    │   (400/404/405/408)    yet, so we answer with an error page.        │
    │                                                                      │
    │   IOFailure            Connection-fatal. Response bytes are already │
    │                        on the wire; the only option is to close.    │
    │                                                                      │
    │   BindFailure          Process-fatal. Raised once at startup and    │
    │                        never retried.                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each HTTPError subclass carries the status code it maps to, the same way
the parser errors carry one, so the connection handler can turn any of
them into a response with a single except clause.

=============================================================================
"""

from typing import Optional

from .http.status_codes import HTTPStatus


class ServerError(Exception):
    """Base exception for the minihttp package."""


# --- Per-request errors (answered with an error response) ---

class HTTPError(ServerError):
    """
    A request-level failure that maps to an HTTP status code.

    Attributes:
        status: The status to answer with.
        headers: Extra response headers (e.g. Allow for 405).
    """

    status: HTTPStatus = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str = "", headers: Optional[dict[str, str]] = None):
        super().__init__(message or self.status.phrase)
        self.headers = dict(headers or {})


class MalformedRequest(HTTPError):
    """Request line or header block is not valid HTTP/1.1."""
    status = HTTPStatus.BAD_REQUEST


class RequestTooLarge(HTTPError):
    """Request head exceeded the configured size bound."""
    status = HTTPStatus.BAD_REQUEST


class PathTraversalRejected(HTTPError):
    """Target path would escape the content root."""
    status = HTTPStatus.BAD_REQUEST


class ResourceNotFound(HTTPError):
    status = HTTPStatus.NOT_FOUND


class MethodNotAllowed(HTTPError):
    """Anything other than GET or HEAD."""

    status = HTTPStatus.METHOD_NOT_ALLOWED

    def __init__(self, method: str, allowed: tuple[str, ...] = ("GET", "HEAD")):
        super().__init__(
            f"Method not allowed: {method}",
            headers={"Allow": ", ".join(allowed)},
        )
        self.method = method
        self.allowed = allowed


class RequestTimeout(HTTPError):
    status = HTTPStatus.REQUEST_TIMEOUT


# --- Connection- and process-fatal errors ---

class IOFailure(ServerError):
    """I/O failed after response bytes were committed; close the connection."""


class BindFailure(ServerError):
    """Listening socket could not be bound. Fatal at startup."""

    def __init__(self, host: str, port: int, reason: OSError):
        super().__init__(f"Failed to bind to {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason
