"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Maps a request path onto a file under the content root and builds the
response for it.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

Path traversal is an attempt to read files outside the content root:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../../etc/passwd HTTP/1.1                                  │
    │                                                                      │
    │  If not protected, this could read:                                 │
    │  /srv/www/../../../etc/passwd  →  /etc/passwd                       │
    │                                                                      │
    │  Our protection, in two layers:                                     │
    │  1. Reject any decoded path containing ".." (or a NUL byte)         │
    │  2. Resolve the full path (following symlinks) and check that       │
    │     it is still inside root_dir                                     │
    │                                                                      │
    │  Either failure → 400 Bad Request. The response never mentions     │
    │  the path or anything about the filesystem.                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    PYTHON PROTECTION:

        full_path = (root_dir / user_input).resolve()
        full_path.relative_to(root_dir)  # Raises if outside root!

=============================================================================
READ OR STREAM?
=============================================================================

    size <= stream_threshold   Read the whole file first. A read error
                               becomes a clean 500, nothing sent yet.

    size >  stream_threshold   Open the file, take its size, and stream
                               it in chunks after the head. A read error
                               at that point can only close the socket.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Optional

from ..errors import PathTraversalRejected, ResourceNotFound
from ..http.request import HTTPRequest
from ..http.response import (
    FileBody, HTTPResponse, ResponseBuilder, HTTPStatus,
    error_response, internal_error, not_found,
)


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    Handler for serving files from a content root.

    =========================================================================
    FLOW
    =========================================================================

        Request: GET /docs/

        1. Reject ".." and NUL bytes in the decoded path
        2. Join with root_dir and resolve symlinks
        3. Security check: is the result inside root_dir?
        4. Directory? Use its index file (index.html)
        5. Missing? 404 (fixed page or the configured not-found page)
        6. Serve with Content-Type from the extension

    =========================================================================
    USAGE
    =========================================================================

        static = StaticFileHandler("/srv/www")
        response = static.handle(request)

    =========================================================================
    """

    def __init__(
        self,
        root_dir: str | Path,
        index_file: str = "index.html",
        not_found_page: Optional[str] = None,
        stream_threshold: int = 1024 * 1024,
    ):
        """
        Initialize static file handler.

        Args:
            root_dir: Directory to serve. All files MUST be inside it.
            index_file: Document served for "/" and directory paths.
            not_found_page: File (relative to root_dir) used as the 404 body.
            stream_threshold: Files larger than this are streamed.

        Raises:
            ValueError: root_dir is not an existing directory.
        """
        # Resolve to absolute path (the containment check relies on it)
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.not_found_page = not_found_page
        self.stream_threshold = stream_threshold

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    @classmethod
    def from_config(cls, config) -> "StaticFileHandler":
        """Build a handler from a ServerConfig."""
        return cls(
            root_dir=config.root_dir,
            index_file=config.index_file,
            not_found_page=config.not_found_page,
            stream_threshold=config.stream_threshold,
        )

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def resolve(self, path: str) -> Path:
        """
        Map a decoded request path to a file inside the content root.

        Args:
            path: Percent-decoded URL path ("/docs/index.html").

        Returns:
            Absolute path of an existing regular file under root_dir.

        Raises:
            PathTraversalRejected: The path contains ".." or a NUL byte,
                                   or resolves outside root_dir.
            ResourceNotFound: Nothing servable at that location.
        """
        if ".." in path or "\x00" in path:
            raise PathTraversalRejected("Path contains a forbidden sequence")

        full_path = self._contained(self.root_dir / path.lstrip("/"))

        try:
            if full_path.is_dir():
                # The index file may itself be a symlink, check again
                full_path = self._contained(full_path / self.index_file)

            if not full_path.is_file():
                raise ResourceNotFound()
        except OSError as e:
            # ENAMETOOLONG and friends: nothing we can serve
            logger.debug(f"Unresolvable path {path!r}: {e}")
            raise ResourceNotFound() from e

        return full_path

    def _contained(self, candidate: Path) -> Path:
        """Resolve candidate and make sure it stays under root_dir."""
        try:
            resolved = candidate.resolve()
        except (OSError, RuntimeError) as e:
            # Symlink loops end up here
            raise ResourceNotFound() from e

        try:
            resolved.relative_to(self.root_dir)
        except ValueError:
            raise PathTraversalRejected("Path escapes the content root")

        return resolved

    # =========================================================================
    # RESPONSE
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Build the response for a GET or HEAD request.

        Resolution failures become complete error responses here; the
        caller only has to write whatever comes back.
        """
        try:
            full_path = self.resolve(request.path)
        except PathTraversalRejected as e:
            logger.warning(f"Path traversal attempt from {request.client_address[0]}: {request.target!r}")
            return error_response(e.status)
        except ResourceNotFound:
            return not_found(self._not_found_body())

        return self._serve_file(full_path)

    def _serve_file(self, path: Path) -> HTTPResponse:
        """Serve one regular file, reading or streaming it by size."""
        try:
            size = path.stat().st_size

            if size > self.stream_threshold:
                stream = FileBody.open(path)
                return (ResponseBuilder()
                    .status(HTTPStatus.OK)
                    .stream(stream, path)
                    .close_connection()
                    .build())

            content = path.read_bytes()

        except OSError as e:
            logger.error(f"Error reading file {path}: {e}")
            return internal_error()

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .file(content, path)
            .close_connection()
            .build())

    def _not_found_body(self) -> Optional[bytes]:
        """
        Bytes of the configured not-found page, or None for the fixed page.

        The page goes through the same containment checks as any request.
        """
        if not self.not_found_page:
            return None

        try:
            return self.resolve("/" + self.not_found_page).read_bytes()
        except (PathTraversalRejected, ResourceNotFound, OSError):
            logger.warning(f"Not-found page unavailable: {self.not_found_page}")
            return None


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Security: ".." rejection plus resolved-path containment
# 2. Correctness: Content-Type by extension, exact Content-Length
# 3. Memory: large files are streamed, small files read up front
#
# =============================================================================
