"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses with proper formatting per RFC 7230.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                     ← status line            │
    │    Content-Type: text/html\r\n             ← headers, in the order  │
    │    Content-Length: 42\r\n                    they were set          │
    │    Connection: close\r\n                                            │
    │    Server: minihttp/1.0\r\n                                         │
    │    \r\n                                    ← empty line             │
    │    <!DOCTYPE html>...                      ← exactly 42 bytes       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE CONTENT-LENGTH RULE
=============================================================================

Since every connection is closed after one response and we never use
chunked encoding, Content-Length is the only way the client knows the
body is complete. So:

    - Content-Length is ALWAYS computed from the body itself, when the
      head is serialized, before a single byte goes out. A value set by
      hand is overwritten.
    - For a streamed file the length is the size taken from fstat() on
      the already-open file.
    - For HEAD the header still announces the GET body length; only the
      body bytes are left out.

No Date header is sent, so two GETs of an unchanged file produce the
exact same bytes.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .file(content, "index.html")
        .close_connection()
        .build())

=============================================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ..errors import IOFailure
from .mime_types import get_content_type
from .status_codes import HTTPStatus


class FileBody:
    """
    A response body streamed from an open file.

    The file is opened (and its size taken) before the response head is
    written, so "file missing" or "permission denied" still turn into a
    proper error response. Once iteration starts, headers may already be
    on the wire: any read error or short read raises IOFailure, and the
    only thing left to do is close the connection.
    """

    def __init__(self, fileobj: BinaryIO, size: int, chunk_size: int = 64 * 1024):
        self.fileobj = fileobj
        self.size = size
        self.chunk_size = chunk_size

    @classmethod
    def open(cls, path: Path, chunk_size: int = 64 * 1024) -> "FileBody":
        """Open path and record its current size. Raises OSError."""
        fileobj = open(path, "rb")
        try:
            size = os.fstat(fileobj.fileno()).st_size
        except OSError:
            fileobj.close()
            raise
        return cls(fileobj, size, chunk_size)

    def __iter__(self) -> Iterator[bytes]:
        remaining = self.size
        while remaining > 0:
            try:
                chunk = self.fileobj.read(min(self.chunk_size, remaining))
            except OSError as e:
                raise IOFailure(f"Read failed after {self.size - remaining} bytes: {e}") from e

            if not chunk:
                raise IOFailure(
                    f"File truncated while streaming: "
                    f"{self.size - remaining} of {self.size} bytes sent"
                )

            remaining -= len(chunk)
            yield chunk

    def close(self) -> None:
        self.fileobj.close()


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Either `body` holds the full payload, or `stream` holds a FileBody
    for large files. `headers` keeps insertion order so serialization is
    deterministic.

    =========================================================================
    RESPONSE LIFECYCLE
    =========================================================================

        Handler returns         head_bytes()            Connection sends
        HTTPResponse    ─────►  status line +   ─────►  head, then body
                                headers + CRLF          (or stream chunks)

    =========================================================================
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[FileBody] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        """Exact body length in bytes."""
        if self.stream is not None:
            return self.stream.size
        return len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def head_bytes(self, server_name: str = "minihttp/1.0") -> bytes:
        """
        Serialize status line and headers, including the final empty line.

        Content-Length is always rewritten to the real body length, keeping
        its position if the caller set it. Server is appended if missing.
        """
        lines = [self.status_line]
        has_length = False
        has_server = False

        for name, value in self.headers.items():
            lowered = name.lower()
            if lowered == "content-length":
                value = str(self.content_length)
                has_length = True
            elif lowered == "server":
                has_server = True
            lines.append(f"{name}: {value}")

        if not has_length:
            lines.append(f"Content-Length: {self.content_length}")
        if not has_server:
            lines.append(f"Server: {server_name}")

        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    def to_bytes(self, server_name: str = "minihttp/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the whole response in memory.

        Not usable for streamed responses; the connection handler writes
        those chunk by chunk.
        """
        if self.stream is not None:
            raise ValueError("Streamed responses cannot be serialized in one piece")

        head = self.head_bytes(server_name)
        return head + self.body if include_body else head

    def close(self) -> None:
        """Release the streamed file, if any."""
        if self.stream is not None:
            self.stream.close()


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each method returns `self`, so calls chain:

        builder.status(404).html(page).close_connection().build()
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[FileBody] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set a raw body. Strings are UTF-8 encoded."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._stream = None
        return self

    def html(self, html: Union[str, bytes]) -> "ResponseBuilder":
        self.content_type("text/html")
        return self.body(html)

    def file(self, content: bytes, filename: Union[str, Path]) -> "ResponseBuilder":
        """Body from file content; Content-Type from the file extension."""
        self.content_type(get_content_type(filename))
        return self.body(content)

    def stream(self, stream: FileBody, filename: Union[str, Path]) -> "ResponseBuilder":
        """Stream a large file instead of holding it in memory."""
        self.content_type(get_content_type(filename))
        self._body = b""
        self._stream = stream
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Tell the client this connection ends after the response."""
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        # Reserve Content-Length's slot right after Content-Type
        headers: dict[str, str] = {}
        for name, value in self._headers.items():
            headers[name] = value
            if name == "Content-Type":
                headers["Content-Length"] = ""

        return HTTPResponse(
            status=self._status,
            headers=headers,
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# ERROR PAGES
# =============================================================================
#
# Fixed, minimal HTML bodies. They never include the requested path or
# any filesystem detail.
#
# =============================================================================

def error_page(status: HTTPStatus) -> bytes:
    """Minimal HTML body for an error status."""
    title = f"{int(status)} {status.phrase}"
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1></body></html>\n"
    ).encode("utf-8")


def error_response(
    status: HTTPStatus,
    headers: Optional[dict[str, str]] = None,
    body: Optional[bytes] = None,
) -> HTTPResponse:
    """
    Build a complete error response.

    Args:
        status: 4xx/5xx status.
        headers: Extra headers (e.g. Allow for 405).
        body: Custom HTML body; defaults to error_page(status).
    """
    return (ResponseBuilder()
        .status(status)
        .html(error_page(status) if body is None else body)
        .headers(headers or {})
        .close_connection()
        .build())


def not_found(body: Optional[bytes] = None) -> HTTPResponse:
    """404 with the fixed page, or a custom page body."""
    return error_response(HTTPStatus.NOT_FOUND, body=body)


def internal_error() -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
