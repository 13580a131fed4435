"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses the head of an HTTP/1.1 request (request line + header block) into
a structured HTTPRequest. The server never reads request bodies, so the
parser only ever sees the bytes up to the empty line.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST HEAD                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /docs/index.html?lang=en HTTP/1.1\r\n      ← request line    │
    │    ─┬─ ──────────┬──────────── ────┬───                             │
    │     │            │                 │                                 │
    │   Method       Target           Version                             │
    │                                                                      │
    │    Host: localhost:8080\r\n                        ← headers        │
    │    User-Agent: curl/8.4.0\r\n                                       │
    │    \r\n                                            ← end of head    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT WE ACCEPT
=============================================================================

    Request line   exactly three tokens separated by single spaces
    Method         GET or HEAD (any other token → 405)
    Target         origin-form only: starts with "/", URI characters only
    Version        HTTP/1.1
    Headers        "Name: value" lines; names are case-insensitive

Line endings may be CRLF or a bare LF (lenient, as most servers are).

Everything else is a MalformedRequest (400).

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote

from ..errors import MalformedRequest, MethodNotAllowed


SUPPORTED_METHODS = ("GET", "HEAD")
SUPPORTED_VERSION = "HTTP/1.1"


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request head.

    Attributes:
        method:         "GET" or "HEAD"
        target:         The raw request target as sent ("/a%20b.html?x=1")
        path:           Percent-decoded path without query or fragment
                        ("/a b.html"). Traversal checks happen when the
                        path is resolved against the content root.
        version:        Always "HTTP/1.1" once parsing succeeded
        headers:        Header names lower-cased, duplicates comma-joined
        client_address: (ip, port) of the peer, for logging
    """

    method: str
    path: str
    target: str = ""
    version: str = SUPPORTED_VERSION
    headers: dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)

    @property
    def is_head(self) -> bool:
        """HEAD responses carry GET's headers but no body."""
        return self.method == "HEAD"


class RequestParser:
    """
    Parses raw request-head bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw head bytes
              │
              ▼
        1. Size check        too large?        → RequestTooLarge is raised
              │                                   by Connection before we
              │                                   ever get here
              ▼
        2. Split lines       CRLF or LF
              │
              ▼
        3. Request line      bad token count   → MalformedRequest (400)
              │              bad version       → MalformedRequest (400)
              │              bad target        → MalformedRequest (400)
              │              not GET/HEAD      → MethodNotAllowed (405)
              ▼
        4. Headers           line without ":"  → MalformedRequest (400)
              │              bad Content-Length → MalformedRequest (400)
              ▼
        HTTPRequest

    ==========================================================================
    """

    # RFC 7230 "token": what a method name may be made of
    TOKEN_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
    # origin-form: path and query made of RFC 3986 pchar, "/" and "?"
    TARGET_PATTERN = re.compile(r"^/[A-Za-z0-9\-._~%!$&'()*+,;=:@/?#]*$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):[ \t]*(.*?)[ \t]*$")
    LINE_SPLIT = re.compile(r"\r?\n")

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a request head.

        Args:
            data: Head bytes, optionally including the terminating empty line.
            client_address: Peer (ip, port) for logging.

        Returns:
            Parsed HTTPRequest.

        Raises:
            MalformedRequest: Syntax error anywhere in the head.
            MethodNotAllowed: Well-formed request with a method other than
                              GET or HEAD.
        """
        text = data.decode("utf-8", errors="replace")
        lines = self.LINE_SPLIT.split(text)

        # Drop the empty line(s) that terminate the head
        while lines and lines[-1] == "":
            lines.pop()

        if not lines:
            raise MalformedRequest("Empty request")

        method, target, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Split "METHOD SP TARGET SP VERSION" and validate each part.

        Returns:
            (method, raw target, decoded path, version)
        """
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            raise MalformedRequest(f"Invalid request line: {line!r}")

        method, target, version = parts

        if not self.TOKEN_PATTERN.match(method):
            raise MalformedRequest(f"Invalid method token: {method!r}")

        if version != SUPPORTED_VERSION:
            raise MalformedRequest(f"Unsupported HTTP version: {version!r}")

        if not self.TARGET_PATTERN.match(target):
            raise MalformedRequest(f"Invalid request target: {target!r}")

        # ---------------------------------------------------------------------
        # Method check comes last: a syntactically valid request with an
        # unsupported method is 405, a broken one is 400.
        # ---------------------------------------------------------------------
        if method not in SUPPORTED_METHODS:
            raise MethodNotAllowed(method, SUPPORTED_METHODS)

        # "/a%20b.html?x=1#top" → "/a b.html". The target is origin-form, so
        # "//x" is a path and never an authority.
        path = unquote(target.split("?", 1)[0].split("#", 1)[0])

        return method, target, path, version

    def _parse_headers(self, lines: list[str]) -> dict[str, str]:
        """
        Parse header lines into a dict with lower-cased names.

        Continuation lines (leading space or tab, obsolete line folding) are
        appended to the previous header. Repeated headers are comma-joined.
        """
        headers: dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is None:
                    raise MalformedRequest("Continuation line before any header")
                headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise MalformedRequest(f"Invalid header line: {line!r}")

            name, value = match.groups()
            name = name.lower()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        # A body is never read, but a nonsense length is still a bad request
        length = headers.get("content-length")
        if length is not None and not (length.isascii() and length.isdigit()):
            raise MalformedRequest(f"Invalid Content-Length: {length!r}")

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
) -> HTTPRequest:
    """Convenience wrapper around RequestParser().parse()."""
    return RequestParser().parse(data, client_address)
