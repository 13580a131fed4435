"""
=============================================================================
HTTP PROTOCOL MODULE
=============================================================================

HTTP/1.1 message handling:

    request.py       Request-head parsing (HTTPRequest, RequestParser)
    response.py      Response building and serialization
    status_codes.py  HTTPStatus enum with reason phrases
    mime_types.py    Content-Type detection by file extension

Only the leaf modules are re-exported here. request and response depend
on minihttp.errors, which itself needs HTTPStatus; import them directly:

    from minihttp.http.request import RequestParser
    from minihttp.http.response import HTTPResponse, ResponseBuilder

=============================================================================
"""

from .status_codes import HTTPStatus
from .mime_types import get_content_type, MIME_TYPES, DEFAULT_MIME_TYPE

__all__ = [
    "HTTPStatus",
    "get_content_type",
    "MIME_TYPES",
    "DEFAULT_MIME_TYPE",
]
