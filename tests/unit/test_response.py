"""
Unit tests for HTTP response building.
"""

import io

import pytest

from minihttp.errors import IOFailure
from minihttp.http import HTTPStatus, get_content_type
from minihttp.http.response import (
    FileBody,
    HTTPResponse,
    ResponseBuilder,
    error_page,
    error_response,
    internal_error,
    not_found,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line formatting."""
        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes(self):
        """Test full serialization."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"Content-Type": "text/plain"},
            body=b"Hello",
        )
        raw = response.to_bytes()

        assert raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 5\r\n"
            b"Server: minihttp/1.0\r\n"
            b"\r\n"
            b"Hello"
        )

    def test_content_length_overrides_caller_value(self):
        """Test a wrong Content-Length is replaced, in place."""
        response = HTTPResponse(
            headers={"Content-Length": "999", "X-After": "1"},
            body=b"abc",
        )
        head = response.head_bytes().decode("latin-1")

        assert "Content-Length: 3\r\n" in head
        assert "999" not in head
        assert head.index("Content-Length") < head.index("X-After")

    def test_head_only(self):
        """Test HEAD serialization keeps the GET Content-Length."""
        response = HTTPResponse(body=b"0123456789")
        raw = response.to_bytes(include_body=False)

        assert raw.endswith(b"\r\n\r\n")
        assert b"Content-Length: 10\r\n" in raw
        assert b"0123456789" not in raw

    def test_server_header_not_duplicated(self):
        """Test an explicit Server header wins over the default."""
        response = HTTPResponse(headers={"Server": "custom"})
        head = response.head_bytes("minihttp/1.0")

        assert head.count(b"Server:") == 1
        assert b"Server: custom" in head

    def test_no_date_header(self):
        """Test serialization is deterministic."""
        response = HTTPResponse(body=b"same")

        assert b"Date:" not in response.to_bytes()
        assert response.to_bytes() == response.to_bytes()

    def test_streamed_length(self):
        """Test Content-Length of a streamed body is the stream size."""
        stream = FileBody(io.BytesIO(b"x" * 100), size=100)
        response = HTTPResponse(stream=stream)

        assert response.content_length == 100
        assert b"Content-Length: 100\r\n" in response.head_bytes()

    def test_streamed_to_bytes_refused(self):
        """Test streamed responses must be written chunk by chunk."""
        response = HTTPResponse(stream=FileBody(io.BytesIO(b""), size=0))
        with pytest.raises(ValueError):
            response.to_bytes()


class TestFileBody:
    """Tests for streamed file bodies."""

    def test_chunks(self):
        """Test iteration yields the whole file in chunk_size pieces."""
        body = FileBody(io.BytesIO(b"a" * 10), size=10, chunk_size=4)
        chunks = list(body)

        assert [len(c) for c in chunks] == [4, 4, 2]
        assert b"".join(chunks) == b"a" * 10

    def test_short_read_raises(self):
        """Test a file that shrank mid-stream is an IOFailure."""
        body = FileBody(io.BytesIO(b"abc"), size=10, chunk_size=2)

        with pytest.raises(IOFailure):
            list(body)

    def test_read_error_raises(self):
        """Test OSError while reading becomes IOFailure."""
        class BrokenFile(io.BytesIO):
            def read(self, size=-1):
                raise OSError("disk on fire")

        with pytest.raises(IOFailure):
            list(FileBody(BrokenFile(), size=5))

    def test_open_takes_size(self, tmp_path):
        """Test FileBody.open records the size of the open file."""
        path = tmp_path / "big.bin"
        path.write_bytes(b"z" * 1234)

        body = FileBody.open(path)
        try:
            assert body.size == 1234
            assert b"".join(body) == b"z" * 1234
        finally:
            body.close()

    def test_open_missing(self, tmp_path):
        """Test opening a missing file raises before anything is sent."""
        with pytest.raises(OSError):
            FileBody.open(tmp_path / "missing.bin")


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        """Test setting status code."""
        response = ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()
        assert response.status == HTTPStatus.NOT_FOUND

    def test_status_from_int(self):
        """Test plain integers are converted to HTTPStatus."""
        response = ResponseBuilder().status(405).build()
        assert response.status is HTTPStatus.METHOD_NOT_ALLOWED

    def test_html_body(self):
        """Test HTML body."""
        html = "<html><body>Hello</body></html>"
        response = ResponseBuilder().html(html).build()

        assert response.headers["Content-Type"] == "text/html"
        assert response.body == html.encode()

    def test_file_content_type(self):
        """Test Content-Type follows the file extension."""
        response = ResponseBuilder().file(b"body{}", "style.css").build()

        assert response.headers["Content-Type"] == "text/css"
        assert response.body == b"body{}"

    def test_header_order(self):
        """Test Content-Length sits right after Content-Type."""
        response = (ResponseBuilder()
            .file(b"<p>", "a.html")
            .close_connection()
            .build())

        assert list(response.headers) == ["Content-Type", "Content-Length", "Connection"]
        assert response.to_bytes().startswith(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/html\r\n"
            b"Content-Length: 3\r\n"
            b"Connection: close\r\n"
        )

    def test_close_connection(self):
        """Test connection close header."""
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"

    def test_method_chaining(self):
        """Test fluent API chaining."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .body("text")
            .build())

        assert response.status == HTTPStatus.OK
        assert response.headers["X-Custom"] == "value"
        assert response.body == b"text"


class TestErrorResponses:
    """Tests for error page helpers."""

    def test_error_page_is_minimal_html(self):
        """Test the fixed error page."""
        page = error_page(HTTPStatus.NOT_FOUND)

        assert page.startswith(b"<!DOCTYPE html>")
        assert b"<title>404 Not Found</title>" in page

    def test_not_found(self):
        """Test not_found() function."""
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.headers["Content-Type"] == "text/html"
        assert response.headers["Connection"] == "close"
        assert response.body == error_page(HTTPStatus.NOT_FOUND)

    def test_not_found_custom_body(self):
        """Test a configured not-found page replaces the fixed one."""
        response = not_found(b"<h1>Oops!</h1>")
        assert response.body == b"<h1>Oops!</h1>"

    def test_error_response_extra_headers(self):
        """Test 405 carries the Allow header it is given."""
        response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, headers={"Allow": "GET, HEAD"})

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_internal_error(self):
        """Test internal_error() function."""
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_error_response_length(self):
        """Test error responses carry an exact Content-Length."""
        response = error_response(HTTPStatus.SERVICE_UNAVAILABLE)
        raw = response.to_bytes()
        head, _, body = raw.partition(b"\r\n\r\n")

        assert f"Content-Length: {len(body)}".encode() in head


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        """Test that all statuses have phrases."""
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.REQUEST_TIMEOUT.phrase == "Request Timeout"
        assert HTTPStatus.SERVICE_UNAVAILABLE.phrase == "Service Unavailable"

    def test_status_categories(self):
        """Test status category properties."""
        assert HTTPStatus.OK.is_success
        assert not HTTPStatus.OK.is_error
        assert HTTPStatus.BAD_REQUEST.is_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_error


class TestMimeTypes:
    """Tests for Content-Type detection."""

    @pytest.mark.parametrize("name, expected", [
        ("index.html", "text/html"),
        ("page.HTM", "text/html"),
        ("app.js", "text/javascript"),
        ("logo.png", "image/png"),
        ("photo.JPEG", "image/jpeg"),
        ("archive.xyz", "application/octet-stream"),
        ("Makefile", "application/octet-stream"),
    ])
    def test_get_content_type(self, name: str, expected: str):
        """Test lookup is case-insensitive with a binary fallback."""
        assert get_content_type(name) == expected
