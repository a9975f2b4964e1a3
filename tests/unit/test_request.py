"""
Unit tests for HTTP request parsing.
"""

import pytest

from httpbridge.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/status"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.query_params == {"verbose": ["1"]}

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed correctly."""
        request = parse_request(sample_get_request)

        assert request.get_header("Host") == "localhost:8080"
        assert request.headers["user-agent"] == "pytest"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """Test parsing POST request with JSON body."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/api/users"
        assert request.text == '{"name": "John", "email": "john@example.com"}'
        assert request.is_keep_alive is False

    def test_missing_body_is_empty_text(self, sample_get_request: bytes):
        """A request without a body yields "" rather than None."""
        request = parse_request(sample_get_request)

        assert request.body == b""
        assert request.text == ""

    def test_invalid_utf8_body_is_replaced(self):
        """Undecodable body bytes become U+FFFD in the text view."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 3\r\n\r\nA\xffB"
        request = parse_request(raw)

        assert request.text == "A\ufffdB"

    def test_parse_unknown_method(self):
        """Methods the parser has never heard of get 501."""
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 501

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_missing_terminator(self):
        """A header section without a blank line is rejected."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        raw = b"GET / HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_unsupported_http_version(self):
        """Anything but HTTP/1.0 or HTTP/1.1 gets 505."""
        raw = b"GET / HTTP/2.0\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 505

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 version handling."""
        # HTTP/1.0 (Connection: close by default)
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        # HTTP/1.1 (keep-alive by default)
        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

    def test_content_length_handling(self):
        """Body is cut at exactly Content-Length bytes."""
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Content-Length: 9\r\n"
            b"\r\n"
            b"test bodyEXTRA"
        )

        request = parse_request(raw)
        assert request.content_length == 9
        assert request.body == b"test body"

    def test_truncated_body(self):
        """A body shorter than Content-Length is a 400."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 50\r\n\r\nshort"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        """Non-numeric or negative Content-Length is rejected."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    @pytest.mark.parametrize("coding", [b"chunked", b"gzip, chunked"])
    def test_transfer_encoding_is_rejected(self, coding: bytes):
        """Bodies framed by Transfer-Encoding get 501 instead of an empty body."""
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Transfer-Encoding: " + coding + b"\r\n"
            b"\r\n"
            b"5\r\nhello\r\n0\r\n\r\n"
        )

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 501
        assert "Transfer-Encoding" in str(exc_info.value)

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"

    def test_repeated_headers_are_joined(self):
        """Repeated header names are joined with a comma."""
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        request = parse_request(raw)

        assert request.headers["accept"] == "a, b"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_http10_keep_alive_opt_in(self):
        """HTTP/1.0 keeps the connection only when asked to."""
        request = HTTPRequest(
            method="GET",
            path="/",
            version="HTTP/1.0",
            headers={"connection": "Keep-Alive"},
        )

        assert request.is_keep_alive is True
