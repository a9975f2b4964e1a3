"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes a Connection collected into an HTTPRequest.

The bridge only ever hands two things to the scripting layer: the method
(as the event topic) and the body (as text). Everything else parsed here -
path, headers, query - exists for the engine's own needs: keep-alive
decisions, access logging, and error responses.

=============================================================================
WHAT A BRIDGED REQUEST LOOKS LIKE
=============================================================================

    POST /anything HTTP/1.1\r\n          ─┐
    Host: 127.0.0.1:8080\r\n               │  header section
    Content-Length: 13\r\n                 │  (parsed, kept on HTTPRequest)
    \r\n                                  ─┘
    {"ping":true}                         ── body → InboundEvent.body

    The path is carried for logging only. There is no path matching:
    dispatch is keyed by method alone.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code the engine should answer with:

        400 Bad Request                - malformed syntax
        413 Payload Too Large          - over the size limit
        501 Not Implemented            - unknown method, or a Transfer-Encoding
        505 HTTP Version Not Supported - not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Upper-case method ("GET", "POST", ...).
        path:           Request path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header map with lower-case names.
        query_params:   Query string as name -> list of values.
        body:           Raw body bytes (b"" when absent).
        client_address: (ip, port) of the peer.
        raw:            The unparsed request bytes.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    @property
    def text(self) -> str:
        """
        The body as text.

        Never None: an absent body is the empty string, and bytes that are
        not valid UTF-8 are replaced rather than rejected, so every accepted
        request produces a textual body for the handler.
        """
        if not self.body:
            return ""
        return self.body.decode("utf-8", errors="replace")

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", "0"))
        except ValueError:
            return 0

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw bytes
            │
            ├── 1. size check            → 413 if too large
            ├── 2. split at \\r\\n\\r\\n     → 400 if no terminator
            ├── 3. request line          → 400 / 501 / 505
            ├── 4. headers               (lower-cased, duplicates joined)
            └── 5. body by Content-Length → 400 if truncated
            │
            ▼
        HTTPRequest
    """

    # Methods the parser understands. Whether one is *served* is decided by
    # the engine: only methods with an installed handler get past 405.
    KNOWN_METHODS = {
        "GET", "POST", "PUT", "PATCH", "DELETE",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: One complete request as read by Connection.read_request().
            client_address: Peer (ip, port), kept for logging.

        Returns:
            The parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # BODY: exactly Content-Length bytes, never more
        # ─────────────────────────────────────────────────────────────────
        if "transfer-encoding" in headers:
            # bodies are framed by Content-Length only; chunked data would
            # otherwise be left on the wire and read as the next request
            raise HTTPParseError(
                f"Transfer-Encoding not supported: {headers['transfer-encoding']}",
                status_code=501
            )

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            (method, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.KNOWN_METHODS:
            raise HTTPParseError(f"Unknown method: {method}", status_code=501)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: Value" lines into a lower-cased dictionary.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2).
        Obsolete line folding (leading whitespace) continues the previous
        header. Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
