"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Serializes the (status, text body, content type) triple a Completion is
fulfilled with into the bytes written on the socket.

=============================================================================
FROM HANDLER RESULT TO WIRE BYTES
=============================================================================

    handler returns             Completion.fulfil()          socket
    {"status": 200,     ──►     HTTPResponse(         ──►    b"HTTP/1.1 200 OK\\r\\n
     "data": "{...}"}             status=200,                  Content-Type: application/json\\r\\n
                                  headers={...},               Content-Length: 11\\r\\n
                                  body=b"{...}")               ...\\r\\n
                                                               \\r\\n
                                                               {\\"ok\\":true}"

The body is always UTF-8 text. The bridge never inspects it, so a handler
that claims application/json but sends plain text gets exactly what it
sent.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict, Union
import json

from .status_codes import HTTPStatus, reason_phrase


JSON_CONTENT_TYPE = "application/json"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    `status` is a plain int rather than HTTPStatus: handlers may answer
    with any code, including ones the enum does not list.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body; text is encoded as UTF-8."""
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def to_bytes(self, server_name: str = "httpbridge/1.0") -> bytes:
        """
        Serialize to bytes for socket.sendall().

        Content-Length, Date and Server are filled in unless the caller
        already set them.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for the responses the engine writes itself.

        response = (ResponseBuilder()
            .status(HTTPStatus.METHOD_NOT_ALLOWED)
            .json({"error": "No handler for PUT"})
            .close_connection()
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        """Text body with the given content type."""
        self._body = text.encode("utf-8")
        return self.content_type(content_type)

    def json(self, data: Any) -> "ResponseBuilder":
        """JSON-encode `data` as the body."""
        self._body = json.dumps(data, separators=(",", ":")).encode("utf-8")
        return self.content_type(JSON_CONTENT_TYPE)

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example: "Wed, 01 Jan 2026 12:00:00 GMT"
    """
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def error_response(status: int, message: str) -> HTTPResponse:
    """
    A JSON error body the engine sends when no handler can answer.

        error_response(405, "No handler for PUT")
        # 405, {"error":"No handler for PUT"}, Connection: close
    """
    return (ResponseBuilder()
        .status(status)
        .json({"error": message})
        .close_connection()
        .build())
