"""
=============================================================================
HTTP PROTOCOL PIECES
=============================================================================

The wire-level half of the embedded engine:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes  ──►  HTTPRequest  (method, path, body, ...) │
    │ response.py      HTTPResponse  ──►  bytes (status line + headers)   │
    │ status_codes.py  HTTPStatus enum + reason phrases for any int       │
    └─────────────────────────────────────────────────────────────────────┘

Nothing here knows about request identities or pending completions; that
lives one layer up, in the bridge.

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    JSON_CONTENT_TYPE,
    error_response,
    format_http_date,
)
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Responses
    "HTTPResponse",
    "ResponseBuilder",
    "JSON_CONTENT_TYPE",
    "error_response",
    "format_http_date",

    # Status codes
    "HTTPStatus",
    "reason_phrase",
]
