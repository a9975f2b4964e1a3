"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Status codes the engine produces on its own, plus a reason-phrase lookup
for any integer status a handler chooses to send.

=============================================================================
WHO PICKS THE STATUS?
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │                       STATUS CODE SOURCES                          │
    ├──────────────┬─────────────────────────────────────────────────────┤
    │  Handler     │ Any integer the async handler returns, verbatim.   │
    │              │ 200, 201, 418, even 299 - the bridge never         │
    │              │ rewrites it. Unknown codes get phrase "Unknown".   │
    ├──────────────┼─────────────────────────────────────────────────────┤
    │  Engine      │ Only when no handler can answer:                   │
    │              │   400 Bad Request        - unparseable request     │
    │              │   405 Method Not Allowed - nobody subscribed       │
    │              │   408 Request Timeout    - client too slow         │
    │              │   413 Payload Too Large  - over max_request_size   │
    │              │   503 Service Unavailable - worker queue full      │
    │              │   504 Gateway Timeout    - handler never answered  │
    └──────────────┴─────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes known to the bridge.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    UNSUPPORTED_MEDIA_TYPE = 415
    IM_A_TEAPOT = 418
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line ("OK", "Not Found", ...)."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_error(self) -> bool:
        return self >= 400


def reason_phrase(status: int) -> str:
    """
    Reason phrase for an arbitrary integer status.

    Handlers may answer with codes this enum does not list; those still
    produce a valid status line, just with the phrase "Unknown".

    Example:
        reason_phrase(404)  # "Not Found"
        reason_phrase(299)  # "Unknown"
    """
    return _STATUS_PHRASES.get(status, "Unknown")


# =============================================================================
# REASON PHRASES
# =============================================================================
#
# Purely informational per RFC 7230; clients key off the number.
#
# =============================================================================

_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.IM_A_TEAPOT: "I'm a teapot",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
