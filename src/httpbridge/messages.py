"""
=============================================================================
MESSAGES BETWEEN THE ENGINE SIDE AND THE HANDLER SIDE
=============================================================================

Two transient values cross the bridge, one each way:

    engine side                                      handler side
    ───────────                                      ────────────
                  InboundEvent(request_id, body)
                ──────────────────────────────────►
                                                     handler(body)
                  OutboundResponse(request_id,         → {"status": 200,
                                   status, data)          "data": "..."}
                ◄──────────────────────────────────

Neither owns anything. The request identity inside them is the only link
back to the waiting connection.

=============================================================================
STRICT TYPES
=============================================================================

status must be an int (bool is rejected even though it subclasses int)
in 100-599, and data must be a str. A handler returning
{"status": "200", "data": "ok"} is a bug in that handler; it is refused
with MalformedHandlerResult instead of being coerced.

The 100-599 range is narrower than "any int". The engine writes the
status into the status line as-is, and HTTP/1.1 clients only parse a
three-digit code there, so 42 or 1000 would reach the client as a broken
response. Refusing them here keeps the error next to the handler that
made it, and the request stays pending until the engine's 504.

=============================================================================
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import MalformedHandlerResult


@dataclass(frozen=True)
class InboundEvent:
    """A request handed to the handler side."""

    request_id: str
    body: str

    def to_dict(self) -> dict:
        return {"requestId": self.request_id, "body": self.body}


@dataclass(frozen=True)
class OutboundResponse:
    """A handler's answer, addressed to one request identity."""

    request_id: str
    status: int
    data: str

    def __post_init__(self):
        validate_result(self.status, self.data)

    @classmethod
    def from_result(cls, request_id: str, result: Any) -> "OutboundResponse":
        """
        Build from whatever a handler returned.

        Accepts a mapping with "status" and "data" keys, or any object with
        `status` and `data` attributes.

        Raises:
            MalformedHandlerResult: Missing fields or wrong types.
        """
        if isinstance(result, Mapping):
            if "status" not in result or "data" not in result:
                raise MalformedHandlerResult(
                    "Handler result must contain 'status' and 'data'", result
                )
            status, data = result["status"], result["data"]
        elif hasattr(result, "status") and hasattr(result, "data"):
            status, data = result.status, result.data
        else:
            raise MalformedHandlerResult(
                f"Handler returned {type(result).__name__}, expected status and data",
                result,
            )

        validate_result(status, data, result)
        return cls(request_id=request_id, status=status, data=data)


def validate_result(status: Any, data: Any, result: Any = None) -> None:
    """
    Raises:
        MalformedHandlerResult: status is not an int in 100-599, or data
        is not a str.
    """
    if isinstance(status, bool) or not isinstance(status, int):
        raise MalformedHandlerResult(
            f"Status must be of type int, got {type(status).__name__}", result
        )

    if not 100 <= status <= 599:
        raise MalformedHandlerResult(f"Status {status} is not a valid HTTP status", result)

    if not isinstance(data, str):
        raise MalformedHandlerResult(
            f"Data must be of type str, got {type(data).__name__}", result
        )
