"""
Exceptions raised by the bridge.

Lifecycle errors (AlreadyRunning, BindFailed) go straight back to whoever
called start(). Per-request trouble stays inside that request's flow:
duplicate or unknown completions are not exceptions at all, they are
CompletionOutcome values that get logged (see pending.py).
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for every error the bridge raises."""


class AlreadyRunning(BridgeError):
    """start() was called while the server is Running."""

    def __init__(self, url: Optional[str] = None):
        message = "Server start failed: already running"
        if url:
            message += f" at {url}"
        super().__init__(message)
        self.url = url


class BindFailed(BridgeError):
    """The engine could not bind the requested address."""

    def __init__(self, host: str, port: int, cause: Optional[BaseException] = None):
        message = f"Failed to bind {host}:{port}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.host = host
        self.port = port
        self.cause = cause


class DuplicateIdentity(BridgeError):
    """A request identity was inserted into the pending table twice."""

    def __init__(self, request_id: str):
        super().__init__(f"Request id already pending: {request_id}")
        self.request_id = request_id


class MalformedHandlerResult(BridgeError):
    """
    A handler produced something other than an int status and str data.

    Raised before respond() is attempted, so nothing is written and the
    waiting connection is left to the engine's response timeout.
    """

    def __init__(self, message: str, result: object = None):
        super().__init__(message)
        self.result = result
