"""
=============================================================================
HTTPSERVER - THE APPLICATION-FACING API
=============================================================================

What application code uses. Handlers take the request body and return a
status and a text payload; everything about identities, parked
connections and completions stays underneath.

    from httpbridge import HTTPServer

    server = HTTPServer(port=8080)

    @server.route("GET")
    def index(body):
        return {"status": 200, "data": '{"ok":true}'}

    @server.route("POST")
    async def echo(body):
        return {"status": 201, "data": body}

    url = server.start()        # "http://127.0.0.1:8080/"
    ...
    server.stop()

=============================================================================
WHAT A HANDLER MAY RETURN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  {"status": 200, "data": "..."}          mapping                   │
    │  obj with .status and .data              e.g. a dataclass          │
    │  an awaitable producing either           run on the handler thread │
    ├─────────────────────────────────────────────────────────────────────┤
    │  status: int in 100-599 (True/False rejected)                      │
    │  data:   str  (sent verbatim, Content-Type application/json)       │
    └─────────────────────────────────────────────────────────────────────┘

Anything else raises MalformedHandlerResult: nothing is written for that
request, the error is logged, and the server keeps serving.

=============================================================================
HANDLER ERRORS
=============================================================================

    handler raises ValueError("boom")
        │
        ├── error handler registered?
        │     yes → status, data = error_handler(exc)
        │           respond(request_id, status, json.dumps(data))
        │
        └──   no  → logged; the client gets 504 after response_timeout

=============================================================================
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .config import BridgeConfig, setup_logging
from .errors import MalformedHandlerResult
from .manager import WebServerManager
from .messages import InboundEvent, OutboundResponse
from .pending import CompletionOutcome
from .subscriptions import normalize_method


logger = logging.getLogger(__name__)


Handler = Callable[[str], Union[Any, Awaitable[Any]]]
ErrorHandler = Callable[[Exception], Any]


class HTTPMethods:
    """Method names accepted by on_method() and Router."""
    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"


class Router:
    """
    One handler per method, grouped under a label.

        users = (
            Router("/users")
            .get(list_users)
            .post(create_user)
        )
        server.register_router(users)

    The path is only a label: the bridge dispatches on method alone, so
    two routers registering the same method replace each other.
    """

    def __init__(self, path: str = "/"):
        self.path = path
        self._handlers: Dict[str, Handler] = {}

    def get(self, handler: Handler) -> "Router":
        self._handlers[HTTPMethods.GET] = handler
        return self

    def post(self, handler: Handler) -> "Router":
        self._handlers[HTTPMethods.POST] = handler
        return self

    def put(self, handler: Handler) -> "Router":
        self._handlers[HTTPMethods.PUT] = handler
        return self

    def patch(self, handler: Handler) -> "Router":
        self._handlers[HTTPMethods.PATCH] = handler
        return self

    def delete(self, handler: Handler) -> "Router":
        self._handlers[HTTPMethods.DELETE] = handler
        return self

    @property
    def handlers(self) -> Dict[str, Handler]:
        return dict(self._handlers)

    def __repr__(self) -> str:
        return f"Router({self.path!r}, methods={sorted(self._handlers)})"


class HTTPServer:
    """
    Embedded HTTP server with asynchronous, per-method handlers.

    Args:
        port: Port start() binds. 0 picks a free one.
        config: Engine and pool settings; port overrides config.port.
        manager: An existing WebServerManager to drive, mostly for tests.
        configure_logging: Call setup_logging(config.log_level) on start().
    """

    def __init__(
        self,
        port: Optional[int] = None,
        config: Optional[BridgeConfig] = None,
        manager: Optional[WebServerManager] = None,
        configure_logging: bool = False
    ):
        if manager is not None:
            self.manager = manager
            self.config = manager.config
        else:
            self.config = config or BridgeConfig()
            self.manager = WebServerManager(self.config)

        self.port = self.config.port if port is None else port
        self.configure_logging = configure_logging

        self._handlers: Dict[str, Handler] = {}
        self._error_handler: Optional[ErrorHandler] = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> str:
        """
        Start serving on self.port.

        Returns:
            The server URL.

        Raises:
            AlreadyRunning: Already started.
            BindFailed: The port is not available.
        """
        if self.configure_logging:
            setup_logging(self.config.log_level)
        return self.manager.start(self.port)

    def stop(self) -> bool:
        """
        Stop serving. All handlers are dropped and must be registered
        again before the next start().
        """
        self._handlers.clear()
        return self.manager.stop()

    def is_running(self) -> bool:
        return self.manager.is_running()

    @property
    def url(self) -> Optional[str]:
        return self.manager.url

    @property
    def methods(self) -> set[str]:
        return set(self._handlers)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def on_method(self, method: str, handler: Handler) -> Handler:
        """
        Answer every request of `method` with `handler(body)`.

        Registering a second handler for the same method replaces the first.

        Raises:
            ValueError: Unsupported method.
        """
        method = normalize_method(method)
        self._handlers[method] = handler
        self.manager.add_listener(method, self._make_listener(method, handler))
        logger.debug(f"Registered {getattr(handler, '__name__', handler)!s} for {method}")
        return handler

    def route(self, method: str) -> Callable[[Handler], Handler]:
        """
        Decorator form of on_method().

            @server.route("PUT")
            def update(body):
                return {"status": 204, "data": ""}
        """
        def decorator(handler: Handler) -> Handler:
            return self.on_method(method, handler)
        return decorator

    def register_router(self, router: Router) -> None:
        for method, handler in router.handlers.items():
            self.on_method(method, handler)

    def register_error_handler(self, callback: ErrorHandler) -> ErrorHandler:
        """
        Turn handler exceptions into responses.

        callback(exc) returns {"status": int, "data": <any JSON value>};
        data is serialized with json.dumps before it is sent.
        """
        self._error_handler = callback
        return callback

    def respond(self, request_id: str, status: int, data: str) -> CompletionOutcome:
        return self.manager.respond(request_id, status, data)

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def _make_listener(self, method: str, handler: Handler) -> Callable[[InboundEvent], None]:
        def listener(event: InboundEvent) -> None:
            try:
                result = _resolve(handler(event.body))
            except MalformedHandlerResult:
                raise
            except Exception as e:
                self._handle_error(method, event, e)
                return

            # raises MalformedHandlerResult; the handler worker logs it
            response = OutboundResponse.from_result(event.request_id, result)
            self.manager.respond(response.request_id, response.status, response.data)

        listener.__name__ = f"{method.lower()}_listener"
        return listener

    def _handle_error(self, method: str, event: InboundEvent, error: Exception) -> None:
        if self._error_handler is None:
            logger.error(
                f"{method} handler failed for {event.request_id}: {error}",
                exc_info=error,
            )
            return

        logger.debug(f"{method} handler failed for {event.request_id}, using error handler")
        result = _resolve(self._error_handler(error))

        if isinstance(result, dict):
            status, data = result.get("status"), result.get("data")
        else:
            status, data = getattr(result, "status", None), getattr(result, "data", None)

        self.manager.respond(event.request_id, status, json.dumps(data))


def _resolve(result: Any) -> Any:
    """Run an awaitable result to completion on the current thread."""
    if not inspect.isawaitable(result):
        return result

    if inspect.iscoroutine(result):
        return asyncio.run(result)

    async def wait_for():
        return await result

    return asyncio.run(wait_for())
