"""
=============================================================================
HTTPBRIDGE - Embedded HTTP Server With Asynchronous Responses
=============================================================================

An HTTP server you start from inside your application. Requests are
accepted on engine threads, but the code that decides the answer runs
somewhere else, later, on a handler thread. Each request gets a freshly
minted identity that carries the answer back to the right connection.

=============================================================================
THE CORRELATION PROTOCOL
=============================================================================

    client          engine thread           table            handler thread
    ──────          ─────────────           ─────            ──────────────
    GET / ───────►  parse
                    id = uuid4()
                    put(id, completion) ──► {id: completion}
                    publish("GET", id, body) ──────────────► handler(body)
                    (worker is free again)                        │
                                                                  ▼
                                            complete(id) ◄── respond(id, 200, data)
                                            pop(id)
    ◄───── 200 ──── completion.fulfil()

Every identity is completed at most once. A late or repeated respond()
is logged and ignored, never raised.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    httpbridge/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI echo server (python -m httpbridge)
    ├── server.py            # HTTPServer, Router: the application API
    ├── manager.py           # WebServerManager: start/stop state machine
    ├── subscriptions.py     # per-method bridging handlers
    ├── pending.py           # PendingRequestTable: exactly-once completion
    ├── dispatcher.py        # EventDispatcher: method topic → listener
    ├── messages.py          # InboundEvent, OutboundResponse
    ├── errors.py            # BridgeError hierarchy
    ├── config.py            # BridgeConfig dataclass, setup_logging
    ├── core/                # socket server, connections, pools, engine
    └── http/                # request parsing, response building

=============================================================================
QUICK START
=============================================================================

    from httpbridge import HTTPServer

    server = HTTPServer(port=8080)

    @server.route("GET")
    def index(body):
        return {"status": 200, "data": '{"ok":true}'}

    print(server.start())   # http://127.0.0.1:8080/
    ...
    server.stop()

=============================================================================
"""

__version__ = "1.0.0"

from .config import BridgeConfig, setup_logging
from .errors import (
    BridgeError,
    AlreadyRunning,
    BindFailed,
    DuplicateIdentity,
    MalformedHandlerResult,
)
from .messages import InboundEvent, OutboundResponse
from .pending import PendingRequestTable, PendingRequest, CompletionOutcome
from .dispatcher import EventDispatcher
from .subscriptions import SubscriptionRegistry, Subscription
from .manager import WebServerManager, ServerState
from .server import HTTPServer, Router, HTTPMethods

__all__ = [
    # Application API
    "HTTPServer",
    "Router",
    "HTTPMethods",
    "BridgeConfig",
    "setup_logging",

    # Bridge internals
    "WebServerManager",
    "ServerState",
    "SubscriptionRegistry",
    "Subscription",
    "PendingRequestTable",
    "PendingRequest",
    "CompletionOutcome",
    "EventDispatcher",
    "InboundEvent",
    "OutboundResponse",

    # Errors
    "BridgeError",
    "AlreadyRunning",
    "BindFailed",
    "DuplicateIdentity",
    "MalformedHandlerResult",

    "__version__",
]
