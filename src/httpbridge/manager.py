"""
=============================================================================
SERVER LIFECYCLE
=============================================================================

WebServerManager owns one engine and everything wired around it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WebServerManager                              │
    │                                                                      │
    │   state: STOPPED ⇄ RUNNING                                           │
    │                                                                      │
    │   ┌──────────────┐  bridging   ┌───────────────────┐                 │
    │   │ Embedded     │  handlers   │ Subscription      │                 │
    │   │ Engine       │◄────────────│ Registry          │                 │
    │   └──────┬───────┘             └─────────┬─────────┘                 │
    │          │ completion                    │ put / publish             │
    │          ▼                               ▼                           │
    │   ┌──────────────┐  complete   ┌───────────────────┐                 │
    │   │ Pending      │◄────────────│ Event             │──► listeners    │
    │   │ Request Table│  (respond)  │ Dispatcher        │   (handler pool)│
    │   └──────────────┘             └───────────────────┘                 │
    └─────────────────────────────────────────────────────────────────────┘

It is an ordinary object: construct as many as you like, each binds its
own port. Nothing here is process-global.

=============================================================================
STATE MACHINE
=============================================================================

    STOPPED ──start(port)──► RUNNING        bind failed: stays STOPPED
    RUNNING ──start(port)──► AlreadyRunning (first binding untouched)
    RUNNING ──stop()───────► STOPPED        listeners, subscriptions and
                                            pending requests are dropped;
                                            waiting clients get no answer
    STOPPED ──stop()───────► STOPPED        no-op, still returns True

=============================================================================
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

from .config import BridgeConfig
from .core.engine import EmbeddedEngine
from .dispatcher import EventDispatcher
from .errors import AlreadyRunning, BindFailed
from .messages import InboundEvent, validate_result
from .pending import CompletionOutcome, PendingRequestTable
from .subscriptions import SubscriptionRegistry, normalize_method


logger = logging.getLogger(__name__)


class ServerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class WebServerManager:
    """
    Start/stop control plus the subscribe and respond operations.

        manager = WebServerManager(BridgeConfig(port=0))
        manager.add_listener("GET", lambda event:
            manager.respond(event.request_id, 200, '{"ok":true}'))
        url = manager.start()
        ...
        manager.stop()
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        engine: Optional[EmbeddedEngine] = None
    ):
        self.config = config or BridgeConfig()
        self.config.validate()

        self.engine = engine or EmbeddedEngine(self.config)
        self.table = PendingRequestTable(content_type=self.config.response_content_type)
        self.dispatcher = EventDispatcher(handler_workers=self.config.handler_workers)
        self.registry = SubscriptionRegistry(self.engine, self.table, self.dispatcher)

        self._state = ServerState.STOPPED
        self._url: Optional[str] = None
        self._lock = threading.RLock()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def pending_count(self) -> int:
        return len(self.table)

    @property
    def subscribed_methods(self) -> set[str]:
        return self.registry.methods

    def is_running(self) -> bool:
        return self._state == ServerState.RUNNING

    # =========================================================================
    # START / STOP
    # =========================================================================

    def start(self, port: Optional[int] = None) -> str:
        """
        Bind the engine and start serving.

        Args:
            port: Port to bind; config.port when omitted, 0 for any free port.

        Returns:
            The server URL, e.g. "http://127.0.0.1:8080/".

        Raises:
            AlreadyRunning: The server is already running.
            BindFailed: The port could not be bound; the state stays STOPPED.
        """
        with self._lock:
            if self._state == ServerState.RUNNING:
                raise AlreadyRunning(self._url)

            if port is None:
                port = self.config.port

            self.dispatcher.start()
            try:
                url = self.engine.bind(port)
            except BindFailed:
                self.dispatcher.shutdown()
                raise

            self._url = url
            self._state = ServerState.RUNNING

        logger.info(f"Server started at {url}")
        return url

    def stop(self) -> bool:
        """
        Stop serving and drop all listeners, subscriptions and pending
        requests. Requests still waiting are abandoned without a response.

        Returns:
            True, also when the server was not running.
        """
        with self._lock:
            if self._state == ServerState.STOPPED:
                return True

            self.engine.unbind()
            self.dispatcher.unsubscribe_all()
            self.registry.clear()
            abandoned = self.table.clear()
            self.dispatcher.shutdown()

            url, self._url = self._url, None
            self._state = ServerState.STOPPED

        logger.info(f"Server at {url} stopped ({abandoned} pending requests abandoned)")
        return True

    # =========================================================================
    # SUBSCRIBE / RESPOND
    # =========================================================================

    def add_listener(self, method: str, listener: Callable[[InboundEvent], Any]) -> None:
        """
        Register the listener for `method` and subscribe to it.

        The listener receives an InboundEvent on a handler thread and must
        eventually call respond(event.request_id, ...). A second listener
        for the same method replaces the first.

        This is the only way to subscribe a method, so the engine never
        answers a method nobody listens to.
        """
        method = normalize_method(method)
        self.dispatcher.subscribe(method, listener)
        self.registry.subscribe(method)

    def respond(self, request_id: str, status: int, data: str) -> CompletionOutcome:
        """
        Deliver a response for an accepted request.

        Returns:
            The table's CompletionOutcome. Missing or already answered
            identities are logged, not raised.

        Raises:
            MalformedHandlerResult: status is not an int in 100-599 or
            data is not a str.
        """
        validate_result(status, data)
        return self.table.complete(request_id, status, data)
