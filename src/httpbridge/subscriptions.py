"""
=============================================================================
SUBSCRIPTION REGISTRY
=============================================================================

Decides which HTTP methods the engine answers, and installs for each one
the bridging handler that turns a parked connection into an event.

=============================================================================
THE BRIDGING HANDLER
=============================================================================

Runs on an engine worker, once per accepted request of its method:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ 1. body       = request.text          ("" when there is no body)    │
    │ 2. request_id = str(uuid4())          (122 random bits)             │
    │ 3. table.put(request_id, completion, body)                          │
    │ 4. dispatcher.publish(method, InboundEvent(request_id, body))       │
    │ 5. not published? table.discard(request_id), answer 503             │
    └─────────────────────────────────────────────────────────────────────┘

The entry goes into the table BEFORE the event is published: a handler
that answers instantly must find it there. If the dispatcher refuses the
event (no listener, stopped, or queue full) the client gets 503 at once
instead of waiting for the 504.

=============================================================================
IDEMPOTENCE
=============================================================================

    registry.subscribe("get")    # installs the bridging handler → True
    registry.subscribe("GET")    # already there                 → False

Installing twice would publish every GET twice and mint two identities
for one connection.

=============================================================================
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict

from .core.engine import Completion, EmbeddedEngine
from .dispatcher import EventDispatcher
from .http import HTTPRequest, HTTPStatus
from .messages import InboundEvent
from .pending import PendingRequestTable


logger = logging.getLogger(__name__)


SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass
class Subscription:
    """One subscribed method."""

    method: str
    bridged: bool = False

    def __post_init__(self):
        self.method = normalize_method(self.method)


def normalize_method(method: str) -> str:
    """
    Upper-case a method name and check it is one the bridge serves.

    Raises:
        ValueError: Not one of GET, POST, PUT, PATCH, DELETE.
    """
    normalized = method.strip().upper()
    if normalized not in SUPPORTED_METHODS:
        raise ValueError(
            f"Unsupported method {method!r}; expected one of {', '.join(SUPPORTED_METHODS)}"
        )
    return normalized


class SubscriptionRegistry:
    """
    method → Subscription, plus the bridging handlers behind them.

        registry = SubscriptionRegistry(engine, table, dispatcher)
        registry.subscribe("POST")
        registry.methods           # {"POST"}
        registry.clear()           # on stop
    """

    def __init__(
        self,
        engine: EmbeddedEngine,
        table: PendingRequestTable,
        dispatcher: EventDispatcher
    ):
        self.engine = engine
        self.table = table
        self.dispatcher = dispatcher

        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def methods(self) -> set[str]:
        with self._lock:
            return set(self._subscriptions)

    def is_subscribed(self, method: str) -> bool:
        with self._lock:
            return method.upper() in self._subscriptions

    def subscribe(self, method: str) -> bool:
        """
        Make the engine answer `method` through the bridge.

        Returns:
            True if a bridging handler was installed now, False if the
            method was already subscribed.

        Raises:
            ValueError: Unsupported method.
        """
        subscription = Subscription(method)

        with self._lock:
            if subscription.method in self._subscriptions:
                return False

            self.engine.install_handler(
                subscription.method, self._bridging_handler(subscription.method)
            )
            subscription.bridged = True
            self._subscriptions[subscription.method] = subscription

        logger.info(f"Subscribed to {subscription.method}")
        return True

    def clear(self) -> None:
        """Forget every subscription and uninstall the bridging handlers."""
        with self._lock:
            self._subscriptions.clear()
            self.engine.remove_all_handlers()

    def _bridging_handler(self, method: str):
        table = self.table
        dispatcher = self.dispatcher

        def on_request(request: HTTPRequest, completion: Completion) -> None:
            body = request.text
            request_id = str(uuid.uuid4())

            completion.label = request_id
            completion.on_expire = lambda: table.discard(request_id)

            table.put(request_id, completion, body=body, method=method)
            logger.debug(f"Accepted {method} {request.path} as {request_id}")

            if dispatcher.publish(method, InboundEvent(request_id=request_id, body=body)):
                return

            # nobody will ever respond to this identity
            table.discard(request_id)
            logger.warning(f"No listener took {method} {request_id}, answering 503")
            completion.reject(HTTPStatus.SERVICE_UNAVAILABLE, f"No listener for {method}")

        return on_request
