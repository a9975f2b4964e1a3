"""
=============================================================================
EVENT DISPATCHER
=============================================================================

Carries an accepted request from the engine worker that parsed it to the
handler that will answer it. Topics are HTTP method names; each topic has
at most one listener.

    engine worker                         handler pool
    ─────────────                         ────────────
    publish("POST", event)
      listener = table["POST"]
      pool.submit(listener, event) ──────► listener(event)
    return immediately                      ... handler runs ...
                                            respond(event.request_id, ...)

The engine worker never runs handler code and never waits for it. That
keeps a slow handler from holding up the connections behind it.

=============================================================================
LAST REGISTRATION WINS
=============================================================================

    dispatcher.subscribe("GET", first)
    dispatcher.subscribe("GET", second)   # replaces first
    dispatcher.publish("GET", event)      # only second runs

=============================================================================
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from .core.thread_pool import ThreadPool


logger = logging.getLogger(__name__)


Listener = Callable[[Any], None]


class EventDispatcher:
    """
    Topic → listener table plus the pool listeners run on.

        dispatcher = EventDispatcher(handler_workers=8)
        dispatcher.subscribe("GET", on_get)
        dispatcher.start()
        dispatcher.publish("GET", InboundEvent(request_id, body))
        ...
        dispatcher.unsubscribe_all()
        dispatcher.shutdown()

    Listeners can be registered before start(); publishing only works
    while started.
    """

    def __init__(self, handler_workers: int = 8, queue_size: int = 1024):
        self._listeners: Dict[str, Listener] = {}
        self._lock = threading.Lock()
        self._pool = ThreadPool(
            min_workers=handler_workers,
            max_workers=handler_workers,
            queue_size=queue_size,
            name_prefix="handler",
        )

    @property
    def is_running(self) -> bool:
        return self._pool.is_running

    @property
    def topics(self) -> set[str]:
        with self._lock:
            return set(self._listeners)

    def start(self) -> None:
        self._pool.start()

    def shutdown(self) -> None:
        """Stop the handler pool; queued events are dropped."""
        self._pool.shutdown(wait=False)

    def subscribe(self, topic: str, listener: Listener) -> None:
        """Register the listener for a topic, replacing any previous one."""
        topic = topic.upper()
        with self._lock:
            replaced = topic in self._listeners
            self._listeners[topic] = listener

        if replaced:
            logger.debug(f"Replaced listener for {topic}")
        else:
            logger.debug(f"Registered listener for {topic}")

    def listener_for(self, topic: str) -> Optional[Listener]:
        with self._lock:
            return self._listeners.get(topic.upper())

    def unsubscribe_all(self) -> None:
        with self._lock:
            count = len(self._listeners)
            self._listeners.clear()
        logger.debug(f"Removed {count} listeners")

    def publish(self, topic: str, event: Any) -> bool:
        """
        Hand an event to the topic's listener on the handler pool.

        Returns:
            True if the event was queued. False if nobody listens on the
            topic, the dispatcher is stopped, or the pool queue is full.
        """
        listener = self.listener_for(topic)
        if listener is None:
            logger.warning(f"No listener for {topic}; event dropped")
            return False

        try:
            queued = self._pool.submit(listener, args=(event,))
        except RuntimeError:
            logger.warning(f"Dispatcher stopped; {topic} event dropped")
            return False

        if not queued:
            logger.error(f"Handler queue full; {topic} event dropped")
        return queued
