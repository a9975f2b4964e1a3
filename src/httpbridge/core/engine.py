"""
=============================================================================
EMBEDDED HTTP ENGINE
=============================================================================

The socket-level half of the system. It accepts connections, parses
requests, and writes responses, but it never decides what a response says.
For that it calls the handler installed for the request's method and hands
it a single-use Completion:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ENGINE CONTRACT                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   bind(port)            → base URL, or BindFailed                   │
    │   unbind()              stop accepting, abandon parked connections  │
    │   install_handler(m, h) h(request, completion) for method m         │
    │   remove_all_handlers()                                              │
    │                                                                      │
    │   Completion.fulfil(status, text, content_type)                     │
    │       write the response exactly once                               │
    │   Completion.reject(status, message)                                │
    │       error response instead, then close                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE REQUEST THROUGH THE ENGINE
=============================================================================

    accept thread          engine worker                 any thread, later
    ─────────────          ─────────────                 ─────────────────
    accept()
    submit ──────────────► read_request()
                           parse
                           handler for method?
                             no  → 405, close
                             yes → park(conn)
                                   handler(req, completion)
                           return to pool
                                                         completion.fulfil()
                                                           write response
                                                           keep-alive?
                                                             yes → resubmit
                                                             no  → close

A parked connection ends one of three ways:

    FULFILLED   the handler answered                        (normal)
    EXPIRED     response_timeout passed; engine sends 504    (slow handler)
    ABANDONED   unbind() dropped it; nothing is written      (server stop)

=============================================================================
"""

import logging
import socket
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

from ..config import BridgeConfig
from ..errors import BindFailed
from ..http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, error_response,
)
from .connection import Connection
from .socket_server import SocketServer
from .thread_pool import ThreadPool


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("httpbridge.access")


RequestHandler = Callable[[HTTPRequest, "Completion"], None]


class CompletionState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


class Completion:
    """
    Single-use handle that answers one parked request.

    Attributes:
        request: The request being answered.
        label: Free-form tag for access logs (the bridge puts the request
               identity here).
        on_expire: Called, without arguments, if the engine gives up on
                   this request after response_timeout.
    """

    def __init__(self, engine: "EmbeddedEngine", conn: Connection, request: HTTPRequest):
        self.request = request
        self.label: Optional[str] = None
        self.on_expire: Optional[Callable[[], None]] = None

        self._engine = engine
        self._conn = conn
        self._state = CompletionState.PENDING
        self._lock = threading.Lock()
        self.accepted_at = time.time()
        self.deadline = self.accepted_at + engine.config.response_timeout

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state == CompletionState.PENDING

    def _transition(self, new_state: CompletionState) -> bool:
        """PENDING → new_state; False if something else got there first."""
        with self._lock:
            if self._state != CompletionState.PENDING:
                return False
            self._state = new_state
            return True

    def fulfil(self, status: int, text_body: str, content_type: str) -> bool:
        """
        Write the response for this request.

        Returns:
            True if this call answered the request; False if the engine
            had already expired or abandoned it (nothing is written).

        Raises:
            RuntimeError: On a second fulfil() of the same completion.
        """
        with self._lock:
            if self._state == CompletionState.FULFILLED:
                raise RuntimeError("Completion already fulfilled")
            if self._state != CompletionState.PENDING:
                return False
            self._state = CompletionState.FULFILLED

        self._engine._unpark(self)

        response = HTTPResponse(status=status, headers={"Content-Type": content_type})
        response.set_body(text_body)
        self._engine._finish(self._conn, self.request, response, self)
        return True

    def reject(self, status: int, message: str) -> bool:
        """
        Answer with an error response and close the connection.

        Used when the request cannot be handed on at all. Returns False
        if the completion was already settled.
        """
        if not self._transition(CompletionState.FULFILLED):
            return False

        self._engine._unpark(self)
        self._engine._send_error(self._conn, status, message)
        self._engine._close(self._conn)
        return True

    def _expire(self):
        if not self._transition(CompletionState.EXPIRED):
            return

        logger.warning(
            f"[{self._conn.id}] No response for {self.request.method} {self.request.path} "
            f"within {self._engine.config.response_timeout}s"
        )
        self._engine._unpark(self)

        # forget the request before the client can see the 504
        if self.on_expire is not None:
            try:
                self.on_expire()
            except Exception as e:
                logger.exception(f"[{self._conn.id}] on_expire hook failed: {e}")

        self._engine._send_error(
            self._conn, HTTPStatus.GATEWAY_TIMEOUT, "Handler did not respond in time"
        )
        self._engine._close(self._conn)

    def _abandon(self):
        if self._transition(CompletionState.ABANDONED):
            self._engine._close(self._conn, abort=True)


class EmbeddedEngine:
    """
    Threaded HTTP/1.1 engine with asynchronous completions.

        engine = EmbeddedEngine(BridgeConfig())
        engine.install_handler("GET", lambda request, completion:
            completion.fulfil(200, '{"ok":true}', "application/json"))
        url = engine.bind(8080)     # "http://127.0.0.1:8080/"
        ...
        engine.unbind()

    One handler per method; installing again replaces the previous one.
    Handlers stay installed across unbind()/bind() until
    remove_all_handlers() is called.
    """

    def __init__(self, config: Optional[BridgeConfig] = None):
        self.config = config or BridgeConfig()

        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._socket_server: Optional[SocketServer] = None
        self._pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            name_prefix="engine",
        )

        self._handlers: Dict[str, RequestHandler] = {}
        self._handlers_lock = threading.Lock()

        # every open connection, and the subset waiting for a completion
        self._connections: set[Connection] = set()
        self._parked: set[Completion] = set()
        self._conn_lock = threading.Lock()

        self._reaper: Optional[threading.Thread] = None
        self._reaper_stop = threading.Event()
        self._base_url: Optional[str] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_bound(self) -> bool:
        return self._base_url is not None

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    @property
    def installed_methods(self) -> set[str]:
        with self._handlers_lock:
            return set(self._handlers)

    @property
    def parked_count(self) -> int:
        with self._conn_lock:
            return len(self._parked)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def install_handler(self, method: str, on_request: RequestHandler) -> None:
        method = method.upper()
        with self._handlers_lock:
            if method in self._handlers:
                logger.warning(f"Replacing engine handler for {method}")
            self._handlers[method] = on_request
        logger.debug(f"Installed engine handler for {method}")

    def remove_all_handlers(self) -> None:
        with self._handlers_lock:
            self._handlers.clear()

    # =========================================================================
    # BIND / UNBIND
    # =========================================================================

    def bind(self, port: int) -> str:
        """
        Bind synchronously and start serving.

        Returns:
            Base URL, e.g. "http://127.0.0.1:8080/".

        Raises:
            BindFailed: The address could not be bound.
            RuntimeError: Already bound.
        """
        if self.is_bound:
            raise RuntimeError(f"Engine already bound to {self._base_url}")

        socket_server = SocketServer(self.config)
        try:
            host, bound_port = socket_server.bind(port)
        except OSError as e:
            raise BindFailed(self.config.host, port, e) from e

        self._pool.start()
        self._socket_server = socket_server
        self._base_url = f"http://{self._url_host(host)}:{bound_port}/"

        self._reaper_stop.clear()
        self._reaper = threading.Thread(target=self._reap_expired, name="reaper", daemon=True)
        self._reaper.start()

        socket_server.serve(self._handle_connection)
        return self._base_url

    def unbind(self) -> None:
        """
        Stop accepting, abandon every parked request, close all connections.

        Abandoned requests get no response: their sockets are just closed.
        No-op when not bound.
        """
        if not self.is_bound:
            return

        self._base_url = None
        self._socket_server.shutdown()
        self._socket_server = None

        self._reaper_stop.set()
        if self._reaper is not None and self._reaper is not threading.current_thread():
            self._reaper.join(timeout=2.0)
        self._reaper = None

        with self._conn_lock:
            parked = list(self._parked)
            connections = list(self._connections)

        for completion in parked:
            completion._abandon()
        if parked:
            logger.info(f"Abandoned {len(parked)} pending requests")

        for conn in connections:
            self._close(conn, abort=True)

        self._pool.shutdown(wait=False)

    def _url_host(self, host: str) -> str:
        if host not in ("0.0.0.0", ""):
            return host
        try:
            return socket.gethostbyname(socket.gethostname())
        except OSError:
            return "127.0.0.1"

    # =========================================================================
    # CONNECTION PROCESSING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Accept-thread callback: hand the connection to the worker pool."""
        with self._conn_lock:
            self._connections.add(conn)

        if not self._submit(conn):
            logger.warning(f"[{conn.id}] Engine pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            self._close(conn)

    def _submit(self, conn: Connection) -> bool:
        try:
            return self._pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            return False

    def _process_connection(self, conn: Connection):
        """
        Read and dispatch one request (runs on an engine worker).

        The worker never waits for the answer. Once the handler has been
        called, the connection belongs to the Completion.
        """
        try:
            raw_request = conn.read_request()
        except TimeoutError:
            self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
            self._close(conn)
            return
        except ValueError as e:
            self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
            self._close(conn)
            return
        except OSError as e:
            logger.debug(f"[{conn.id}] Read failed: {e}")
            self._close(conn, abort=True)
            return

        if raw_request is None:
            self._close(conn)
            return

        try:
            request = self._parser.parse(raw_request, conn.address)
        except HTTPParseError as e:
            self._send_error(conn, e.status_code, str(e))
            self._close(conn)
            return

        with self._handlers_lock:
            handler = self._handlers.get(request.method)

        if handler is None:
            self._send_error(
                conn, HTTPStatus.METHOD_NOT_ALLOWED, f"No handler for {request.method}"
            )
            self._close(conn)
            return

        completion = Completion(self, conn, request)
        conn.park()
        with self._conn_lock:
            self._parked.add(completion)

        try:
            handler(request, completion)
        except Exception as e:
            logger.exception(f"[{conn.id}] Engine handler for {request.method} failed: {e}")
            if completion._transition(CompletionState.ABANDONED):
                self._unpark(completion)
                self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")
                self._close(conn)

    def _finish(
        self,
        conn: Connection,
        request: HTTPRequest,
        response: HTTPResponse,
        completion: Completion
    ):
        """Write a fulfilled response; keep the connection or close it."""
        keep_alive = request.is_keep_alive and self.config.keep_alive and self.is_bound
        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault(
                "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
            )
        else:
            response.headers["Connection"] = "close"

        sent = conn.send_response(response.to_bytes(self.config.server_name))

        duration_ms = (time.time() - completion.accepted_at) * 1000
        access_logger.info(
            f'{conn.client_ip} "{request.method} {request.path}" {response.status} '
            f'{len(response.body)} {duration_ms:.2f}ms'
            + (f" id={completion.label}" if completion.label else "")
        )

        if sent and keep_alive:
            conn.set_keep_alive()
            if self._submit(conn):
                return
        self._close(conn)

    def _send_error(self, conn: Connection, status: int, message: str):
        response = error_response(status, message)
        conn.send_response(response.to_bytes(self.config.server_name))

    def _unpark(self, completion: Completion):
        with self._conn_lock:
            self._parked.discard(completion)

    def _close(self, conn: Connection, abort: bool = False):
        with self._conn_lock:
            self._connections.discard(conn)
        if abort:
            conn.abort()
        else:
            conn.close()

    # =========================================================================
    # EXPIRY
    # =========================================================================

    def _reap_expired(self):
        """Answer 504 for parked requests past their deadline."""
        interval = min(1.0, self.config.response_timeout / 4)

        while not self._reaper_stop.wait(interval):
            now = time.time()
            with self._conn_lock:
                expired = [c for c in self._parked if c.deadline <= now]

            for completion in expired:
                completion._expire()
