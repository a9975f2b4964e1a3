"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening TCP socket and the accept loop.

Unlike a standalone server, an embedded engine must not take over the
caller's thread. start() is split in two:

    bind()    synchronous, in the caller's thread
              socket() → setsockopt() → bind() → listen()
              errors (port in use, permission) surface right here

    serve()   spawns the "accept" daemon thread
              while running: accept() → Connection → handler(conn)

so that start(port) can return the resolved URL, or fail, before a single
connection is accepted.

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   restart on the same port without waiting out TIME_WAIT
    TCP_NODELAY    small JSON responses go out immediately (no Nagle)
    timeout 1.0s   accept() wakes up periodically to check the running flag

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import BridgeConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Listening socket plus accept thread.

        server = SocketServer(config)
        host, port = server.bind(0)       # OS picks the port
        server.serve(handle_connection)   # returns immediately
        ...
        server.shutdown()                 # stops accepting, closes socket
    """

    def __init__(self, config: BridgeConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._address: Tuple[str, int] = (config.host, config.port)
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once bind() resolved port 0."""
        return self._address

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def bind(self, port: int) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            OSError: If the address cannot be bound.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{port}: {e}")
            raise

        self._socket = sock
        self._address = sock.getsockname()[:2]
        logger.info(f"Listening on {self._address[0]}:{self._address[1]}")
        return self._address

    def serve(self, connection_handler: Callable[[Connection], None]):
        """Start the accept thread. bind() must have succeeded first."""
        if self._socket is None:
            raise RuntimeError("bind() must be called before serve()")

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler,),
            name="accept",
            daemon=True,
        )
        self._thread.start()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # closing the socket in shutdown() lands here
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                conn.abort()

        self._running = False

    def shutdown(self):
        """Stop accepting and close the listening socket. Idempotent."""
        self._running = False

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

        logger.info("Socket server stopped")
