"""
=============================================================================
CORE ENGINE COMPONENTS
=============================================================================

The socket-level machinery the bridge sits on:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                               │
    │  • Binds synchronously, so start() fails fast on a busy port        │
    │  • Runs accept() on its own daemon thread                           │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                │
    │  • Engine workers read and parse; handler workers run handlers      │
    │  • Bounded queue, poison-pill shutdown, restartable                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ parse, then call the method's handler
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ENGINE + CONNECTION                             │
    │  • The connection is parked until its Completion is fulfilled       │
    │  • 504 after response_timeout, silent abort on unbind               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool
from .engine import EmbeddedEngine, Completion, CompletionState

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "EmbeddedEngine",
    "Completion",       # single-use handle answering one parked request
    "CompletionState",
]
