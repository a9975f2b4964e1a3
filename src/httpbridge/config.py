"""
=============================================================================
BRIDGE CONFIGURATION
=============================================================================

One dataclass holding every knob of the embedded server: where it binds,
how many threads accept and run handlers, how long a connection may wait
for its asynchronous answer, and what content type responses carry.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Arguments to start() / the CLI                                 │
    │      └── server.start(port=3000), python -m httpbridge -p 3000      │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── BRIDGE_PORT=3000 python -m httpbridge                     │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class BridgeConfig:
    """
    Configuration for the bridge and its embedded engine.

    Development:
        BridgeConfig(port=8080, log_level="DEBUG")

    Embedded in a test suite:
        BridgeConfig(port=0, min_workers=2, response_timeout=5.0)
        # port 0: the OS picks a free port, start() returns the real URL
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" exposes the server on every interface."""

    port: int = 8080
    """Default port; start(port) overrides it. 0 lets the OS choose."""

    backlog: int = 128
    """Queued-but-not-accepted connections before the OS refuses more."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Seconds a client may take to send its request."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve further requests on a connection after answering one."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Whole-request cap; bodies are buffered in full."""

    response_timeout: float = 30.0
    """
    Seconds a connection waits for its handler to respond.
    After this the engine answers 504 itself and forgets the request.
    """

    response_content_type: str = "application/json"
    """Content-Type of every handler response, whatever the body holds."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Engine threads reading and parsing requests."""

    max_workers: int = 16
    """Upper bound the engine pool may scale to."""

    handler_workers: int = 8
    """Threads running scripting-layer handlers."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    server_name: str = "httpbridge/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Build a configuration from environment variables.

        BRIDGE_HOST              bind address      (default 127.0.0.1)
        BRIDGE_PORT              port              (default 8080)
        BRIDGE_WORKERS           max engine threads (default 16)
        BRIDGE_HANDLER_WORKERS   handler threads   (default 8)
        BRIDGE_TIMEOUT           request read timeout in seconds (30)
        BRIDGE_RESPONSE_TIMEOUT  handler answer timeout in seconds (30)
        BRIDGE_LOG_LEVEL         logging level     (default INFO)
        """
        return cls(
            host=os.getenv("BRIDGE_HOST", "127.0.0.1"),
            port=int(os.getenv("BRIDGE_PORT", "8080")),
            max_workers=int(os.getenv("BRIDGE_WORKERS", "16")),
            handler_workers=int(os.getenv("BRIDGE_HANDLER_WORKERS", "8")),
            timeout=float(os.getenv("BRIDGE_TIMEOUT", "30")),
            response_timeout=float(os.getenv("BRIDGE_RESPONSE_TIMEOUT", "30")),
            log_level=os.getenv("BRIDGE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Fail fast on values the engine cannot run with."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.handler_workers < 1:
            raise ValueError("handler_workers must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.response_timeout <= 0:
            raise ValueError("response_timeout must be > 0")

        if not self.response_content_type:
            raise ValueError("response_content_type must not be empty")

        if getattr(logging, self.log_level.upper(), None) is None:
            raise ValueError(f"Unknown log level: {self.log_level}")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure process logging the way the CLI wants it.

    Embedding applications usually own logging themselves and never call
    this; the `httpbridge` loggers then simply propagate to their setup.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("httpbridge").setLevel(numeric_level)
