"""
=============================================================================
HTTPBRIDGE CLI ENTRY POINT
=============================================================================

Runs a small echo server: every GET, POST, PUT, PATCH and DELETE is
answered asynchronously with the method and the body it carried.

=============================================================================
USAGE
=============================================================================

    # Run with defaults (127.0.0.1:8080)
    python -m httpbridge

    # Custom port, any interface
    python -m httpbridge --host 0.0.0.0 --port 3000

    # Slow clients get 504 after 5 seconds instead of 30
    python -m httpbridge --response-timeout 5

    $ curl -X POST -d 'hello' http://127.0.0.1:8080/
    {"method": "POST", "body": "hello"}

Ctrl+C (or SIGTERM) stops the server cleanly.

=============================================================================
"""

import argparse
import json
import logging
import signal
import sys
import threading

from . import __version__
from .config import BridgeConfig, setup_logging
from .errors import BridgeError
from .server import HTTPServer
from .subscriptions import SUPPORTED_METHODS


logger = logging.getLogger("httpbridge.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httpbridge",
        description="Embedded HTTP server with asynchronous handlers (echo demo)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httpbridge                        # Run with defaults
  python -m httpbridge --port 3000            # Custom port
  python -m httpbridge --host 0.0.0.0         # Listen on all interfaces
  python -m httpbridge --handler-workers 16   # More handler threads
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8080,
        help="Port to listen on (default: 8080, 0 for any free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=4,
        help="Engine threads reading requests (default: 4, max will be 2x this)"
    )

    parser.add_argument(
        "--handler-workers",
        type=int,
        default=8,
        help="Threads running handlers (default: 8)"
    )

    parser.add_argument(
        "--response-timeout",
        type=float,
        default=30.0,
        help="Seconds before an unanswered request gets 504 (default: 30)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"httpbridge {__version__}"
    )

    return parser


def make_echo_handler(method: str):
    def echo(body: str):
        return {"status": 200, "data": json.dumps({"method": method, "body": body})}
    echo.__name__ = f"echo_{method.lower()}"
    return echo


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = BridgeConfig(
        host=args.host,
        port=args.port,
        min_workers=args.workers,
        max_workers=args.workers * 2,
        handler_workers=args.handler_workers,
        response_timeout=args.response_timeout,
        log_level=args.log_level,
    )

    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    server = HTTPServer(config=config)
    for method in SUPPORTED_METHODS:
        server.on_method(method, make_echo_handler(method))

    server.register_error_handler(
        lambda exc: {"status": 500, "data": {"error": str(exc)}}
    )

    try:
        url = server.start()
    except BridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"httpbridge {__version__} echoing {', '.join(SUPPORTED_METHODS)} at {url}")
    print("Press Ctrl+C to stop")

    stop_requested = threading.Event()

    def request_stop(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        stop_requested.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    try:
        # wait() with a timeout keeps the main thread responsive to signals
        while not stop_requested.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
