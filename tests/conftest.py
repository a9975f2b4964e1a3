"""
pytest configuration and fixtures.
"""

import http.client
import socket
import threading
from typing import Generator, Optional
from urllib.parse import urlparse
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpbridge import BridgeConfig, HTTPServer, WebServerManager
from httpbridge.http import HTTPRequest


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request without a body."""
    return (
        b"GET /status?verbose=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> BridgeConfig:
    """Default test configuration."""
    return BridgeConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        handler_workers=2,
        timeout=5.0,
        response_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# FAKE ENGINE
# =============================================================================

class FakeCompletion:
    """Records fulfil() and reject() calls instead of writing to a socket."""

    def __init__(self, request: Optional[HTTPRequest] = None, deliver: bool = True):
        self.request = request
        self.deliver = deliver
        self.calls: list[tuple[int, str, str]] = []
        self.rejections: list[tuple[int, str]] = []
        self.label: Optional[str] = None
        self.on_expire = None
        self.fulfilled = threading.Event()

    def fulfil(self, status: int, text_body: str, content_type: str) -> bool:
        if self.calls:
            raise RuntimeError("Completion already fulfilled")
        self.calls.append((status, text_body, content_type))
        self.fulfilled.set()
        return self.deliver

    def reject(self, status: int, message: str) -> bool:
        if self.calls or self.rejections:
            return False
        self.rejections.append((int(status), message))
        self.fulfilled.set()
        return True

    def wait(self, timeout: float = 2.0) -> bool:
        return self.fulfilled.wait(timeout)


class FakeEngine:
    """In-memory stand-in for EmbeddedEngine; requests are simulated."""

    def __init__(self):
        self.handlers = {}
        self.install_calls: list[str] = []
        self.bound_port: Optional[int] = None
        self.bind_calls = 0
        self.unbind_calls = 0
        self.fail_bind: Optional[BaseException] = None

    @property
    def is_bound(self) -> bool:
        return self.bound_port is not None

    def install_handler(self, method, on_request):
        self.install_calls.append(method.upper())
        self.handlers[method.upper()] = on_request

    def remove_all_handlers(self):
        self.handlers.clear()

    def bind(self, port: int) -> str:
        self.bind_calls += 1
        if self.fail_bind is not None:
            raise self.fail_bind
        self.bound_port = port or 49152
        return f"http://127.0.0.1:{self.bound_port}/"

    def unbind(self):
        self.unbind_calls += 1
        self.bound_port = None

    def simulate(self, method: str, body: bytes = b"", path: str = "/") -> FakeCompletion:
        """Run the installed handler as the engine would for one request."""
        request = HTTPRequest(method=method.upper(), path=path, body=body)
        completion = FakeCompletion(request)
        self.handlers[method.upper()](request, completion)
        return completion


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def manager(config: BridgeConfig, fake_engine: FakeEngine) -> Generator[WebServerManager, None, None]:
    """A manager driving the fake engine; stopped again after the test."""
    mgr = WebServerManager(config, engine=fake_engine)
    yield mgr
    mgr.stop()


# =============================================================================
# REAL SERVER
# =============================================================================

class HTTPTestClient:
    """Minimal http.client wrapper bound to one server URL."""

    def __init__(self, url: str, timeout: float = 5.0):
        parsed = urlparse(url)
        self.host = parsed.hostname
        self.port = parsed.port
        self.timeout = timeout

    def request(self, method: str, body: Optional[str] = None, path: str = "/"):
        """Returns (status, headers, body text)."""
        conn = http.client.HTTPConnection(self.host, self.port, timeout=self.timeout)
        try:
            conn.request(method, path, body=body)
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read().decode("utf-8")
        finally:
            conn.close()


@pytest.fixture
def bridge_server(config: BridgeConfig) -> Generator[HTTPServer, None, None]:
    """An HTTPServer on a free port; handlers are registered by the test."""
    server = HTTPServer(port=0, config=config)
    yield server
    server.stop()


@pytest.fixture
def client_for():
    """Build an HTTPTestClient for a server URL."""
    return HTTPTestClient
