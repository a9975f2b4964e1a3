"""
Unit tests for the HTTPServer application API (driven by a fake engine).
"""

import asyncio
import json
import logging
import time
from typing import Generator

import pytest

from httpbridge import HTTPServer, Router, HTTPMethods, WebServerManager


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def server(config, fake_engine) -> Generator[HTTPServer, None, None]:
    srv = HTTPServer(manager=WebServerManager(config, engine=fake_engine))
    yield srv
    srv.stop()


class TestHandlers:
    """Handler results flowing back to the completion."""

    def test_route_decorator(self, server: HTTPServer, fake_engine):
        """A @route handler result is written to the completion."""
        @server.route("GET")
        def index(body):
            assert body == ""
            return {"status": 200, "data": '{"ok":true}'}

        server.start()
        completion = fake_engine.simulate("GET")

        assert completion.wait()
        assert completion.calls == [(200, '{"ok":true}', "application/json")]

    def test_body_is_passed_through(self, server: HTTPServer, fake_engine):
        """The handler receives the request body as text."""
        server.on_method("POST", lambda body: {"status": 201, "data": body.upper()})
        server.start()

        completion = fake_engine.simulate("POST", b"hello")

        assert completion.wait()
        assert completion.calls[0][:2] == (201, "HELLO")

    def test_async_handler(self, server: HTTPServer, fake_engine):
        """Coroutine handlers are awaited before responding."""
        @server.route("PUT")
        async def update(body):
            await asyncio.sleep(0.01)
            return {"status": 204, "data": ""}

        server.start()
        completion = fake_engine.simulate("PUT", b"{}")

        assert completion.wait()
        assert completion.calls[0][:2] == (204, "")

    def test_object_result(self, server: HTTPServer, fake_engine):
        """Results may be objects with status and data attributes."""
        class Answer:
            status = 202
            data = "queued"

        server.on_method("PATCH", lambda body: Answer())
        server.start()
        completion = fake_engine.simulate("PATCH")

        assert completion.wait()
        assert completion.calls[0][:2] == (202, "queued")

    def test_malformed_result_writes_nothing(self, server: HTTPServer, fake_engine, caplog):
        """A malformed result is logged, writes nothing and blocks no other request."""
        server.on_method("GET", lambda body: {"status": "200", "data": "ok"})
        server.on_method("POST", lambda body: {"status": 200, "data": "fine"})
        server.start()

        with caplog.at_level(logging.ERROR):
            bad = fake_engine.simulate("GET")
            good = fake_engine.simulate("POST")

            assert good.wait()
            assert wait_for(lambda: "Status must be of type int" in caplog.text)

        assert bad.calls == []
        assert bad.label in server.manager.table
        assert good.calls[0][:2] == (200, "fine")

    def test_exception_without_error_handler(self, server: HTTPServer, fake_engine, caplog):
        """Handler exceptions are logged when no error handler is set."""
        def broken(body):
            raise RuntimeError("kaput")

        server.on_method("DELETE", broken)
        server.start()

        with caplog.at_level(logging.ERROR, logger="httpbridge.server"):
            completion = fake_engine.simulate("DELETE")
            assert wait_for(lambda: "kaput" in caplog.text)

        assert completion.calls == []

    def test_error_handler_answers(self, server: HTTPServer, fake_engine):
        """The error handler result is JSON-encoded and sent."""
        def broken(body):
            raise ValueError("boom")

        server.on_method("POST", broken)
        server.register_error_handler(
            lambda exc: {"status": 500, "data": {"error": str(exc)}}
        )
        server.start()

        completion = fake_engine.simulate("POST", b"x")

        assert completion.wait()
        status, data, _ = completion.calls[0]
        assert status == 500
        assert json.loads(data) == {"error": "boom"}

    def test_manual_respond(self, server: HTTPServer, fake_engine):
        """server.respond() answers a request by identity."""
        # a listener that never answers: the request waits for an explicit respond()
        server.manager.add_listener("GET", lambda event: None)
        server.start()

        completion = fake_engine.simulate("GET")
        server.respond(completion.label, 418, "teapot")

        assert completion.calls[0][:2] == (418, "teapot")


class TestRegistration:
    """Tests for on_method, routers and stop()."""

    def test_unsupported_method(self, server: HTTPServer):
        """on_method() refuses methods outside the bridged set."""
        with pytest.raises(ValueError):
            server.on_method("TRACE", lambda body: None)

    def test_register_router(self, server: HTTPServer, fake_engine):
        """Registering a router installs one handler per method."""
        router = (
            Router("/items")
            .get(lambda body: {"status": 200, "data": "[]"})
            .post(lambda body: {"status": 201, "data": body})
            .delete(lambda body: {"status": 204, "data": ""})
        )

        server.register_router(router)

        assert server.methods == {HTTPMethods.GET, HTTPMethods.POST, HTTPMethods.DELETE}
        assert set(fake_engine.handlers) == {"GET", "POST", "DELETE"}

    def test_router_methods_chain(self):
        """Router method helpers return the router."""
        router = Router("/things").put(lambda body: None).patch(lambda body: None)

        assert set(router.handlers) == {"PUT", "PATCH"}
        assert router.path == "/things"

    def test_stop_drops_handlers(self, server: HTTPServer, fake_engine):
        """stop() forgets every registered handler."""
        server.on_method("GET", lambda body: {"status": 200, "data": ""})
        server.start()

        assert server.stop() is True

        assert server.methods == set()
        assert server.manager.subscribed_methods == set()
        assert fake_engine.handlers == {}
        assert server.is_running() is False

    def test_port_argument(self, config, fake_engine):
        """The constructor port is used by start()."""
        srv = HTTPServer(port=8080, manager=WebServerManager(config, engine=fake_engine))
        try:
            assert srv.start() == "http://127.0.0.1:8080/"
            assert srv.url == "http://127.0.0.1:8080/"
        finally:
            srv.stop()
