"""
Unit tests for inbound events and outbound responses.
"""

from dataclasses import dataclass

import pytest

from httpbridge.errors import MalformedHandlerResult
from httpbridge.messages import InboundEvent, OutboundResponse, validate_result


@dataclass
class Result:
    status: object
    data: object


class TestInboundEvent:
    def test_to_dict(self):
        """Events serialize with the requestId key."""
        event = InboundEvent(request_id="abc", body="hello")
        assert event.to_dict() == {"requestId": "abc", "body": "hello"}

    def test_is_immutable(self):
        """Events are frozen."""
        event = InboundEvent(request_id="abc", body="")
        with pytest.raises(AttributeError):
            event.body = "changed"


class TestOutboundResponse:
    """Tests for building responses from handler results."""

    def test_from_mapping(self):
        """A {"status", "data"} mapping builds a response."""
        response = OutboundResponse.from_result("abc", {"status": 200, "data": '{"ok":true}'})

        assert response == OutboundResponse("abc", 200, '{"ok":true}')

    def test_from_object(self):
        """An object with status and data attributes builds a response."""
        response = OutboundResponse.from_result("abc", Result(status=404, data=""))

        assert response.status == 404
        assert response.data == ""

    def test_status_as_text_rejected(self):
        """A string status is rejected and the result is kept on the error."""
        with pytest.raises(MalformedHandlerResult) as exc_info:
            OutboundResponse.from_result("abc", {"status": "200", "data": "ok"})

        assert "int" in str(exc_info.value)
        assert exc_info.value.result == {"status": "200", "data": "ok"}

    def test_missing_keys_rejected(self):
        """A result without data is rejected."""
        with pytest.raises(MalformedHandlerResult):
            OutboundResponse.from_result("abc", {"status": 200})

    @pytest.mark.parametrize("result", [None, "ok", 200, (200, "ok")])
    def test_wrong_shape_rejected(self, result):
        """Results that are neither mappings nor objects are rejected."""
        with pytest.raises(MalformedHandlerResult):
            OutboundResponse.from_result("abc", result)

    def test_direct_construction_validates(self):
        """OutboundResponse validates in its constructor too."""
        with pytest.raises(MalformedHandlerResult):
            OutboundResponse("abc", 200, b"bytes are not text")


class TestValidateResult:
    @pytest.mark.parametrize("status", [100, 200, 404, 599])
    def test_valid_statuses(self, status):
        """Every three-digit status from 100 to 599 is accepted."""
        validate_result(status, "")

    @pytest.mark.parametrize("status", [False, True, 99, 600, -1, 200.0, None])
    def test_invalid_statuses(self, status):
        """Non-int statuses and ints outside 100-599 are rejected."""
        with pytest.raises(MalformedHandlerResult):
            validate_result(status, "")

    @pytest.mark.parametrize("data", [None, 1, {"ok": True}, ["a"], b"ok"])
    def test_data_must_be_text(self, data):
        """Only str data is accepted."""
        with pytest.raises(MalformedHandlerResult):
            validate_result(200, data)
