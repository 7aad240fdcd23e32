"""
Tests for the HTTP transport: query decoding, JSON encoding, status codes,
and round trips against a live server on localhost.
"""
import json
import urllib.error
import urllib.request
from unittest.mock import patch

import pytest

from hypibole.http_server import RequestError, decode_request, encode_outcome, respond_to_query
from hypibole.operations import Failure, FailureKind, Level, Operation, OperationRequest, Success


def fetch(server, path):
    """GET a path on the live server, returning (status, decoded JSON, headers)."""
    url = f"http://127.0.0.1:{server.port}{path}"
    try:
        with urllib.request.urlopen(url, timeout=5) as response:
            return response.status, json.loads(response.read()), response.headers
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read()), exc.headers


# ──────────────────────────── Decoding ──────────────────────────

class TestDecodeRequest:
    def test_get(self):
        assert decode_request("pin=4&op=get") == OperationRequest(pin="4", operation=Operation.GET)

    def test_set_passes_level_through(self):
        request = decode_request("op=set&pin=P1-7&level=HIGH")
        assert request == OperationRequest(pin="P1-7", operation=Operation.SET, level="HIGH")

    def test_get_drops_level(self):
        assert decode_request("pin=4&op=get&level=high").level is None

    def test_percent_decoding(self):
        assert decode_request("pin=%20GPIO4&op=get").pin == " GPIO4"

    @pytest.mark.parametrize(
        "query, message",
        [
            ("", "No arguments in URL."),
            ("pin=4&op=get&mode=fast", 'Unrecognized query parameter: "mode"'),
            ("op=get", "Did not get required pin argument."),
            ("pin=&op=get", "Did not get required pin argument."),
            ("pin=4", "Did not get required operation argument."),
            ("pin=4&op=toggle", 'Unrecognized operation parameter: "toggle"'),
            ("pin=4&op=GET", 'Unrecognized operation parameter: "GET"'),
        ],
    )
    def test_rejected_queries(self, query, message):
        with pytest.raises(RequestError) as exc_info:
            decode_request(query)
        assert str(exc_info.value) == message


class TestEncodeOutcome:
    def test_success(self):
        body = encode_outcome(Success(Operation.GET, "4", Level.LOW))
        assert body == {"status": "success", "operation": "get", "pin": "4", "level": "low"}

    def test_failure_is_prefixed_and_quoted(self):
        body = encode_outcome(Failure("Could not find pin 5 in either map.", FailureKind.RESOLUTION))
        assert body == {"error": 'Failed to perform board operation: "Could not find pin 5 in either map."'}


class TestRespondToQuery:
    @pytest.mark.parametrize(
        "query, status",
        [
            ("pin=4&op=get", 200),
            ("pin=4&op=set&level=high", 200),
            ("pin=4&op=nope", 400),
            ("pin=4&op=set&level=up", 400),
            ("pin=8&op=get", 400),
            ("pin=5&op=get", 404),
            ("pin=%C2%B2&op=get", 404),
            ("pin=GPIO%C2%B2&op=get", 404),
            ("pin=%D9%A4&op=get", 404),
        ],
    )
    def test_status_codes(self, executor, query, status):
        assert respond_to_query(executor, query)[0] == status

    def test_decode_error_has_no_board_prefix(self, executor):
        status, body = respond_to_query(executor, "")
        assert (status, body) == (400, {"error": "No arguments in URL."})

    @pytest.mark.parametrize("kind, status", [(FailureKind.LIFECYCLE, 409), (FailureKind.HARDWARE, 500)])
    def test_board_failure_codes(self, executor, kind, status):
        with patch.object(executor, "execute", return_value=Failure("Line 4 is busy", kind)):
            code, body = respond_to_query(executor, "pin=4&op=get")
        assert code == status
        assert body == {"error": 'Failed to perform board operation: "Line 4 is busy"'}


# ──────────────────────────── Live server ──────────────────────────

class TestLiveServer:
    def test_get_line_driven_low(self, live_server):
        fetch(live_server, "/?pin=4&op=set&level=low")
        status, body, headers = fetch(live_server, "/?pin=4&op=get")
        assert status == 200
        assert body == {"status": "success", "operation": "get", "pin": "4", "level": "low"}
        assert headers["Content-Type"] == "application/json"

    def test_set_high_then_get(self, live_server):
        status, body, _ = fetch(live_server, "/?pin=4&op=set&level=high")
        assert status == 200
        assert body == {"status": "success", "operation": "set", "pin": "4", "level": "high"}
        _, body, _ = fetch(live_server, "/?pin=4&op=get")
        assert body == {"status": "success", "operation": "get", "pin": "4", "level": "high"}

    def test_unknown_pin(self, live_server):
        status, body, _ = fetch(live_server, "/?pin=5&op=get")
        assert status == 404
        assert body == {"error": 'Failed to perform board operation: "Could not find pin 5 in either map."'}

    def test_missing_level(self, live_server):
        status, body, _ = fetch(live_server, "/?pin=4&op=set")
        assert status == 400
        assert body == {
            "error": 'Failed to perform board operation: "Did not get level argument required for set."'
        }

    def test_no_arguments(self, live_server):
        status, body, _ = fetch(live_server, "/")
        assert (status, body) == (400, {"error": "No arguments in URL."})

    def test_health(self, live_server):
        status, body, _ = fetch(live_server, "/health")
        assert (status, body) == (200, {"status": "ok", "pins": 4})

    def test_stop_is_idempotent(self, live_server):
        live_server.stop()
        live_server.stop()
