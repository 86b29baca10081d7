"""Tests for the JSON-RPC interface."""

import io
import json

import pytest

from linecalc import rpc
from linecalc.session import Session


@pytest.fixture
def session():
    return Session()


def call(session, method, params=None, request_id=1, fetcher=lambda: None):
    request = {"jsonrpc": "2.0", "method": method, "id": request_id}
    if params is not None:
        request["params"] = params
    return rpc.handle_request(session, request, fetcher)


def test_eval(session):
    response = call(session, "eval", {"expr": "$100 in EUR"})
    assert response == {
        "jsonrpc": "2.0",
        "result": {"type": "currency", "value": 92.0, "unit": "EUR", "display": "€92.00"},
        "id": 1,
    }


def test_eval_error_is_a_result(session):
    response = call(session, "eval", {"expr": "1 / 0"})
    assert response["result"]["type"] == "error"
    assert response["result"]["message"] == "Division by zero"


def test_eval_lines_and_totals(session):
    response = call(session, "eval_lines", {"lines": ["$10", "€5", "3 km"]})
    assert [r["display"] for r in response["result"]] == ["$10.00", "€5.00", "3 km"]

    totals = call(session, "get_totals")["result"]
    assert [t["display"] for t in totals] == ["€14.20", "3 km"]


def test_get_variables_and_clear(session):
    call(session, "eval", {"expr": "rate = 85"})
    assert call(session, "get_variables")["result"] == [
        {"name": "rate", "value": {"type": "number", "value": 85.0, "display": "85"}}
    ]
    assert call(session, "clear")["result"] == {"message": "Cleared"}
    assert call(session, "get_variables")["result"] == []


def test_reload_rates(session):
    response = call(session, "reload_rates", fetcher=lambda: {"EUR": 0.5})
    assert response["result"] == {"message": "Rates reloaded"}
    assert call(session, "eval", {"expr": "$10 in EUR"})["result"]["display"] == "€5.00"


def test_reload_rates_failure(session):
    response = call(session, "reload_rates", fetcher=lambda: None)
    assert response["error"] == {"code": rpc.RATE_FETCH_FAILED, "message": "Failed to fetch rates"}


@pytest.mark.parametrize(
    "params, message",
    [
        (None, "Missing params"),
        ({}, "Invalid params: missing field 'expr'"),
        ({"expr": 5}, "Invalid params: 'expr' must be str"),
    ],
)
def test_invalid_params(session, params, message):
    response = call(session, "eval", params)
    assert response["error"] == {"code": rpc.INVALID_PARAMS, "message": message}


def test_invalid_requests(session):
    assert rpc.handle_request(session, [1, 2])["error"]["code"] == rpc.INVALID_REQUEST

    response = rpc.handle_request(session, {"jsonrpc": "1.0", "method": "eval", "id": 7})
    assert response["error"]["message"] == "Invalid JSON-RPC version"
    assert response["id"] == 7

    response = call(session, "explode")
    assert response["error"] == {"code": rpc.METHOD_NOT_FOUND, "message": "Method not found: explode"}


def test_internal_error(session, monkeypatch):
    def broken(*args):
        raise RuntimeError("boom")

    monkeypatch.setitem(rpc.METHODS, "clear", broken)
    assert call(session, "clear")["error"] == {"code": rpc.INTERNAL_ERROR, "message": "Internal error"}


def test_handle_line_parse_error(session):
    response = json.loads(rpc.handle_line(session, "{not json"))
    assert response["error"]["code"] == rpc.PARSE_ERROR
    assert response["id"] is None


def test_serve_stdio(session):
    requests = [
        {"jsonrpc": "2.0", "method": "eval", "params": {"expr": "100"}, "id": 1},
        {"jsonrpc": "2.0", "method": "eval", "params": {"expr": "+ 50"}, "id": 2},
    ]
    stdin = io.StringIO("\n".join(json.dumps(r) for r in requests) + "\n\n")
    stdout = io.StringIO()

    rpc.serve_stdio(session, stdin, stdout, fetcher=lambda: None)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r["id"] for r in responses] == [1, 2]
    assert responses[1]["result"]["display"] == "150"
