"""JSON-RPC 2.0 interface onto a Session.

Used by ``linecalc --server`` over stdin/stdout (one request per line)
and by the HTTP server's ``/sessions/<id>/rpc`` route.
"""

import json
import logging
import sys
from typing import Any, Callable, Dict, Optional, TextIO

from linecalc.rates import refresh_rates
from linecalc.session import Session
from linecalc.values import to_dict

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
RATE_FETCH_FAILED = -32000

RateFetcher = Callable[[], Optional[Dict[str, float]]]


class RpcError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def success(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "result": result, "id": request_id}


def failure(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def _param(params: Any, name: str, expected: type) -> Any:
    if params is None:
        raise RpcError(INVALID_PARAMS, "Missing params")
    if not isinstance(params, dict) or name not in params:
        raise RpcError(INVALID_PARAMS, f"Invalid params: missing field '{name}'")
    value = params[name]
    if not isinstance(value, expected):
        raise RpcError(INVALID_PARAMS, f"Invalid params: '{name}' must be {expected.__name__}")
    return value


def _eval(session: Session, params: Any, fetcher: RateFetcher):
    expr = _param(params, "expr", str)
    return to_dict(session.evaluate(expr))


def _eval_lines(session: Session, params: Any, fetcher: RateFetcher):
    lines = _param(params, "lines", list)
    if not all(isinstance(line, str) for line in lines):
        raise RpcError(INVALID_PARAMS, "Invalid params: 'lines' must contain strings")
    return [to_dict(session.evaluate(line)) for line in lines]


def _clear(session: Session, params: Any, fetcher: RateFetcher):
    session.clear()
    return {"message": "Cleared"}


def _get_totals(session: Session, params: Any, fetcher: RateFetcher):
    return [to_dict(value) for value in session.grouped_totals()]


def _get_variables(session: Session, params: Any, fetcher: RateFetcher):
    return [{"name": name, "value": to_dict(value)} for name, value in session.variables()]


def _reload_rates(session: Session, params: Any, fetcher: RateFetcher):
    rates = fetcher()
    if rates is None:
        raise RpcError(RATE_FETCH_FAILED, "Failed to fetch rates")
    session.apply_raw_rates(rates)
    return {"message": "Rates reloaded"}


METHODS = {
    "eval": _eval,
    "eval_lines": _eval_lines,
    "clear": _clear,
    "get_totals": _get_totals,
    "get_variables": _get_variables,
    "reload_rates": _reload_rates,
}


def handle_request(
    session: Session, request: Any, fetcher: RateFetcher = refresh_rates
) -> Dict[str, Any]:
    """Dispatches one decoded request object and returns the response object."""
    if not isinstance(request, dict):
        return failure(None, INVALID_REQUEST, "Invalid request")

    request_id = request.get("id")
    if request.get("jsonrpc") != "2.0":
        return failure(request_id, INVALID_REQUEST, "Invalid JSON-RPC version")

    method = request.get("method")
    handler = METHODS.get(method) if isinstance(method, str) else None
    if handler is None:
        return failure(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    try:
        return success(request_id, handler(session, request.get("params"), fetcher))
    except RpcError as e:
        return failure(request_id, e.code, e.message)
    except Exception as e:
        logger.error(f"Internal error handling '{method}': {e}", exc_info=True)
        return failure(request_id, INTERNAL_ERROR, "Internal error")


def handle_line(session: Session, line: str, fetcher: RateFetcher = refresh_rates) -> str:
    """Handles one line of JSON text and returns the JSON response line."""
    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        response = failure(None, PARSE_ERROR, f"Parse error: {e}")
    else:
        response = handle_request(session, request, fetcher)
    return json.dumps(response, ensure_ascii=False)


def serve_stdio(
    session: Session,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
    fetcher: RateFetcher = refresh_rates,
):
    """Answers requests read line by line until end of input."""
    logger.info("JSON-RPC server reading from stdin")
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        stdout.write(handle_line(session, line, fetcher) + "\n")
        stdout.flush()
