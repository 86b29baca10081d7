import logging
import threading
from collections import OrderedDict
from typing import Optional

import flask
from flask import jsonify, request

from linecalc import config
from linecalc.parser import parse_line
from linecalc.rates import load_cached_rates
from linecalc.rpc import handle_request
from linecalc.session import Session
from linecalc.storage import (
    create_session_db,
    delete_session_db,
    init_db,
    load_session,
    save_session,
)
from linecalc.syntax import Assignment
from linecalc.values import Error, to_dict

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

app = flask.Flask(__name__)
app.config["DEBUG"] = config.DEBUG_MODE

# Recently used sessions, keyed by session ID, least recent first
_live_sessions: "OrderedDict[str, Session]" = OrderedDict()
# Request threads share sessions, so every use of one holds this lock
_sessions_lock = threading.RLock()


def new_session() -> Session:
    """A session with the last cached exchange rates applied, if any."""
    session = Session()
    rates = load_cached_rates(config.RATES_CACHE_FILE, ttl=None)
    if rates:
        session.apply_raw_rates(rates)
    return session


def remember_session(session_id: str, session: Session):
    with _sessions_lock:
        _live_sessions[session_id] = session
        _live_sessions.move_to_end(session_id)
        while len(_live_sessions) > config.MAX_LIVE_SESSIONS:
            evicted, _ = _live_sessions.popitem(last=False)
            logger.info(f"Evicted session {evicted} from memory")


def get_live_session(session_id: str) -> Optional[Session]:
    """Returns the session, replaying its stored lines when not in memory."""
    with _sessions_lock:
        session = _live_sessions.get(session_id)
        if session is not None:
            _live_sessions.move_to_end(session_id)
            return session

        lines = load_session(session_id)
        if lines is None:
            return None

        session = new_session()
        for line in lines:
            session.evaluate(line)
        logger.info(f"Restored session {session_id} with {len(lines)} lines")
        remember_session(session_id, session)
        return session


def _read_query():
    data = request.get_json(silent=True)
    if not data or "query" not in data:
        return None, (jsonify({"error": "Missing 'query' in JSON payload"}), 400)

    query = str(data["query"]).strip()
    if not query:
        return None, (jsonify({"error": "Query cannot be empty"}), 400)
    return query, None


def _session_not_found(session_id: str):
    return (
        jsonify({"error": f"Session '{session_id}' not found or failed to load"}),
        404,
    )


# --- API Endpoints ---


@app.route("/calculate", methods=["POST"])
def calculate():
    """Evaluates one line without a session."""
    query, error_response = _read_query()
    if error_response:
        return error_response

    ast, _ = parse_line(query)
    if isinstance(ast, Assignment):
        return (
            jsonify({"error": "Variable assignments require a session. Use /sessions endpoint."}),
            400,
        )

    try:
        value = new_session().evaluate(query)
    except Exception as e:
        logger.error(f"No-session: Internal error for expr '{query}': {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred during calculation."}), 500

    if isinstance(value, Error):
        logger.warning(f"No-session: could not evaluate '{query}': {value.message}")
        return jsonify({"error": value.message}), 400
    return jsonify({"result": str(value), "value": to_dict(value)}), 200


@app.route("/sessions", methods=["POST"])
def create_session():
    """Creates a new calculation session."""
    session_id = create_session_db()
    if session_id:
        remember_session(session_id, new_session())
        return jsonify({"session_id": session_id}), 201
    return jsonify({"error": "Failed to create session"}), 500


@app.route("/sessions/<string:session_id>", methods=["GET"])
def get_session_vars(session_id):
    """Lists the variables defined in a session."""
    with _sessions_lock:
        session = get_live_session(session_id)
        if session is None:
            return _session_not_found(session_id)
        return jsonify({name: str(value) for name, value in session.variables()}), 200


@app.route("/sessions/<string:session_id>", methods=["DELETE"])
def delete_session(session_id):
    """Deletes a calculation session."""
    with _sessions_lock:
        _live_sessions.pop(session_id, None)
        deleted = delete_session_db(session_id)
    if deleted:
        return "", 204
    return (
        jsonify({"error": f"Failed to delete session '{session_id}' (may not exist)"}),
        404,
    )


@app.route("/sessions/<string:session_id>/calculate", methods=["POST"])
def calculate_in_session(session_id):
    """Evaluates one line in a session and stores it."""
    query, error_response = _read_query()
    if error_response:
        return error_response

    with _sessions_lock:
        session = get_live_session(session_id)
        if session is None:
            return _session_not_found(session_id)

        try:
            value = session.evaluate(query)
        except Exception as e:
            logger.error(f"Session {session_id}: internal error for '{query}': {e}", exc_info=True)
            return jsonify({"error": "An internal server error occurred during calculation."}), 500

        save_session(session_id, session.inputs())
        total = session.sum()

    if isinstance(value, Error):
        logger.warning(f"Session {session_id}: could not evaluate '{query}': {value.message}")
        return jsonify({"error": value.message}), 400
    return (
        jsonify({"result": str(value), "value": to_dict(value), "total": str(total)}),
        200,
    )


@app.route("/sessions/<string:session_id>/totals", methods=["GET"])
def session_totals(session_id):
    """Returns the running sum and the per-type totals of a session."""
    with _sessions_lock:
        session = get_live_session(session_id)
        if session is None:
            return _session_not_found(session_id)
        return jsonify(
            {
                "sum": to_dict(session.sum()),
                "totals": [to_dict(value) for value in session.grouped_totals()],
            }
        ), 200


@app.route("/sessions/<string:session_id>/rpc", methods=["POST"])
def session_rpc(session_id):
    """Runs a JSON-RPC request against a session."""
    with _sessions_lock:
        session = get_live_session(session_id)
        if session is None:
            return _session_not_found(session_id)

        response = handle_request(session, request.get_json(silent=True))
        save_session(session_id, session.inputs())
    return jsonify(response), 200


def start_web_server(host: str = config.SERVER_HOST, port: int = config.SERVER_PORT):
    """Entry point for running the web server."""
    print("Initializing database...")
    init_db()  # Ensure database exists and table is created on startup

    print(f"Starting web server on http://{host}:{port}")
    app.run(host=host, port=port)
