"""SQLite persistence for server sessions.

A session is stored as the list of lines entered so far and restored by
evaluating them again in order.
"""

import json
import logging
import sqlite3
import uuid
from typing import List, Optional

from linecalc import config

logger = logging.getLogger(__name__)


def get_db(database: Optional[str] = None):
    """Connects to the session database."""
    db = sqlite3.connect(database or config.DATABASE)
    db.row_factory = sqlite3.Row  # Access columns by name
    return db


def init_db(database: Optional[str] = None):
    """Creates the sessions table if it does not exist yet."""
    database = database or config.DATABASE
    db = None
    try:
        db = get_db(database)
        db.execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                lines TEXT NOT NULL,
                last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )
        db.commit()
        logger.info(f"Database ready: {database}")
    except sqlite3.Error as e:
        logger.error(f"Database initialization error: {e}")
        raise  # Halt startup if the database is unusable
    finally:
        if db:
            db.close()


def create_session_db(database: Optional[str] = None) -> Optional[str]:
    """Creates an empty session and returns its ID."""
    session_id = str(uuid.uuid4())
    db = None
    try:
        db = get_db(database)
        db.execute(
            "INSERT INTO sessions (session_id, lines) VALUES (?, ?)",
            (session_id, json.dumps([])),
        )
        db.commit()
        logger.info(f"New session created: {session_id}")
        return session_id
    except sqlite3.Error as e:
        logger.error(f"Failed to create session: {e}")
        return None
    finally:
        if db:
            db.close()


def load_session(session_id: str, database: Optional[str] = None) -> Optional[List[str]]:
    """Loads the stored input lines of a session. None if it does not exist."""
    db = None
    try:
        db = get_db(database)
        row = db.execute(
            "SELECT lines FROM sessions WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return None
        return json.loads(row["lines"])
    except sqlite3.Error as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse lines for session {session_id}: {e}")
        return []
    finally:
        if db:
            db.close()


def save_session(session_id: str, lines: List[str], database: Optional[str] = None) -> bool:
    """Saves or replaces the input lines of a session."""
    db = None
    try:
        db = get_db(database)
        db.execute(
            """
            INSERT OR REPLACE INTO sessions (session_id, lines, last_updated)
            VALUES (?, ?, CURRENT_TIMESTAMP)
        """,
            (session_id, json.dumps(lines)),
        )
        db.commit()
        logger.debug(f"Session {session_id} saved.")
        return True
    except sqlite3.Error as e:
        logger.error(f"Failed to save session {session_id}: {e}")
        return False
    finally:
        if db:
            db.close()


def delete_session_db(session_id: str, database: Optional[str] = None) -> bool:
    """Deletes a session. Returns True if a row was removed."""
    db = None
    try:
        db = get_db(database)
        cursor = db.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        deleted = cursor.rowcount > 0
        db.commit()
        logger.info(f"Session {session_id} deleted: {deleted}")
        return deleted
    except sqlite3.Error as e:
        logger.error(f"Failed to delete session {session_id}: {e}")
        return False
    finally:
        if db:
            db.close()
