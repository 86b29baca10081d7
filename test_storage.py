"""Tests for session persistence."""

import pytest

from linecalc import storage


@pytest.fixture
def database(tmp_path):
    path = str(tmp_path / "sessions.db")
    storage.init_db(path)
    return path


def test_create_and_load_session(database):
    session_id = storage.create_session_db(database)
    assert session_id
    assert storage.load_session(session_id, database) == []


def test_save_replaces_lines(database):
    session_id = storage.create_session_db(database)
    assert storage.save_session(session_id, ["x = 5", "x * 2"], database)
    assert storage.save_session(session_id, ["$10 in EUR"], database)
    assert storage.load_session(session_id, database) == ["$10 in EUR"]


def test_missing_session(database):
    assert storage.load_session("nope", database) is None
    assert not storage.delete_session_db("nope", database)


def test_delete_session(database):
    session_id = storage.create_session_db(database)
    assert storage.delete_session_db(session_id, database)
    assert storage.load_session(session_id, database) is None


def test_init_db_is_repeatable(database):
    storage.init_db(database)
    assert storage.create_session_db(database)


def test_uses_configured_database(tmp_path, monkeypatch):
    path = str(tmp_path / "configured.db")
    monkeypatch.setattr("linecalc.config.DATABASE", path)
    storage.init_db()
    session_id = storage.create_session_db()
    assert storage.load_session(session_id, path) == []
