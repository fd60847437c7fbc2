import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from src.api.db import get_db
from src.api.main import app

# SQLite rendition of kanban_backend/schema.sql
SCHEMA = """
CREATE TABLE boards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL
);
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT,
    avatar_url TEXT
);
CREATE TABLE lists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    board_id INTEGER NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE cards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    list_id INTEGER NOT NULL REFERENCES lists(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    due_date TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    archived BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE TABLE labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    board_id INTEGER NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    name TEXT,
    color TEXT
);
CREATE TABLE card_labels (
    card_id INTEGER NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
    label_id INTEGER NOT NULL REFERENCES labels(id) ON DELETE CASCADE,
    PRIMARY KEY (card_id, label_id)
);
CREATE TABLE checklists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    card_id INTEGER NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
    title TEXT NOT NULL
);
CREATE TABLE checklist_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    checklist_id INTEGER NOT NULL REFERENCES checklists(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    is_complete BOOLEAN NOT NULL DEFAULT FALSE,
    position INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE card_members (
    card_id INTEGER NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    PRIMARY KEY (card_id, user_id)
);
"""

_RETURNING_ID = " RETURNING id"


class _SQLiteTransaction:
    def __init__(self, database: "SQLiteDatabase") -> None:
        self._database = database

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        return self._database._run(query, params).rowcount


class SQLiteDatabase:
    """In-memory stand-in for src.api.db.Database speaking the same query style."""

    def __init__(self) -> None:
        self._conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)
        self._lock = threading.RLock()
        self.statements: List[str] = []

    def _run(self, query: str, params: Optional[Sequence[Any]] = None) -> sqlite3.Cursor:
        with self._lock:
            self.statements.append(query)
            return self._conn.execute(query.replace("%s", "?"), list(params or []))

    def fetch_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        row = self._run(query, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._run(query, params).fetchall()]

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        return self._run(query, params).rowcount

    def execute_returning_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        assert query.rstrip().endswith(_RETURNING_ID), query
        cur = self._run(query.rstrip()[: -len(_RETURNING_ID)], params)
        return {"id": cur.lastrowid}

    @contextmanager
    def transaction(self):
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                yield _SQLiteTransaction(self)
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def close(self) -> None:
        self._conn.close()

    # Seeding helpers for rows the API has no create endpoint for.
    def add_label(self, board_id: int, name: str, color: str = "green") -> int:
        return self.execute_returning_one(
            "INSERT INTO labels (board_id, name, color) VALUES (%s, %s, %s) RETURNING id",
            [board_id, name, color],
        )["id"]

    def add_user(self, name: str, email: Optional[str] = None) -> int:
        return self.execute_returning_one(
            "INSERT INTO users (name, email) VALUES (%s, %s) RETURNING id",
            [name, email],
        )["id"]


@pytest.fixture
def database():
    db = SQLiteDatabase()
    yield db
    db.close()


@pytest.fixture
def client(database):
    app.dependency_overrides[get_db] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def board(client) -> Dict[str, Any]:
    return client.post("/api/boards", json={"title": "Sprint"}).json()


@pytest.fixture
def todo_list(client, board) -> Dict[str, Any]:
    return client.post(f"/api/boards/{board['id']}/lists", json={"title": "Todo"}).json()


@pytest.fixture
def card(client, todo_list) -> Dict[str, Any]:
    return client.post(f"/api/lists/{todo_list['id']}/cards", json={"title": "Task A"}).json()
