from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from gre_insight.config import DB_PATH


class Database:
    """Mock cloud store: accounts, the shared login session and per-user snapshots."""

    def __init__(self, db_path: Path = DB_PATH) -> None:
        self.db_path = db_path

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        schema_path = Path(__file__).with_name("schema.sql")
        with self.connect() as conn:
            conn.executescript(schema_path.read_text(encoding="utf-8"))

    def create_user(self, *, user_id: str, email: str, display_name: str, password_hash: str) -> dict:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, display_name, password_hash)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, email, display_name, password_hash),
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row)

    def get_user_by_email(self, email: str) -> dict | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None

    def save_user_data(self, user_id: str, payload: dict) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO user_data (user_id, payload)
                VALUES (?, ?)
                ON CONFLICT(user_id)
                DO UPDATE SET
                  payload = excluded.payload,
                  updated_at = CURRENT_TIMESTAMP
                """,
                (user_id, _json_dumps(payload)),
            )

    def get_user_data(self, user_id: str) -> dict | None:
        with self.connect() as conn:
            row = conn.execute("SELECT payload FROM user_data WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return _json_loads(row["payload"])

    def set_active_session(self, user_id: str) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO active_session (slot, user_id)
                VALUES (1, ?)
                ON CONFLICT(slot)
                DO UPDATE SET
                  user_id = excluded.user_id,
                  created_at = CURRENT_TIMESTAMP
                """,
                (user_id,),
            )

    def clear_active_session(self) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM active_session")

    def get_active_session_user(self) -> dict | None:
        with self.connect() as conn:
            row = conn.execute(
                """
                SELECT u.*
                FROM active_session s
                JOIN users u ON u.id = s.user_id
                WHERE s.slot = 1
                """
            ).fetchone()
        return dict(row) if row else None


def _json_dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def _json_loads(value: str | None) -> dict | None:
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
