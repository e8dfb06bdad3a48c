from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from .models import STORAGE_KEY, AppState
from .snapshot import decode_state, encode_state


class PersistenceError(RuntimeError):
    """Raised when a state snapshot could not be written."""


class Database:
    """Thin SQLite key/value store. Values are whole documents."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    def get_value(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_value(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv_store (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self._conn.commit()


class StateStore:
    """Loads and saves the full AppState snapshot under one key."""

    def __init__(self, db: Database, key: str = STORAGE_KEY, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.key = key
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> AppState | None:
        try:
            raw = self.db.get_value(self.key)
            if raw is None:
                self.logger.info("No stored state under %s", self.key)
                return None
            state = decode_state(json.loads(raw), logger=self.logger)
        except (sqlite3.Error, ValueError, TypeError, OverflowError):
            # json.JSONDecodeError and SnapshotError are both ValueErrors.
            self.logger.warning("Stored state under %s is unreadable, ignoring it", self.key, exc_info=True)
            return None

        self.logger.info("Loaded state: setup=%s mode=%s active=%s history=%d",
                         state.is_setup, state.mode.value, state.is_active, len(state.history))
        return state

    def save(self, state: AppState) -> None:
        document = json.dumps(encode_state(state))
        try:
            self.db.set_value(self.key, document)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save state under {self.key}") from exc

