import json
import sqlite3
from typing import Any

from src.quiz.adapters.db_manager import DatabaseManager
from src.quiz.domain.errors import StorageError
from src.quiz.domain.ports import IKeyValueStore
from src.shared.telemetry import Telemetry, measure_time


class SQLiteKeyValueStore(IKeyValueStore):
    """JSON documents in the ``kv_store`` table, one row per key."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.telemetry = Telemetry("SQLiteKeyValueStore")
        self.db_manager = db_manager

    def _get_connection(self) -> sqlite3.Connection:
        return self.db_manager.get_connection()

    @measure_time("kv_get")
    def get(self, key: str) -> Any | None:
        try:
            row = (
                self._get_connection()
                .execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                .fetchone()
            )
        except sqlite3.Error as e:
            self.telemetry.log_error("kv get failed", e, key=key)
            raise StorageError(f"Could not read '{key}'") from e
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            self.telemetry.log_error("kv value is not valid JSON", e, key=key)
            raise StorageError(f"Corrupt value for '{key}'") from e

    @measure_time("kv_set")
    def set(self, key: str, value: Any) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value      = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
                """,
                (key, json.dumps(value)),
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("kv set failed", e, key=key)
            raise StorageError(f"Could not write '{key}'") from e

    def delete(self, key: str) -> None:
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("kv delete failed", e, key=key)
            raise StorageError(f"Could not delete '{key}'") from e
