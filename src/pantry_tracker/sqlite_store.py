"""SQLite-based record persistence for Pantry Tracker.

This module provides SQLite database storage as an alternative to JSON files.
It implements the same interface as JSONRecordStore for seamless switching.
Records are stored as JSON documents; equality filters use ``json_extract``.
"""

import json
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .errors import NotFoundError, StoreUnavailableError
from .record_store import (
    Collection,
    JSONEncoder,
    new_record_id,
    normalize_record,
    order_and_limit,
)

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteRecordStore:
    """Manages SQLite database persistence for pantry records."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | None = None):
        """Initialize SQLite store.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./data/pantry.db
        """
        if db_path is None:
            db_path = Path.cwd() / "data" / "pantry.db"
        self.db_path = db_path
        self._ensure_directories()
        self._init_database()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create data directory: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open database: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                );

                -- All collections share one document table
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                );

                CREATE INDEX IF NOT EXISTS idx_records_collection
                    ON records(collection);
            """)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    @staticmethod
    def _dump(record: dict[str, Any]) -> str:
        return json.dumps(record, cls=JSONEncoder)

    def insert(self, collection: Collection, record: dict[str, Any]) -> str:
        """Insert a record and return its id."""
        record = normalize_record(record)
        record_id = record.get("id") or new_record_id()
        record["id"] = record_id
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO records (collection, id, body) VALUES (?, ?, ?)",
                (collection.value, record_id, self._dump(record)),
            )
        return record_id

    def get_by_id(self, collection: Collection, record_id: str) -> dict[str, Any] | None:
        """Get a record by id, or None if absent."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT body FROM records WHERE collection = ? AND id = ?",
                (collection.value, record_id),
            ).fetchone()
        return json.loads(row["body"]) if row else None

    def update(self, collection: Collection, record_id: str, changes: dict[str, Any]) -> None:
        """Merge ``changes`` into an existing record.

        Raises:
            NotFoundError: If the record does not exist
        """
        changes = normalize_record(changes)
        changes.pop("id", None)
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT body FROM records WHERE collection = ? AND id = ?",
                (collection.value, record_id),
            ).fetchone()
            if row is None:
                raise NotFoundError(collection.value, record_id)
            record = json.loads(row["body"])
            record.update(changes)
            conn.execute(
                "UPDATE records SET body = ? WHERE collection = ? AND id = ?",
                (self._dump(record), collection.value, record_id),
            )

    def delete(self, collection: Collection, record_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection.value, record_id),
            )

    def query(
        self,
        collection: Collection,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Scan a collection with equality filters.

        Args:
            collection: Collection to scan
            filters: Field -> value equality filters
            order_by: Optional field to sort by
            descending: Sort direction
            limit: Maximum records to return

        Returns:
            List of matching records
        """
        sql = "SELECT body FROM records WHERE collection = ?"
        params: list[Any] = [collection.value]

        for field, value in normalize_record(filters or {}).items():
            if not _FIELD_NAME.match(field):
                raise ValueError(f"Invalid filter field: {field}")
            if value is None:
                sql += f" AND json_extract(body, '$.{field}') IS NULL"
            else:
                sql += f" AND json_extract(body, '$.{field}') = ?"
                params.append(value)

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        records = [json.loads(row["body"]) for row in rows]
        return order_and_limit(records, order_by, descending, limit)
