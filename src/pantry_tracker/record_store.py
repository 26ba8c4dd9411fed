"""Record persistence for Pantry Tracker.

This module provides keyed-record storage over three collections with JSON
(default), SQLite or in-memory backends. Use create_record_store() to get the
appropriate backend based on configuration.

Stores only promise single-field equality filters; callers narrow and sort
further in memory.
"""

import copy
import json
import logging
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID, uuid4

from .errors import NotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    """Logical record collections."""

    PRODUCTS = "products"
    SHOPPING_LIST = "shopping_list"
    CONSUMPTION_LOGS = "consumption_logs"


class BackendType(str, Enum):
    """Data storage backend types."""

    JSON = "json"
    SQLITE = "sqlite"
    MEMORY = "memory"


class RecordStore(Protocol):
    """Protocol defining the record store interface."""

    def insert(self, collection: Collection, record: dict[str, Any]) -> str: ...
    def get_by_id(self, collection: Collection, record_id: str) -> dict[str, Any] | None: ...
    def update(self, collection: Collection, record_id: str, changes: dict[str, Any]) -> None: ...
    def delete(self, collection: Collection, record_id: str) -> None: ...
    def query(
        self,
        collection: Collection,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for our data types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, time):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def new_record_id() -> str:
    """Generate an opaque record id."""
    return uuid4().hex


def normalize_record(record: dict[str, Any]) -> dict[str, Any]:
    """Round-trip a record through JSON so every backend stores the same shapes."""
    return json.loads(json.dumps(record, cls=JSONEncoder))


def matches(record: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    """Check equality filters against a stored record."""
    if not filters:
        return True
    normalized = normalize_record(filters)
    return all(record.get(key) == value for key, value in normalized.items())


def order_and_limit(
    records: list[dict[str, Any]],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[dict[str, Any]]:
    """Apply ordering and limit to fetched records.

    Records missing the sort key sort first in ascending order.
    """
    if order_by:

        def sort_key(record: dict[str, Any]) -> tuple[bool, Any]:
            value = record.get(order_by)
            return (value is not None, value if value is not None else "")

        records = sorted(records, key=sort_key, reverse=descending)
    if limit is not None:
        records = records[:limit]
    return records


class MemoryRecordStore:
    """Keeps records in process memory. Used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._collections: dict[Collection, dict[str, dict[str, Any]]] = {
            c: {} for c in Collection
        }

    def insert(self, collection: Collection, record: dict[str, Any]) -> str:
        record = normalize_record(record)
        record_id = record.get("id") or new_record_id()
        record["id"] = record_id
        self._collections[collection][record_id] = record
        return record_id

    def get_by_id(self, collection: Collection, record_id: str) -> dict[str, Any] | None:
        record = self._collections[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def update(self, collection: Collection, record_id: str, changes: dict[str, Any]) -> None:
        records = self._collections[collection]
        if record_id not in records:
            raise NotFoundError(collection.value, record_id)
        changes = normalize_record(changes)
        changes.pop("id", None)
        records[record_id].update(changes)

    def delete(self, collection: Collection, record_id: str) -> None:
        self._collections[collection].pop(record_id, None)

    def query(
        self,
        collection: Collection,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        found = [
            copy.deepcopy(r) for r in self._collections[collection].values() if matches(r, filters)
        ]
        return order_and_limit(found, order_by, descending, limit)


class JSONRecordStore:
    """Manages JSON file persistence, one file per collection."""

    def __init__(self, data_dir: Path | None = None):
        """Initialize record store.

        Args:
            data_dir: Directory for data files. Defaults to ./data
        """
        self.data_dir = data_dir or Path.cwd() / "data"
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create the data directory if it doesn't exist."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create data directory: {e}") from e

    def _collection_path(self, collection: Collection) -> Path:
        """Path to a collection file."""
        return self.data_dir / f"{collection.value}.json"

    def _load(self, collection: Collection) -> dict[str, dict[str, Any]]:
        path = self._collection_path(collection)
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"Cannot read {path.name}: {e}") from e
        return {record["id"]: record for record in data if "id" in record}

    def _save(self, collection: Collection, records: dict[str, dict[str, Any]]) -> None:
        path = self._collection_path(collection)
        try:
            with open(path, "w") as f:
                json.dump(list(records.values()), f, cls=JSONEncoder, indent=2)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {path.name}: {e}") from e

    def insert(self, collection: Collection, record: dict[str, Any]) -> str:
        """Insert a record.

        Args:
            collection: Target collection
            record: Record fields; an ``id`` is generated when absent

        Returns:
            The record id
        """
        records = self._load(collection)
        record = normalize_record(record)
        record_id = record.get("id") or new_record_id()
        record["id"] = record_id
        records[record_id] = record
        self._save(collection, records)
        return record_id

    def get_by_id(self, collection: Collection, record_id: str) -> dict[str, Any] | None:
        """Get a record by id, or None if absent."""
        return self._load(collection).get(record_id)

    def update(self, collection: Collection, record_id: str, changes: dict[str, Any]) -> None:
        """Merge ``changes`` into an existing record.

        Raises:
            NotFoundError: If the record does not exist
        """
        records = self._load(collection)
        if record_id not in records:
            raise NotFoundError(collection.value, record_id)
        changes = normalize_record(changes)
        changes.pop("id", None)
        records[record_id].update(changes)
        self._save(collection, records)

    def delete(self, collection: Collection, record_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""
        records = self._load(collection)
        if records.pop(record_id, None) is not None:
            self._save(collection, records)

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
        found = [r for r in self._load(collection).values() if matches(r, filters)]
        return order_and_limit(found, order_by, descending, limit)


def create_record_store(
    backend: BackendType = BackendType.JSON,
    data_dir: Path | None = None,
    db_path: Path | None = None,
) -> RecordStore:
    """Create a record store with the specified backend.

    Args:
        backend: Which backend to use (json, sqlite or memory)
        data_dir: Directory for data files (used by JSON backend, also used
                  as base path for SQLite if db_path not specified)
        db_path: Path to SQLite database file (only used by SQLite backend)

    Returns:
        A JSONRecordStore, SQLiteRecordStore or MemoryRecordStore instance

    Example:
        # Use JSON backend (default)
        store = create_record_store()

        # Use SQLite with custom path
        store = create_record_store(
            BackendType.SQLITE,
            db_path=Path("./my_data/pantry.db")
        )
    """
    logger.debug("Creating %s record store", backend.value)
    if backend == BackendType.SQLITE:
        from .sqlite_store import SQLiteRecordStore

        if db_path is None and data_dir is not None:
            db_path = data_dir / "pantry.db"

        return SQLiteRecordStore(db_path=db_path)
    if backend == BackendType.MEMORY:
        return MemoryRecordStore()
    return JSONRecordStore(data_dir=data_dir)
