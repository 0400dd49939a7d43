"""
Storage Backend Module

Record persistence for the loan system. Each table holds JSON documents keyed
by record id; monetary values are stored as Decimal strings.

Two backends share one contract:

* ``InMemoryStorage`` for tests and throwaway runs
* ``SQLiteStorage`` for a branch's persistent database

Multi-write operations run inside ``atomic()``. A unit holds the store lock
from the first read to commit or rollback, so concurrent writers (two
payments on one loan, two loans pledging one ornament) are serialised, and
any exception undoes every write made in the unit.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union
from decimal import Decimal
from datetime import datetime, date, timezone
from enum import Enum
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .logging_config import get_logger


logger = get_logger("olms.storage")

SEQUENCES_TABLE = "_sequences"


def to_storable(value: Any) -> Any:
    """Convert Decimal, dates and enums into JSON-friendly values"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storable(v) for v in value]
    return value


def _encode(data: Dict[str, Any]) -> str:
    return json.dumps(data, default=str)


def matches_filters(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """True when every filter key is present in the record with an equal value"""
    return all(key in record and record[key] == value for key, value in filters.items())


@dataclass
class StorageRecord:
    """Base class for stored records: an id plus creation and update stamps"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {key: to_storable(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        raise NotImplementedError(f"{cls.__name__} must implement from_dict")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Read an optional ISO datetime from storage"""
    if not value:
        return None
    return datetime.fromisoformat(value)


class StorageInterface(ABC):
    """Contract every storage backend implements"""

    _lock: threading.RLock
    _in_transaction: bool = False

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """All records of a table in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False when it did not exist"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose fields equal every value in ``filters``"""

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def next_sequence(self, name: str, start: int = 0) -> int:
        """
        Atomically advance a named counter and return the new value.

        The counter never goes below ``start``, which lets callers seed it
        from an existing record count.
        """

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def _begin(self) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """
        Run the enclosed block as one unit of work.

        Nested calls join the outermost unit; only the outermost one
        commits or rolls back.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._begin()
            self._in_transaction = True
            try:
                yield
            except Exception:
                logger.warning("Rolling back unit of work")
                self._in_transaction = False
                self._rollback()
                raise
            self._in_transaction = False
            self._commit()


class InMemoryStorage(StorageInterface):
    """
    Dictionary-backed store

    Records are kept as JSON text, so every load hands out a fresh copy and
    a rollback only needs the table maps captured at the start of the unit.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, str]] = {}
        self._sequences: Dict[str, int] = {}
        self._lock = threading.RLock()
        self._in_transaction = False
        self._saved_state: Optional[Tuple[Dict[str, Dict[str, str]], Dict[str, int]]] = None

    def _table(self, table: str) -> Dict[str, str]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = _encode(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            raw = self._table(table).get(record_id)
            return json.loads(raw) if raw is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [json.loads(raw) for raw in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [record for record in self.load_all(table) if matches_filters(record, filters)]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def next_sequence(self, name: str, start: int = 0) -> int:
        with self._lock:
            value = max(self._sequences.get(name, 0), start) + 1
            self._sequences[name] = value
            return value

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables[table] = {}

    def _begin(self) -> None:
        # Record values are immutable strings; copying the maps is enough
        self._saved_state = (
            {name: dict(rows) for name, rows in self._tables.items()},
            dict(self._sequences),
        )

    def _commit(self) -> None:
        self._saved_state = None

    def _rollback(self) -> None:
        if self._saved_state is not None:
            self._tables, self._sequences = self._saved_state
        self._saved_state = None

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite store: one table per record type with the document in a JSON
    column

    The connection runs in autocommit mode; ``atomic()`` opens an explicit
    ``BEGIN IMMEDIATE`` transaction so a unit's writes, table creations
    included, commit or roll back together.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables: set = set()

        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")

        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {SEQUENCES_TABLE} (name TEXT PRIMARY KEY, value INTEGER NOT NULL)"
        )

    def _table(self, table: str) -> str:
        """Create the table on first use and return its (validated) name"""
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        if table not in self._known_tables:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"
            )
            self._known_tables.add(table)
        return table

    def _select(self, table: str, where: str = "", params: tuple = ()) -> List[Dict[str, Any]]:
        rows = self._connection.execute(
            f"SELECT data FROM {self._table(table)} {where} ORDER BY created_at, rowid", params
        ).fetchall()
        return [json.loads(row['data']) for row in rows]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            # created_at is kept from the first insert so ordering is stable
            self._connection.execute(f"""
                INSERT INTO {self._table(table)} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """, (record_id, _encode(data), now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            records = self._select(table, "WHERE id = ?", (record_id,))
            return records[0] if records else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._select(table)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(f"DELETE FROM {self._table(table)} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table(table)} WHERE id = ? LIMIT 1", (record_id,)
            )
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        String filters are pushed into SQL through ``json_extract``; any
        other value type is matched in Python after loading.
        """
        sql_filters = {k: v for k, v in filters.items() if isinstance(v, str) and k.isidentifier()}
        remaining = {k: v for k, v in filters.items() if k not in sql_filters}

        clauses = " AND ".join("json_extract(data, ?) = ?" for _ in sql_filters)
        params: List[Any] = []
        for key, value in sql_filters.items():
            params.extend([f"$.{key}", value])

        with self._lock:
            records = self._select(table, f"WHERE {clauses}" if clauses else "", tuple(params))
        return [record for record in records if matches_filters(record, remaining)]

    def count(self, table: str) -> int:
        with self._lock:
            cursor = self._connection.execute(f"SELECT COUNT(*) AS total FROM {self._table(table)}")
            return cursor.fetchone()['total']

    def next_sequence(self, name: str, start: int = 0) -> int:
        with self._lock:
            self._connection.execute(f"""
                INSERT INTO {SEQUENCES_TABLE} (name, value) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET value = MAX(value, ?) + 1
            """, (name, start + 1, start))
            cursor = self._connection.execute(
                f"SELECT value FROM {SEQUENCES_TABLE} WHERE name = ?", (name,)
            )
            return cursor.fetchone()['value']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._connection.execute(f"DELETE FROM {self._table(table)}")

    def _begin(self) -> None:
        self._connection.execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self._connection.execute("COMMIT")

    def _rollback(self) -> None:
        self._connection.execute("ROLLBACK")
        # CREATE TABLE statements inside the unit were undone as well
        self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL.

    ``memory://`` gives the in-memory store, ``sqlite:///path.db`` (or
    ``sqlite://`` for an in-memory SQLite database) gives SQLite.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):])
    if database_url == "sqlite://":
        return SQLiteStorage(":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")


def paginate(records: List[Any], page: int = 1, limit: int = 20) -> Tuple[List[Any], int]:
    """Slice one page out of an already sorted list; returns (page, total)"""
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return records[start:start + limit], len(records)
