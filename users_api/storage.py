"""Query handles over the relational store.

Two equivalent backends are provided: :class:`SQLiteStore` opens a local
file-backed database for standalone execution, and :class:`D1Store` talks to an
edge-hosted D1 database through a :class:`D1Binding`.  Both expose the same
``select``/``insert``/``where`` composition, so handlers never know which one
they are using.  :class:`StorageAccessor` picks the backend once, from
configuration, and hands out the shared handle.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from .config import BACKEND_D1, D1Settings, StorageSettings
from .errors import StorageConflictError, StorageError, StorageUnavailableError
from .schema import TABLES, Table, schema_statements

logger = logging.getLogger("users_api.storage")

Row = Dict[str, Any]


def _is_unique_violation(message: str) -> bool:
    return "UNIQUE constraint failed" in message


class Select:
    """A composable ``SELECT`` against a single table."""

    def __init__(self, store: "Store", table: Table, filters: Tuple[Tuple[str, Any], ...] = ()) -> None:
        self._store = store
        self._table = table
        self._filters = filters

    def where(self, **equals: Any) -> "Select":
        """Return a new query that additionally requires ``column == value``."""

        for name in equals:
            self._table.column(name)
        return Select(self._store, self._table, self._filters + tuple(equals.items()))

    def statement(self) -> Tuple[str, List[Any]]:
        sql = f"SELECT {', '.join(self._table.column_names)} FROM {self._table.name}"
        params: List[Any] = []
        if self._filters:
            clauses = []
            for name, value in self._filters:
                clauses.append(f"{name} = ?")
                params.append(value)
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {self._table.order_by}"
        return sql, params

    def all(self) -> List[Row]:
        sql, params = self.statement()
        return self._store.execute(sql, params)

    def first(self) -> Optional[Row]:
        rows = self.all()
        return rows[0] if rows else None


class Insert:
    """A single-row ``INSERT`` that returns the stored row."""

    def __init__(self, store: "Store", table: Table) -> None:
        self._store = store
        self._table = table

    def values(self, **columns: Any) -> Row:
        if not columns:
            raise ValueError(f"Insert into '{self._table.name}' requires at least one column")
        writable = set(self._table.writable_columns)
        for name in columns:
            if name not in writable:
                raise ValueError(f"Column '{name}' on table '{self._table.name}' is not writable")

        names = list(columns)
        placeholders = ", ".join("?" for _ in names)
        sql = (
            f"INSERT INTO {self._table.name} ({', '.join(names)}) VALUES ({placeholders}) "
            f"RETURNING {', '.join(self._table.column_names)}"
        )
        rows = self._store.execute(sql, [columns[name] for name in names])
        if not rows:
            raise StorageError(f"Insert into '{self._table.name}' did not return the stored row")
        return rows[0]


class Store:
    """Query-capable handle shared by both storage backends."""

    def select(self, table: Table) -> Select:
        return Select(self, table)

    def insert(self, table: Table) -> Insert:
        return Insert(self, table)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        raise NotImplementedError

    def initialize(self, tables: Iterable[Table] = TABLES) -> None:
        """Create the required tables if they do not already exist."""

        for statement in schema_statements(tables):
            self.execute(statement)

    def close(self) -> None:
        return None


class SQLiteStore(Store):
    """Local file-backed store. Every query runs on a short-lived connection."""

    def __init__(self, path: Path, *, create: bool = True) -> None:
        self._path = path
        self._create = create

    @classmethod
    def open(cls, path: Path, *, create: bool = True) -> "SQLiteStore":
        """Return a store for ``path``, failing now if the file cannot be opened."""

        store = cls(path, create=create)
        store._connect().close()
        return store

    @property
    def path(self) -> Path:
        return self._path

    def __repr__(self) -> str:
        return f"SQLiteStore({str(self._path)!r})"

    def _connect(self) -> sqlite3.Connection:
        try:
            if self._create:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self._path, check_same_thread=False)
            else:
                if not self._path.exists():
                    raise StorageUnavailableError(f"SQLite database {self._path} does not exist")
                uri = f"{self._path.resolve().as_uri()}?mode=rw"
                conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailableError(f"Unable to open SQLite database {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        conn = self._connect()
        try:
            with conn:
                rows = conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.IntegrityError as exc:
            if _is_unique_violation(str(exc)):
                raise StorageConflictError(str(exc)) from exc
            raise StorageError(f"SQLite integrity error: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite query failed: {exc}") from exc
        finally:
            conn.close()
        return [dict(row) for row in rows]


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list):
            messages = [
                str(item.get("message")).strip()
                for item in errors
                if isinstance(item, dict) and item.get("message")
            ]
            if messages:
                return "; ".join(messages)
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return default


class D1Binding:
    """HTTP client for an edge-hosted D1 database."""

    def __init__(self, settings: D1Settings, *, client: httpx.Client | None = None) -> None:
        self._endpoint = (
            f"{settings.base_url.rstrip('/')}/accounts/{settings.account_id}"
            f"/d1/database/{settings.database_id}/query"
        )
        self._headers = {"Authorization": f"Bearer {settings.api_token}"}
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.timeout)
        self.database_id = settings.database_id

    def __repr__(self) -> str:
        return f"D1Binding({self.database_id!r})"

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        try:
            response = self._client.post(
                self._endpoint,
                json={"sql": sql, "params": list(params)},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to contact D1 database: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400 or not isinstance(payload, dict) or not payload.get("success"):
            message = _extract_error_message(
                payload, f"D1 query failed with status {response.status_code}"
            )
            if _is_unique_violation(message):
                raise StorageConflictError(message)
            raise StorageError(message)

        results = payload.get("result") or []
        if not isinstance(results, list) or not results:
            return []
        first = results[0]
        if not isinstance(first, dict):
            raise StorageError("D1 returned an unexpected result payload")
        if first.get("success") is False:
            raise StorageError(_extract_error_message(first, "D1 statement failed"))
        rows = first.get("results") or []
        return [dict(row) for row in rows]

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class D1Store(Store):
    """Store backed by a :class:`D1Binding`."""

    def __init__(self, binding: D1Binding, *, owns_binding: bool = False) -> None:
        self._binding = binding
        self._owns_binding = owns_binding

    def __repr__(self) -> str:
        return f"D1Store({self._binding!r})"

    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        return self._binding.query(sql, params)

    def close(self) -> None:
        if self._owns_binding:
            self._binding.close()


class StorageAccessor:
    """Hands out query handles, opening the process-wide default at most once."""

    def __init__(self, factory: Callable[[], Store]) -> None:
        self._factory = factory
        self._store: Store | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "StorageAccessor":
        if settings.backend == BACKEND_D1:
            if settings.d1 is None:
                raise ValueError("The 'd1' storage backend requires D1 credentials")
            d1_settings = settings.d1
            return cls(lambda: D1Store(D1Binding(d1_settings), owns_binding=True))
        return cls(partial(SQLiteStore.open, settings.database_path, create=settings.create_if_missing))

    def get(self, binding: D1Binding | None = None) -> Store:
        """Return a handle for ``binding`` when given, otherwise the shared default."""

        if binding is not None:
            return D1Store(binding)

        store = self._store
        if store is not None:
            return store

        with self._lock:
            if self._store is None:
                self._store = self._factory()
                logger.info("Opened storage handle %r", self._store)
            return self._store

    def close(self) -> None:
        with self._lock:
            store, self._store = self._store, None
        if store is not None:
            store.close()


__all__ = [
    "D1Binding",
    "D1Store",
    "Insert",
    "Row",
    "SQLiteStore",
    "Select",
    "StorageAccessor",
    "Store",
]
