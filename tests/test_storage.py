from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from users_api.config import StorageSettings
from users_api.errors import StorageConflictError, StorageError, StorageUnavailableError
from users_api.models import User
from users_api.schema import USERS
from users_api.storage import SQLiteStore, StorageAccessor, Store


@pytest.fixture()
def store(tmp_path: Path) -> SQLiteStore:
    db = SQLiteStore.open(tmp_path / "users.sqlite3")
    db.initialize()
    return db


def test_insert_returns_store_assigned_columns(store: SQLiteStore) -> None:
    row = store.insert(USERS).values(name="John Doe", email="john@example.com")

    user = User.from_row(row)
    assert user.id > 0
    assert user.name == "John Doe"
    assert user.email == "john@example.com"
    assert user.created_at.tzinfo is not None


def test_select_where_filters_by_equality(store: SQLiteStore) -> None:
    first = store.insert(USERS).values(name="Jane Smith", email="jane@example.com")
    store.insert(USERS).values(name="Bob Johnson", email="bob@example.com")

    row = store.select(USERS).where(id=first["id"]).first()
    assert row is not None
    assert row["email"] == "jane@example.com"

    assert store.select(USERS).where(id=first["id"], name="Someone Else").first() is None
    assert store.select(USERS).where(id=99999).all() == []


def test_select_returns_rows_in_insertion_order(store: SQLiteStore) -> None:
    for index in range(5):
        store.insert(USERS).values(name=f"User {index}", email=f"user{index}@example.com")

    names = [row["name"] for row in store.select(USERS).all()]
    assert names == [f"User {index}" for index in range(5)]


def test_unknown_columns_are_rejected(store: SQLiteStore) -> None:
    with pytest.raises(KeyError):
        store.select(USERS).where(nickname="x")
    with pytest.raises(ValueError):
        store.insert(USERS).values(name="x", email="x@example.com", created_at="2020-01-01")


def test_duplicate_email_raises_conflict(store: SQLiteStore) -> None:
    store.insert(USERS).values(name="John Doe", email="john@example.com")
    with pytest.raises(StorageConflictError):
        store.insert(USERS).values(name="Johnny", email="john@example.com")


def test_query_errors_surface_as_storage_error(tmp_path: Path) -> None:
    store = SQLiteStore.open(tmp_path / "empty.sqlite3")
    with pytest.raises(StorageError):
        store.select(USERS).all()


def test_initialize_is_idempotent(store: SQLiteStore) -> None:
    store.insert(USERS).values(name="John Doe", email="john@example.com")
    store.initialize()
    assert len(store.select(USERS).all()) == 1


def test_open_missing_file_without_create_raises(tmp_path: Path) -> None:
    path = tmp_path / "missing.sqlite3"
    with pytest.raises(StorageUnavailableError):
        SQLiteStore.open(path, create=False)
    assert not path.exists()


def test_accessor_surfaces_open_failure_and_retries(tmp_path: Path) -> None:
    path = tmp_path / "later.sqlite3"
    accessor = StorageAccessor.from_settings(StorageSettings(database_path=path, create_if_missing=False))

    with pytest.raises(StorageUnavailableError):
        accessor.get()

    SQLiteStore.open(path).initialize()
    handle = accessor.get()
    assert isinstance(handle, SQLiteStore)
    assert handle.path == path


def test_accessor_opens_default_store_once_under_contention() -> None:
    calls = []

    class SlowStore(Store):
        pass

    def factory() -> Store:
        calls.append(threading.get_ident())
        time.sleep(0.05)
        return SlowStore()

    accessor = StorageAccessor(factory)
    barrier = threading.Barrier(8)
    handles = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        handle = accessor.get()
        with lock:
            handles.append(handle)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert len(handles) == 8
    assert all(handle is handles[0] for handle in handles)


def test_accessor_close_releases_default_store() -> None:
    closed = []

    class TrackingStore(Store):
        def close(self) -> None:
            closed.append(self)

    accessor = StorageAccessor(TrackingStore)
    first = accessor.get()
    accessor.close()
    assert closed == [first]
    assert accessor.get() is not first
