from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping, Sequence

import pytest

from schooldesk.engine import CustomTabEngine
from schooldesk.errors import StoreError
from schooldesk.storage import ExcelStore, Record, RecordStore


class RecordingStore(RecordStore):
    """Wraps a real store, records every call and can fail chosen writes."""

    def __init__(self, inner: RecordStore):
        self.inner = inner
        self.calls: list[tuple[str, str]] = []
        self.fail_names: set[str] = set()
        self.fail_delete = False
        self.fail_fetch = False
        self._lock = threading.Lock()

    def _record(self, method: str, collection: str) -> None:
        with self._lock:
            self.calls.append((method, collection))

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    def fetch_all(self, collection: str, filters: Mapping[str, Any] | None = None, order_by: Sequence[str] | None = None) -> list[Record]:
        self._record("fetch_all", collection)
        if self.fail_fetch:
            raise StoreError("connection refused")
        return self.inner.fetch_all(collection, filters, order_by)

    def insert(self, collection: str, record: Mapping[str, Any]) -> Record:
        self._record("insert", collection)
        if record.get("name") in self.fail_names:
            raise StoreError(f"duplicate key value violates unique constraint ({record.get('name')})")
        return self.inner.insert(collection, record)

    def update(self, collection: str, identity: int, record: Mapping[str, Any]) -> Record:
        self._record("update", collection)
        if record.get("name") in self.fail_names:
            raise StoreError(f"update rejected ({record.get('name')})")
        return self.inner.update(collection, identity, record)

    def delete(self, collection: str, filters: Mapping[str, Any]) -> int:
        self._record("delete", collection)
        if self.fail_delete:
            raise StoreError("permission denied for table custom_tabs")
        return self.inner.delete(collection, filters)

    def upsert(self, collection: str, record: Mapping[str, Any], on_conflict: Iterable[str] = ("id",)) -> Record:
        self._record("upsert", collection)
        return self.inner.upsert(collection, record, on_conflict)


@pytest.fixture
def xlsx_path(tmp_path):
    return tmp_path / "school_data.xlsx"


@pytest.fixture
def store(xlsx_path):
    return ExcelStore(xlsx_path)


@pytest.fixture
def recorder(store):
    return RecordingStore(store)


@pytest.fixture
def engine(recorder):
    return CustomTabEngine(recorder)


@pytest.fixture
def lenient_engine(recorder):
    return CustomTabEngine(recorder, lenient_numbers=True)
