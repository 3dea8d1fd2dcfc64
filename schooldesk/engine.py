from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Mapping

from . import tabs
from .constants import CUSTOM_TABS
from .errors import DeleteInProgress, PersistenceError
from .settings_store import Settings
from .storage import RecordStore
from .sync import save_tables
from .tabs import CustomTable

log = logging.getLogger(__name__)

TableOp = Callable[..., list[CustomTable]]


class CustomTabEngine:
    """Owns the list of custom tabs and keeps the record store in step with it.

    Every mutation replaces the in-memory list first and then writes all tabs
    back (last write wins, whole tab at a time). A failed write raises
    ``PersistenceError`` and leaves the new in-memory state in place.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        lenient_numbers: bool = False,
        max_workers: int = 4,
        tables: Iterable[CustomTable] | None = None,
    ):
        self.store = store
        self.lenient_numbers = lenient_numbers
        self.max_workers = max_workers
        self.active: str | None = None
        self._tables: list[CustomTable] = [t.copy() for t in tables or []]
        self._deleting: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, store: RecordStore, settings: Settings) -> "CustomTabEngine":
        return cls(store, lenient_numbers=settings.lenient_numbers, max_workers=settings.sync_workers)

    # ---------- State ----------
    def load(self) -> list[CustomTable]:
        try:
            records = self.store.fetch_all(CUSTOM_TABS, order_by=["id"])
        except Exception as e:
            raise PersistenceError(f"Failed to load custom tabs: {e}") from e
        loaded: list[CustomTable] = []
        for r in records:
            try:
                loaded.append(CustomTable.from_record(r))
            except (TypeError, ValueError) as e:
                log.error("Skipping unreadable custom tab record %r: %s", r.get("name"), e)
        self._tables = loaded
        if self.active not in self.names():
            self.active = None
        log.info("Loaded %d custom tab(s)", len(self._tables))
        return self.get_tables()

    def get_tables(self) -> list[CustomTable]:
        return [t.copy() for t in self._tables]

    def get_table(self, name: str) -> CustomTable:
        return self._tables[tabs.find_index(self._tables, name)].copy()

    def names(self) -> list[str]:
        return [t.name for t in self._tables]

    def apply(self, op: TableOp, *args: Any, **kwargs: Any) -> list[CustomTable]:
        """Run a table operation, install its result, then persist everything."""
        self._tables = op(self._tables, *args, **kwargs)
        return self.persist()

    def persist(self) -> list[CustomTable]:
        try:
            self._tables = save_tables(self.store, self._tables, self.max_workers)
        except PersistenceError as e:
            # keep ids of the tabs that did reach the store
            if e.tables is not None:
                self._tables = list(e.tables)
            raise
        return self.get_tables()

    # ---------- Tabs ----------
    def create_table(self, name: str, preset: str | None = None, columns: str | Iterable[str] = "") -> CustomTable:
        new_tables = tabs.create_table(self._tables, name, preset, columns)
        created = new_tables[-1]
        self._tables = new_tables
        self.active = created.name
        log.info("Created tab %r (preset=%s, %d columns)", created.name, created.preset, len(created.columns))
        self.persist()
        return self.get_table(created.name)

    def rename_table(self, old_name: str, new_name: str) -> list[CustomTable]:
        new_name = (new_name or "").strip()
        if not new_name or new_name == old_name:
            return self.get_tables()
        self._tables = tabs.rename_table(self._tables, old_name, new_name)
        if self.active == old_name:
            self.active = new_name
        log.info("Renamed tab %r -> %r", old_name, new_name)
        return self.persist()

    def delete_table(self, name: str) -> None:
        """Delete a tab from the store, then from memory.

        The tab stays in memory if the store call fails. A second delete of the
        same tab while the first is still running raises ``DeleteInProgress``.
        """
        tabs.find_index(self._tables, name)
        with self._lock:
            if name in self._deleting:
                raise DeleteInProgress(name)
            self._deleting.add(name)
        try:
            try:
                self.store.delete(CUSTOM_TABS, {"name": name})
            except Exception as e:
                log.error("Deleting tab %r failed: %s", name, e)
                raise PersistenceError(f"Failed to delete tab {name!r}: {e}") from e
            self._tables = tabs.remove_table(self._tables, name)
            if self.active == name:
                self.active = None
            log.info("Deleted tab %r", name)
        finally:
            with self._lock:
                self._deleting.discard(name)

    def update_columns(self, name: str, columns: str | Iterable[str]) -> list[CustomTable]:
        log.info("Updating columns of %r", name)
        return self.apply(tabs.update_columns, name, columns)

    # ---------- Rows ----------
    def add_students(self, name: str, students: Iterable[Any], tuition: Mapping[str, Any]) -> list[CustomTable]:
        students = list(students)
        log.info("Adding %d student(s) to %r", len(students), name)
        return self.apply(tabs.add_students, name, students, tuition)

    def add_blank_row(self, name: str) -> list[CustomTable]:
        log.info("Adding blank row to %r", name)
        return self.apply(tabs.add_blank_row, name)

    def delete_row(self, name: str, row_index: int) -> list[CustomTable]:
        log.info("Deleting row %d of %r", row_index, name)
        return self.apply(tabs.delete_row, name, row_index)

    def edit_cell(self, name: str, row_index: int, column: str, raw_value: Any) -> list[CustomTable]:
        log.debug("Editing %r row %d column %r", name, row_index, column)
        return self.apply(tabs.edit_cell, name, row_index, column, raw_value, lenient=self.lenient_numbers)

    def edit_row(self, name: str, row_index: int, values: Mapping[str, Any]) -> list[CustomTable]:
        log.debug("Editing %r row %d", name, row_index)
        return self.apply(tabs.edit_row, name, row_index, values, lenient=self.lenient_numbers)

    def set_amount_for_all(self, name: str, value: Any) -> list[CustomTable]:
        log.info("Setting amount of every row in %r", name)
        return self.apply(tabs.set_amount_for_all, name, value, lenient=self.lenient_numbers)
