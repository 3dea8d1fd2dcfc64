from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Sequence

from .constants import CUSTOM_TABS
from .errors import PersistenceError
from .storage import RecordStore
from .tabs import CustomTable

log = logging.getLogger(__name__)


def _insert(store: RecordStore, table: CustomTable) -> CustomTable:
    return CustomTable.from_record(store.insert(CUSTOM_TABS, table.to_record()))


def _update(store: RecordStore, table: CustomTable) -> CustomTable:
    return CustomTable.from_record(store.update(CUSTOM_TABS, int(table.id or 0), table.to_record()))


def save_tables(store: RecordStore, tables: Sequence[CustomTable], max_workers: int = 4) -> list[CustomTable]:
    """Write every tab to the store and return the stored versions.

    Tabs without an id are inserted, the rest are overwritten whole. All calls
    run on a thread pool; the result lists inserted tabs first, then updated
    ones, each group in input order. If any call fails, the others still run to
    completion and ``PersistenceError`` is raised afterwards. Nothing is undone:
    the error's ``tables`` keeps the stored version of every tab whose write
    went through, so inserted tabs are not inserted a second time.
    """
    if not tables:
        return []
    new_tabs = [t for t in tables if t.id is None]
    existing_tabs = [t for t in tables if t.id is not None]
    positions = [i for i, t in enumerate(tables) if t.id is None] + [i for i, t in enumerate(tables) if t.id is not None]

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        created: list[Future] = [executor.submit(_insert, store, t) for t in new_tabs]
        updated: list[Future] = [executor.submit(_update, store, t) for t in existing_tabs]
        wait(created + updated)

    futures = created + updated
    failures = [f.exception() for f in futures if f.exception() is not None]
    if failures:
        log.error("Saving custom tabs: %d of %d calls failed", len(failures), len(futures))
        partial = list(tables)
        for i, f in zip(positions, futures):
            if f.exception() is None:
                partial[i] = f.result()
        raise PersistenceError(
            f"Failed to save {len(failures)} of {len(futures)} tab(s): {failures[0]}",
            tables=partial,
        ) from failures[0]

    log.debug("Saved custom tabs: %d created, %d updated", len(created), len(updated))
    return [f.result() for f in futures]
