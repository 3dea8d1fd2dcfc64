from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .constants import DATA_XLSX_PATH, JSON_FIELDS
from .errors import RecordNotFound, StoreError

log = logging.getLogger(__name__)

Record = dict[str, Any]

# Longest string an xlsx cell holds; openpyxl cuts anything longer.
CELL_TEXT_LIMIT = 32767
OVERFLOW_SHEET = "_overflow"
_OVERFLOW_HEADERS = ["collection", "record_id", "field", "seq", "chunk"]
_OVERFLOW_MARKER = "@overflow:"
_CHUNK_SIZE = 32000


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def _matches(record: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(record.get(k) == v for k, v in filters.items())


def order_records(records: list[Record], order_by: Sequence[str] | None) -> list[Record]:
    """Sort by each field in ``order_by``; a leading ``-`` sorts that field descending."""
    if not order_by:
        return records
    out = list(records)
    # Stable sorts applied last-key-first give a multi-key ordering.
    for key in reversed(list(order_by)):
        desc = key.startswith("-")
        fld = key[1:] if desc else key
        out.sort(key=lambda r: _sort_key(r.get(fld)), reverse=desc)
    return out


class RecordStore(ABC):
    """Generic per-collection record storage.

    Every record carries an integer ``id`` assigned by the store on insert.
    """

    @abstractmethod
    def fetch_all(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Record]:
        ...

    @abstractmethod
    def insert(self, collection: str, record: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    def update(self, collection: str, identity: int, record: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    def delete(self, collection: str, filters: Mapping[str, Any]) -> int:
        ...

    def upsert(self, collection: str, record: Mapping[str, Any], on_conflict: Iterable[str] = ("id",)) -> Record:
        keys = list(on_conflict)
        if all(record.get(k) is not None for k in keys):
            existing = self.fetch_all(collection, {k: record[k] for k in keys})
            if existing:
                data = {k: v for k, v in record.items() if k != "id"}
                return self.update(collection, int(existing[0]["id"]), data)
        data = {k: v for k, v in record.items() if k != "id"}
        return self.insert(collection, data)


class ExcelStore(RecordStore):
    """Record store backed by a single xlsx workbook, one sheet per collection.

    Row 1 of each sheet holds the field names with ``id`` first. Fields listed in
    ``json_fields`` for a collection are written as JSON text. JSON text longer
    than one cell can hold is split over rows of the ``_overflow`` sheet and the
    record's own cell keeps a ``@overflow:<n>`` marker. A lock serializes
    workbook access so one store can be shared by worker threads.
    """

    def __init__(self, path: Path = DATA_XLSX_PATH, json_fields: Mapping[str, Iterable[str]] | None = None):
        self.path = Path(path)
        fields = JSON_FIELDS if json_fields is None else json_fields
        self.json_fields: dict[str, frozenset[str]] = {k: frozenset(v) for k, v in fields.items()}
        self._wb = None
        self._lock = threading.RLock()

    def invalidate_cache(self) -> None:
        """Force the next operation to re-load the workbook from disk."""
        with self._lock:
            self._wb = None

    def _load(self):
        if self._wb is not None:
            return self._wb
        if self.path.exists():
            self._wb = load_workbook(self.path)
        else:
            wb = Workbook()
            # remove default sheet; collections are created on first write
            wb.remove(wb.active)
            self._wb = wb
        return self._wb

    def _save(self, wb) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            wb.save(self.path)
        except OSError:
            # Drop the cached workbook so the next call sees what is on disk.
            self._wb = None
            raise
        self._wb = wb

    def _sheet(self, wb, collection: str, *, create: bool):
        if collection in wb.sheetnames:
            return wb[collection]
        if not create:
            return None
        ws = wb.create_sheet(collection)
        ws.append(["id"])
        return ws

    @staticmethod
    def _headers(ws) -> list[Any]:
        return [c.value for c in ws[1]]

    def _ensure_headers(self, ws, fields: Iterable[str]) -> list[Any]:
        headers = self._headers(ws)
        for f in fields:
            if f not in headers:
                ws.cell(row=1, column=len(headers) + 1, value=f)
                headers.append(f)
        return headers

    # ---------- Encoding ----------
    def _is_json(self, collection: str, field: str) -> bool:
        return field in self.json_fields.get(collection, ())

    def _prepare(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Cell-ready values for ``record``; raises before anything is written."""
        out: dict[str, Any] = {}
        for field, value in record.items():
            if field == "id":
                continue
            if self._is_json(collection, field):
                try:
                    out[field] = json.dumps(value, ensure_ascii=False)
                except (TypeError, ValueError) as e:
                    raise StoreError(f"{collection}.{field}: value cannot be stored as JSON: {e}") from e
                continue
            if isinstance(value, (list, dict)):
                raise StoreError(f"{collection}.{field}: nested values must be declared as JSON fields")
            if isinstance(value, str):
                if len(value) > CELL_TEXT_LIMIT:
                    raise StoreError(f"{collection}.{field}: text longer than {CELL_TEXT_LIMIT} characters")
                if ILLEGAL_CHARACTERS_RE.search(value):
                    raise StoreError(f"{collection}.{field}: text contains control characters")
            out[field] = value
        return out

    def _overflow_sheet(self, wb, *, create: bool):
        if OVERFLOW_SHEET in wb.sheetnames:
            return wb[OVERFLOW_SHEET]
        if not create:
            return None
        ws = wb.create_sheet(OVERFLOW_SHEET)
        ws.append(_OVERFLOW_HEADERS)
        return ws

    def _drop_overflow(self, wb, collection: str, record_ids: Iterable[int], field: str | None = None) -> None:
        ws = self._overflow_sheet(wb, create=False)
        if ws is None:
            return
        ids = set(record_ids)
        doomed = [
            row_no
            for row_no, r in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2)
            if r[0] == collection and r[1] in ids and (field is None or r[2] == field)
        ]
        for row_no in reversed(doomed):
            ws.delete_rows(row_no, 1)

    def _place(self, wb, collection: str, record_id: int, field: str, value: Any) -> Any:
        """Value to put in the record's own cell, spilling long JSON text to the overflow sheet."""
        if not self._is_json(collection, field):
            return value
        self._drop_overflow(wb, collection, [record_id], field)
        if len(value) <= CELL_TEXT_LIMIT:
            return value
        ws = self._overflow_sheet(wb, create=True)
        chunks = [value[i:i + _CHUNK_SIZE] for i in range(0, len(value), _CHUNK_SIZE)]
        for seq, chunk in enumerate(chunks):
            ws.append([collection, record_id, field, seq, chunk])
        return f"{_OVERFLOW_MARKER}{len(chunks)}"

    def _overflow_text(self, wb, collection: str) -> dict[tuple[int, str], str]:
        ws = self._overflow_sheet(wb, create=False)
        if ws is None:
            return {}
        parts: dict[tuple[int, str], list[tuple[int, str]]] = {}
        for r in ws.iter_rows(min_row=2, values_only=True):
            if r[0] != collection or r[1] is None:
                continue
            parts.setdefault((int(r[1]), str(r[2])), []).append((int(r[3] or 0), r[4] or ""))
        return {k: "".join(chunk for _, chunk in sorted(v)) for k, v in parts.items()}

    def _decode(self, collection: str, field: str, value: Any, record_id: Any, overflow: Mapping[tuple[int, str], str]) -> Any:
        if field == "id" and value is not None:
            return int(value)
        if not self._is_json(collection, field):
            return value
        if value is None or value == "":
            return None
        if isinstance(value, str) and value.startswith(_OVERFLOW_MARKER):
            value = overflow.get((int(record_id or 0), field))
            if value is None:
                raise StoreError(f"{collection}.{field}: overflow rows are missing")
        try:
            return json.loads(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"{collection}.{field}: stored value is not valid JSON") from e

    def _rows(self, wb, collection: str, ws, *, skip_bad: bool) -> list[tuple[int, Record]]:
        """Decoded rows with their sheet row numbers.

        A row whose JSON fields cannot be decoded is left out when ``skip_bad``
        is set, otherwise it is kept with those fields set to None.
        """
        headers = self._headers(ws)
        overflow = self._overflow_text(wb, collection)
        id_col = headers.index("id") if "id" in headers else None
        out: list[tuple[int, Record]] = []
        for row_no, r in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            if all(v is None for v in r):
                continue
            record_id = r[id_col] if id_col is not None and id_col < len(r) else None
            d: Record = {}
            bad = False
            for i in range(min(len(headers), len(r))):
                h = headers[i]
                if h is None:
                    continue
                try:
                    d[h] = self._decode(collection, h, r[i], record_id, overflow)
                except StoreError as e:
                    bad = True
                    d[h] = None
                    log.error("%s row %d: %s", collection, row_no, e)
            if bad and skip_bad:
                continue
            out.append((row_no, d))
        return out

    # ---------- RecordStore ----------
    def fetch_all(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Record]:
        """Matching records; rows that cannot be decoded are logged and left out."""
        with self._lock:
            wb = self._load()
            ws = self._sheet(wb, collection, create=False)
            if ws is None:
                return []
            rows = [d for _, d in self._rows(wb, collection, ws, skip_bad=True) if _matches(d, filters)]
        return order_records(rows, order_by)

    def insert(self, collection: str, record: Mapping[str, Any]) -> Record:
        data = {k: v for k, v in record.items() if k != "id"}
        cells = self._prepare(collection, data)
        with self._lock:
            wb = self._load()
            ws = self._sheet(wb, collection, create=True)
            existing = self._rows(wb, collection, ws, skip_bad=False)
            new_id = max((int(d.get("id") or 0) for _, d in existing), default=0) + 1

            headers = self._ensure_headers(ws, cells.keys())
            values = []
            for h in headers:
                if h == "id":
                    values.append(new_id)
                elif h in cells:
                    values.append(self._place(wb, collection, new_id, h, cells[h]))
                else:
                    values.append(None)
            ws.append(values)
            self._save(wb)
        return {"id": new_id, **data}

    def update(self, collection: str, identity: int, record: Mapping[str, Any]) -> Record:
        data = {k: v for k, v in record.items() if k != "id"}
        cells = self._prepare(collection, data)
        with self._lock:
            wb = self._load()
            ws = self._sheet(wb, collection, create=False)
            target: tuple[int, Record] | None = None
            if ws is not None:
                for row_no, d in self._rows(wb, collection, ws, skip_bad=False):
                    if d.get("id") == identity:
                        target = (row_no, d)
                        break
            if target is None:
                raise RecordNotFound(collection, identity)

            row_no, current = target
            headers = self._ensure_headers(ws, cells.keys())
            for col, h in enumerate(headers, start=1):
                if h in cells:
                    ws.cell(row=row_no, column=col, value=self._place(wb, collection, identity, h, cells[h]))
            self._save(wb)
        merged = {**current, **data}
        merged["id"] = identity
        return merged

    def upsert(self, collection: str, record: Mapping[str, Any], on_conflict: Iterable[str] = ("id",)) -> Record:
        with self._lock:
            return super().upsert(collection, record, on_conflict)

    def delete(self, collection: str, filters: Mapping[str, Any]) -> int:
        with self._lock:
            wb = self._load()
            ws = self._sheet(wb, collection, create=False)
            if ws is None:
                return 0
            doomed = [(row_no, d.get("id")) for row_no, d in self._rows(wb, collection, ws, skip_bad=False) if _matches(d, filters)]
            if not doomed:
                return 0
            # Delete bottom-up to avoid shifting rows we still need.
            for row_no, _ in reversed(doomed):
                ws.delete_rows(row_no, 1)
            self._drop_overflow(wb, collection, [rid for _, rid in doomed])
            self._save(wb)
        return len(doomed)
