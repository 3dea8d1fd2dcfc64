"""Custom tabs: administrator-defined tables with free-form columns and rows.

A tab is either plain (any columns, every cell a string) or uses the payment
preset, which fixes the column set and keeps ``Balance = max(0, Amount - Deposit)``
on every row.

The operations below never modify their inputs. Each takes the current list
of tabs and returns a new list; persisting the result is left to the caller
(see ``engine.CustomTabEngine``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence, Union

from .amounts import balance, coerce_number
from .constants import (
    AMOUNT,
    BALANCE,
    DATE_PAID,
    DEPOSIT,
    NOTE,
    PAYMENT_COLUMNS,
    PAYMENT_LOCKED_COLUMNS,
    PAYMENT_NUMERIC_COLUMNS,
    PAYMENT_PRESET,
    PRESETS,
    STUDENT_NAME,
)
from .errors import TableNotFound, ValidationError

Cell = Union[str, int, float]
Row = dict[str, Cell]


@dataclass
class CustomTable:
    name: str
    columns: list[str]
    rows: list[Row] = field(default_factory=list)
    preset: str | None = None
    id: int | None = None

    @property
    def is_payment(self) -> bool:
        return self.preset == PAYMENT_PRESET

    def is_editable(self, column: str) -> bool:
        if self.is_payment:
            return column not in PAYMENT_LOCKED_COLUMNS
        return True

    def is_numeric(self, column: str) -> bool:
        return self.is_payment and column in PAYMENT_NUMERIC_COLUMNS

    def cell(self, row_index: int, column: str) -> Cell:
        """Value shown for a cell; keys missing from the row show as blank."""
        return self.rows[row_index].get(column, "")

    def copy(self) -> "CustomTable":
        return CustomTable(
            name=self.name,
            columns=list(self.columns),
            rows=[dict(r) for r in self.rows],
            preset=self.preset,
            id=self.id,
        )

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {
            "name": self.name,
            "preset": self.preset,
            "columns": list(self.columns),
            "rows": [dict(r) for r in self.rows],
        }
        if self.id is not None:
            rec["id"] = self.id
        return rec

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "CustomTable":
        raw_id = d.get("id")
        rows = d.get("rows") or []
        return CustomTable(
            name=str(d.get("name", "") or ""),
            columns=[str(c) for c in (d.get("columns") or [])],
            rows=[dict(r) for r in rows if isinstance(r, dict)],
            preset=d.get("preset") or None,
            id=int(raw_id) if raw_id is not None else None,
        )


def parse_columns(text: str) -> list[str]:
    """``"Item, Cost,,"`` -> ``["Item", "Cost"]``."""
    return [c.strip() for c in (text or "").split(",") if c.strip()]


def _clean_columns(columns: str | Iterable[str]) -> list[str]:
    if isinstance(columns, str):
        cols = parse_columns(columns)
    else:
        cols = [str(c).strip() for c in columns if str(c).strip()]
    if not cols:
        raise ValidationError("Please provide columns for the tab.")
    seen: set[str] = set()
    dupes: list[str] = []
    for c in cols:
        if c in seen:
            dupes.append(c)
        seen.add(c)
    if dupes:
        raise ValidationError(f"Duplicate column names: {', '.join(dict.fromkeys(dupes))}")
    return cols


def find_index(tables: Sequence[CustomTable], name: str) -> int:
    for i, t in enumerate(tables):
        if t.name == name:
            return i
    raise TableNotFound(name)


def _with_table(tables: Sequence[CustomTable], idx: int, table: CustomTable) -> list[CustomTable]:
    out = list(tables)
    out[idx] = table
    return out


def _checked_row(table: CustomTable, row_index: int) -> None:
    if not (0 <= row_index < len(table.rows)):
        raise ValidationError(f"{table.name}: row {row_index} does not exist")


def _student_fields(student: Any) -> tuple[str, str]:
    if isinstance(student, Mapping):
        name = student.get("name") or f"{student.get('first_name', '') or ''} {student.get('last_name', '') or ''}"
        cls = student.get("class") or student.get("class_name") or ""
    else:
        name = getattr(student, "name", "")
        cls = getattr(student, "class_name", "")
    return str(name or "").strip(), str(cls or "")


def _recompute_balance(row: Row) -> None:
    row[BALANCE] = balance(row.get(AMOUNT), row.get(DEPOSIT))


def create_table(
    tables: Sequence[CustomTable],
    name: str,
    preset: str | None = None,
    columns: str | Iterable[str] = "",
) -> list[CustomTable]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tab name is required.")
    if any(t.name == name for t in tables):
        raise ValidationError(f"A tab named {name!r} already exists.")
    preset = preset or None
    if preset is not None and preset not in PRESETS:
        raise ValidationError(f"Unknown preset {preset!r}")

    if preset == PAYMENT_PRESET:
        cols = list(PAYMENT_COLUMNS)
    else:
        cols = _clean_columns(columns)
    return [*tables, CustomTable(name=name, columns=cols, rows=[], preset=preset)]


def rename_table(tables: Sequence[CustomTable], old_name: str, new_name: str) -> list[CustomTable]:
    new_name = (new_name or "").strip()
    idx = find_index(tables, old_name)
    if not new_name or new_name == old_name:
        return list(tables)
    if any(t.name == new_name for t in tables):
        raise ValidationError(f"A tab named {new_name!r} already exists.")
    t = tables[idx].copy()
    t.name = new_name
    return _with_table(tables, idx, t)


def remove_table(tables: Sequence[CustomTable], name: str) -> list[CustomTable]:
    idx = find_index(tables, name)
    return [t for i, t in enumerate(tables) if i != idx]


def update_columns(tables: Sequence[CustomTable], name: str, columns: str | Iterable[str]) -> list[CustomTable]:
    """Replace the column list.

    Rows keep their existing keys: a renamed column shows blank until its
    cells are filled again, and the old key stays on the row.
    """
    idx = find_index(tables, name)
    t = tables[idx].copy()
    t.columns = _clean_columns(columns)
    return _with_table(tables, idx, t)


def add_students(
    tables: Sequence[CustomTable],
    name: str,
    students: Iterable[Any],
    tuition: Mapping[str, Any],
) -> list[CustomTable]:
    idx = find_index(tables, name)
    t = tables[idx].copy()
    for student in students:
        student_name, cls = _student_fields(student)
        if t.is_payment:
            fee = coerce_number(tuition.get(cls), lenient=True)
            row: Row = {
                STUDENT_NAME: student_name,
                AMOUNT: fee,
                DEPOSIT: 0,
                BALANCE: fee,
                DATE_PAID: "",
                NOTE: "",
            }
        else:
            row = {}
            for col in t.columns:
                row[col] = student_name if col == STUDENT_NAME else ""
        t.rows.append(row)
    return _with_table(tables, idx, t)


def add_blank_row(tables: Sequence[CustomTable], name: str) -> list[CustomTable]:
    idx = find_index(tables, name)
    t = tables[idx].copy()
    if t.is_payment:
        raise ValidationError("Payment tabs grow by adding students.")
    t.rows.append({col: "" for col in t.columns})
    return _with_table(tables, idx, t)


def delete_row(tables: Sequence[CustomTable], name: str, row_index: int) -> list[CustomTable]:
    idx = find_index(tables, name)
    t = tables[idx].copy()
    _checked_row(t, row_index)
    del t.rows[row_index]
    return _with_table(tables, idx, t)


def edit_cell(
    tables: Sequence[CustomTable],
    name: str,
    row_index: int,
    column: str,
    raw_value: Any,
    *,
    lenient: bool = False,
) -> list[CustomTable]:
    idx = find_index(tables, name)
    t = tables[idx].copy()
    _checked_row(t, row_index)
    if column not in t.columns:
        raise ValidationError(f"{t.name}: unknown column {column!r}")
    if not t.is_editable(column):
        raise ValidationError(f"{column} is computed and cannot be edited.")

    value = coerce_number(raw_value, lenient=lenient) if t.is_numeric(column) else raw_value
    row = t.rows[row_index]
    row[column] = value
    if t.is_payment and column in (AMOUNT, DEPOSIT):
        _recompute_balance(row)
    return _with_table(tables, idx, t)


def edit_row(
    tables: Sequence[CustomTable],
    name: str,
    row_index: int,
    values: Mapping[str, Any],
    *,
    lenient: bool = False,
) -> list[CustomTable]:
    """Replace a row with ``values`` laid out in column order.

    Columns missing from ``values`` become blank; keys that are not columns are
    dropped. Payment rows keep their student name and get a fresh balance.
    """
    idx = find_index(tables, name)
    t = tables[idx].copy()
    _checked_row(t, row_index)
    old = t.rows[row_index]

    row: Row = {col: values.get(col, "") for col in t.columns}
    if t.is_payment:
        row[STUDENT_NAME] = old.get(STUDENT_NAME, "")
        row[AMOUNT] = coerce_number(row.get(AMOUNT), lenient=lenient)
        row[DEPOSIT] = coerce_number(row.get(DEPOSIT), lenient=lenient)
        _recompute_balance(row)
    t.rows[row_index] = row
    return _with_table(tables, idx, t)


def set_amount_for_all(
    tables: Sequence[CustomTable],
    name: str,
    value: Any,
    *,
    lenient: bool = False,
) -> list[CustomTable]:
    idx = find_index(tables, name)
    t = tables[idx].copy()
    if not t.is_payment:
        raise ValidationError("Only payment tabs have an Amount column to fill.")
    if value is None or str(value).strip() == "":
        return list(tables)
    amount = coerce_number(value, lenient=lenient)
    for row in t.rows:
        row[AMOUNT] = amount
        _recompute_balance(row)
    return _with_table(tables, idx, t)
