from __future__ import annotations

import json

import pytest
from openpyxl import load_workbook

from schooldesk.errors import RecordNotFound, StoreError
from schooldesk.storage import CELL_TEXT_LIMIT, OVERFLOW_SHEET, ExcelStore, order_records


def test_missing_collection_reads_as_empty(store, xlsx_path):
    assert store.fetch_all("students") == []
    assert store.delete("students", {"id": 1}) == 0
    assert not xlsx_path.exists()


def test_insert_assigns_increasing_ids(store):
    a = store.insert("students", {"first_name": "Ada", "class": "PRY 1"})
    b = store.insert("students", {"id": 99, "first_name": "Bola", "class": "KG 1"})
    assert (a["id"], b["id"]) == (1, 2)
    assert b == {"id": 2, "first_name": "Bola", "class": "KG 1"}


def test_new_fields_extend_the_header(store):
    store.insert("students", {"first_name": "Ada"})
    store.insert("students", {"first_name": "Bola", "age": 7})
    rows = store.fetch_all("students", order_by=["id"])
    assert rows[0] == {"id": 1, "first_name": "Ada", "age": None}
    assert rows[1] == {"id": 2, "first_name": "Bola", "age": 7}


def test_filters_and_ordering(store):
    for first, cls in [("Chidi", "PRY 1"), ("Ada", "PRY 1"), ("Bola", "KG 1")]:
        store.insert("students", {"first_name": first, "class": cls})
    pry = store.fetch_all("students", {"class": "PRY 1"}, order_by=["first_name"])
    assert [r["first_name"] for r in pry] == ["Ada", "Chidi"]
    by_class = store.fetch_all("students", order_by=["class", "-first_name"])
    assert [r["first_name"] for r in by_class] == ["Bola", "Chidi", "Ada"]


def test_order_records_puts_missing_values_first():
    rows = [{"n": 2}, {"n": None}, {"n": 1}]
    assert [r["n"] for r in order_records(rows, ["n"])] == [None, 1, 2]
    assert order_records(rows, None) is rows


def test_update_merges_fields(store):
    store.insert("payments", {"student_name": "Ada", "amount": 27000, "amount_paid": 0})
    merged = store.update("payments", 1, {"amount_paid": 5000, "status": "partial"})
    assert merged == {"id": 1, "student_name": "Ada", "amount": 27000, "amount_paid": 5000, "status": "partial"}
    assert store.fetch_all("payments")[0]["status"] == "partial"


def test_update_unknown_id(store):
    with pytest.raises(RecordNotFound):
        store.update("payments", 5, {"amount": 1})
    store.insert("payments", {"amount": 1})
    with pytest.raises(RecordNotFound) as info:
        store.update("payments", 5, {"amount": 1})
    assert isinstance(info.value, LookupError)


def test_delete_by_filter(store):
    for sid in (1, 2, 1):
        store.insert("payments", {"student_id": sid})
    assert store.delete("payments", {"student_id": 1}) == 2
    assert [r["student_id"] for r in store.fetch_all("payments")] == [2]
    # next id follows the highest one still present
    assert store.insert("payments", {"student_id": 3})["id"] == 3


def test_upsert_on_custom_key(store):
    store.upsert("tuition", {"class": "KG 1", "amount": 21000}, on_conflict=("class",))
    store.upsert("tuition", {"class": "KG 1", "amount": 22000}, on_conflict=("class",))
    store.upsert("tuition", {"class": "PRY 1", "amount": 27000}, on_conflict=("class",))
    rows = store.fetch_all("tuition", order_by=["class"])
    assert [(r["class"], r["amount"]) for r in rows] == [("KG 1", 22000), ("PRY 1", 27000)]


def test_upsert_without_id_inserts(store):
    rec = store.upsert("students", {"first_name": "Ada"})
    again = store.upsert("students", {"id": rec["id"], "first_name": "Adaeze"})
    assert again["id"] == rec["id"]
    assert [r["first_name"] for r in store.fetch_all("students")] == ["Adaeze"]


def test_json_fields_survive_a_reload(store, xlsx_path):
    rows = [{"Student Name": "Ada", "Amount": 27000, "Note": "naïra ₦"}]
    store.insert("custom_tabs", {"name": "Fees", "preset": "payment", "columns": ["Student Name", "Amount", "Note"], "rows": rows})

    fresh = ExcelStore(xlsx_path)
    rec = fresh.fetch_all("custom_tabs")[0]
    assert rec["columns"] == ["Student Name", "Amount", "Note"]
    assert rec["rows"] == rows


def test_nested_values_need_a_json_field(store):
    with pytest.raises(StoreError):
        store.insert("students", {"tags": ["a", "b"]})


def test_invalidate_cache_rereads_disk(store, xlsx_path):
    store.insert("students", {"first_name": "Ada"})
    ExcelStore(xlsx_path).insert("students", {"first_name": "Bola"})
    assert len(store.fetch_all("students")) == 1
    store.invalidate_cache()
    assert len(store.fetch_all("students")) == 2


def _big_rows(n):
    return [{"Student Name": f"Student {i:04d}", "Amount": 27000, "Deposit": i, "Note": "term fees"} for i in range(n)]


def _overflow_rows(path):
    wb = load_workbook(path)
    if OVERFLOW_SHEET not in wb.sheetnames:
        return []
    return [r for r in wb[OVERFLOW_SHEET].iter_rows(min_row=2, values_only=True) if any(v is not None for v in r)]


def _set_cell(path, sheet, record_id, field, value):
    wb = load_workbook(path)
    ws = wb[sheet]
    headers = [c.value for c in ws[1]]
    for row in ws.iter_rows(min_row=2):
        if row[headers.index("id")].value == record_id:
            row[headers.index(field)].value = value
    wb.save(path)


def test_json_text_longer_than_a_cell_survives_a_reload(store, xlsx_path):
    rows = _big_rows(600)
    assert len(json.dumps(rows)) > CELL_TEXT_LIMIT
    store.insert("custom_tabs", {"name": "Fees", "columns": ["Student Name"], "rows": rows})

    assert len(_overflow_rows(xlsx_path)) >= 2
    rec = ExcelStore(xlsx_path).fetch_all("custom_tabs")[0]
    assert rec["rows"] == rows
    assert rec["columns"] == ["Student Name"]


def test_shrinking_or_deleting_a_long_value_clears_its_overflow(store, xlsx_path):
    store.insert("custom_tabs", {"name": "Fees", "rows": _big_rows(600)})
    store.insert("custom_tabs", {"name": "Trip", "rows": _big_rows(600)})
    before = len(_overflow_rows(xlsx_path))

    store.update("custom_tabs", 1, {"rows": _big_rows(3)})
    assert len(_overflow_rows(xlsx_path)) == before // 2
    assert ExcelStore(xlsx_path).fetch_all("custom_tabs", {"name": "Fees"})[0]["rows"] == _big_rows(3)

    store.delete("custom_tabs", {"name": "Trip"})
    assert _overflow_rows(xlsx_path) == []


def test_unreadable_json_drops_only_that_record(store, xlsx_path):
    store.insert("custom_tabs", {"name": "Fees", "columns": ["A"], "rows": []})
    store.insert("custom_tabs", {"name": "Trip", "columns": ["B"], "rows": []})
    _set_cell(xlsx_path, "custom_tabs", 1, "rows", '[{"A": "cut off')

    fresh = ExcelStore(xlsx_path)
    assert [r["name"] for r in fresh.fetch_all("custom_tabs")] == ["Trip"]
    # the damaged record still counts when ids are assigned
    assert fresh.insert("custom_tabs", {"name": "Club", "rows": []})["id"] == 3


def test_missing_overflow_rows_drop_only_that_record(store, xlsx_path):
    store.insert("custom_tabs", {"name": "Fees", "rows": _big_rows(600)})
    store.insert("custom_tabs", {"name": "Trip", "rows": []})
    wb = load_workbook(xlsx_path)
    del wb[OVERFLOW_SHEET]
    wb.save(xlsx_path)

    assert [r["name"] for r in ExcelStore(xlsx_path).fetch_all("custom_tabs")] == ["Trip"]


@pytest.mark.parametrize("value", ["Ada\x01", "line\x0bbreak", "x" * (CELL_TEXT_LIMIT + 1)])
def test_text_a_cell_cannot_hold_is_a_store_error(store, xlsx_path, value):
    store.insert("students", {"first_name": "Bola"})
    with pytest.raises(StoreError):
        store.insert("students", {"first_name": value})
    with pytest.raises(StoreError):
        store.update("students", 1, {"first_name": value})
    assert store.insert("students", {"first_name": "Chidi"})["id"] == 2
    assert [r["first_name"] for r in ExcelStore(xlsx_path).fetch_all("students")] == ["Bola", "Chidi"]


def test_control_characters_inside_json_are_escaped(store, xlsx_path):
    rows = [{"Note": "tab\there\x01"}]
    store.insert("custom_tabs", {"name": "Fees", "rows": rows})
    assert ExcelStore(xlsx_path).fetch_all("custom_tabs")[0]["rows"] == rows
