from __future__ import annotations

import pytest

from schooldesk import tabs
from schooldesk.constants import PAYMENT_COLUMNS
from schooldesk.errors import TableNotFound, ValidationError
from schooldesk.records import Student
from schooldesk.tabs import CustomTable

TUITION = {"PRY 1": 27000, "KG 1": 21000}


def _payment_tab(*students) -> list[CustomTable]:
    tables = tabs.create_table([], "Uniform Fees", "payment")
    return tabs.add_students(tables, "Uniform Fees", students, TUITION)


def test_parse_columns_trims_and_drops_empties():
    assert tabs.parse_columns(" Item, Cost ,, ") == ["Item", "Cost"]
    assert tabs.parse_columns("") == []


def test_payment_preset_ignores_supplied_columns():
    tables = tabs.create_table([], "Uniform Fees", "payment", "Foo, Bar")
    assert tables[0].columns == PAYMENT_COLUMNS
    assert tables[0].rows == []
    assert tables[0].id is None


@pytest.mark.parametrize(
    "name, columns",
    [("", "Item"), ("   ", "Item"), ("Trip Fund", ""), ("Trip Fund", " , ,"), ("Trip Fund", "Item, Cost, Item")],
)
def test_create_table_rejects_bad_input(name, columns):
    with pytest.raises(ValidationError):
        tabs.create_table([], name, None, columns)


def test_create_table_rejects_existing_name_and_unknown_preset():
    tables = tabs.create_table([], "Trip Fund", None, "Item")
    with pytest.raises(ValidationError):
        tabs.create_table(tables, "Trip Fund", None, "Other")
    with pytest.raises(ValidationError):
        tabs.create_table(tables, "Other", "invoice", "Item")


def test_operations_do_not_mutate_their_input():
    before = tabs.create_table([], "Trip Fund", None, "Item, Cost")
    after = tabs.add_blank_row(before, "Trip Fund")
    assert before[0].rows == []
    assert len(after[0].rows) == 1
    edited = tabs.edit_cell(after, "Trip Fund", 0, "Item", "Bus")
    assert after[0].rows[0]["Item"] == ""
    assert edited[0].rows[0]["Item"] == "Bus"


def test_add_students_appends_in_input_order():
    tables = _payment_tab(Student("Ada", "Obi", "PRY 1"))
    tables = tabs.add_students(
        tables,
        "Uniform Fees",
        [Student("Bola", "", "KG 1"), {"name": "Chidi", "class": "PRY 1"}, {"name": "Dayo", "class": "JSS 1"}],
        TUITION,
    )
    rows = tables[0].rows
    assert [r["Student Name"] for r in rows] == ["Ada Obi", "Bola", "Chidi", "Dayo"]
    assert rows[1] == {"Student Name": "Bola", "Amount": 21000, "Deposit": 0, "Balance": 21000, "DatePaid": "", "Note": ""}
    # classes without a tuition entry start at zero
    assert rows[3]["Amount"] == 0
    assert rows[3]["Balance"] == 0


def test_add_students_to_plain_tab_fills_blank_columns():
    tables = tabs.create_table([], "Club", None, "Student Name, Shirt Size")
    tables = tabs.add_students(tables, "Club", [{"name": "Ada", "class": "PRY 1"}], TUITION)
    assert tables[0].rows == [{"Student Name": "Ada", "Shirt Size": ""}]


def test_add_blank_row_refused_for_payment_tabs():
    with pytest.raises(ValidationError):
        tabs.add_blank_row(_payment_tab(), "Uniform Fees")


@pytest.mark.parametrize("amount, deposit, expected", [("30000", "5000", 25000), ("1000", "5000", 0), ("", "", 0)])
def test_balance_follows_amount_and_deposit(amount, deposit, expected):
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    tables = tabs.edit_cell(tables, "Uniform Fees", 0, "Amount", amount)
    tables = tabs.edit_cell(tables, "Uniform Fees", 0, "Deposit", deposit)
    row = tables[0].rows[0]
    assert row["Balance"] == expected
    assert row["Balance"] >= 0


def test_editing_note_leaves_balance_alone():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    tables = tabs.edit_cell(tables, "Uniform Fees", 0, "Note", "pays Friday")
    assert tables[0].rows[0]["Note"] == "pays Friday"
    assert tables[0].rows[0]["Balance"] == 27000


@pytest.mark.parametrize("column", ["Balance", "Student Name"])
def test_locked_payment_columns_cannot_be_edited(column):
    with pytest.raises(ValidationError):
        tabs.edit_cell(_payment_tab({"name": "Ada", "class": "PRY 1"}), "Uniform Fees", 0, column, "5")


def test_strict_numbers_reject_garbage():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    with pytest.raises(ValidationError):
        tabs.edit_cell(tables, "Uniform Fees", 0, "Deposit", "ten thousand")


def test_lenient_numbers_treat_garbage_as_zero():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    tables = tabs.edit_cell(tables, "Uniform Fees", 0, "Deposit", "ten thousand", lenient=True)
    assert tables[0].rows[0]["Deposit"] == 0
    assert tables[0].rows[0]["Balance"] == 27000


def test_plain_tab_values_are_stored_as_given():
    tables = tabs.create_table([], "Trip Fund", None, "Item, Cost")
    tables = tabs.add_blank_row(tables, "Trip Fund")
    tables = tabs.edit_cell(tables, "Trip Fund", 0, "Cost", "abc")
    assert tables[0].rows[0]["Cost"] == "abc"


def test_edit_row_recomputes_balance_and_keeps_student_name():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    tables = tabs.edit_row(
        tables,
        "Uniform Fees",
        0,
        {"Student Name": "Someone Else", "Amount": "30000", "Deposit": "12000", "Balance": "1", "DatePaid": "2024-01-09", "Note": "x"},
    )
    assert tables[0].rows[0] == {
        "Student Name": "Ada",
        "Amount": 30000,
        "Deposit": 12000,
        "Balance": 18000,
        "DatePaid": "2024-01-09",
        "Note": "x",
    }


def test_edit_row_lays_out_values_by_column():
    tables = tabs.create_table([], "Trip Fund", None, "Item, Cost")
    tables = tabs.add_blank_row(tables, "Trip Fund")
    tables = tabs.edit_row(tables, "Trip Fund", 0, {"Cost": "500", "Driver": "Musa"})
    assert tables[0].rows[0] == {"Item": "", "Cost": "500"}


def test_set_amount_for_all_rows_also_updates_balance():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"}, {"name": "Bola", "class": "KG 1"})
    tables = tabs.edit_cell(tables, "Uniform Fees", 1, "Deposit", "5000")
    tables = tabs.set_amount_for_all(tables, "Uniform Fees", "8000")
    assert [(r["Amount"], r["Balance"]) for r in tables[0].rows] == [(8000, 8000), (8000, 3000)]


def test_set_amount_for_all_blank_is_a_no_op():
    tables = _payment_tab({"name": "Ada", "class": "PRY 1"})
    assert tabs.set_amount_for_all(tables, "Uniform Fees", "  ")[0].rows == tables[0].rows


def test_renamed_column_leaves_orphaned_key_on_rows():
    tables = tabs.create_table([], "Trip Fund", None, "Item, Cost")
    tables = tabs.add_blank_row(tables, "Trip Fund")
    tables = tabs.edit_cell(tables, "Trip Fund", 0, "Item", "Bus")
    tables = tabs.update_columns(tables, "Trip Fund", ["Trip Item", "Cost"])
    t = tables[0]
    assert t.columns == ["Trip Item", "Cost"]
    assert t.rows[0] == {"Item": "Bus", "Cost": ""}
    assert t.cell(0, "Trip Item") == ""


def test_update_columns_rejects_duplicates_and_empty():
    tables = tabs.create_table([], "Trip Fund", None, "Item, Cost")
    with pytest.raises(ValidationError):
        tabs.update_columns(tables, "Trip Fund", "Item, Item")
    with pytest.raises(ValidationError):
        tabs.update_columns(tables, "Trip Fund", [])


def test_row_index_must_exist():
    tables = tabs.create_table([], "Trip Fund", None, "Item")
    with pytest.raises(ValidationError):
        tabs.delete_row(tables, "Trip Fund", 0)
    with pytest.raises(ValidationError):
        tabs.edit_cell(tables, "Trip Fund", -1, "Item", "x")


def test_delete_row_shifts_later_rows():
    tables = tabs.create_table([], "Trip Fund", None, "Item")
    for item in ["a", "b", "c"]:
        tables = tabs.add_blank_row(tables, "Trip Fund")
        tables = tabs.edit_cell(tables, "Trip Fund", len(tables[0].rows) - 1, "Item", item)
    tables = tabs.delete_row(tables, "Trip Fund", 1)
    assert [r["Item"] for r in tables[0].rows] == ["a", "c"]


def test_unknown_table_name():
    with pytest.raises(TableNotFound):
        tabs.add_blank_row([], "Nope")
    with pytest.raises(TableNotFound):
        tabs.remove_table([], "Nope")


def test_rename_rules():
    tables = tabs.create_table([], "Trip Fund", None, "Item")
    tables = tabs.create_table(tables, "Club", None, "Item")
    assert tabs.rename_table(tables, "Trip Fund", "  ")[0].name == "Trip Fund"
    with pytest.raises(ValidationError):
        tabs.rename_table(tables, "Trip Fund", "Club")
    renamed = tabs.rename_table(tables, "Trip Fund", " School Trip ")
    assert [t.name for t in renamed] == ["School Trip", "Club"]


def test_record_round_trip_shape():
    t = CustomTable(name="Trip Fund", columns=["Item"], rows=[{"Item": "Bus"}])
    assert t.to_record() == {"name": "Trip Fund", "preset": None, "columns": ["Item"], "rows": [{"Item": "Bus"}]}
    back = CustomTable.from_record({**t.to_record(), "id": 7})
    assert back.id == 7
    assert back.rows == [{"Item": "Bus"}]
    assert CustomTable.from_record({"name": "X", "columns": None, "rows": None}).rows == []
