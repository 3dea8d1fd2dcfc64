from __future__ import annotations

import pytest

from schooldesk import ledgers, records
from schooldesk.constants import BOOKS, PARTY, PARTY_CLASS_AMOUNTS
from schooldesk.errors import RecordNotFound, ValidationError
from schooldesk.ledgers import BookRow, PartyRow, SessionTerm
from schooldesk.records import Student


@pytest.fixture
def fixed_today(monkeypatch):
    monkeypatch.setattr(ledgers, "today", lambda: "2024-10-01")
    return "2024-10-01"


@pytest.fixture
def students(store):
    out = []
    for first, cls in [("Zara", "PRY 1"), ("Ada", "PRY 1"), ("Tobi", "CRECHE"), ("Bola", "KG 1")]:
        out.append(records.upsert_student(store, Student(first, "", cls)))
    return out


def _by_name(rows):
    return {r.student_name: r for r in rows}


# ---------- Books ----------
def test_book_balance_never_below_zero():
    assert BookRow(1, "Ada", "PRY 1", amount=5000, deposit=2000).balance == 3000
    assert BookRow(1, "Ada", "PRY 1", amount=5000, deposit=7000).balance == 0


def test_upsert_book_row_defaults_date_and_keeps_one_record_per_type(store, students, fixed_today):
    ada = students[1]
    first = ledgers.upsert_book_row(store, BookRow(ada.id, ada.name, "PRY 1", "textbook", amount=5000, deposit=1000))
    assert first.date == fixed_today
    again = ledgers.upsert_book_row(
        store, BookRow(ada.id, ada.name, "PRY 1", "textbook", amount=5000, deposit=5000, date="2024-10-05")
    )
    ledgers.upsert_book_row(store, BookRow(ada.id, ada.name, "PRY 1", "notebook", amount=1500))

    assert again.id == first.id
    assert len(store.fetch_all(BOOKS)) == 2
    [textbook] = ledgers.fetch_books(store, "textbook")
    assert (textbook.deposit, textbook.balance, textbook.date) == (5000, 0, "2024-10-05")


def test_upsert_book_row_rejects_unknown_type(store):
    with pytest.raises(ValidationError):
        ledgers.upsert_book_row(store, BookRow(1, "Ada", "PRY 1", "magazine"))
    assert store.fetch_all(BOOKS) == []


def test_book_rows_skip_creche_and_fill_blanks(store, students):
    ada = students[1]
    saved = [BookRow(ada.id, ada.name, "PRY 1", "notebook", amount=1500, deposit=500, id=7)]

    rows = ledgers.book_rows(students, saved, "notebook")

    assert [r.student_name for r in rows] == ["Bola", "Ada", "Zara"]
    assert _by_name(rows)["Ada"].id == 7
    assert _by_name(rows)["Zara"].id is None
    assert _by_name(rows)["Zara"].balance == 0
    assert [r.student_name for r in ledgers.book_rows(students, saved, "textbook", search="za")] == ["Zara"]


# ---------- Party ----------
def test_class_amount_reaches_every_student_in_the_class(store, students):
    ada = students[1]
    ledgers.record_party_deposit(store, ada, 2000, "2024-12-01")

    assert ledgers.set_party_class_amount(store, students, "PRY 1", 5000) == 2

    party = _by_name(ledgers.fetch_party(store))
    assert set(party) == {"Ada", "Zara"}
    assert (party["Ada"].amount, party["Ada"].deposit, party["Ada"].payment_date) == (5000, 2000, "2024-12-01")
    assert party["Ada"].balance == 3000
    assert (party["Zara"].deposit, party["Zara"].payment_date) == (0, None)
    assert ledgers.fetch_party_class_amounts(store) == {"PRY 1": 5000}


def test_class_amount_is_kept_per_event(store, students):
    ledgers.set_party_class_amount(store, students, "PRY 1", 5000)
    ledgers.set_party_class_amount(store, students, "PRY 1", 6000)
    ledgers.set_party_class_amount(store, students, "PRY 1", 3000, event_type="Christmas Party")

    assert len(store.fetch_all(PARTY_CLASS_AMOUNTS)) == 2
    assert ledgers.fetch_party_class_amounts(store)["PRY 1"] == 6000
    assert len(store.fetch_all(PARTY)) == 4
    assert {p.amount for p in ledgers.fetch_party(store, "Christmas Party")} == {3000}


def test_deposit_is_dated_today_only_when_money_came_in(store, students, fixed_today):
    zara, ada = students[0], students[1]
    ledgers.set_party_class_amount(store, students, "PRY 1", 5000)

    paid = ledgers.record_party_deposit(store, ada, "2,500")
    nothing = ledgers.record_party_deposit(store, zara, 0)

    assert (paid.amount, paid.deposit, paid.payment_date) == (5000, 2500, fixed_today)
    assert nothing.payment_date is None
    assert len(ledgers.fetch_party(store)) == 2


def test_upsert_party_row_blank_date_is_none(store):
    row = ledgers.upsert_party_row(store, PartyRow(1, "Ada", "PRY 1", amount=100, deposit=0, payment_date="  "))
    assert row.payment_date is None
    assert store.fetch_all(PARTY)[0]["payment_date"] is None


def test_party_rows_use_class_amount_and_saved_deposit(students):
    ada = students[1]
    saved = [PartyRow(ada.id, ada.name, "PRY 1", amount=1, deposit=400, payment_date="2024-12-01", id=3)]

    rows = _by_name(ledgers.party_rows(students, saved, {"PRY 1": 5000}))

    assert (rows["Ada"].amount, rows["Ada"].deposit, rows["Ada"].balance) == (5000, 400, 4600)
    assert rows["Tobi"].amount == 0
    assert rows["Bola"].id is None


# ---------- Expenses ----------
def test_expenses_are_kept_per_term(store):
    ledgers.add_expense(store, "first", "Diesel", "12,000", "generator")
    ledgers.add_expense(store, "first", "Chalk", 1500)
    ledgers.add_expense(store, "second", "Repairs", 8000)

    first = ledgers.fetch_expenses(store, "first")
    assert [(e.category, e.amount, e.note) for e in first] == [("Diesel", 12000, "generator"), ("Chalk", 1500, "")]
    assert ledgers.expense_total(first) == 13500
    assert [e.category for e in ledgers.fetch_expenses(store, "second")] == ["Repairs"]


def test_update_expense(store):
    e = ledgers.add_expense(store, "third", "Diesel", 12000)
    updated = ledgers.update_expense(store, e.id, "Diesel (Nov)", 15000, "two drums")
    assert (updated.term, updated.category, updated.amount, updated.note) == ("third", "Diesel (Nov)", 15000, "two drums")
    with pytest.raises(RecordNotFound):
        ledgers.update_expense(store, 42, "Chalk", 1)


@pytest.mark.parametrize("term, category", [("fourth", "Diesel"), ("first", "   ")])
def test_add_expense_validation(store, term, category):
    with pytest.raises(ValidationError):
        ledgers.add_expense(store, term, category, 100)


# ---------- Sessions ----------
def test_sessions_follow_the_school_year(store):
    for term in ["Third Term", "Session", "First Term", "Second Term"]:
        ledgers.save_session(store, SessionTerm(term=term, year="2024/2025"))
    ledgers.save_session(store, SessionTerm(term="First Term", year="2023/2024", holiday_weeks=2))

    got = [(s.year, s.term) for s in ledgers.fetch_sessions(store)]
    assert got == [
        ("2023/2024", "First Term"),
        ("2024/2025", "Session"),
        ("2024/2025", "First Term"),
        ("2024/2025", "Second Term"),
        ("2024/2025", "Third Term"),
    ]


def test_save_session_updates_in_place(store):
    s = ledgers.save_session(store, SessionTerm(term="First Term", year="2024/2025", open_date=""))
    assert s.open_date is None
    s.close_date = "2024-12-13"
    s.holiday_weeks = 3
    again = ledgers.save_session(store, s)
    assert again.id == s.id
    [only] = ledgers.fetch_sessions(store)
    assert (only.close_date, only.holiday_weeks) == ("2024-12-13", 3)


@pytest.mark.parametrize(
    "session",
    [SessionTerm(term="Fourth Term", year="2024/2025"), SessionTerm(term="First Term", year=" ")],
)
def test_save_session_validation(store, session):
    with pytest.raises(ValidationError):
        ledgers.save_session(store, session)
