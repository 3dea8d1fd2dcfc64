"""Side ledgers kept next to tuition: books, party contributions, expenses and terms."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping

from .amounts import balance, coerce_number
from .constants import (
    BOOK_TYPES,
    BOOKS,
    CLASS_LIST,
    DEFAULT_PARTY_EVENT,
    EXPENSES,
    PARTY,
    PARTY_CLASS_AMOUNTS,
    SESSION_TERMS,
    SESSIONS,
    TERM_KEYS,
)
from .errors import ValidationError
from .records import Student, _opt_int
from .storage import RecordStore

log = logging.getLogger(__name__)

NO_BOOKS_CLASS = "CRECHE"


def today() -> str:
    return date.today().isoformat()


def _class_order(cls: str) -> int:
    try:
        return CLASS_LIST.index(cls)
    except ValueError:
        return len(CLASS_LIST)


# ---------- Books ----------
@dataclass
class BookRow:
    student_id: int
    student_name: str
    class_name: str
    type: str = "textbook"
    amount: float = 0
    deposit: float = 0
    date: str | None = None
    note: str = ""
    id: int | None = None

    @property
    def balance(self) -> float:
        return balance(self.amount, self.deposit)

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "class": self.class_name,
            "type": self.type,
            "amount": self.amount,
            "deposit": self.deposit,
            "date": self.date or None,
            "note": self.note or "",
        }
        if self.id is not None:
            rec["id"] = self.id
        return rec

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "BookRow":
        return BookRow(
            id=_opt_int(d.get("id")),
            student_id=_opt_int(d.get("student_id")) or 0,
            student_name=str(d.get("student_name", "") or ""),
            class_name=str(d.get("class", "") or ""),
            type=str(d.get("type", "") or "textbook"),
            amount=coerce_number(d.get("amount"), lenient=True),
            deposit=coerce_number(d.get("deposit"), lenient=True),
            date=d.get("date") or None,
            note=str(d.get("note", "") or ""),
        )


def fetch_books(store: RecordStore, book_type: str | None = None) -> list[BookRow]:
    filters = {"type": book_type} if book_type else None
    return [BookRow.from_record(r) for r in store.fetch_all(BOOKS, filters, order_by=["id"])]


def upsert_book_row(store: RecordStore, row: BookRow) -> BookRow:
    """Save a book record; one record per student and book type. A blank date means today."""
    if row.type not in BOOK_TYPES:
        raise ValidationError(f"Unknown book type {row.type!r}")
    row.amount = coerce_number(row.amount)
    row.deposit = coerce_number(row.deposit)
    row.date = row.date or today()
    rec = row.to_record()
    rec.pop("id", None)
    return BookRow.from_record(store.upsert(BOOKS, rec, on_conflict=("student_id", "type")))


def book_rows(students: Iterable[Student], books: Iterable[BookRow], book_type: str, search: str = "") -> list[BookRow]:
    """One row per eligible student: their saved record, or a blank one to fill in."""
    saved = {(b.student_id, b.type): b for b in books}
    needle = search.strip().lower()
    out: list[BookRow] = []
    for s in students:
        if s.class_name.upper() == NO_BOOKS_CLASS:
            continue
        if needle and needle not in s.name.lower():
            continue
        row = saved.get((int(s.id or 0), book_type))
        if row is None:
            row = BookRow(student_id=int(s.id or 0), student_name=s.name, class_name=s.class_name, type=book_type)
        out.append(row)
    out.sort(key=lambda r: (_class_order(r.class_name), r.student_name.lower()))
    return out


# ---------- Party ----------
@dataclass
class PartyRow:
    student_id: int
    student_name: str
    class_name: str
    event_type: str = DEFAULT_PARTY_EVENT
    amount: float = 0
    deposit: float = 0
    payment_date: str | None = None
    id: int | None = None

    @property
    def balance(self) -> float:
        return balance(self.amount, self.deposit)

    def to_record(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "class": self.class_name,
            "event_type": self.event_type,
            "amount": self.amount,
            "deposit": self.deposit,
            "payment_date": self.payment_date or None,
        }

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "PartyRow":
        return PartyRow(
            id=_opt_int(d.get("id")),
            student_id=_opt_int(d.get("student_id")) or 0,
            student_name=str(d.get("student_name", "") or ""),
            class_name=str(d.get("class", "") or ""),
            event_type=str(d.get("event_type", "") or DEFAULT_PARTY_EVENT),
            amount=coerce_number(d.get("amount"), lenient=True),
            deposit=coerce_number(d.get("deposit"), lenient=True),
            payment_date=d.get("payment_date") or None,
        )


def fetch_party(store: RecordStore, event_type: str = DEFAULT_PARTY_EVENT) -> list[PartyRow]:
    return [PartyRow.from_record(r) for r in store.fetch_all(PARTY, {"event_type": event_type}, order_by=["id"])]


def upsert_party_row(store: RecordStore, row: PartyRow) -> PartyRow:
    row.amount = coerce_number(row.amount)
    row.deposit = coerce_number(row.deposit)
    row.payment_date = (row.payment_date or "").strip() or None
    return PartyRow.from_record(store.upsert(PARTY, row.to_record(), on_conflict=("student_id", "event_type")))


def fetch_party_class_amounts(store: RecordStore, event_type: str = DEFAULT_PARTY_EVENT) -> dict[str, float]:
    out: dict[str, float] = {}
    for r in store.fetch_all(PARTY_CLASS_AMOUNTS, {"event_type": event_type}):
        cls = str(r.get("class", "") or "")
        if cls:
            out[cls] = coerce_number(r.get("amount"), lenient=True)
    return out


def set_party_class_amount(
    store: RecordStore,
    students: Iterable[Student],
    class_name: str,
    amount: Any,
    event_type: str = DEFAULT_PARTY_EVENT,
) -> int:
    """Set the contribution for a class and carry it onto each of its students.

    Deposits and payment dates already recorded are kept.
    """
    value = coerce_number(amount)
    store.upsert(
        PARTY_CLASS_AMOUNTS,
        {"class": class_name, "event_type": event_type, "amount": value},
        on_conflict=("class", "event_type"),
    )
    existing = {p.student_id: p for p in fetch_party(store, event_type)}
    count = 0
    for s in students:
        if s.class_name != class_name or s.id is None:
            continue
        prev = existing.get(s.id)
        upsert_party_row(
            store,
            PartyRow(
                student_id=s.id,
                student_name=s.name,
                class_name=class_name,
                event_type=event_type,
                amount=value,
                deposit=prev.deposit if prev else 0,
                payment_date=prev.payment_date if prev else None,
            ),
        )
        count += 1
    log.info("Party amount for %s (%s) set to %s; %d student(s)", class_name, event_type, value, count)
    return count


def record_party_deposit(
    store: RecordStore,
    student: Student,
    deposit: Any,
    payment_date: str | None = None,
    event_type: str = DEFAULT_PARTY_EVENT,
) -> PartyRow:
    """Record what a student has paid towards the party; dated today when money came in undated."""
    value = coerce_number(deposit)
    amount = fetch_party_class_amounts(store, event_type).get(student.class_name, 0)
    when = (payment_date or "").strip() or None
    if when is None and value > 0:
        when = today()
    return upsert_party_row(
        store,
        PartyRow(
            student_id=int(student.id or 0),
            student_name=student.name,
            class_name=student.class_name,
            event_type=event_type,
            amount=amount,
            deposit=value,
            payment_date=when,
        ),
    )


def party_rows(
    students: Iterable[Student],
    party: Iterable[PartyRow],
    class_amounts: Mapping[str, Any],
    search: str = "",
    event_type: str = DEFAULT_PARTY_EVENT,
) -> list[PartyRow]:
    """Every student with the class amount and whatever they have deposited."""
    saved = {p.student_id: p for p in party}
    needle = search.strip().lower()
    out: list[PartyRow] = []
    for s in students:
        if needle and needle not in s.name.lower():
            continue
        prev = saved.get(int(s.id or 0))
        out.append(
            PartyRow(
                student_id=int(s.id or 0),
                student_name=s.name,
                class_name=s.class_name,
                event_type=event_type,
                amount=coerce_number(class_amounts.get(s.class_name), lenient=True),
                deposit=prev.deposit if prev else 0,
                payment_date=prev.payment_date if prev else None,
                id=prev.id if prev else None,
            )
        )
    out.sort(key=lambda r: (_class_order(r.class_name), r.student_name.lower()))
    return out


# ---------- Expenses ----------
@dataclass
class Expense:
    term: str
    category: str
    amount: float = 0
    note: str = ""
    id: int | None = None

    def to_record(self) -> dict[str, Any]:
        return {"term": self.term, "category": self.category, "amount": self.amount, "note": self.note or ""}

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "Expense":
        return Expense(
            id=_opt_int(d.get("id")),
            term=str(d.get("term", "") or ""),
            category=str(d.get("category", "") or ""),
            amount=coerce_number(d.get("amount"), lenient=True),
            note=str(d.get("note", "") or ""),
        )


def _check_term(term: str) -> str:
    if term not in TERM_KEYS:
        raise ValidationError(f"Unknown term {term!r}; expected one of {', '.join(TERM_KEYS)}")
    return term


def fetch_expenses(store: RecordStore, term: str) -> list[Expense]:
    _check_term(term)
    return [Expense.from_record(r) for r in store.fetch_all(EXPENSES, {"term": term}, order_by=["id"])]


def add_expense(store: RecordStore, term: str, category: str, amount: Any, note: str = "") -> Expense:
    category = (category or "").strip()
    if not category:
        raise ValidationError("Expense category is required")
    expense = Expense(term=_check_term(term), category=category, amount=coerce_number(amount), note=note or "")
    return Expense.from_record(store.insert(EXPENSES, expense.to_record()))


def update_expense(store: RecordStore, expense_id: int, category: str, amount: Any, note: str = "") -> Expense:
    category = (category or "").strip()
    if not category:
        raise ValidationError("Expense category is required")
    data = {"category": category, "amount": coerce_number(amount), "note": note or ""}
    return Expense.from_record(store.update(EXPENSES, expense_id, data))


def expense_total(expenses: Iterable[Expense]) -> float:
    return sum(coerce_number(e.amount, lenient=True) for e in expenses)


# ---------- Sessions ----------
@dataclass
class SessionTerm:
    term: str
    year: str
    open_date: str | None = None
    close_date: str | None = None
    holiday_weeks: int = 0
    id: int | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "term": self.term,
            "year": self.year,
            "open_date": self.open_date or None,
            "close_date": self.close_date or None,
            "holiday_weeks": int(self.holiday_weeks or 0),
        }

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "SessionTerm":
        return SessionTerm(
            id=_opt_int(d.get("id")),
            term=str(d.get("term", "") or ""),
            year=str(d.get("year", "") or ""),
            open_date=d.get("open_date") or None,
            close_date=d.get("close_date") or None,
            holiday_weeks=_opt_int(d.get("holiday_weeks")) or 0,
        )


def fetch_sessions(store: RecordStore) -> list[SessionTerm]:
    rows = [SessionTerm.from_record(r) for r in store.fetch_all(SESSIONS, order_by=["year"])]
    # term order follows the school year, not the alphabet
    rows.sort(key=lambda s: (s.year, SESSION_TERMS.index(s.term) if s.term in SESSION_TERMS else len(SESSION_TERMS)))
    return rows


def save_session(store: RecordStore, session: SessionTerm) -> SessionTerm:
    """Insert a new term, or update it in place when it already has an id."""
    if session.term not in SESSION_TERMS:
        raise ValidationError(f"Unknown term {session.term!r}")
    if not str(session.year or "").strip():
        raise ValidationError("Session year is required")
    if session.holiday_weeks and int(session.holiday_weeks) < 0:
        raise ValidationError("Holiday weeks cannot be negative")
    rec = session.to_record()
    if session.id is None:
        saved = store.insert(SESSIONS, rec)
    else:
        saved = store.update(SESSIONS, session.id, rec)
    return SessionTerm.from_record(saved)
