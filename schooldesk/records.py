from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .amounts import balance, coerce_number
from .constants import DEFAULT_TUITION, PAYMENTS, STUDENTS, TUITION
from .errors import RecordNotFound
from .storage import RecordStore

log = logging.getLogger(__name__)


def _opt_int(v: Any) -> int | None:
    try:
        return int(v) if v not in (None, "") else None
    except (TypeError, ValueError):
        return None


@dataclass
class Student:
    first_name: str
    last_name: str
    class_name: str
    id: int | None = None
    age: int | None = None
    parent_name: str | None = None
    parent_phone: str | None = None
    parent_email: str | None = None

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "class": self.class_name,
            "age": self.age,
            "parent_name": self.parent_name,
            "parent_phone": self.parent_phone,
            "parent_email": self.parent_email,
        }
        if self.id is not None:
            rec["id"] = self.id
        return rec

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "Student":
        return Student(
            id=_opt_int(d.get("id")),
            first_name=str(d.get("first_name", "") or ""),
            last_name=str(d.get("last_name", "") or ""),
            class_name=str(d.get("class", "") or ""),
            age=_opt_int(d.get("age")),
            parent_name=d.get("parent_name") or None,
            parent_phone=d.get("parent_phone") or None,
            parent_email=d.get("parent_email") or None,
        )


def payment_status(amount: Any, amount_paid: Any, is_scholarship: bool = False) -> str:
    if is_scholarship:
        return "scholarship"
    paid = coerce_number(amount_paid, lenient=True)
    if paid == coerce_number(amount, lenient=True):
        return "paid"
    if paid > 0:
        return "partial"
    return "unpaid"


@dataclass
class Payment:
    student_id: int
    student_name: str
    class_name: str
    amount: float = 0
    amount_paid: float = 0
    status: str = "unpaid"
    payment_date: str | None = None
    is_scholarship: bool = False
    id: int | None = None

    @property
    def balance(self) -> float:
        return balance(self.amount, self.amount_paid)

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "class": self.class_name,
            "amount": self.amount,
            "amount_paid": self.amount_paid,
            "status": self.status,
            "payment_date": self.payment_date or None,
            "is_scholarship": bool(self.is_scholarship),
        }
        if self.id is not None:
            rec["id"] = self.id
        return rec

    @staticmethod
    def from_record(d: Mapping[str, Any]) -> "Payment":
        return Payment(
            id=_opt_int(d.get("id")),
            student_id=_opt_int(d.get("student_id")) or 0,
            student_name=str(d.get("student_name", "") or ""),
            class_name=str(d.get("class", "") or ""),
            amount=coerce_number(d.get("amount"), lenient=True),
            amount_paid=coerce_number(d.get("amount_paid"), lenient=True),
            status=str(d.get("status", "") or "unpaid"),
            payment_date=d.get("payment_date") or None,
            is_scholarship=bool(d.get("is_scholarship", False)),
        )


# ---------- Students ----------
def fetch_students(store: RecordStore) -> list[Student]:
    return [Student.from_record(r) for r in store.fetch_all(STUDENTS, order_by=["class", "first_name"])]


def upsert_student(store: RecordStore, student: Student) -> Student:
    return Student.from_record(store.upsert(STUDENTS, student.to_record()))


def delete_student(store: RecordStore, student_id: int) -> bool:
    """Remove a student and their payment records."""
    removed = store.delete(STUDENTS, {"id": student_id})
    if removed:
        store.delete(PAYMENTS, {"student_id": student_id})
    return removed > 0


# ---------- Payments ----------
def initial_payment(student: Student, tuition: Mapping[str, Any]) -> Payment:
    """Unpaid tuition record for a newly enrolled student."""
    return Payment(
        student_id=int(student.id or 0),
        student_name=student.name,
        class_name=student.class_name,
        amount=coerce_number(tuition.get(student.class_name), lenient=True),
        amount_paid=0,
        status="unpaid",
    )


def fetch_payments(store: RecordStore) -> list[Payment]:
    return [Payment.from_record(r) for r in store.fetch_all(PAYMENTS, order_by=["class", "student_name"])]


def upsert_payment(store: RecordStore, payment: Payment) -> Payment:
    payment.status = payment_status(payment.amount, payment.amount_paid, payment.is_scholarship)
    return Payment.from_record(store.upsert(PAYMENTS, payment.to_record()))


def enroll_student(store: RecordStore, student: Student, tuition: Mapping[str, Any]) -> tuple[Student, Payment]:
    saved = upsert_student(store, student)
    payment = upsert_payment(store, initial_payment(saved, tuition))
    return saved, payment


# ---------- Tuition ----------
def fetch_tuition(store: RecordStore, defaults: Mapping[str, int] = DEFAULT_TUITION) -> dict[str, int]:
    """Tuition per class: stored amounts over ``defaults``; store failures fall back to ``defaults``."""
    out = dict(defaults)
    try:
        rows = store.fetch_all(TUITION)
    except Exception as e:
        log.warning("Could not load tuition, using defaults: %s", e)
        return out
    for r in rows:
        cls = str(r.get("class", "") or "")
        if cls:
            out[cls] = int(coerce_number(r.get("amount"), lenient=True))
    return out


def set_tuition(store: RecordStore, class_name: str, amount: Any) -> None:
    store.upsert(TUITION, {"class": class_name, "amount": coerce_number(amount)}, on_conflict=("class",))


def get_payment(store: RecordStore, payment_id: int) -> Payment:
    found = store.fetch_all(PAYMENTS, {"id": payment_id})
    if not found:
        raise RecordNotFound(PAYMENTS, payment_id)
    return Payment.from_record(found[0])


def edit_payment(
    store: RecordStore,
    payment_id: int,
    *,
    amount_paid: Any = None,
    payment_date: str | None = None,
    is_scholarship: bool | None = None,
    amount: Any = None,
) -> Payment:
    """Record money received against one payment; ``None`` leaves a field as it is.

    Marking a payment as scholarship settles it in full. Status is derived
    from the resulting amounts.
    """
    payment = get_payment(store, payment_id)
    if amount is not None:
        payment.amount = coerce_number(amount)
    if amount_paid is not None:
        payment.amount_paid = coerce_number(amount_paid)
    if payment_date is not None:
        payment.payment_date = payment_date.strip() or None
    if is_scholarship is not None:
        payment.is_scholarship = bool(is_scholarship)
    if payment.is_scholarship:
        payment.amount_paid = payment.amount
    log.info("Recording payment %s for %s: paid %s", payment_id, payment.student_name, payment.amount_paid)
    return upsert_payment(store, payment)


def reset_payments(store: RecordStore) -> int:
    """Clear received money on every non-scholarship payment, e.g. at the start of a term."""
    count = 0
    for p in fetch_payments(store):
        if p.is_scholarship or p.id is None:
            continue
        p.amount_paid = 0
        p.payment_date = None
        upsert_payment(store, p)
        count += 1
    log.info("Reset %d payment(s)", count)
    return count


def apply_tuition(store: RecordStore, class_name: str, amount: Any) -> int:
    """Set tuition for a class and re-bill every payment in that class."""
    value = coerce_number(amount)
    set_tuition(store, class_name, value)
    count = 0
    for r in store.fetch_all(PAYMENTS, {"class": class_name}):
        p = Payment.from_record(r)
        p.amount = value
        if p.is_scholarship:
            p.amount_paid = value
        upsert_payment(store, p)
        count += 1
    log.info("Tuition for %s set to %s; %d payment(s) updated", class_name, value, count)
    return count
