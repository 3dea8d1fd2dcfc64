"""Cross-cutting views derived from the students and payments collections."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .constants import CLASS_LIST
from .records import Payment, Student


@dataclass(frozen=True)
class Debtor:
    name: str
    debt: float


@dataclass
class DashboardSummary:
    total_students: int
    total_debtors: int
    scholarship_students: int
    outstanding: float
    class_counts: dict[str, int] = field(default_factory=dict)


def debtors_by_class(payments: Iterable[Payment], classes: Sequence[str] = CLASS_LIST) -> dict[str, list[Debtor]]:
    """Payments that are not settled and still owe something, grouped by class.

    Every class in ``classes`` gets a key, even when nobody in it owes.
    """
    by_class: dict[str, list[Debtor]] = {cls: [] for cls in classes}
    for p in payments:
        debt = p.balance
        if p.status != "paid" and debt > 0:
            by_class.setdefault(p.class_name, []).append(Debtor(p.student_name, debt))
    return by_class


def total_debtors(debtors: dict[str, list[Debtor]]) -> int:
    return sum(len(v) for v in debtors.values())


def class_counts(students: Iterable[Student], classes: Sequence[str] = CLASS_LIST) -> dict[str, int]:
    counts = {cls: 0 for cls in classes}
    for s in students:
        counts[s.class_name] = counts.get(s.class_name, 0) + 1
    return counts


def scholarship_count(payments: Iterable[Payment]) -> int:
    return sum(1 for p in payments if p.is_scholarship or p.status == "scholarship")


def dashboard_summary(
    students: Sequence[Student],
    payments: Sequence[Payment],
    classes: Sequence[str] = CLASS_LIST,
) -> DashboardSummary:
    debtors = debtors_by_class(payments, classes)
    return DashboardSummary(
        total_students=len(students),
        total_debtors=total_debtors(debtors),
        scholarship_students=scholarship_count(payments),
        outstanding=sum(d.debt for lst in debtors.values() for d in lst),
        class_counts=class_counts(students, classes),
    )


def _money(v: float) -> str:
    return f"{v:,.0f}" if float(v).is_integer() else f"{v:,.2f}"


def debtor_report(debtors: dict[str, list[Debtor]]) -> str:
    """Plain-text debtor list, one block per class, for pasting into messages."""
    blocks = []
    for cls, lst in debtors.items():
        if not lst:
            continue
        total = sum(d.debt for d in lst)
        lines = "\n".join(f"{d.name}: N{_money(d.debt)}" for d in lst)
        blocks.append(f"{cls.upper()}\nTotal Outstanding: N{_money(total)}\n{lines}")
    return "\n\n".join(blocks)
