from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "SchoolDesk Administration Dashboard"

WORKSPACE_ROOT = Path(os.environ.get("SCHOOLDESK_HOME") or Path(__file__).resolve().parents[1])
DATA_XLSX_PATH = WORKSPACE_ROOT / "school_data.xlsx"
SETTINGS_JSON_PATH = WORKSPACE_ROOT / "settings.json"
ERROR_LOG_PATH = WORKSPACE_ROOT / "error_log.txt"

CUSTOM_TABS = "custom_tabs"
STUDENTS = "students"
PAYMENTS = "payments"
TUITION = "tuition"

# Collection fields stored as JSON text in the workbook.
JSON_FIELDS: dict[str, tuple[str, ...]] = {
    CUSTOM_TABS: ("columns", "rows"),
}

CLASS_LIST = [
    "CRECHE",
    "KG 1",
    "KG 2",
    "NURS 1",
    "NURS 2",
    "PRY 1",
    "PRY 2",
    "PRY 3",
    "PRY 4",
    "PRY 5",
]

DEFAULT_TUITION: dict[str, int] = {
    "CRECHE": 14000,
    "KG 1": 21000,
    "KG 2": 21000,
    "NURS 1": 24000,
    "NURS 2": 24000,
    "PRY 1": 27000,
    "PRY 2": 27000,
    "PRY 3": 27000,
    "PRY 4": 27000,
    "PRY 5": 27000,
}

PAYMENT_PRESET = "payment"
PRESETS = (PAYMENT_PRESET,)

STUDENT_NAME = "Student Name"
AMOUNT = "Amount"
DEPOSIT = "Deposit"
BALANCE = "Balance"
DATE_PAID = "DatePaid"
NOTE = "Note"

PAYMENT_COLUMNS = [STUDENT_NAME, AMOUNT, DEPOSIT, BALANCE, DATE_PAID, NOTE]
PAYMENT_NUMERIC_COLUMNS = (AMOUNT, DEPOSIT, BALANCE)
PAYMENT_LOCKED_COLUMNS = (STUDENT_NAME, BALANCE)

BOOKS = "books"
PARTY = "party"
PARTY_CLASS_AMOUNTS = "party_class_amounts"
EXPENSES = "expenses"
SESSIONS = "sessions"

BOOK_TYPES = ("textbook", "notebook")
TERM_KEYS = ("first", "second", "third")
SESSION_TERMS = ("Session", "First Term", "Second Term", "Third Term")
DEFAULT_PARTY_EVENT = "End of Year Party"
