from __future__ import annotations

import pytest

from schooldesk.amounts import balance, coerce_number, format_naira
from schooldesk.errors import ValidationError


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0), ("", 0), ("  ", 0), ("10000", 10000), ("10,000", 10000), (" 2.5 ", 2.5), (3.0, 3), (12, 12), ("-50", -50)],
)
def test_coerce_number(raw, expected):
    value = coerce_number(raw)
    assert value == expected
    assert type(value) is type(expected)


@pytest.mark.parametrize("raw", ["abc", "12abc", "nan", "inf", True, object()])
def test_coerce_number_rejects(raw):
    with pytest.raises(ValidationError):
        coerce_number(raw)
    assert coerce_number(raw, lenient=True) == 0


def test_balance_never_negative():
    assert balance(27000, 10000) == 17000
    assert balance(1000, 5000) == 0
    assert balance("", "junk") == 0


@pytest.mark.parametrize(
    "value, expected",
    [(27000, "₦27,000"), ("1500.5", "₦1,500.5"), (0, "₦0"), (None, "₦0"), ("", "₦0"), ("n/a", "₦0")],
)
def test_format_naira(value, expected):
    assert format_naira(value) == expected


def test_format_naira_custom_symbol():
    assert format_naira(1234567, symbol="N") == "N1,234,567"
