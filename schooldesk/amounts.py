"""Currency helpers shared by custom tabs and the payment views."""
from __future__ import annotations

import math
from typing import Any, Union

from .errors import ValidationError

Number = Union[int, float]


def coerce_number(raw: Any, *, lenient: bool = False) -> Number:
    """Turn user input into a number.

    Blank input is 0. Integral values come back as ``int``. Anything that does
    not parse raises ``ValidationError``, or becomes 0 when ``lenient`` is set.
    """
    if raw is None:
        return 0
    if isinstance(raw, bool):
        num: Any = None
    elif isinstance(raw, (int, float)):
        num = raw
    else:
        text = str(raw).strip().replace(",", "")
        if text == "":
            return 0
        try:
            num = float(text)
        except ValueError:
            num = None

    if num is None or not math.isfinite(num):
        if lenient:
            return 0
        raise ValidationError(f"{raw!r} is not a valid amount")
    if isinstance(num, float) and num.is_integer():
        return int(num)
    return num


def balance(amount: Any, deposit: Any) -> Number:
    """Outstanding amount, never below zero."""
    return max(0, coerce_number(amount, lenient=True) - coerce_number(deposit, lenient=True))


def format_naira(value: Any, symbol: str = "₦") -> str:
    if value is None or value == "":
        return f"{symbol}0"
    try:
        n = coerce_number(value)
    except ValidationError:
        return f"{symbol}0"
    if isinstance(n, float):
        return f"{symbol}{n:,.2f}".rstrip("0").rstrip(".")
    return f"{symbol}{n:,}"
