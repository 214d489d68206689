"""
Shared value helpers for the OINSTEC forms backend.
"""

import math
import re
from datetime import date, datetime
from typing import Any

from dateutil import parser as dateutil_parser

DECIMAL_PATTERN = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


def parse_date(value: str) -> date | None:
    """Parse a date string into a date object.

    Supports ISO 8601 formats (YYYY-MM-DD) and datetime strings.
    Returns None if the value cannot be parsed.
    """
    if not value or not isinstance(value, str):
        return None

    try:
        parsed = dateutil_parser.parse(value)
        # If the input is a datetime, extract just the date part
        if isinstance(parsed, datetime):
            return parsed.date()
        return parsed
    except (ValueError, TypeError, OverflowError):
        return None


def is_sequence(value: Any) -> bool:
    """True for list-like answers (checkbox selections), never for strings."""
    return isinstance(value, (list, tuple))


def is_empty(value: Any) -> bool:
    """An answer is empty when absent, an empty string, or an empty sequence.

    Numeric zero and False are answers, not emptiness.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if is_sequence(value):
        return len(value) == 0
    return False


def to_number(value: Any) -> float:
    """Coerce an answer to a float, or NaN when it is not numeric.

    Only plain decimal strings (optionally signed, with an exponent) are
    numbers; "1_000", "inf" and "nan" are not. Blank strings count as
    missing (NaN), as do sequences and mappings, so any comparison
    against them is False.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if DECIMAL_PATTERN.fullmatch(stripped) is None:
            return math.nan
        return float(stripped)
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without type coercion.

    ``"1"`` never equals ``1`` and booleans never equal numbers, but
    ``1`` equals ``1.0``.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right
