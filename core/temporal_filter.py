"""
Temporal filter: date range and time-span restriction for observations.

Dates are digit strings in YYYY, YYYYMM or YYYYMMDD form. Range checks use
plain string comparison, which orders same-length dates chronologically;
callers choosing mixed lengths (start "2010", end "20101231") get the
store's lexical semantics on purpose: "2010" <= "201001" <= "20101231".
"""

import re
from enum import Enum
from typing import Iterable, Optional

from core.errors import ValidationError

DATE_PATTERN = re.compile(r"^[0-9]{4}([0-9]{2}([0-9]{2})?)?$")


class DateSpan(str, Enum):
    DAY = "std_date_span_day"
    MONTH = "std_date_span_month"
    YEAR = "std_date_span_year"

    @classmethod
    def parse(cls, value) -> "DateSpan":
        """Accept the stored token or its short form ('day', 'MONTH', ...)."""
        if isinstance(value, cls):
            return value
        token = str(value).strip().lower()
        if not token.startswith("std_date_span_"):
            token = f"std_date_span_{token}"
        try:
            return cls(token)
        except ValueError:
            raise ValidationError(
                f"Time span must be day, month or year, got {value!r}", field="std_date_span",
            ) from None


def validate_date(value: Optional[str], field: str = "date") -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    if not DATE_PATTERN.match(value):
        raise ValidationError(
            f"Date must be formatted as YYYY, YYYYMM or YYYYMMDD, got {value!r}", field=field,
        )
    return value


def in_range(date: Optional[str], start: Optional[str] = None, end: Optional[str] = None) -> bool:
    """True iff (start absent or date >= start) and (end absent or date <= end)."""
    if date is None:
        return start is None and end is None
    if start is not None and date < start:
        return False
    if end is not None and date > end:
        return False
    return True


def matches_span(span, requested: Optional[Iterable]) -> bool:
    """Set membership; an empty request means every span."""
    requested = {DateSpan.parse(s) for s in (requested or ())}
    if not requested:
        return True
    try:
        return DateSpan.parse(span) in requested
    except ValidationError:
        return False
