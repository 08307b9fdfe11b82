from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .errors import FieldParseError


class DateDialect(str, Enum):
    """
    Rendered date encodings seen on the portal.

    - DOTTED: "2023.05.17" or truncated "2023.05"
    - KOREAN: "2023년 05월" (day completed as "01일")
    """

    DOTTED = "dotted"
    KOREAN = "korean"


_DOTTED_MONTH_RE = re.compile(r"^\d{4}\.\d{1,2}$")
_KOREAN_MONTH_RE = re.compile(r"^\d{4}년\s*\d{1,2}월$")
_KOREAN_DAY_RE = re.compile(r"^(\d{4})년\s*(\d{1,2})월\s*(\d{1,2})일$")


def parse_date(value: str, dialect: DateDialect = DateDialect.DOTTED) -> date:
    """
    Parse dates like:
    - "2023.05.17"
    - "2023.05"         -> 2023-05-01
    - "2023년 05월"     -> 2023-05-01 (KOREAN dialect)
    - "2023년 05월 17일" (KOREAN dialect)
    """
    if value is None:
        raise FieldParseError("date", "None")
    s = value.strip()
    if not s:
        raise FieldParseError("date", value)

    if dialect is DateDialect.KOREAN:
        if _KOREAN_MONTH_RE.match(s):
            s = f"{s} 01일"
        m = _KOREAN_DAY_RE.match(s)
        if not m:
            raise FieldParseError("date", value)
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            raise FieldParseError("date", value) from None
    else:
        if _DOTTED_MONTH_RE.match(s):
            s = f"{s}.01"
        fmt = "%Y.%m.%d"

    try:
        return datetime.strptime(s, fmt).date()
    except ValueError:
        raise FieldParseError("date", value) from None


def parse_date_range(
    value: str, dialect: DateDialect = DateDialect.DOTTED
) -> tuple[Optional[date], Optional[date]]:
    """
    Parse a metering interval like "2023.04.10-2023.05.09".

    Each side is parsed independently; a side that does not parse becomes None.
    """
    parts = (value or "").split("-")
    start = _parse_or_none(parts[0], dialect)
    end = _parse_or_none(parts[1], dialect) if len(parts) > 1 else None
    return start, end


def _parse_or_none(value: str, dialect: DateDialect) -> Optional[date]:
    try:
        return parse_date(value, dialect)
    except FieldParseError:
        return None


def pivot_label(period: date) -> str:
    # Display text used by the historical range picker, e.g. "2023년 05월".
    return f"{period.year}년 {period.month:02d}월"
