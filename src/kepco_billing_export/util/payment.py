from __future__ import annotations

from datetime import date
from typing import Optional

from .dates import DateDialect, parse_date
from .errors import FieldParseError


def parse_payment_field(
    value: str, dialect: DateDialect = DateDialect.DOTTED
) -> tuple[Optional[str], Optional[date]]:
    """
    Split a combined "method/date" field, e.g. "자동이체/2023.05.20".

    - empty method -> None
    - missing or unparseable date -> None (trailing junk must not fail the whole record)
    """
    parts = (value or "").split("/")

    method = parts[0].strip() or None

    payment_date: Optional[date] = None
    if len(parts) > 1:
        try:
            payment_date = parse_date(parts[1], dialect)
        except FieldParseError:
            payment_date = None

    return method, payment_date
