from __future__ import annotations

import re

from .errors import FieldParseError


CURRENCY_GLYPH = "원"
USAGE_UNIT = "kWh"

_INT_RE = re.compile(r"^[-+]?\d+$")
_USAGE_RE = re.compile(r"^\d+(?:\.\d+)?$")


def parse_amount(value: str) -> int:
    """
    Parse values like:
    - "45,000원"
    - "38500"
    - "1,234.5원" -> 12345

    Separators and decimal points are deleted, not interpreted: fractional amounts collapse into
    their digit concatenation.
    """
    if value is None:
        raise FieldParseError("amount", "None")

    s = value.split(CURRENCY_GLYPH, 1)[0]
    s = s.replace(",", "").replace(".", "").strip()
    if not _INT_RE.match(s):
        raise FieldParseError("amount", value)
    return int(s)


def parse_usage(value: str) -> float:
    """
    Parse values like:
    - "120kWh"
    - "1,204 kWh"
    - "99.5"
    """
    if value is None:
        raise FieldParseError("usage", "None")

    s = value.replace(",", "").replace(USAGE_UNIT, "").strip()
    if not _USAGE_RE.match(s):
        raise FieldParseError("usage", value)
    return float(s)
