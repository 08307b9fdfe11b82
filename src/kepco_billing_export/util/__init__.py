from .dates import DateDialect, parse_date, parse_date_range, pivot_label
from .errors import FieldParseError
from .money import parse_amount, parse_usage
from .payment import parse_payment_field

__all__ = [
    "DateDialect",
    "FieldParseError",
    "parse_amount",
    "parse_date",
    "parse_date_range",
    "parse_payment_field",
    "parse_usage",
    "pivot_label",
]
