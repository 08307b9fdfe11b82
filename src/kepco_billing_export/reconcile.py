from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional, Sequence

from .models import BillingRecord
from .portal.errors import OptionNotFound
from .util.dates import pivot_label


logger = logging.getLogger(__name__)


def merge_passes(*passes: Iterable[BillingRecord]) -> list[BillingRecord]:
    """
    Combine fetch passes into one list: one record per period, newest first.

    When periods collide the record from the earlier pass wins (later passes are older windows
    that may re-fetch the pivot month).
    """
    by_period: dict[date, BillingRecord] = {}
    dropped = 0
    for records in passes:
        for record in records:
            if record.period in by_period:
                dropped += 1
                continue
            by_period[record.period] = record

    if dropped:
        logger.debug("Dropped %d duplicate period(s) while merging", dropped)
    return sorted(by_period.values(), key=lambda r: r.period, reverse=True)


def oldest_period(records: Iterable[BillingRecord]) -> Optional[date]:
    periods = [r.period for r in records]
    return min(periods) if periods else None


def resolve_option_index(option_texts: Sequence[str], period: date) -> int:
    """
    Index of the picker option whose text is exactly the period's "YYYY년 MM월" label.
    """
    label = pivot_label(period)
    for index, text in enumerate(option_texts):
        if (text or "").strip() == label:
            return index
    raise OptionNotFound(label)


def filter_since(records: Iterable[BillingRecord], since: Optional[date]) -> list[BillingRecord]:
    if since is None:
        return list(records)
    cutoff = since.replace(day=1)
    return [r for r in records if r.period >= cutoff]
