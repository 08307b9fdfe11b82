from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping, Optional

from ..models import BillingRecord, UsageWindow
from ..util.dates import DateDialect, parse_date, parse_date_range
from ..util.errors import FieldParseError
from ..util.money import parse_amount, parse_usage
from ..util.payment import parse_payment_field
from .errors import NavigationError
from .locators import Locator
from .session import PageDriver


logger = logging.getLogger(__name__)


# Record attributes a field can feed. "payment" is the combined method/date text.
FieldRole = Literal["period", "usage_window", "energy_usage", "billed_amount", "amount_paid", "amount_unpaid", "payment"]


@dataclass(frozen=True)
class FieldSpec:
    """
    Where one field lives inside a row.

    - mode="contains": the `index`-th descendant <span> whose id contains "_txt_<key>"
    - mode="position": the `index`-th <td> cell of a table row
    """

    role: FieldRole
    key: str
    index: int = 0
    mode: Literal["contains", "position"] = "contains"

    def locator(self, row_id: str) -> Locator:
        if self.mode == "position":
            return Locator.xpath(f"//*[@id='{row_id}']/td")
        return Locator.xpath(f"//*[@id='{row_id}']//span[contains(@id, '_txt_{self.key}')]")


@dataclass(frozen=True)
class RecordSchema:
    name: str
    fields: tuple[FieldSpec, ...]
    dialect: DateDialect = DateDialect.DOTTED
    # When False the payment text is kept whole as the method label (no date part).
    split_payment: bool = True


# Annual overview cards (one card per month in the "1년" range).
ANNUAL_CARD = RecordSchema(
    name="annual_card",
    fields=(
        FieldSpec("period", "payYm"),
        FieldSpec("usage_window", "gigan"),
        FieldSpec("energy_usage", "useKwh"),
        FieldSpec("billed_amount", "monthPay"),
        # "_txt_pay" also matches payYm (first in document order); the paid amount is the second hit.
        FieldSpec("amount_paid", "pay", index=1),
        FieldSpec("amount_unpaid", "payAmt"),
        FieldSpec("payment", "payGubnNDay"),
    ),
)

# Single-month detail box shown after picking a month in the historical picker.
MONTHLY_DETAIL = RecordSchema(
    name="monthly_detail",
    fields=(
        FieldSpec("period", "payYm"),
        FieldSpec("energy_usage", "useKwh"),
        FieldSpec("billed_amount", "monthPay"),
        FieldSpec("amount_paid", "pay", index=1),
        FieldSpec("amount_unpaid", "payAmt"),
        FieldSpec("payment", "payGubnNDay"),
    ),
    split_payment=False,
)

# Plain <tr> layout: 청구년월 | 사용량 | 청구금액 | 납부방법/납부일
TABLE_ROW = RecordSchema(
    name="table_row",
    fields=(
        FieldSpec("period", "period", index=0, mode="position"),
        FieldSpec("energy_usage", "usage", index=1, mode="position"),
        FieldSpec("billed_amount", "amount", index=2, mode="position"),
        FieldSpec("payment", "payment", index=3, mode="position"),
    ),
    dialect=DateDialect.KOREAN,
)

SCHEMAS: Mapping[str, RecordSchema] = {s.name: s for s in (ANNUAL_CARD, MONTHLY_DETAIL, TABLE_ROW)}


def build_record(raw: Mapping[str, Optional[str]], schema: RecordSchema) -> BillingRecord:
    """
    Normalize raw field text (keyed by role) into a BillingRecord.

    Missing text (None) falls back to zero/None; present-but-garbled text raises FieldParseError.
    """
    period_raw = raw.get("period")
    if period_raw is None:
        raise FieldParseError("period", "<missing>")
    period = parse_date(period_raw, schema.dialect)

    usage_window: Optional[UsageWindow] = None
    window_raw = raw.get("usage_window")
    if window_raw is not None:
        start, end = parse_date_range(window_raw, schema.dialect)
        if start is not None or end is not None:
            usage_window = UsageWindow(start=start, end=end)

    def _amount(role: str) -> int:
        v = raw.get(role)
        return 0 if v is None else parse_amount(v)

    usage_raw = raw.get("energy_usage")

    payment_method = None
    payment_date = None
    payment_raw = raw.get("payment")
    if payment_raw is not None:
        if schema.split_payment:
            payment_method, payment_date = parse_payment_field(payment_raw, schema.dialect)
        else:
            payment_method = payment_raw.strip() or None

    return BillingRecord(
        period=period,
        usage_window=usage_window,
        energy_usage=0.0 if usage_raw is None else parse_usage(usage_raw),
        billed_amount=_amount("billed_amount"),
        amount_paid=_amount("amount_paid"),
        amount_unpaid=_amount("amount_unpaid"),
        payment_method=payment_method,
        payment_date=payment_date,
    )


def raw_from_row_dict(row: Mapping[str, Any], schema: RecordSchema) -> dict[str, Optional[str]]:
    """
    Map a captured row (e.g. {"payYm": "2023.05", "useKwh": "120kWh"}) onto field roles.
    Either the portal key or the role name is accepted.
    """
    out: dict[str, Optional[str]] = {}
    for spec in schema.fields:
        value = row.get(spec.key, row.get(spec.role))
        out[spec.role] = None if value is None else str(value)
    return out


def records_from_rows(rows: Iterable[Mapping[str, Any]], schema: RecordSchema) -> list[BillingRecord]:
    """
    Offline counterpart of RecordExtractor.extract_all: bad rows are logged and dropped.
    """
    records: list[BillingRecord] = []
    for n, row in enumerate(rows):
        if not isinstance(row, Mapping):
            logger.warning("Skipping row #%d: expected an object, got %s", n, type(row).__name__)
            continue
        row_id = str(row.get("id") or f"#{n}")
        try:
            records.append(build_record(raw_from_row_dict(row, schema), schema))
        except ValueError as e:
            logger.warning("Failed to extract record %s: %s", row_id, e)
    return records


_CHILD_IDS_JS = """
(container) => Array.from(container ? container.children : []).map((c) => c.id || '')
""".strip()


class RecordExtractor:
    """
    Reads one BillingRecord per row id, all rows concurrently.

    Only read calls are issued against the shared session; callers must not navigate while an
    extraction burst is running.
    """

    def __init__(self, session: PageDriver, *, schema: RecordSchema = ANNUAL_CARD, max_concurrency: int = 0) -> None:
        self.session = session
        self.schema = schema
        self.max_concurrency = int(max_concurrency or 0)

    async def discover_row_ids(self, container: Locator) -> list[str]:
        element = await self.session.find(container)
        if element is None:
            raise NavigationError(f"Failed to find records container {container}", locator=container)

        result = await self.session.execute(_CHILD_IDS_JS, element)
        if not isinstance(result, list):
            raise NavigationError(
                f"Expected a list of child ids from {container}, got {type(result).__name__}", locator=container
            )

        ids: list[str] = []
        seen: set[str] = set()
        for item in result:
            if not isinstance(item, str):
                raise NavigationError(f"Expected string child ids from {container}, got {item!r}", locator=container)
            if not item or item in seen:
                continue
            ids.append(item)
            seen.add(item)
        logger.debug("Discovered %d row(s) under %s", len(ids), container)
        return ids

    async def read_field(self, row_id: str, spec: FieldSpec) -> Optional[str]:
        locator = spec.locator(row_id)
        if spec.index == 0 and spec.mode == "contains":
            element = await self.session.find(locator)
        else:
            elements = await self.session.find_all(locator)
            element = elements[spec.index] if spec.index < len(elements) else None
        if element is None:
            return None
        return await self.session.read_text(element)

    async def extract_one(self, row_id: str) -> BillingRecord:
        values = await asyncio.gather(*(self.read_field(row_id, spec) for spec in self.schema.fields))
        raw = {spec.role: value for spec, value in zip(self.schema.fields, values)}
        return build_record(raw, self.schema)

    async def extract_all(self, row_ids: Iterable[str]) -> list[BillingRecord]:
        ids = list(dict.fromkeys(row_ids))
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None

        async def _run(row_id: str) -> BillingRecord:
            if semaphore is None:
                return await self.extract_one(row_id)
            async with semaphore:
                return await self.extract_one(row_id)

        results = await asyncio.gather(*(_run(i) for i in ids), return_exceptions=True)

        records: list[BillingRecord] = []
        for row_id, result in zip(ids, results):
            if isinstance(result, BillingRecord):
                records.append(result)
            elif isinstance(result, FieldParseError):
                logger.warning("Failed to extract record %s: %s", row_id, result)
            else:
                logger.warning("Record task for %s crashed: %r", row_id, result, exc_info=result)

        logger.info("Extracted %d/%d record(s) (schema=%s)", len(records), len(ids), self.schema.name)
        return records
