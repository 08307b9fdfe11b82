from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Callable, Optional

from ..models import BillingRecord
from ..reconcile import merge_passes, oldest_period, resolve_option_index
from ..util.dates import pivot_label
from .errors import NavigationError, OptionNotFound
from .extractor import ANNUAL_CARD, MONTHLY_DETAIL, RecordExtractor, RecordSchema
from .locators import PortalLocators
from .navigator import NavigationTiming, SessionNavigator
from .session import BrowserSession, PageDriver


logger = logging.getLogger(__name__)


SessionFactory = Callable[..., AsyncContextManager[PageDriver]]


@dataclass(frozen=True)
class PortalCredentials:
    user_id: str
    password: str = field(repr=False)
    customer_number: str = ""


class KepcoPortalClient:
    """
    KEPCO online portal automation (`https://online.kepco.co.kr`).

    One `extract()` call = one browser session: login, the recent one-year window, then every older
    month from the pivot onward through the month picker.
    """

    def __init__(
        self,
        *,
        base_url: str,
        creds: PortalCredentials,
        locators: Optional[PortalLocators] = None,
        timing: Optional[NavigationTiming] = None,
        recent_schema: RecordSchema = ANNUAL_CARD,
        older_schema: RecordSchema = MONTHLY_DETAIL,
        session_factory: SessionFactory = BrowserSession,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.creds = creds
        self.locators = locators or PortalLocators()
        self.timing = timing or NavigationTiming()
        self.recent_schema = recent_schema
        self.older_schema = older_schema
        self._session_factory = session_factory

        if self.locators.records_container.kind != "id":
            raise ValueError(f"records_container must be an id locator, got {self.locators.records_container}")

    async def extract(
        self,
        *,
        headless: bool = True,
        viewport: tuple[int, int] = (774, 857),
        slow_mo_ms: int = 0,
        log_steps: bool = False,
        max_concurrency: int = 0,
        include_history: bool = True,
    ) -> list[BillingRecord]:
        t0 = time.time()
        session_kwargs: dict[str, Any] = {
            "headless": headless,
            "viewport_width": viewport[0],
            "viewport_height": viewport[1],
            "slow_mo_ms": slow_mo_ms,
        }
        # Leaving this block tears the browser down, including on fatal navigation errors.
        async with self._session_factory(**session_kwargs) as session:
            navigator = SessionNavigator(session, locators=self.locators, timing=self.timing, log_steps=log_steps)
            records = await self.collect(
                session,
                navigator,
                viewport=viewport,
                max_concurrency=max_concurrency,
                include_history=include_history,
            )
        logger.info("Portal extract complete (records=%d seconds=%.2f)", len(records), time.time() - t0)
        return records

    async def collect(
        self,
        session: PageDriver,
        navigator: SessionNavigator,
        *,
        viewport: Optional[tuple[int, int]] = None,
        max_concurrency: int = 0,
        include_history: bool = True,
    ) -> list[BillingRecord]:
        await self._login(navigator, viewport=viewport)

        await navigator.open_billing_screen(self.creds.customer_number)
        await navigator.open_detail_screen()
        await navigator.select_recent_range()

        recent_extractor = RecordExtractor(session, schema=self.recent_schema, max_concurrency=max_concurrency)
        try:
            row_ids = await recent_extractor.discover_row_ids(self.locators.records_container)
        except NavigationError as e:
            raise NavigationError(str(e), step=navigator.state.step.value, locator=e.locator) from None
        recent = await recent_extractor.extract_all(row_ids)

        pivot = oldest_period(recent)
        if pivot is None or not include_history:
            if pivot is None:
                logger.warning("Recent window returned no records; skipping older windows.")
            navigator.finish()
            return merge_passes(recent)

        older_passes = await self._collect_older_windows(session, navigator, pivot=pivot)
        navigator.finish()

        merged = merge_passes(recent, *older_passes)
        logger.info(
            "Merged %d recent + %d older record(s) into %d",
            len(recent),
            sum(len(p) for p in older_passes),
            len(merged),
        )
        return merged

    async def _login(self, navigator: SessionNavigator, *, viewport: Optional[tuple[int, int]]) -> None:
        await navigator.open_portal(self.base_url, viewport=viewport)
        await navigator.open_menu()
        await navigator.open_login_form()
        await navigator.enter_credentials(self.creds.user_id, self.creds.password)
        await navigator.submit_login()

    async def _collect_older_windows(self, session: PageDriver, navigator: SessionNavigator, *, pivot) -> list[list[BillingRecord]]:
        await navigator.return_to_picker()

        options = await navigator.month_options()
        try:
            start = resolve_option_index(options, pivot)
        except OptionNotFound as e:
            raise OptionNotFound(e.text, step=navigator.state.step.value, locator=self.locators.month_picker) from None

        logger.info(
            "Pivot %s is option %d of %d; fetching %d older window(s)",
            pivot_label(pivot),
            start,
            len(options),
            len(options) - start,
        )

        extractor = RecordExtractor(session, schema=self.older_schema)
        container_id = self.locators.records_container.value
        passes: list[list[BillingRecord]] = []
        for index in range(start, len(options)):
            await navigator.select_older_window(index, self.creds.customer_number)
            window = await extractor.extract_all([container_id])
            logger.debug("Window %r yielded %d record(s)", options[index], len(window))
            passes.append(window)
        return passes
