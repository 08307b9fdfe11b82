from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Optional

import pytest

from fake_driver import FakeDriver, FakeElement, add_row
from kepco_billing_export.portal.client import KepcoPortalClient, PortalCredentials
from kepco_billing_export.portal.errors import NavigationError, NavigationTimeout, OptionNotFound
from kepco_billing_export.portal.extractor import ANNUAL_CARD, MONTHLY_DETAIL
from kepco_billing_export.portal.locators import Locator, PortalLocators
from kepco_billing_export.portal.navigator import NavigationTiming


FAST = NavigationTiming(
    ready_timeout_s=0.05,
    ready_interval_s=0.001,
    busy_timeout_s=0.05,
    busy_interval_s=0.001,
    retry_attempts=3,
    retry_backoff_s=0,
)
LOC = PortalLocators()
OPTION = Locator.xpath(".//option")
CONTAINER_ID = LOC.records_container.value

OPTIONS = ["2023년 06월", "2023년 05월", "2023년 04월", "2023년 03월"]


def build_portal(
    recent: dict[str, dict[str, str]],
    windows: dict[str, Optional[dict[str, str]]],
) -> FakeDriver:
    """
    A fake KEPCO site: login widgets, the recent card list, and a month picker.

    Picking an option only selects a month. The single-month box under the records container is
    swapped once a search has been clicked and the busy overlay is next polled.
    """
    driver = FakeDriver()
    for loc in (
        LOC.menu_button,
        LOC.login_form_link,
        LOC.user_id_input,
        LOC.password_input,
        LOC.login_submit,
        LOC.billing_menu_link,
        LOC.customer_number_input,
        LOC.detail_button,
        LOC.recent_range_option,
        LOC.records_container,
    ):
        driver.element(loc, name=loc.value)
    driver.element(LOC.busy_indicator, attrs={"aria-hidden": "true"})

    month: dict[str, Any] = {}

    def _search(d: FakeDriver) -> None:
        if "selected" in month:
            month["pending"] = month["selected"]

    driver.element(LOC.search_button, name=LOC.search_button.value, on_click=_search)

    def _render_on_busy_poll(d: FakeDriver, element: FakeElement, name: str) -> None:
        if "pending" not in month:
            return
        texts = month.pop("pending")
        for spec in MONTHLY_DETAIL.fields:
            d.remove(spec.locator(CONTAINER_ID))
        if texts is not None:
            add_row(d, MONTHLY_DETAIL, CONTAINER_ID, **texts)

    driver.on_read_attribute = _render_on_busy_poll

    for row_id, texts in recent.items():
        add_row(driver, ANNUAL_CARD, row_id, **texts)

    def on_execute(script: str, arg: Any) -> Any:
        if "children" in script:
            return list(recent)
        return None

    driver.on_execute = on_execute

    def _select(texts: Optional[dict[str, str]]):
        def _click(d: FakeDriver) -> None:
            month["selected"] = texts

        return _click

    options = [FakeElement(f"option {label}", text=label, on_click=_select(texts)) for label, texts in windows.items()]

    def on_back(d: FakeDriver) -> None:
        d.element(LOC.month_picker, name="month_picker", children={OPTION: options})

    driver.on_back = on_back
    return driver


RECENT = {
    "card_0": {"payYm": "2023.06", "useKwh": "130kWh", "monthPay": "47,000원", "payGubnNDay": "자동이체/2023.06.20"},
    "card_1": {"payYm": "2023.05", "useKwh": "120kWh", "monthPay": "45,000원", "payGubnNDay": "자동이체/2023.05.20"},
}
WINDOWS: dict[str, Optional[dict[str, str]]] = {
    "2023년 06월": {"payYm": "2023.06", "monthPay": "1원"},
    "2023년 05월": {"payYm": "2023.05", "monthPay": "1원"},
    "2023년 04월": {"payYm": "2023.04", "useKwh": "99kWh", "monthPay": "38,500원", "payGubnNDay": "지로납부"},
    "2023년 03월": {"payYm": "2023.03", "monthPay": "30,000원"},
}


def _client(**kwargs) -> KepcoPortalClient:
    return KepcoPortalClient(
        base_url="https://online.kepco.co.kr/",
        creds=PortalCredentials(user_id="me", password="secret", customer_number="0123456789"),
        timing=FAST,
        **kwargs,
    )


def _factory(driver: FakeDriver, seen: Optional[dict] = None):
    def factory(**kwargs):
        if seen is not None:
            seen.update(kwargs)
        return driver

    return factory


def test_extract_merges_recent_and_older_windows() -> None:
    driver = build_portal(RECENT, WINDOWS)
    seen: dict = {}
    client = _client(session_factory=_factory(driver, seen))

    records = asyncio.run(client.extract(headless=False, viewport=(800, 600)))

    assert [r.period for r in records] == [date(2023, 6, 1), date(2023, 5, 1), date(2023, 4, 1), date(2023, 3, 1)]
    # The pivot month is re-fetched by the first older window; the recent card wins.
    assert records[1].billed_amount == 45000
    assert records[1].payment_date == date(2023, 5, 20)
    assert records[2].energy_usage == 99.0
    assert records[2].payment_method == "지로납부"
    assert records[2].usage_window is None
    assert driver.closed is True
    assert seen == {"headless": False, "viewport_width": 800, "viewport_height": 600, "slow_mo_ms": 0}
    assert ("goto", "https://online.kepco.co.kr") in driver.actions


def test_extract_reads_each_month_only_after_its_search_settles() -> None:
    driver = build_portal(RECENT, WINDOWS)

    records = asyncio.run(_client(session_factory=_factory(driver)).extract())

    amounts = {r.period: r.billed_amount for r in records}
    assert amounts == {
        date(2023, 6, 1): 47000,
        date(2023, 5, 1): 45000,
        date(2023, 4, 1): 38500,
        date(2023, 3, 1): 30000,
    }


def test_extract_only_visits_options_from_pivot_onward() -> None:
    driver = build_portal(RECENT, WINDOWS)
    asyncio.run(_client(session_factory=_factory(driver)).extract())

    clicked = [a[1] for a in driver.actions if a[0] == "click" and a[1].startswith("option ")]
    assert clicked == ["option 2023년 05월", "option 2023년 04월", "option 2023년 03월"]


def test_extract_searches_customer_number_every_window() -> None:
    driver = build_portal(RECENT, WINDOWS)
    asyncio.run(_client(session_factory=_factory(driver)).extract())

    typed = [a for a in driver.actions if a[0] == "type" and a[1] == LOC.customer_number_input.value]
    # billing screen + three older windows
    assert len(typed) == 4
    assert all(a[2] == "0123456789" for a in typed)


def test_extract_recent_only_skips_picker() -> None:
    driver = build_portal(RECENT, WINDOWS)
    records = asyncio.run(_client(session_factory=_factory(driver)).extract(include_history=False))

    assert [r.period for r in records] == [date(2023, 6, 1), date(2023, 5, 1)]
    assert ("back",) not in driver.actions


def test_extract_empty_recent_window_skips_history() -> None:
    driver = build_portal({}, WINDOWS)
    records = asyncio.run(_client(session_factory=_factory(driver)).extract())

    assert records == []
    assert ("back",) not in driver.actions
    assert driver.closed is True


def test_extract_tolerates_failing_older_window() -> None:
    windows = dict(WINDOWS)
    windows["2023년 04월"] = {"payYm": "2023.04", "monthPay": "N/A"}
    driver = build_portal(RECENT, windows)

    records = asyncio.run(_client(session_factory=_factory(driver)).extract())

    assert [r.period for r in records] == [date(2023, 6, 1), date(2023, 5, 1), date(2023, 3, 1)]


def test_extract_pivot_missing_from_picker_is_fatal() -> None:
    windows = {"2023년 06월": None, "2023년 04월": None}
    driver = build_portal(RECENT, windows)

    with pytest.raises(OptionNotFound) as exc:
        asyncio.run(_client(session_factory=_factory(driver)).extract())

    assert exc.value.text == "2023년 05월"
    assert exc.value.locator == LOC.month_picker
    assert driver.closed is True


def test_extract_closes_session_on_navigation_timeout() -> None:
    driver = build_portal(RECENT, WINDOWS)
    driver.remove(LOC.menu_button)

    with pytest.raises(NavigationTimeout) as exc:
        asyncio.run(_client(session_factory=_factory(driver)).extract())

    assert exc.value.step == "menu_opened"
    assert exc.value.locator == LOC.menu_button
    assert driver.closed is True


def test_client_requires_id_records_container() -> None:
    locators = PortalLocators().with_overrides({"records_container": "css=div.cards"})
    with pytest.raises(ValueError):
        _client(locators=locators)


def test_credentials_repr_hides_password() -> None:
    assert "secret" not in repr(PortalCredentials(user_id="me", password="secret"))


def test_extract_row_discovery_failure_names_step_and_container() -> None:
    driver = build_portal(RECENT, WINDOWS)
    driver.on_execute = lambda script, arg: None

    with pytest.raises(NavigationError) as exc:
        asyncio.run(_client(session_factory=_factory(driver)).extract())

    assert exc.value.step == "range_selected"
    assert exc.value.locator == LOC.records_container
    assert driver.closed is True
