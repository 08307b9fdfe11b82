from __future__ import annotations

import asyncio
import logging

import pytest

from fake_driver import FakeDriver, FakeElement
from kepco_billing_export.portal.errors import (
    InvalidTransition,
    NavigationError,
    NavigationTimeout,
    OptionNotFound,
    RetryExhausted,
)
from kepco_billing_export.portal.locators import Locator, PortalLocators
from kepco_billing_export.portal.navigator import Action, NavigationStep, NavigationTiming, SessionNavigator


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


def _nav(driver: FakeDriver, **kwargs) -> SessionNavigator:
    return SessionNavigator(driver, timing=FAST, **kwargs)


def test_await_ready_waits_for_late_element() -> None:
    driver = FakeDriver()
    el = driver.element(LOC.menu_button)
    driver.delays[LOC.menu_button] = 3

    assert asyncio.run(_nav(driver).await_ready(LOC.menu_button)) is el


def test_await_ready_timeout_is_fatal_and_names_locator() -> None:
    driver = FakeDriver()
    with pytest.raises(NavigationTimeout) as exc:
        asyncio.run(_nav(driver).await_ready(LOC.menu_button))
    assert exc.value.locator == LOC.menu_button
    assert exc.value.step == "start"


def test_act_on_missing_element_is_soft() -> None:
    driver = FakeDriver()
    assert asyncio.run(_nav(driver).act(LOC.login_submit, Action.click())) is False
    assert driver.actions == []


def test_act_enters_text() -> None:
    driver = FakeDriver()
    driver.element(LOC.user_id_input, name="id")
    assert asyncio.run(_nav(driver).act(LOC.user_id_input, Action.enter_text("me"))) is True
    assert driver.actions == [("type", "id", "me")]


def test_act_text_entry_failure_is_soft() -> None:
    driver = FakeDriver()
    driver.element(LOC.user_id_input, name="id", fail_sends=True)

    assert asyncio.run(_nav(driver).act(LOC.user_id_input, Action.enter_text("me"))) is True
    assert driver.actions == []


def test_enter_credentials_continues_past_failed_text_entry() -> None:
    driver = FakeDriver()
    driver.element(LOC.user_id_input, name="id", fail_sends=True)
    driver.element(LOC.password_input, name="pw")
    nav = _nav(driver)
    nav.state.step = NavigationStep.LOGIN_FORM_OPENED

    asyncio.run(nav.enter_credentials("me", "secret"))

    assert nav.state.step is NavigationStep.CREDENTIALS_ENTERED
    assert driver.actions == [("type", "pw", "secret")]


def test_act_driver_failure_is_navigation_error() -> None:
    driver = FakeDriver()
    driver.element(LOC.login_submit, fail_clicks=1)
    with pytest.raises(NavigationError) as exc:
        asyncio.run(_nav(driver).act(LOC.login_submit, Action.click()))
    assert exc.value.locator == LOC.login_submit


def test_action_repr_hides_text() -> None:
    assert "hunter2" not in repr(Action.enter_text("hunter2"))


def test_act_with_retry_recovers_from_transient_failures() -> None:
    driver = FakeDriver()
    driver.element(LOC.billing_menu_link, name="billing", fail_clicks=2)

    asyncio.run(_nav(driver).act_with_retry(LOC.billing_menu_link, Action.click()))

    assert driver.actions == [("click", "billing")]


def test_act_with_retry_waits_for_missing_element() -> None:
    driver = FakeDriver()
    driver.element(LOC.billing_menu_link, name="billing")
    driver.delays[LOC.billing_menu_link] = 2

    asyncio.run(_nav(driver).act_with_retry(LOC.billing_menu_link, Action.click()))

    assert driver.actions == [("click", "billing")]


def test_act_with_retry_exhausted() -> None:
    driver = FakeDriver()
    with pytest.raises(RetryExhausted) as exc:
        asyncio.run(_nav(driver).act_with_retry(LOC.billing_menu_link, Action.click()))
    assert exc.value.attempts == 3
    assert exc.value.locator == LOC.billing_menu_link


def test_await_busy_cleared_polls_until_hidden() -> None:
    driver = FakeDriver()
    driver.element(LOC.busy_indicator, attrs={"aria-hidden": ["false", "false", "true"]})
    nav = _nav(driver)

    asyncio.run(nav.await_busy_cleared())

    assert nav.state.busy is False


def test_await_busy_cleared_timeout() -> None:
    driver = FakeDriver()
    driver.element(LOC.busy_indicator, attrs={"aria-hidden": "false"})
    nav = _nav(driver)

    with pytest.raises(NavigationTimeout) as exc:
        asyncio.run(nav.await_busy_cleared())
    assert exc.value.locator == LOC.busy_indicator
    assert nav.state.busy is True


def test_await_busy_cleared_requires_indicator() -> None:
    driver = FakeDriver()
    with pytest.raises(NavigationTimeout):
        asyncio.run(_nav(driver).await_busy_cleared())


def test_steps_must_follow_order() -> None:
    driver = FakeDriver()
    driver.element(LOC.login_form_link)
    nav = _nav(driver)
    with pytest.raises(InvalidTransition):
        asyncio.run(nav.open_login_form())
    assert nav.state.step is NavigationStep.START


def test_login_steps_advance_state() -> None:
    driver = FakeDriver()
    for loc in (LOC.menu_button, LOC.login_form_link, LOC.user_id_input, LOC.password_input, LOC.login_submit):
        driver.element(loc, name=loc.value)
    nav = _nav(driver)

    async def _run() -> None:
        await nav.open_portal("https://example.test", viewport=(800, 600))
        await nav.open_menu()
        await nav.open_login_form()
        await nav.enter_credentials("me", "secret")
        await nav.submit_login()

    asyncio.run(_run())

    assert nav.state.step is NavigationStep.AUTHENTICATED
    assert driver.actions[:2] == [("resize", 800, 600), ("goto", "https://example.test")]
    assert ("type", LOC.password_input.value, "secret") in driver.actions
    assert driver.actions[-1] == ("click", LOC.login_submit.value)


def test_open_portal_only_at_start() -> None:
    driver = FakeDriver()
    nav = _nav(driver)
    nav.state.step = NavigationStep.AUTHENTICATED
    with pytest.raises(InvalidTransition):
        asyncio.run(nav.open_portal("https://example.test"))


def test_month_options_requires_picker_screen() -> None:
    driver = FakeDriver()
    with pytest.raises(InvalidTransition):
        asyncio.run(_nav(driver).month_options())


def test_select_option_out_of_range() -> None:
    driver = FakeDriver()
    driver.element(
        LOC.month_picker,
        children={OPTION: [FakeElement("o0", text="2023년 06월"), FakeElement("o1", text="2023년 05월")]},
    )
    nav = _nav(driver)

    assert asyncio.run(nav.read_option_texts(LOC.month_picker)) == ["2023년 06월", "2023년 05월"]
    with pytest.raises(OptionNotFound) as exc:
        asyncio.run(nav.select_option(LOC.month_picker, 5))
    assert exc.value.locator == LOC.month_picker


def test_log_steps_promotes_step_logs_to_info(caplog: pytest.LogCaptureFixture) -> None:
    driver = FakeDriver()
    caplog.set_level(logging.INFO, logger="kepco_billing_export.portal.navigator")

    asyncio.run(_nav(driver, log_steps=True).open_portal("https://example.test"))

    assert "Step 01 open https://example.test" in caplog.messages
