from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import GateTimeout, InvalidTransition, NavigationError, NavigationTimeout, OptionNotFound, RetryExhausted
from .gate import poll_until
from .locators import Locator, PortalLocators
from .session import PageDriver


logger = logging.getLogger(__name__)

_OPTION_LOCATOR = Locator.xpath(".//option")


class NavigationStep(str, Enum):
    START = "start"
    MENU_OPENED = "menu_opened"
    LOGIN_FORM_OPENED = "login_form_opened"
    CREDENTIALS_ENTERED = "credentials_entered"
    AUTHENTICATED = "authenticated"
    BILLING_SCREEN_OPENED = "billing_screen_opened"
    DETAIL_SCREEN_OPENED = "detail_screen_opened"
    RANGE_SELECTED = "range_selected"
    RETURN_TO_PICKER = "return_to_picker"
    DONE = "done"


_ALLOWED: dict[NavigationStep, frozenset[NavigationStep]] = {
    NavigationStep.START: frozenset({NavigationStep.MENU_OPENED}),
    NavigationStep.MENU_OPENED: frozenset({NavigationStep.LOGIN_FORM_OPENED}),
    NavigationStep.LOGIN_FORM_OPENED: frozenset({NavigationStep.CREDENTIALS_ENTERED}),
    NavigationStep.CREDENTIALS_ENTERED: frozenset({NavigationStep.AUTHENTICATED}),
    NavigationStep.AUTHENTICATED: frozenset({NavigationStep.BILLING_SCREEN_OPENED}),
    NavigationStep.BILLING_SCREEN_OPENED: frozenset({NavigationStep.DETAIL_SCREEN_OPENED}),
    NavigationStep.DETAIL_SCREEN_OPENED: frozenset({NavigationStep.RANGE_SELECTED}),
    NavigationStep.RANGE_SELECTED: frozenset(
        {NavigationStep.RANGE_SELECTED, NavigationStep.RETURN_TO_PICKER, NavigationStep.DONE}
    ),
    NavigationStep.RETURN_TO_PICKER: frozenset({NavigationStep.RANGE_SELECTED, NavigationStep.DONE}),
    NavigationStep.DONE: frozenset(),
}


class ActionKind(str, Enum):
    CLICK = "click"
    ENTER_TEXT = "enter_text"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    text: str = field(default="", repr=False)

    @classmethod
    def click(cls) -> "Action":
        return cls(ActionKind.CLICK)

    @classmethod
    def enter_text(cls, text: str) -> "Action":
        return cls(ActionKind.ENTER_TEXT, text)


@dataclass(frozen=True)
class NavigationTiming:
    ready_timeout_s: float = 15.0
    ready_interval_s: float = 0.5
    busy_timeout_s: float = 20.0
    busy_interval_s: float = 1.0
    retry_attempts: int = 10
    retry_backoff_s: float = 1.0


@dataclass
class NavigationState:
    session: PageDriver
    step: NavigationStep = NavigationStep.START
    busy: Optional[bool] = None
    window: Optional[str] = None


class SessionNavigator:
    """
    Drives the portal through its screens, one awaited step at a time.

    Absence while *waiting* is fatal (NavigationTimeout); absence while *acting* is logged and the
    step carries on without doing anything. Later steps rely on that difference.
    """

    def __init__(
        self,
        session: PageDriver,
        *,
        locators: Optional[PortalLocators] = None,
        timing: Optional[NavigationTiming] = None,
        log_steps: bool = False,
    ) -> None:
        self.session = session
        self.locators = locators or PortalLocators()
        self.timing = timing or NavigationTiming()
        self.state = NavigationState(session=session)
        self._log_steps = bool(log_steps)
        self._step_counter = 0
        self._pending: Optional[NavigationStep] = None

    # -- primitives ------------------------------------------------------

    async def await_ready(self, locator: Locator, timeout_s: Optional[float] = None) -> Any:
        timeout = self.timing.ready_timeout_s if timeout_s is None else float(timeout_s)

        async def _probe() -> Any:
            return await self.session.find(locator)

        try:
            return await poll_until(
                _probe,
                timeout_s=timeout,
                interval_s=self.timing.ready_interval_s,
                description=f"element {locator}",
            )
        except GateTimeout as e:
            logger.error("Failed to find the element: %s (%s)", locator, e)
            raise NavigationTimeout(
                f"Element {locator} not ready after {timeout:.1f}s", step=self._step_name(), locator=locator
            ) from e

    async def act(self, locator: Locator, action: Action) -> bool:
        """
        Perform `action` on the element at `locator`. Returns False (without raising) if it is missing.
        """
        performed = await self._try_act(locator, action)
        if not performed:
            logger.warning("Element not found for %s; skipping: %s", action.kind.value, locator)
        return performed

    async def act_with_retry(self, locator: Locator, action: Action, max_attempts: Optional[int] = None) -> None:
        attempts = self.timing.retry_attempts if max_attempts is None else int(max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                if await self._try_act(locator, action):
                    logger.debug("%s succeeded after %d attempt(s): %s", action.kind.value, attempt, locator)
                    return
                logger.info("Retrying to find the element (attempt %d/%d): %s", attempt, attempts, locator)
            except Exception as e:
                logger.info("Failed to %s the element (attempt %d/%d): %s", action.kind.value, attempt, attempts, e)
            if attempt < attempts:
                await asyncio.sleep(self.timing.retry_backoff_s)

        raise RetryExhausted(
            f"Failed to {action.kind.value} {locator} after {attempts} attempts",
            attempts=attempts,
            step=self._step_name(),
            locator=locator,
        )

    async def await_busy_cleared(self, busy_locator: Optional[Locator] = None, timeout_s: Optional[float] = None) -> None:
        """
        Wait for the processing overlay to report idle (aria-hidden="true").
        """
        locator = busy_locator or self.locators.busy_indicator
        timeout = self.timing.busy_timeout_s if timeout_s is None else float(timeout_s)
        element = await self.await_ready(locator)

        async def _probe() -> bool:
            hidden = await self.session.read_attribute(element, "aria-hidden")
            self.state.busy = hidden != "true"
            if self.state.busy:
                logger.debug("Page still busy (aria-hidden=%r)", hidden)
            return not self.state.busy

        try:
            await poll_until(
                _probe,
                timeout_s=timeout,
                interval_s=self.timing.busy_interval_s,
                description=f"busy indicator {locator} to clear",
            )
        except GateTimeout as e:
            raise NavigationTimeout(
                f"Page still busy after {timeout:.1f}s ({locator})", step=self._step_name(), locator=locator
            ) from e

    async def read_option_texts(self, select_locator: Locator) -> list[str]:
        options = await self._options(select_locator)
        return [(await self.session.read_text(o)).strip() for o in options]

    async def select_option(self, select_locator: Locator, index: int) -> None:
        options = await self._options(select_locator)
        if not 0 <= index < len(options):
            raise OptionNotFound(f"#{index}", step=self._step_name(), locator=select_locator)
        await self.session.click(options[index])

    async def scroll_to_bottom(self) -> None:
        await self.session.execute("() => window.scrollTo(0, document.body.scrollHeight)")

    async def go_back(self) -> None:
        await self.session.back()

    # -- steps -----------------------------------------------------------

    async def open_portal(self, url: str, *, viewport: Optional[tuple[int, int]] = None) -> None:
        if self.state.step is not NavigationStep.START:
            raise InvalidTransition(f"open_portal is only valid at start (current={self.state.step.value})")
        if viewport:
            await self.session.resize(*viewport)
        await self.session.goto(url)
        self._log_step(f"open {url}")

    async def open_menu(self) -> None:
        self._begin(NavigationStep.MENU_OPENED)
        await self.await_ready(self.locators.menu_button)
        await self.act(self.locators.menu_button, Action.click())
        self._commit()

    async def open_login_form(self) -> None:
        self._begin(NavigationStep.LOGIN_FORM_OPENED)
        await self.await_ready(self.locators.login_form_link)
        await self.act(self.locators.login_form_link, Action.click())
        self._commit()

    async def enter_credentials(self, user_id: str, password: str) -> None:
        self._begin(NavigationStep.CREDENTIALS_ENTERED)
        await self.await_ready(self.locators.user_id_input)
        await self.act(self.locators.user_id_input, Action.enter_text(user_id))
        await self.act(self.locators.password_input, Action.enter_text(password))
        self._commit()

    async def submit_login(self) -> None:
        self._begin(NavigationStep.AUTHENTICATED)
        await self.act(self.locators.login_submit, Action.click())
        self._commit()

    async def open_billing_screen(self, customer_number: str) -> None:
        self._begin(NavigationStep.BILLING_SCREEN_OPENED)
        # The menu entry only becomes clickable once the login round-trip has finished.
        await self.act_with_retry(self.locators.billing_menu_link, Action.click())
        await self.await_ready(self.locators.customer_number_input)
        await self.await_busy_cleared()
        await self._search_customer(customer_number)
        await self.await_busy_cleared()
        self._commit()

    async def open_detail_screen(self) -> None:
        self._begin(NavigationStep.DETAIL_SCREEN_OPENED)
        await self.await_ready(self.locators.detail_button)
        await self.scroll_to_bottom()
        await self.act(self.locators.detail_button, Action.click())
        self._commit()

    async def select_recent_range(self) -> None:
        self._begin(NavigationStep.RANGE_SELECTED)
        await self.act_with_retry(self.locators.recent_range_option, Action.click())
        await self.await_busy_cleared()
        self._commit(window="recent")

    async def return_to_picker(self) -> None:
        self._begin(NavigationStep.RETURN_TO_PICKER)
        await self.go_back()
        await self.await_ready(self.locators.month_picker)
        await self.await_busy_cleared()
        self._commit(window=None)

    async def month_options(self) -> list[str]:
        if self.state.step is not NavigationStep.RETURN_TO_PICKER and self.state.window != "older":
            raise InvalidTransition(f"month picker is not on screen (current={self.state.step.value})")
        return await self.read_option_texts(self.locators.month_picker)

    async def select_older_window(self, option_index: int, customer_number: str) -> None:
        self._begin(NavigationStep.RANGE_SELECTED)
        await self.select_option(self.locators.month_picker, option_index)
        await self.await_busy_cleared()
        await self._search_customer(customer_number)
        # The previous month's box stays in the DOM until the search round-trip finishes.
        await self.await_busy_cleared()
        await self.await_ready(self.locators.records_container)
        self._commit(window="older")

    def finish(self) -> None:
        self._begin(NavigationStep.DONE)
        self._commit(window=None)

    # -- internals -------------------------------------------------------

    async def _search_customer(self, customer_number: str) -> None:
        await self.act(self.locators.customer_number_input, Action.enter_text(customer_number))
        await self.act(self.locators.search_button, Action.click())

    async def _try_act(self, locator: Locator, action: Action) -> bool:
        element = await self.session.find(locator)
        if element is None:
            return False
        if action.kind is ActionKind.ENTER_TEXT:
            # Text entry failures are logged and the step carries on, like a missing field.
            try:
                await self.session.send_text(element, action.text)
            except Exception as e:
                logger.warning("Failed to enter text into %s: %s", locator, e)
                return True
            logger.debug("%s ok: %s", action.kind.value, locator)
            return True
        try:
            await self.session.click(element)
        except Exception as e:
            raise NavigationError(
                f"Failed to {action.kind.value} {locator}: {e}", step=self._step_name(), locator=locator
            ) from e
        logger.debug("%s ok: %s", action.kind.value, locator)
        return True

    async def _options(self, select_locator: Locator) -> list[Any]:
        select = await self.session.find(select_locator)
        if select is None:
            raise NavigationError(
                f"Failed to find select element {select_locator}", step=self._step_name(), locator=select_locator
            )
        return await self.session.find_all(_OPTION_LOCATOR, scope=select)

    def _begin(self, target: NavigationStep) -> None:
        if target not in _ALLOWED[self.state.step]:
            raise InvalidTransition(f"Cannot go from {self.state.step.value} to {target.value}")
        self._pending = target

    def _commit(self, **updates: Any) -> None:
        assert self._pending is not None
        self.state.step = self._pending
        for k, v in updates.items():
            setattr(self.state, k, v)
        self._pending = None
        self._log_step(self.state.step.value)

    def _step_name(self) -> str:
        return (self._pending or self.state.step).value

    def _log_step(self, name: str) -> None:
        self._step_counter += 1
        level = logging.INFO if self._log_steps else logging.DEBUG
        logger.log(level, "Step %02d %s", self._step_counter, name)
