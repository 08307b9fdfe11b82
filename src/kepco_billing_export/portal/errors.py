from __future__ import annotations

from typing import Optional

from .locators import Locator


class NavigationError(RuntimeError):
    """
    Fatal navigation failure. The run is aborted and the browser session torn down by its owner.
    """

    def __init__(self, message: str, *, step: str = "", locator: Optional[Locator] = None) -> None:
        super().__init__(message)
        self.step = step
        self.locator = locator


class NavigationTimeout(NavigationError):
    """
    An element never became ready, or the busy indicator never cleared, within the timeout.
    """


class RetryExhausted(NavigationError):
    def __init__(self, message: str, *, attempts: int, step: str = "", locator: Optional[Locator] = None) -> None:
        super().__init__(message, step=step, locator=locator)
        self.attempts = attempts


class OptionNotFound(NavigationError):
    def __init__(self, text: str, *, step: str = "", locator: Optional[Locator] = None) -> None:
        super().__init__(f"Option with text {text!r} not found", step=step, locator=locator)
        self.text = text


class InvalidTransition(RuntimeError):
    """
    A navigation step was requested out of order (programming error, not a site failure).
    """


class GateTimeout(TimeoutError):
    """
    Raised by the loading gate when a probe never succeeds within its deadline.
    """
