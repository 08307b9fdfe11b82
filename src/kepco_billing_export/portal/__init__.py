from .errors import NavigationError, NavigationTimeout, OptionNotFound, RetryExhausted
from .locators import Locator, PortalLocators

__all__ = [
    "Locator",
    "PortalLocators",
    "NavigationError",
    "NavigationTimeout",
    "OptionNotFound",
    "RetryExhausted",
]
