from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, Playwright, async_playwright

from .locators import Locator


logger = logging.getLogger(__name__)


class PageDriver(Protocol):
    """
    Everything the navigator and extractor may ask of the browser. Nothing else is used.

    Elements are opaque handles returned by `find`/`find_all`. Read calls may run concurrently;
    mutating calls (click, send_text, goto, back, resize) are only issued serially.
    """

    async def find(self, locator: Locator, *, scope: Any = None) -> Optional[Any]: ...

    async def find_all(self, locator: Locator, *, scope: Any = None) -> list[Any]: ...

    async def click(self, element: Any) -> None: ...

    async def send_text(self, element: Any, text: str) -> None: ...

    async def read_attribute(self, element: Any, name: str) -> Optional[str]: ...

    async def read_text(self, element: Any) -> str: ...

    async def execute(self, script: str, arg: Any = None) -> Any: ...

    async def goto(self, url: str) -> None: ...

    async def back(self) -> None: ...

    async def resize(self, width: int, height: int) -> None: ...

    async def close(self) -> None: ...


def to_selector(locator: Locator) -> str:
    # Playwright selector engines share the Locator kind names.
    return f"{locator.kind}={locator.value}"


_SELECT_OPTION_JS = """
(option) => {
  const select = option.closest('select');
  option.selected = true;
  if (select) {
    select.dispatchEvent(new Event('input', { bubbles: true }));
    select.dispatchEvent(new Event('change', { bubbles: true }));
  }
}
""".strip()


class BrowserSession:
    """
    The single remote browser session for a run.

    Use as `async with BrowserSession(...) as session:`; leaving the block (normally or through a fatal
    error) closes the page context, the browser and the Playwright driver process exactly once.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        viewport_width: int = 774,
        viewport_height: int = 857,
        slow_mo_ms: int = 0,
        action_timeout_ms: int = 10_000,
    ) -> None:
        self.headless = headless
        self.viewport_width = int(viewport_width)
        self.viewport_height = int(viewport_height)
        self.slow_mo_ms = int(slow_mo_ms or 0)
        self.action_timeout_ms = int(action_timeout_ms)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._launch(self._playwright)
            self._context = await self._browser.new_context(
                viewport={"width": self.viewport_width, "height": self.viewport_height},
                color_scheme="light",
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(self.action_timeout_ms)
        except BaseException:
            await self.close()
            raise
        logger.debug("Browser session opened (headless=%s)", self.headless)

    async def _launch(self, p: Playwright) -> Browser:
        # Prefer Playwright's bundled Chromium, but fall back to a system-installed browser if the
        # cache doesn't have Playwright browsers available.
        try:
            return await p.chromium.launch(headless=self.headless, slow_mo=self.slow_mo_ms)
        except Exception as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg:
                raise

            logger.warning(
                "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                msg,
            )
            try:
                return await p.chromium.launch(headless=self.headless, slow_mo=self.slow_mo_ms, channel="chrome")
            except Exception:
                return await p.chromium.launch(headless=self.headless, slow_mo=self.slow_mo_ms, channel="msedge")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for name, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception:
                logger.debug("Failed to close %s (already gone?).", name, exc_info=True)

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        logger.debug("Browser session closed")

    # -- PageDriver -------------------------------------------------------

    async def find(self, locator: Locator, *, scope: Any = None) -> Optional[ElementHandle]:
        root = scope if scope is not None else self.page
        return await root.query_selector(to_selector(locator))

    async def find_all(self, locator: Locator, *, scope: Any = None) -> list[ElementHandle]:
        root = scope if scope is not None else self.page
        return await root.query_selector_all(to_selector(locator))

    async def click(self, element: ElementHandle) -> None:
        tag = str(await element.evaluate("(e) => e.tagName") or "").upper()
        if tag == "OPTION":
            # Native <option> elements are not clickable targets in Playwright; select them instead.
            await element.evaluate(_SELECT_OPTION_JS)
            return
        await element.click()

    async def send_text(self, element: ElementHandle, text: str) -> None:
        await element.fill(text)

    async def read_attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        return await element.get_attribute(name)

    async def read_text(self, element: ElementHandle) -> str:
        text = await element.inner_text()
        if not text:
            text = await element.text_content() or ""
        return text

    async def execute(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def goto(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded")

    async def back(self) -> None:
        await self.page.go_back(wait_until="domcontentloaded")

    async def resize(self, width: int, height: int) -> None:
        await self.page.set_viewport_size({"width": int(width), "height": int(height)})
