"""Browser automation capability used by the collector.

The filter, navigation and extraction code only talks to the `Automation`
protocol below. `PlaywrightAutomation` is the production implementation on top of
Playwright's sync API; tests drive the same code with a scripted fake.

All waits take milliseconds (Playwright convention). Failures surface as
`AutomationError` subclasses so callers never need to import Playwright.
"""
from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Optional, Protocol, runtime_checkable, TYPE_CHECKING
import logging

if TYPE_CHECKING:  # pragma: no cover
    from playwright.sync_api import Page, BrowserContext  # type: ignore
    from .settings import Settings

logger = logging.getLogger('automation')


class AutomationError(Exception):
    """Base automation failure (element missing, not interactable, navigation error)."""


class AutomationTimeout(AutomationError):
    """A bounded wait expired."""


@runtime_checkable
class Automation(Protocol):
    def goto(self, url: str, timeout_ms: int) -> None: ...
    def current_url(self) -> str: ...
    def title(self) -> str: ...
    def wait_for_selector(self, selector: str, timeout_ms: int, state: str = 'visible') -> None: ...
    def click(self, selector: str, timeout_ms: int) -> None: ...
    def select_option(self, selector: str, value: str, timeout_ms: int) -> None: ...
    def press(self, key: str) -> None: ...
    def mouse_move(self, x: int, y: int) -> None: ...
    def wait(self, ms: int) -> None: ...
    def evaluate(self, script: str, arg: Any = None) -> Any: ...
    def count(self, selector: str) -> int: ...
    def click_nth(self, selector: str, index: int) -> bool: ...
    def scroll_to(self, y: int, smooth: bool = False) -> None: ...
    def scroll_to_bottom(self) -> None: ...
    def set_fragment(self, fragment: str) -> None: ...
    def go_back(self) -> None: ...
    def screenshot(self, full_page: bool = False) -> bytes: ...
    def close(self) -> None: ...


# In-page scripts shared by the Playwright adapter
COUNT_JS = "(sel) => document.querySelectorAll(sel).length"

# Re-resolve by index at call time; the node list may have shifted since the last count.
CLICK_NTH_JS = """([sel, index]) => {
    const nodes = document.querySelectorAll(sel);
    if (!nodes[index]) return false;
    nodes[index].click();
    return true;
}"""

SCROLL_TO_JS = "([y, smooth]) => window.scrollTo({top: y, behavior: smooth ? 'smooth' : 'auto'})"
SCROLL_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"
SET_FRAGMENT_JS = "(fragment) => { window.location.hash = fragment; }"


class PlaywrightAutomation:
    """`Automation` backed by a Playwright sync `Page`."""

    def __init__(self, page: 'Page', context: Optional['BrowserContext'] = None, on_close=None):
        from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError  # type: ignore
        self.page = page
        self.context = context
        self._on_close = on_close
        self._pw_error = PlaywrightError
        self._pw_timeout = PlaywrightTimeoutError

    @contextmanager
    def _translate(self, what: str):
        try:
            yield
        except self._pw_timeout as e:
            raise AutomationTimeout(f"{what}: {e}") from e
        except self._pw_error as e:
            raise AutomationError(f"{what}: {e}") from e

    def goto(self, url: str, timeout_ms: int) -> None:
        with self._translate(f"goto {url}"):
            self.page.goto(url, wait_until='domcontentloaded', timeout=timeout_ms)

    def current_url(self) -> str:
        return self.page.url

    def title(self) -> str:
        with self._translate('title'):
            return self.page.title()

    def wait_for_selector(self, selector: str, timeout_ms: int, state: str = 'visible') -> None:
        with self._translate(f"wait {selector}"):
            self.page.wait_for_selector(selector, state=state, timeout=timeout_ms)

    def click(self, selector: str, timeout_ms: int) -> None:
        with self._translate(f"click {selector}"):
            self.page.click(selector, timeout=timeout_ms)

    def select_option(self, selector: str, value: str, timeout_ms: int) -> None:
        with self._translate(f"select {selector}={value}"):
            self.page.select_option(selector, value, timeout=timeout_ms)

    def press(self, key: str) -> None:
        with self._translate(f"press {key}"):
            self.page.keyboard.press(key)

    def mouse_move(self, x: int, y: int) -> None:
        with self._translate('mouse move'):
            self.page.mouse.move(x, y)

    def wait(self, ms: int) -> None:
        if ms > 0:
            self.page.wait_for_timeout(ms)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        with self._translate('evaluate'):
            return self.page.evaluate(script, arg)

    def count(self, selector: str) -> int:
        return int(self.evaluate(COUNT_JS, selector) or 0)

    def click_nth(self, selector: str, index: int) -> bool:
        return bool(self.evaluate(CLICK_NTH_JS, [selector, index]))

    def scroll_to(self, y: int, smooth: bool = False) -> None:
        self.evaluate(SCROLL_TO_JS, [y, smooth])

    def scroll_to_bottom(self) -> None:
        self.evaluate(SCROLL_BOTTOM_JS)

    def set_fragment(self, fragment: str) -> None:
        self.evaluate(SET_FRAGMENT_JS, fragment)

    def go_back(self) -> None:
        with self._translate('go back'):
            self.page.go_back()

    def screenshot(self, full_page: bool = False) -> bytes:
        with self._translate('screenshot'):
            return self.page.screenshot(full_page=full_page)

    def close(self) -> None:
        try:
            if self.context is not None:
                self.context.close()
        except self._pw_error:
            logger.debug('Context close failed', exc_info=True)
        finally:
            if self._on_close is not None:
                self._on_close()


def launch_playwright(settings: 'Settings') -> PlaywrightAutomation:
    """Start Chromium with the configured context options and return an adapter.

    Closing the adapter closes the context, the browser and the Playwright driver.
    """
    # Lazy import: Playwright is heavy and not needed for planning / tests.
    from playwright.sync_api import sync_playwright  # type: ignore
    pw = sync_playwright().start()
    try:
        browser = pw.chromium.launch(headless=settings.headless)
        context = browser.new_context(
            viewport={'width': settings.viewport_width, 'height': settings.viewport_height},
            user_agent=settings.user_agent,
            locale=settings.locale,
            timezone_id=settings.timezone_id,
            geolocation={'longitude': settings.geo_longitude, 'latitude': settings.geo_latitude},
            permissions=['geolocation'],
        )
        page = context.new_page()
    except Exception:
        pw.stop()
        raise

    def _shutdown():
        try:
            browser.close()
        finally:
            pw.stop()

    return PlaywrightAutomation(page, context=context, on_close=_shutdown)
