"""Forward navigation between result pages.

Primary strategy clicks the "next page" button once per page. If a wait or click
fails, the in-page fragment is set to the target page instead and the remaining
clicks are abandoned. Nothing here raises: a page that did not change shows up
later as an unchanged or empty listing count and the caller moves on.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import logging

from .automation import Automation
from .settings import SETTINGS, Settings

logger = logging.getLogger('navigator')

NEXT_PAGE_BUTTON = 'button[data-testid="srp-desktop-page-navigation-next-page"]'
PAGINATION_REVEAL_MS = 800
SCROLL_TOP_SETTLE_MS = 1000


def results_fragment(page: int) -> str:
    return f"resultsPage={page}"


@dataclass
class NavigationResult:
    start: int
    target: int
    clicks: int = 0
    used_fallback: bool = False
    fallback_error: Optional[str] = None


class PageNavigator:
    def __init__(self, automation: Automation, settings: Settings = SETTINGS):
        self.automation = automation
        self.settings = settings

    def _click_next(self):
        a = self.automation
        a.scroll_to_bottom()
        a.wait(PAGINATION_REVEAL_MS)
        a.wait_for_selector(NEXT_PAGE_BUTTON, self.settings.next_button_timeout_ms)
        a.click(NEXT_PAGE_BUTTON, self.settings.next_button_timeout_ms)

    def _jump(self, target: int, result: NavigationResult):
        logger.info('  Falling back to fragment navigation...')
        result.used_fallback = True
        try:
            self.automation.set_fragment(results_fragment(target))
            self.automation.wait(self.settings.fallback_settle_ms)
        except Exception as e:
            result.fallback_error = str(e)
            logger.warning(f"  Fragment navigation failed: {e}")

    def navigate(self, current: int, target: int) -> NavigationResult:
        result = NavigationResult(start=current, target=target)
        if target < current:
            logger.warning(f"Cannot navigate backwards from page {current} to {target}; staying put")
            return result
        if target == current:
            return result
        needed = target - current
        logger.info(f"Navigating from page {current} to page {target} ({needed} clicks)...")
        for i in range(needed):
            try:
                self._click_next()
            except Exception as e:
                logger.warning(f"  Next button click failed: {e}")
                # the fragment jump goes straight to the final target
                self._jump(target, result)
                break
            result.clicks += 1
            logger.info(f"  Clicked Next button ({i + 1}/{needed})")
            self.automation.wait(self.settings.page_settle_ms)
        try:
            self.automation.scroll_to(0)
            self.automation.wait(SCROLL_TOP_SETTLE_MS)
        except Exception as e:
            logger.debug(f"Scroll to top failed: {e}")
        return result
