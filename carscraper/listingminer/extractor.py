"""Per-listing navigate / extract / recover loop for one result page.

Listings are opened by clicking their anchor (the site is an SPA, the detail view
replaces the list in place) and the list is restored with a history back. Every
listing is isolated: whatever goes wrong with listing k, listing k+1 is attempted.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging
import random
import time

from .automation import Automation, AutomationError
from .extraction import DETAIL_MARKER, DETAIL_SNAPSHOT_JS, DOM_SELECTORS, DetailSnapshot, build_record
from .models import ListingRecord
from .publisher import Publisher
from .settings import SETTINGS, Settings
from .logging_config import log_event

logger = logging.getLogger('extractor')

LISTING_ANCHOR = 'a[data-testid="car-blade-link"]'
REVEAL_STEPS = 3
REVEAL_STEP_PX = 1000
REVEAL_FINAL_SETTLE_MS = 3000


def polite_sleep(min_s: float, max_s: float):
    if max_s < min_s:
        max_s = min_s
    if max_s <= 0:
        return
    time.sleep(random.uniform(min_s, max_s))


@dataclass
class PageResult:
    page: int
    found: int = 0
    to_process: int = 0
    saved: int = 0
    invalid: int = 0
    missing: int = 0
    no_detail: int = 0
    failed: int = 0
    return_failed: int = 0
    failed_indexes: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'page': self.page, 'found': self.found, 'to_process': self.to_process, 'saved': self.saved,
            'invalid': self.invalid, 'missing': self.missing, 'no_detail': self.no_detail, 'failed': self.failed,
            'return_failed': self.return_failed,
        }


def _describe(record: ListingRecord, sources: dict):
    def show(v):
        return v if v not in (None, '') else 'NOT FOUND'
    logger.info(f"  VIN: {show(record.vin)}")
    logger.info(f"  Title: {show(record.title)}")
    logger.info(f"  Price: {show(record.price_display or record.price)}")
    logger.info(f"  Year: {show(record.year)}")
    logger.info(f"  Mileage: {show(record.mileage)}")
    logger.info(f"  Body Type: {show(record.body_type)}")
    logger.info(f"  Fuel Type: {show(record.fuel_type)}")
    logger.info(f"  Dealer: {show(record.dealer_name)} - {show(record.dealer_city)}")
    logger.debug(f"  Sources: {sources}")


class ListingExtractor:
    def __init__(self, automation: Automation, publisher: Publisher, settings: Settings = SETTINGS, pause: Optional[Callable[[float, float], None]] = None):
        self.automation = automation
        self.publisher = publisher
        self.settings = settings
        self.pause = pause or polite_sleep

    def reveal_listings(self):
        """Scroll down in steps so lazily rendered listing cards get attached."""
        logger.info('Scrolling to load content...')
        for i in range(REVEAL_STEPS):
            self.automation.scroll_to((i + 1) * REVEAL_STEP_PX, smooth=True)
            self.automation.wait(self.settings.scroll_settle_ms)
        self.automation.wait(REVEAL_FINAL_SETTLE_MS)

    def count_listings(self) -> int:
        return self.automation.count(LISTING_ANCHOR)

    def _back_to_list(self):
        try:
            self.automation.go_back()
            self.automation.wait(self.settings.recover_settle_ms)
        except Exception as e:
            logger.error(f"  Could not navigate back: {e}")

    def process_listing(self, index: int, total: int, page_number: int, search_radius: int, result: PageResult):
        a = self.automation
        logger.info(f"Processing listing {index + 1}/{total}...")
        counted = False
        try:
            if not a.click_nth(LISTING_ANCHOR, index):
                logger.warning(f"  Listing {index + 1} not found in DOM - skipping")
                result.missing += 1
                return
            logger.debug(f"  Clicked listing {index + 1}")
            try:
                a.wait_for_selector(DETAIL_MARKER, self.settings.detail_timeout_ms)
            except AutomationError as e:
                logger.warning(f"  Detail view not loaded: {e}")
                result.no_detail += 1
                log_event('listing_failed', page=page_number, index=index, stage='detail_marker')
                self._back_to_list()
                return
            a.wait(self.settings.detail_render_ms)
            snap = DetailSnapshot.from_raw(a.evaluate(DETAIL_SNAPSHOT_JS, DOM_SELECTORS))
            record, sources = build_record(snap, page_number, search_radius)
            _describe(record, sources)
            if record.is_valid:
                self.publisher.publish(record)
                result.saved += 1
                counted = True
                log_event('listing_saved', page=page_number, index=index, vin=record.vin, title=record.title)
            else:
                logger.warning('  No data found - skipping')
                result.invalid += 1
                counted = True
            logger.info('  Going back to search results...')
            a.go_back()
            a.wait_for_selector(LISTING_ANCHOR, self.settings.list_return_timeout_ms)
            self.pause(self.settings.polite_min, self.settings.polite_max)
        except Exception as e:
            if counted:
                # already saved or rejected; only the way back to the list failed
                logger.warning(f"  Result list did not come back after listing {index + 1}: {e}")
                result.return_failed += 1
                log_event('listing_return_failed', page=page_number, index=index, error=str(e))
            else:
                logger.error(f"Error processing listing {index + 1}: {e}")
                result.failed += 1
                result.failed_indexes.append(index)
                log_event('listing_failed', page=page_number, index=index, stage='extract', error=str(e))
            self._back_to_list()

    def process_page(self, page_number: int, search_radius: int, max_results: int, total: Optional[int] = None) -> PageResult:
        found = self.count_listings() if total is None else total
        result = PageResult(page=page_number, found=found, to_process=min(found, max_results))
        logger.info(f"Will process {result.to_process} car listings")
        for index in range(result.to_process):
            self.process_listing(index, result.to_process, page_number, search_radius, result)
        logger.info(f"Page {page_number} done: saved={result.saved} invalid={result.invalid} missing={result.missing} no_detail={result.no_detail} failed={result.failed} return_failed={result.return_failed}")
        return result
