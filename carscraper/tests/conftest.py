"""Global pytest fixtures.
 - Sets env vars to disable logging side effects and pacing delays.
 - Provides `FakeAutomation`, a scripted stand-in for the browser with a result list
   per page and a detail view per listing.
"""
from __future__ import annotations
import os

# log switches are read per call; pacing is zeroed again in fast_settings
os.environ.setdefault('SCRAPER_DISABLE_FILE_LOGS', '1')
os.environ.setdefault('SCRAPER_DISABLE_EVENTS', '1')
os.environ.setdefault('SCRAPER_POLITE_MIN', '0')
os.environ.setdefault('SCRAPER_POLITE_MAX', '0')

import dataclasses
import re
from typing import Any, Dict, List, Optional

import pytest

from carscraper.listingminer.automation import AutomationError, AutomationTimeout
from carscraper.listingminer.extraction import DETAIL_MARKER, DETAIL_SNAPSHOT_JS
from carscraper.listingminer.extractor import LISTING_ANCHOR
from carscraper.listingminer.navigator import NEXT_PAGE_BUTTON
from carscraper.listingminer.settings import SETTINGS

BASE_URL = 'https://listings.test/Cars/l-Used-SUV-Crossover-bg7'
FILTERED_URL = BASE_URL + '?searchId=abc123&zip=M5V'


def make_listing(vin: Optional[str] = 'VIN0001', title: Optional[str] = '2020 Ford Escape', **extra) -> Dict[str, Any]:
    dom = {'vin': vin, 'title': title, 'price': '$36,500', 'year': '2020', 'make': 'Ford', 'model': 'Escape'}
    dom.update(extra.pop('dom', {}))
    return {
        'snapshot': {
            'dom': dom,
            'preflight': extra.pop('preflight', {'listing': {'dealRating': 'GOOD_PRICE'}}),
            'url': extra.pop('url', f"{FILTERED_URL}#listing={vin or title}"),
        },
        **extra,
    }


class FakeAutomation:
    """Scripted browser.

    pages: page number -> list of listing dicts (see make_listing). A listing may set
    ``no_detail=True`` (detail marker never shows) or ``explode=True`` (snapshot raises).
    broken: selectors whose wait/click raises AutomationTimeout.
    """

    def __init__(self, pages: Optional[Dict[int, List[Dict[str, Any]]]] = None, broken=(), fragment_works: bool = True):
        self.pages = pages or {}
        self.broken = set(broken)
        self.fragment_works = fragment_works
        self.page = 1
        self.view = 'list'
        self.open_index: Optional[int] = None
        self.url = 'about:blank'
        self.calls: List[tuple] = []
        self.clicked: List[str] = []
        self.keys: List[str] = []
        self.opened: List[tuple] = []
        self.waited_ms = 0
        self.closed = False

    def _check(self, selector: str):
        if selector in self.broken:
            raise AutomationTimeout(f"Timeout waiting for {selector}")

    @property
    def listings(self) -> List[Dict[str, Any]]:
        return self.pages.get(self.page, [])

    def goto(self, url, timeout_ms):
        self.calls.append(('goto', url))
        self.url = FILTERED_URL if url == BASE_URL else url
        self.page = 1

    def current_url(self):
        if self.view == 'detail':
            return self.listings[self.open_index]['snapshot']['url']
        return f"{self.url}#resultsPage={self.page}"

    def title(self):
        return 'Used cars for sale'

    def wait_for_selector(self, selector, timeout_ms, state='visible'):
        self.calls.append(('wait_for_selector', selector))
        self._check(selector)
        if selector == DETAIL_MARKER:
            if self.view != 'detail' or self.listings[self.open_index].get('no_detail'):
                raise AutomationTimeout('detail marker did not appear')
        elif selector == LISTING_ANCHOR and self.view != 'list':
            raise AutomationTimeout('still on detail view')

    def click(self, selector, timeout_ms):
        self.calls.append(('click', selector))
        self._check(selector)
        self.clicked.append(selector)
        if selector == NEXT_PAGE_BUTTON:
            self.page += 1

    def select_option(self, selector, value, timeout_ms):
        self.calls.append(('select_option', selector, value))
        self._check(selector)

    def press(self, key):
        self.keys.append(key)

    def mouse_move(self, x, y):
        self.calls.append(('mouse_move', x, y))

    def wait(self, ms):
        self.waited_ms += ms

    def evaluate(self, script, arg=None):
        if script == DETAIL_SNAPSHOT_JS:
            listing = self.listings[self.open_index]
            if listing.get('explode'):
                raise AutomationError('Execution context was destroyed')
            return listing['snapshot']
        return None

    def count(self, selector):
        return len(self.listings) if self.view == 'list' else 0

    def click_nth(self, selector, index):
        self.calls.append(('click_nth', index))
        if index >= len(self.listings):
            return False
        self.view = 'detail'
        self.open_index = index
        self.opened.append((self.page, index))
        return True

    def scroll_to(self, y, smooth=False):
        self.calls.append(('scroll_to', y))

    def scroll_to_bottom(self):
        self.calls.append(('scroll_to_bottom',))

    def set_fragment(self, fragment):
        self.calls.append(('set_fragment', fragment))
        m = re.match(r'resultsPage=(\d+)$', fragment)
        if m and self.fragment_works:
            self.page = int(m.group(1))

    def go_back(self):
        self.calls.append(('go_back',))
        self.view = 'list'
        self.open_index = None

    def screenshot(self, full_page=False):
        return b'\x89PNG-fake'

    def close(self):
        self.closed = True


class MemorySink:
    def __init__(self, fail: bool = False):
        self.items: List[Dict[str, Any]] = []
        self.fail = fail

    def push(self, item):
        if self.fail:
            raise OSError('disk full')
        self.items.append(item)


@pytest.fixture()
def fast_settings(tmp_path):
    zero_waits = {f.name: 0 for f in dataclasses.fields(SETTINGS) if f.name.endswith('_ms')}
    return dataclasses.replace(
        SETTINGS,
        base_url=BASE_URL,
        polite_min=0.0,
        polite_max=0.0,
        webhook_url=None,
        store_dir=tmp_path / 'stores',
        dataset_path=tmp_path / 'datasets' / 'listings.jsonl',
        history_path=tmp_path / 'run_history.jsonl',
        **zero_waits,
    )


@pytest.fixture()
def no_pause():
    return lambda _min, _max: None
