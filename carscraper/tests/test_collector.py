import json
from datetime import date, timedelta

import pytest

from carscraper.listingminer import automation as automation_mod
from carscraper.listingminer.automation import AutomationTimeout
from carscraper.listingminer.collector import collect_listings, load_scrape_input, capture_empty_page_diagnostics
from carscraper.listingminer.history import read_history
from carscraper.listingminer.models import ScrapeInput
from carscraper.listingminer.navigator import NEXT_PAGE_BUTTON
from carscraper.listingminer.publisher import Publisher
from carscraper.listingminer.scheduler import STATE_KEY
from carscraper.listingminer.state_store import open_store
from carscraper.tests.conftest import FakeAutomation, MemorySink, make_listing, FILTERED_URL

TODAY = date(2025, 11, 13)


def _site():
    return {
        1: [make_listing('V1'), make_listing('V2')],
        2: [make_listing('V3')],
        3: [make_listing('V4'), make_listing('V5', no_detail=True)],
    }


def _run(fast_settings, no_pause, fake, scrape_input=None, today=TODAY, sink=None):
    sink = sink if sink is not None else MemorySink()
    summary = collect_listings(scrape_input or ScrapeInput(), settings=fast_settings, automation=fake,
                               publisher=Publisher(sink), today=today, pause=no_pause)
    return summary, sink


def _state(fast_settings):
    return open_store(fast_settings.state_store_name, fast_settings.store_dir).get_value(STATE_KEY)


def test_first_run_scrapes_first_window(fast_settings, no_pause):
    fake = FakeAutomation(pages=_site())
    summary, sink = _run(fast_settings, no_pause, fake)
    assert summary['status'] == 'ok'
    assert summary['reason'] == 'first_run'
    assert summary['pages_planned'] == [1, 2, 3]
    assert summary['listings_saved'] == 4
    assert summary['listings_failed'] == 1
    assert summary['listings_return_failed'] == 0
    assert summary['filtered_url'] == FILTERED_URL
    assert summary['next_page'] == 4
    assert [item['vin'] for item in sink.items] == ['V1', 'V2', 'V3', 'V4']
    assert [item['pageNumber'] for item in sink.items] == [1, 1, 2, 3]
    assert fake.closed
    state = _state(fast_settings)
    assert state['nextPage'] == 4
    assert state['lastScrapedDate'] == TODAY.isoformat()
    assert state['baseFilteredUrl'] == FILTERED_URL


def test_same_day_run_resumes_and_checkpoints_empty_pages(fast_settings, no_pause):
    _run(fast_settings, no_pause, FakeAutomation(pages=_site()))
    fake = FakeAutomation(pages=_site())
    summary, sink = _run(fast_settings, no_pause, fake)
    assert summary['reason'] == 'resume'
    assert summary['pages_planned'] == [4, 5, 6]
    # pages past the end of the result set have no listings
    assert summary['listings_found'] == 0
    assert sink.items == []
    assert summary['next_page'] == 7
    assert _state(fast_settings)['nextPage'] == 7
    diag = open_store('default', fast_settings.store_dir)
    for page in (4, 5, 6):
        assert diag.get_bytes(f"debug-screenshot-page{page}.png") == b'\x89PNG-fake'


def test_new_day_starts_over(fast_settings, no_pause):
    _run(fast_settings, no_pause, FakeAutomation(pages=_site()), today=TODAY - timedelta(days=1))
    summary, sink = _run(fast_settings, no_pause, FakeAutomation(pages=_site()))
    assert summary['reason'] == 'new_day'
    assert summary['pages_planned'] == [1, 2, 3]
    assert len(sink.items) == 4


def test_exhausted_run_does_not_touch_the_browser(fast_settings, no_pause):
    store = open_store(fast_settings.state_store_name, fast_settings.store_dir)
    store.set_value(STATE_KEY, {'nextPage': 74, 'lastScrapedDate': TODAY.isoformat()})
    fake = FakeAutomation(pages=_site())
    summary, _ = _run(fast_settings, no_pause, fake)
    assert summary['status'] == 'exhausted'
    assert fake.calls == []
    assert _state(fast_settings)['nextPage'] == 74


def test_current_page_override(fast_settings, no_pause):
    fake = FakeAutomation(pages={10: [make_listing('V10')]})
    summary, sink = _run(fast_settings, no_pause, fake, scrape_input=ScrapeInput(current_page=10, max_pages=11))
    assert summary['reason'] == 'override'
    assert summary['pages_planned'] == [10, 11]
    assert [item['vin'] for item in sink.items] == ['V10']
    assert summary['next_page'] == 12


def test_fragment_fallback_still_reaches_later_pages(fast_settings, no_pause):
    fake = FakeAutomation(pages=_site(), broken={NEXT_PAGE_BUTTON})
    summary, sink = _run(fast_settings, no_pause, fake)
    assert summary['listings_saved'] == 4
    assert ('set_fragment', 'resultsPage=2') in fake.calls


def test_page_loop_error_closes_browser_without_checkpoint(fast_settings, no_pause):
    class DeadSite(FakeAutomation):
        def goto(self, url, timeout_ms):
            raise AutomationTimeout('Timeout 90000ms exceeded')

    fake = DeadSite(pages=_site())
    summary, _ = _run(fast_settings, no_pause, fake)
    assert summary['status'] == 'error'
    assert 'Timeout' in summary['error']
    assert summary['pages'] == []
    assert fake.closed
    assert _state(fast_settings) is None


def test_launch_failure_is_reported(fast_settings, no_pause, monkeypatch):
    def boom(settings):
        raise RuntimeError('Executable does not exist')

    monkeypatch.setattr(automation_mod, 'launch_playwright', boom)
    summary = collect_listings(ScrapeInput(), settings=fast_settings, publisher=Publisher(MemorySink()), today=TODAY, pause=no_pause)
    assert summary['status'] == 'error'
    assert 'Executable' in summary['error']
    assert _state(fast_settings) is None


def test_run_history_written(fast_settings, no_pause):
    _run(fast_settings, no_pause, FakeAutomation(pages=_site()))
    rows = read_history(fast_settings.history_path)
    assert len(rows) == 1
    assert rows[0]['status'] == 'ok'
    assert rows[0]['pages_planned'] == [1, 2, 3]
    assert 'timestamp_utc' in rows[0]


def test_empty_page_diagnostics_survive_screenshot_failure(tmp_path):
    class NoScreenshot(FakeAutomation):
        def screenshot(self, full_page=False):
            raise AutomationTimeout('screenshot timed out')

    diag = capture_empty_page_diagnostics(NoScreenshot(), 5, open_store('default', tmp_path))
    assert diag['page'] == 5
    assert 'screenshot' not in diag


def test_load_scrape_input_from_yaml(tmp_path):
    p = tmp_path / 'input.yml'
    p.write_text('searchRadius: 250\nmaxPages: 5\nfilters:\n  makes: [Ram]\n', encoding='utf-8')
    inp = load_scrape_input(p, overrides={'maxPages': 9, 'maxResults': None})
    assert inp.search_radius == 250
    assert inp.max_pages == 9
    assert inp.max_results == 24
    assert inp.filters.makes == ['Ram']


def test_load_scrape_input_from_json(tmp_path):
    p = tmp_path / 'input.json'
    p.write_text(json.dumps({'current_page': 3}), encoding='utf-8')
    assert load_scrape_input(p).current_page == 3


def test_load_scrape_input_defaults_and_missing_file(tmp_path):
    inp = load_scrape_input()
    assert inp.max_pages == 73
    assert inp.filters.min_price == 35000
    with pytest.raises(FileNotFoundError):
        load_scrape_input(tmp_path / 'nope.yml')
