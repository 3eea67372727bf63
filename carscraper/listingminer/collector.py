from __future__ import annotations
"""
Playwright-based listing collector.

One invocation processes a small window of result pages (see scheduler.py), then
stops; the next invocation resumes after the last completed page. The caller is
expected to impose the overall time limit (cron / container timeout).

Flow: plan window -> open browser -> base page -> filters (once) ->
for each page: navigate, reveal, extract listings, checkpoint.
"""
from pathlib import Path
from datetime import date
from typing import Any, Dict, Optional, TYPE_CHECKING
import json
import logging
import time
import yaml

from .settings import SETTINGS, Settings, CONFIG_DIR
from .models import ScrapeInput
from .logging_config import log_event
from .state_store import KeyValueStore, open_store
from .scheduler import PaginationScheduler, SchedulePlan, utc_today
from .filters import FilterSequencer
from .navigator import PageNavigator
from .extractor import ListingExtractor, PageResult
from .dataset import DatasetSink
from .publisher import Publisher
from .history import append_history

if TYPE_CHECKING:  # pragma: no cover
    from .automation import Automation

logger = logging.getLogger('collector')

DEFAULT_INPUT_FILE = CONFIG_DIR / 'input.yml'
DIAGNOSTICS_STORE = 'default'
INITIAL_LOAD_SETTLE_MS = 5000
POST_FILTER_SETTLE_MS = 3000


def load_scrape_input(path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> ScrapeInput:
    """Read a YAML or JSON input file (camelCase or snake_case keys) and apply CLI overrides."""
    data: Dict[str, Any] = {}
    p = Path(path) if path else DEFAULT_INPUT_FILE
    if p.exists():
        text = p.read_text(encoding='utf-8')
        data = (json.loads(text) if p.suffix.lower() == '.json' else yaml.safe_load(text)) or {}
    elif path:
        raise FileNotFoundError(p)
    for k, v in (overrides or {}).items():
        if v is not None:
            data[k] = v
    return ScrapeInput.model_validate(data)


def _simulate_presence(automation: 'Automation'):
    automation.mouse_move(100, 200)
    automation.wait(500)
    automation.mouse_move(300, 400)
    automation.wait(1000)


def capture_empty_page_diagnostics(automation: 'Automation', page_number: int, store: KeyValueStore) -> Dict[str, Any]:
    """Best-effort: log URL / title and keep a screenshot under a page-numbered key."""
    diag: Dict[str, Any] = {'page': page_number}
    try:
        diag['url'] = automation.current_url()
        diag['title'] = automation.title()
        logger.info(f"Current URL: {diag['url']}")
        logger.info(f"Page title: {diag['title']}")
    except Exception as e:
        logger.debug(f"Could not read page info: {e}")
    key = f"debug-screenshot-page{page_number}.png"
    try:
        path = store.set_bytes(key, automation.screenshot(full_page=True))
        diag['screenshot'] = str(path)
        logger.info(f"Saved diagnostics screenshot {key}")
    except Exception as e:
        logger.warning(f"Failed to save diagnostics screenshot: {e}")
    log_event('page_empty', **diag)
    return diag


class CollectorRun:
    """State of one invocation; `run()` never raises for page-loop errors."""

    def __init__(self, scrape_input: ScrapeInput, automation: 'Automation', scheduler: PaginationScheduler, plan: SchedulePlan,
                 publisher: Publisher, diagnostics_store: KeyValueStore, today: date, settings: Settings = SETTINGS, pause=None):
        self.input = scrape_input
        self.automation = automation
        self.scheduler = scheduler
        self.plan = plan
        self.publisher = publisher
        self.diagnostics_store = diagnostics_store
        self.today = today
        self.settings = settings
        self.extractor = ListingExtractor(automation, publisher, settings, pause=pause)
        self.navigator = PageNavigator(automation, settings)
        self.filtered_url: Optional[str] = None
        self.pages: list[Dict[str, Any]] = []
        self.filter_report: Optional[Dict[str, Any]] = None

    def open_search(self):
        a = self.automation
        logger.info(f"Visiting base page: {self.settings.base_url}")
        a.goto(self.settings.base_url, self.settings.goto_timeout_ms)
        logger.info('Waiting for page to load...')
        a.wait(INITIAL_LOAD_SETTLE_MS)
        _simulate_presence(a)
        sequencer = FilterSequencer(a, self.settings)
        report = sequencer.apply(self.input.filters, self.input.search_radius)
        a.wait(POST_FILTER_SETTLE_MS)
        # re-read after the settle wait, the search id lands in the URL late
        self.filtered_url = sequencer.capture_filtered_url()
        report.filtered_url = self.filtered_url
        self.filter_report = report.as_dict()
        logger.info(f"Filters applied, filtered URL: {self.filtered_url}")

    def process_page(self, page_number: int) -> PageResult:
        self.extractor.reveal_listings()
        total = self.extractor.count_listings()
        logger.info(f"Found {total} car listings on page {page_number}")
        if total == 0:
            logger.warning('No car listings found - capturing diagnostics')
            capture_empty_page_diagnostics(self.automation, page_number, self.diagnostics_store)
            return PageResult(page=page_number)
        return self.extractor.process_page(page_number, self.input.search_radius, self.input.max_results, total=total)

    def run(self):
        self.open_search()
        current = 1  # filters always leave us on the first result page
        for page_number in self.plan.pages:
            logger.info('=' * 60)
            logger.info(f"Processing page {page_number} of {self.input.max_pages}")
            logger.info('=' * 60)
            log_event('page_start', page=page_number)
            if page_number != current:
                self.navigator.navigate(current, page_number)
                current = page_number
            result = self.process_page(page_number)
            self.pages.append(result.as_dict())
            self.scheduler.checkpoint(page_number, self.plan.pages, self.today,
                                      base_filtered_url=self.filtered_url, search_radius=self.input.search_radius)


def collect_listings(scrape_input: ScrapeInput, settings: Settings = SETTINGS, automation: Optional['Automation'] = None,
                     publisher: Optional[Publisher] = None, today: Optional[date] = None, write_history: bool = True,
                     pause=None) -> Dict[str, Any]:
    """Run one invocation and return its summary (also appended to the run history)."""
    today = today or utc_today()
    start_time = time.time()
    state_store = open_store(settings.state_store_name, settings.store_dir)
    scheduler = PaginationScheduler(state_store, scrape_input.max_pages, settings.window_size)
    if not scrape_input.current_page:
        scheduler.load()
    plan = scheduler.plan(today, current_page=scrape_input.current_page)
    summary: Dict[str, Any] = {
        'date': today.isoformat(),
        'reason': plan.reason,
        'start_page': plan.start_page,
        'pages_planned': list(plan.pages),
        'pages': [],
        'status': 'ok',
    }
    log_event('run_start', start_page=plan.start_page, pages=plan.pages, radius=scrape_input.search_radius)

    def _finish() -> Dict[str, Any]:
        summary['elapsed_s'] = round(time.time() - start_time, 2)
        log_event('run_complete', status=summary['status'], pages=len(summary['pages']), saved=summary.get('listings_saved', 0))
        if write_history:
            append_history(summary, settings.history_path)
        return summary

    if plan.exhausted:
        logger.info(f"All pages scraped! (Last page: {scrape_input.max_pages})")
        summary['status'] = 'exhausted'
        return _finish()

    logger.info(f"Scraping {len(plan.pages)} pages this run: {', '.join(map(str, plan.pages))} of {scrape_input.max_pages} total")
    logger.info(f"Search radius: {scrape_input.radius_label}")
    logger.info(f"Max results per page: {scrape_input.max_results}")

    own_publisher = publisher is None
    if publisher is None:
        publisher = Publisher(DatasetSink(settings.dataset_path), settings.webhook_url, settings.webhook_timeout)
    if automation is None:
        try:
            from .automation import launch_playwright
            automation = launch_playwright(settings)
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            log_event('error', stage='launch', message=str(e))
            summary['status'] = 'error'
            summary['error'] = str(e)
            if own_publisher:
                publisher.close()
            return _finish()

    run = CollectorRun(scrape_input, automation, scheduler, plan, publisher,
                       open_store(DIAGNOSTICS_STORE, settings.store_dir), today, settings, pause=pause)
    try:
        run.run()
    except Exception as e:
        logger.error(f"Error processing pages {', '.join(map(str, plan.pages))}: {e}", exc_info=True)
        log_event('error', stage='page_loop', message=str(e))
        summary['status'] = 'error'
        summary['error'] = str(e)
    finally:
        try:
            automation.close()
        except Exception:
            logger.debug('Browser close failed', exc_info=True)
        if own_publisher:
            publisher.close()

    summary['pages'] = run.pages
    summary['filters'] = run.filter_report
    summary['filtered_url'] = run.filtered_url
    summary['listings_found'] = sum(p['found'] for p in run.pages)
    summary['listings_saved'] = sum(p['saved'] for p in run.pages)
    summary['listings_failed'] = sum(p['failed'] + p['no_detail'] for p in run.pages)
    summary['listings_return_failed'] = sum(p['return_failed'] for p in run.pages)
    summary['webhook'] = publisher.stats()
    state = scheduler.state
    summary['next_page'] = state.next_page if state else plan.start_page
    logger.info(f"Scraping complete: pages={len(run.pages)} saved={summary['listings_saved']} next_page={summary['next_page']}")
    return _finish()
