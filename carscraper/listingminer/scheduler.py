"""Cross-run pagination scheduler.

One invocation only has time for a small window of result pages, so progress is
persisted after every completed page and the next invocation resumes from there.
The result set is assumed to refresh daily: a run on a new (UTC) day starts over at
page 1 instead of resuming.

RunState is written only here. Everyone else gets page numbers from a SchedulePlan.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional
import logging

from pydantic import ValidationError

from .models import RunState
from .state_store import KeyValueStore
from .logging_config import log_event

logger = logging.getLogger('scheduler')

STATE_KEY = 'state'


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def resolve_start_page(state: Optional[RunState], today: date) -> int:
    if state is not None and state.last_scraped_date == today:
        return state.next_page or 1
    return 1


def build_window(start_page: int, max_pages: int, window_size: int) -> List[int]:
    """Consecutive pages from start_page, never past max_pages; empty once exhausted."""
    if window_size <= 0 or start_page > max_pages:
        return []
    end = min(start_page + window_size - 1, max_pages)
    return list(range(start_page, end + 1))


@dataclass
class SchedulePlan:
    start_page: int
    pages: List[int] = field(default_factory=list)
    reason: str = 'first_run'  # first_run | resume | new_day | override

    @property
    def exhausted(self) -> bool:
        return not self.pages


class PaginationScheduler:
    def __init__(self, store: KeyValueStore, max_pages: int, window_size: int = 3):
        self.store = store
        self.max_pages = max_pages
        self.window_size = window_size
        self.state: Optional[RunState] = None

    def load(self) -> Optional[RunState]:
        raw = self.store.get_value(STATE_KEY)
        if raw is None:
            self.state = None
            return None
        try:
            self.state = RunState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Stored run state is invalid ({e.error_count()} errors); starting fresh")
            log_event('state_corrupted', store=self.store.name)
            self.state = None
        return self.state

    def plan(self, today: date, current_page: Optional[int] = None) -> SchedulePlan:
        if current_page:
            start, reason = current_page, 'override'
            logger.info(f"Start page override: {start}")
        else:
            state = self.state
            start = resolve_start_page(state, today)
            if state is not None and state.last_scraped_date == today:
                reason = 'resume'
                logger.info(f"Continuing from page {start} (same day: {today.isoformat()})")
            elif state is not None and state.last_scraped_date is not None:
                reason = 'new_day'
                logger.info(f"New day detected, resetting to page 1 (previous: {state.last_scraped_date.isoformat()}, today: {today.isoformat()})")
            else:
                reason = 'first_run'
                logger.info('First run, starting from page 1')
        pages = build_window(start, self.max_pages, self.window_size)
        log_event('window_planned', start_page=start, pages=pages, reason=reason, max_pages=self.max_pages)
        return SchedulePlan(start_page=start, pages=pages, reason=reason)

    def checkpoint(self, page: int, window: List[int], today: date, base_filtered_url: Optional[str] = None, search_radius: Optional[int] = None) -> RunState:
        """Persist completion of `page`; the next run resumes at page + 1."""
        done = window[:window.index(page) + 1] if page in window else [page]
        state = RunState(
            next_page=page + 1,
            last_scraped_date=today,
            base_filtered_url=base_filtered_url,
            search_radius=search_radius,
            last_scraped_at=datetime.now(timezone.utc),
            last_page=page,
            pages_scraped_this_window=done,
        )
        self.store.set_value(STATE_KEY, state.to_wire())
        self.state = state
        logger.info(f"State saved: page {page} complete, next run starts at page {page + 1} (date: {today.isoformat()})")
        log_event('checkpoint', page=page, next_page=page + 1, date=today.isoformat())
        return state

    def reset(self) -> bool:
        self.state = None
        return self.store.delete(STATE_KEY)
