"""UI filter sequencer for the search results page.

Steps run in a fixed order: radius, body type, make, minimum price, deal rating,
sort. Sort goes last because earlier steps re-render the list and reset it. Every
step is best-effort: a failure is logged and the next step still runs.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import logging

from .automation import Automation
from .models import FilterSpec
from .settings import SETTINGS, Settings, NATIONWIDE_RADIUS
from .logging_config import log_event

logger = logging.getLogger('filters')

RADIUS_SELECT = 'select[data-testid="select-filter-distance"]'
BODY_STYLE_TRIGGER = '#BodyStyle-accordion-trigger'
MAKE_MODEL_TRIGGER = '#MakeAndModel-accordion-trigger'
PRICE_TRIGGER = '#Price-accordion-trigger'
PRICE_MIN_SLIDER = '[role="slider"][aria-label="Minimum"]'
DEAL_RATING_TRIGGER = '#DealRating-accordion-trigger'
SORT_BUTTON = 'button[role="combobox"][aria-label="Sort by:"]'
SORT_NEWEST_OPTION = 'div[role="option"]:has-text("Newest listings first")'

# Already selected by the base search URL
PRESELECTED_BODY_TYPES = {'SUV / Crossover'}

# Minimum price slider: number of ArrowRight presses from Home
PRICE_SLIDER_POSITIONS = {35000: 24}

ACCORDION_OPEN_MS = 1000
OPTION_TOGGLE_MS = 500
RATING_TOGGLE_MS = 300
KEY_REPEAT_MS = 50


def make_selector(make: str) -> str:
    make_id = 'RAM' if make.upper() == 'RAM' else make
    # ids contain dots, escape them for CSS
    return f"#FILTER\\.MAKE_MODEL\\.{make_id}"


def deal_rating_selector(rating: str) -> str:
    return f"#FILTER\\.DEAL_RATING\\.{rating}"


def body_type_selector(body_type: str) -> str:
    token = body_type.split()[0].upper()
    return f'button[id*="{token}"], label:has-text("{body_type}")'


def strip_fragment(url: str) -> str:
    return url.split('#', 1)[0]


@dataclass
class FilterReport:
    applied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    option_failures: List[str] = field(default_factory=list)
    filtered_url: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            'applied': list(self.applied),
            'failed': list(self.failed),
            'skipped': list(self.skipped),
            'option_failures': list(self.option_failures),
            'filtered_url': self.filtered_url,
        }


class SkipStep(Exception):
    """Raised by a step that has nothing to do for the given spec."""


class FilterSequencer:
    def __init__(self, automation: Automation, settings: Settings = SETTINGS):
        self.automation = automation
        self.settings = settings

    # --- steps -------------------------------------------------------------
    def set_search_radius(self, spec: FilterSpec, radius: int, report: FilterReport):
        label = 'Nationwide' if radius == NATIONWIDE_RADIUS else f"{radius} km"
        logger.info(f"Setting search radius to: {label}")
        timeout = self.settings.filter_timeout_ms
        self.automation.wait_for_selector(RADIUS_SELECT, timeout)
        self.automation.select_option(RADIUS_SELECT, str(radius), timeout)

    def apply_body_types(self, spec: FilterSpec, radius: int, report: FilterReport):
        wanted = [b for b in spec.body_types if b not in PRESELECTED_BODY_TYPES]
        if not wanted:
            raise SkipStep('only preselected body types requested')
        logger.info(f"Setting body types: {', '.join(spec.body_types)}")
        timeout = self.settings.filter_timeout_ms
        self.automation.click(BODY_STYLE_TRIGGER, timeout)
        self.automation.wait(ACCORDION_OPEN_MS)
        for body_type in wanted:
            # a missing body type fails the whole step, same as the accordion itself
            self.automation.click(body_type_selector(body_type), timeout)
            self.automation.wait(OPTION_TOGGLE_MS)
            logger.info(f"  Added {body_type}")

    def apply_makes(self, spec: FilterSpec, radius: int, report: FilterReport):
        if not spec.makes:
            raise SkipStep('no makes requested')
        logger.info(f"Setting makes: {', '.join(spec.makes)}")
        timeout = self.settings.filter_timeout_ms
        self.automation.click(MAKE_MODEL_TRIGGER, timeout)
        self.automation.wait(ACCORDION_OPEN_MS)
        self._toggle_options(spec.makes, make_selector, OPTION_TOGGLE_MS, 'make', report)

    def apply_min_price(self, spec: FilterSpec, radius: int, report: FilterReport):
        if not spec.min_price:
            raise SkipStep('no minimum price requested')
        steps = PRICE_SLIDER_POSITIONS.get(spec.min_price)
        if steps is None:
            logger.warning(f"No slider position known for ${spec.min_price:,}; skipping price filter")
            raise SkipStep(f"no slider position known for ${spec.min_price:,}")
        logger.info(f"Setting minimum price to: ${spec.min_price:,}")
        timeout = self.settings.filter_timeout_ms
        self.automation.click(PRICE_TRIGGER, timeout)
        self.automation.wait(ACCORDION_OPEN_MS)
        self.automation.wait_for_selector(PRICE_MIN_SLIDER, timeout)
        self.automation.click(PRICE_MIN_SLIDER, timeout)
        self.automation.wait(500)
        self.automation.press('Home')
        self.automation.wait(300)
        for _ in range(steps):
            self.automation.press('ArrowRight')
            self.automation.wait(KEY_REPEAT_MS)

    def apply_deal_ratings(self, spec: FilterSpec, radius: int, report: FilterReport):
        if not spec.deal_ratings:
            raise SkipStep('no deal ratings requested')
        logger.info(f"Setting deal ratings: {', '.join(spec.deal_ratings)}")
        timeout = self.settings.filter_timeout_ms
        self.automation.click(DEAL_RATING_TRIGGER, timeout)
        self.automation.wait(ACCORDION_OPEN_MS)
        self._toggle_options(spec.deal_ratings, deal_rating_selector, RATING_TOGGLE_MS, 'deal_rating', report)

    def apply_sort_newest(self, spec: FilterSpec, radius: int, report: FilterReport):
        if not spec.sort_newest:
            raise SkipStep('sort disabled')
        logger.info('Setting sort order to: Newest listings first')
        timeout = self.settings.filter_timeout_ms
        self.automation.wait_for_selector(SORT_BUTTON, timeout)
        self.automation.click(SORT_BUTTON, timeout)
        self.automation.wait(ACCORDION_OPEN_MS)
        self.automation.click(SORT_NEWEST_OPTION, timeout)

    def _toggle_options(self, values: List[str], to_selector: Callable[[str], str], pause_ms: int, kind: str, report: FilterReport):
        timeout = self.settings.filter_timeout_ms
        for value in values:
            try:
                self.automation.click(to_selector(value), timeout)
                logger.info(f"  Added {value.replace('_', ' ')}")
                self.automation.wait(pause_ms)
            except Exception as e:
                logger.warning(f"  Could not click {value}: {e}")
                report.option_failures.append(f"{kind}:{value}")

    def steps(self) -> List[Tuple[str, Callable[[FilterSpec, int, FilterReport], None]]]:
        return [
            ('radius', self.set_search_radius),
            ('body_type', self.apply_body_types),
            ('make', self.apply_makes),
            ('min_price', self.apply_min_price),
            ('deal_rating', self.apply_deal_ratings),
            ('sort', self.apply_sort_newest),
        ]

    # --- driver ------------------------------------------------------------
    def apply(self, spec: FilterSpec, radius: int) -> FilterReport:
        """Attempt every step; none is required to succeed."""
        logger.info('Applying UI filters...')
        report = FilterReport()
        for name, step in self.steps():
            try:
                step(spec, radius, report)
            except SkipStep as s:
                logger.debug(f"Filter step {name} skipped: {s}")
                report.skipped.append(name)
                continue
            except Exception as e:
                logger.warning(f"Filter step {name} failed: {e} (continuing...)")
                report.failed.append(name)
                continue
            # let the result list re-render
            self.automation.wait(self.settings.filter_settle_ms)
            report.applied.append(name)
        report.filtered_url = self.capture_filtered_url()
        logger.info(f"Filters applied: {len(report.applied)} ok, {len(report.failed)} failed, {len(report.skipped)} skipped")
        log_event('filters_applied', **report.as_dict())
        return report

    def capture_filtered_url(self) -> str:
        return strip_fragment(self.automation.current_url())
