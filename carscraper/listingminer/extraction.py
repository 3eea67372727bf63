"""Layered field extraction for a listing detail view.

The detail view is read once into a `DetailSnapshot` (DOM texts, the page's
hydration payload, the current URL). Each record field then has an ordered list of
strategies; the first one that yields a value wins.

    DomText      rendered detail view, looked up via DOM_SELECTORS
    Hydration    ``window.__PREFLIGHT__`` payload attached at page load
    SpecLabel    ``listing.specs`` entries matched by label (case-insensitive)
    PageUrl      the detail view URL

DOM and hydration payload disagree or are incomplete depending on how the detail
view was reached, hence the fallbacks.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Union

from .models import ListingRecord, parse_price

DETAIL_MARKER = 'div[data-cg-ft="listing-vdp-stats"]'

_STAT_VALUE = 'span._value_ujq1z_13'

DOM_SELECTORS: Dict[str, str] = {
    'vin': f'div[data-cg-ft="vin"] {_STAT_VALUE}',
    'make': f'div[data-cg-ft="make"] {_STAT_VALUE}',
    'model': f'div[data-cg-ft="model"] {_STAT_VALUE}',
    'trim': f'div[data-cg-ft="trim"] {_STAT_VALUE}',
    'year': f'div[data-cg-ft="year"] {_STAT_VALUE}',
    'body_type': f'div[data-cg-ft="bodyType"] {_STAT_VALUE}',
    'fuel_type': f'div[data-cg-ft="fuelType"] {_STAT_VALUE}',
    'mileage': f'div[data-cg-ft="mileage"] {_STAT_VALUE}',
    'title': 'h1[data-cg-ft="vdp-listing-title"]',
    'price': 'div._price_1yep1_1 h2',
    'dealer_name': '[data-testid="dealerName"]',
    'dealer_city': 'hgroup p.oqywn.sCSIz',
    'dealer_address': '[data-testid="dealerAddress"] span[data-track-ui="dealer-address"]',
}

# One evaluation reads every selector plus a JSON-safe copy of the hydration payload.
DETAIL_SNAPSHOT_JS = """(selectors) => {
    const dom = {};
    for (const [field, sel] of Object.entries(selectors)) {
        const el = document.querySelector(sel);
        dom[field] = el ? el.textContent.trim() : null;
    }
    let preflight = {};
    try {
        preflight = JSON.parse(JSON.stringify(window.__PREFLIGHT__ || {}));
    } catch (e) {
        preflight = {};
    }
    return { dom: dom, preflight: preflight, url: window.location.href };
}"""


def positive_price(v: Any) -> Optional[int]:
    # 0 means "no price" on the site, fall through to the next source
    price = parse_price(v)
    return price if price and price > 0 else None


def _present(v: Any) -> Optional[Any]:
    if v is None or isinstance(v, (dict, list, bool)):
        return None
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


@dataclass
class DetailSnapshot:
    dom: Dict[str, Optional[str]] = field(default_factory=dict)
    preflight: Dict[str, Any] = field(default_factory=dict)
    url: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> 'DetailSnapshot':
        if not isinstance(raw, dict):
            return cls()
        dom = raw.get('dom') if isinstance(raw.get('dom'), dict) else {}
        preflight = raw.get('preflight') if isinstance(raw.get('preflight'), dict) else {}
        return cls(dom=dom, preflight=preflight, url=raw.get('url'))

    @property
    def listing(self) -> Dict[str, Any]:
        listing = self.preflight.get('listing')
        return listing if isinstance(listing, dict) else {}


@dataclass(frozen=True)
class DomText:
    key: str
    parse: Optional[Callable[[str], Any]] = None
    kind: ClassVar[str] = 'dom'

    def extract(self, snap: DetailSnapshot):
        text = _present(snap.dom.get(self.key))
        if text is None or self.parse is None:
            return text
        return _present(self.parse(text))


@dataclass(frozen=True)
class Hydration:
    path: Tuple[str, ...]
    parse: Optional[Callable[[Any], Any]] = None
    kind: ClassVar[str] = 'hydration'

    def extract(self, snap: DetailSnapshot):
        node: Any = snap.preflight
        for part in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        value = _present(node)
        if value is None or self.parse is None:
            return value
        return _present(self.parse(value))


@dataclass(frozen=True)
class SpecLabel:
    needles: Tuple[str, ...]
    exact: bool = False
    kind: ClassVar[str] = 'spec_label'

    def extract(self, snap: DetailSnapshot):
        specs = snap.listing.get('specs')
        if not isinstance(specs, list):
            return None
        for spec in specs:
            if not isinstance(spec, dict):
                continue
            label = spec.get('label')
            if not isinstance(label, str):
                continue
            low = label.strip().lower()
            hit = (low in self.needles) if self.exact else any(n in low for n in self.needles)
            if hit:
                value = _present(spec.get('value'))
                if value is not None:
                    return value
        return None


@dataclass(frozen=True)
class PageUrl:
    kind: ClassVar[str] = 'url'

    def extract(self, snap: DetailSnapshot):
        return _present(snap.url)


Strategy = Union[DomText, Hydration, SpecLabel, PageUrl]

FIELD_STRATEGIES: Dict[str, List[Strategy]] = {
    'vin': [DomText('vin'), Hydration(('listing', 'vin')), SpecLabel(('vin',), exact=True)],
    'title': [DomText('title'), Hydration(('listingTitle',))],
    'price': [
        DomText('price', parse=positive_price),
        Hydration(('listingPriceValue',), parse=positive_price),
        Hydration(('listing', 'price'), parse=positive_price),
    ],
    'price_display': [DomText('price'), Hydration(('listingPriceString',)), Hydration(('listing', 'priceString'))],
    'year': [DomText('year'), Hydration(('listing', 'year')), Hydration(('listingYear',))],
    'make': [DomText('make'), Hydration(('listing', 'make')), Hydration(('listingMake',))],
    'model': [DomText('model'), Hydration(('listing', 'model')), Hydration(('listingModel',))],
    'trim': [DomText('trim'), Hydration(('listing', 'trim'))],
    'mileage': [DomText('mileage'), Hydration(('listing', 'mileage')), Hydration(('listing', 'odometer'))],
    'dealer_name': [DomText('dealer_name'), Hydration(('listing', 'dealerName')), Hydration(('listingSellerName',))],
    'dealer_city': [DomText('dealer_city'), Hydration(('listing', 'dealerCity')), Hydration(('listingSellerCity',))],
    'dealer_address': [DomText('dealer_address')],
    'deal_rating': [Hydration(('listing', 'dealRating')), Hydration(('listing', 'dealBadge'))],
    'body_type': [DomText('body_type'), Hydration(('listing', 'bodyType'))],
    'fuel_type': [DomText('fuel_type'), SpecLabel(('fuel', 'engine'))],
    'source_url': [PageUrl()],
}


def resolve_field(snap: DetailSnapshot, strategies: List[Strategy]) -> Tuple[Optional[Any], Optional[str]]:
    for strategy in strategies:
        value = strategy.extract(snap)
        if value is not None:
            return value, strategy.kind
    return None, None


def resolve_fields(snap: DetailSnapshot, strategies: Optional[Dict[str, List[Strategy]]] = None) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Return (values, sources); sources maps each found field to the strategy kind that produced it."""
    values: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    for name, chain in (strategies or FIELD_STRATEGIES).items():
        value, kind = resolve_field(snap, chain)
        values[name] = value
        if kind:
            sources[name] = kind
    return values, sources


def build_record(snap: DetailSnapshot, page_number: int, search_radius: int) -> Tuple[ListingRecord, Dict[str, str]]:
    values, sources = resolve_fields(snap)
    record = ListingRecord(page_number=page_number, search_radius=search_radius, **values)
    return record, sources
