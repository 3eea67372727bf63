from __future__ import annotations
from datetime import datetime, date, timezone
from typing import List, Optional, Literal
import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .settings import NATIONWIDE_RADIUS

DealRating = Literal['GREAT_PRICE', 'GOOD_PRICE', 'FAIR_PRICE', 'HIGH_PRICE', 'OVERPRICED']

_PRICE_RGX = re.compile(r"\d+")


def parse_price(text) -> Optional[int]:
    """Parse a display price like "$35,000" into an int (leading digit run after removing $ and ,)."""
    if text is None:
        return None
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return int(round(text))
    cleaned = str(text).replace('$', '').replace(',', '').strip()
    m = _PRICE_RGX.match(cleaned)
    if not m:
        return None
    return int(m.group(0))


class _WireModel(BaseModel):
    """camelCase on the wire / in storage, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode='json')


class ListingRecord(_WireModel):
    vin: Optional[str] = None
    title: Optional[str] = None
    price: Optional[int] = None
    price_display: Optional[str] = None
    year: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    trim: Optional[str] = None
    mileage: Optional[str] = None
    dealer_name: Optional[str] = None
    dealer_city: Optional[str] = None
    dealer_address: Optional[str] = None
    deal_rating: Optional[str] = None
    body_type: Optional[str] = None
    fuel_type: Optional[str] = None
    source_url: Optional[str] = None
    page_number: Optional[int] = None
    search_radius: Optional[int] = None
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator(
        'vin', 'title', 'price_display', 'year', 'make', 'model', 'trim', 'mileage',
        'dealer_name', 'dealer_city', 'dealer_address', 'deal_rating', 'body_type',
        'fuel_type', 'source_url', mode='before')
    @classmethod
    def clean_text(cls, v):
        # hydration payload sometimes carries numbers (year, mileage) for text fields
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            v = str(v)
        if not isinstance(v, str):
            return None
        v = v.replace('\u00a0', ' ').strip()
        return v or None

    @field_validator('price', mode='before')
    @classmethod
    def coerce_price(cls, v):
        return parse_price(v)

    @property
    def is_valid(self) -> bool:
        return bool(self.vin or self.title)

    @property
    def identity_key(self) -> str:
        if self.vin:
            return self.vin
        return f"{self.title or ''}{self.source_url or ''}"


class RunState(_WireModel):
    next_page: int = Field(default=1, ge=1)
    last_scraped_date: Optional[date] = None
    base_filtered_url: Optional[str] = None
    search_radius: Optional[int] = None
    last_scraped_at: Optional[datetime] = None
    last_page: Optional[int] = None
    pages_scraped_this_window: List[int] = Field(default_factory=list)


class FilterSpec(_WireModel):
    makes: List[str] = Field(default_factory=lambda: ['Ford', 'GMC', 'Chevrolet', 'Cadillac'])
    body_types: List[str] = Field(default_factory=lambda: ['SUV / Crossover', 'Pickup Truck'])
    min_price: Optional[int] = 35000
    deal_ratings: List[DealRating] = Field(default_factory=lambda: ['GREAT_PRICE', 'GOOD_PRICE', 'FAIR_PRICE'])
    sort_newest: bool = True

    @field_validator('makes', 'body_types', 'deal_ratings', mode='before')
    @classmethod
    def dedupe(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        # set semantics, first occurrence keeps its position
        return list(dict.fromkeys(v))


class ScrapeInput(_WireModel):
    search_radius: int = NATIONWIDE_RADIUS
    current_page: Optional[int] = Field(default=None, ge=1)
    max_pages: int = Field(default=73, ge=1)
    max_results: int = Field(default=24, ge=1)
    filters: FilterSpec = Field(default_factory=FilterSpec)

    @property
    def radius_label(self) -> str:
        return 'Nationwide' if self.search_radius == NATIONWIDE_RADIUS else f"{self.search_radius} km"
