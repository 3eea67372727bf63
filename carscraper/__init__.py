"""carscraper package public API."""
from importlib import metadata as _metadata

try:
    __version__ = _metadata.version("carscraper")
except Exception:  # fallback when not installed
    __version__ = "0.1.0"

from .listingminer.models import ListingRecord, RunState, ScrapeInput  # re-export
from .listingminer.collector import collect_listings  # re-export

__all__ = ["__version__", "ListingRecord", "RunState", "ScrapeInput", "collect_listings"]
