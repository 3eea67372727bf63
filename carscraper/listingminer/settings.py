"""Centralized settings with environment + runtime config overlay.
Provides typed accessors to avoid scattering magic numbers through the collector.

Lookup order for every value: environment variable, then the lower-cased key in
``config/runtime.yml``, then the default below.
"""
from __future__ import annotations
from pathlib import Path
import os, yaml
from dataclasses import dataclass
from typing import Optional

_RUNTIME_CACHE: dict | None = None

PACKAGE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = PACKAGE_DIR / 'config'
DATA_DIR = PACKAGE_DIR / 'data'

NATIONWIDE_RADIUS = 50000  # site sentinel for "no distance restriction"

def _load_runtime() -> dict:
    global _RUNTIME_CACHE
    if _RUNTIME_CACHE is None:
        cfg_file = CONFIG_DIR / 'runtime.yml'
        if cfg_file.exists():
            try:
                _RUNTIME_CACHE = yaml.safe_load(cfg_file.read_text(encoding='utf-8')) or {}
            except Exception:
                _RUNTIME_CACHE = {}
        else:
            _RUNTIME_CACHE = {}
    return _RUNTIME_CACHE

def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is not None:
        try:
            return float(v)
        except ValueError:
            return default
    return float(_load_runtime().get(name.lower(), default))

def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is not None:
        try:
            return int(v)
        except ValueError:
            return default
    return int(_load_runtime().get(name.lower(), default))

def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is not None:
        return v
    return str(_load_runtime().get(name.lower(), default))

def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        v = _load_runtime().get(name.lower())
        if v is None:
            return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ('1', 'true', 'yes', 'on')

def _env_path(name: str, default: Path) -> Path:
    return Path(_env_str(name, str(default)))

@dataclass(frozen=True)
class Settings:
    base_url: str
    window_size: int
    state_store_name: str
    # timeouts (ms)
    goto_timeout_ms: int
    filter_timeout_ms: int
    next_button_timeout_ms: int
    detail_timeout_ms: int
    list_return_timeout_ms: int
    # settle waits (ms)
    filter_settle_ms: int
    page_settle_ms: int
    fallback_settle_ms: int
    detail_render_ms: int
    recover_settle_ms: int
    scroll_settle_ms: int
    # inter-listing pacing (seconds, uniform jitter between min and max)
    polite_min: float
    polite_max: float
    webhook_url: Optional[str]
    webhook_timeout: float
    headless: bool
    user_agent: str
    locale: str
    timezone_id: str
    geo_latitude: float
    geo_longitude: float
    viewport_width: int
    viewport_height: int
    store_dir: Path
    dataset_path: Path
    history_path: Path

def load_settings() -> Settings:
    webhook = _env_str('SCRAPER_WEBHOOK_URL', '').strip()
    # a bare `scraper_webhook_url:` key in runtime.yml loads as None
    if webhook.lower() in ('none', 'null'):
        webhook = ''
    return Settings(
        base_url=_env_str('SCRAPER_BASE_URL', 'https://www.cargurus.ca/Cars/l-Used-SUV-Crossover-bg7'),
        window_size=_env_int('SCRAPER_WINDOW_SIZE', 3),
        state_store_name=_env_str('SCRAPER_STATE_STORE', 'scraper-state-newest'),
        goto_timeout_ms=_env_int('SCRAPER_GOTO_TIMEOUT_MS', 90000),
        filter_timeout_ms=_env_int('SCRAPER_FILTER_TIMEOUT_MS', 360000),
        next_button_timeout_ms=_env_int('SCRAPER_NEXT_TIMEOUT_MS', 120000),
        detail_timeout_ms=_env_int('SCRAPER_DETAIL_TIMEOUT_MS', 10000),
        list_return_timeout_ms=_env_int('SCRAPER_LIST_RETURN_TIMEOUT_MS', 10000),
        filter_settle_ms=_env_int('SCRAPER_FILTER_SETTLE_MS', 2000),
        page_settle_ms=_env_int('SCRAPER_PAGE_SETTLE_MS', 4000),
        fallback_settle_ms=_env_int('SCRAPER_FALLBACK_SETTLE_MS', 5000),
        detail_render_ms=_env_int('SCRAPER_DETAIL_RENDER_MS', 2000),
        recover_settle_ms=_env_int('SCRAPER_RECOVER_SETTLE_MS', 2000),
        scroll_settle_ms=_env_int('SCRAPER_SCROLL_SETTLE_MS', 2000),
        polite_min=_env_float('SCRAPER_POLITE_MIN', 2.0),
        polite_max=_env_float('SCRAPER_POLITE_MAX', 5.0),
        webhook_url=webhook or None,
        webhook_timeout=_env_float('SCRAPER_WEBHOOK_TIMEOUT', 15.0),
        headless=_env_bool('SCRAPER_HEADLESS', True),
        user_agent=_env_str('SCRAPER_USER_AGENT', 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'),
        locale=_env_str('SCRAPER_LOCALE', 'en-CA'),
        timezone_id=_env_str('SCRAPER_TIMEZONE', 'America/Toronto'),
        geo_latitude=_env_float('SCRAPER_GEO_LAT', 43.6532),
        geo_longitude=_env_float('SCRAPER_GEO_LON', -79.3832),
        viewport_width=_env_int('SCRAPER_VIEWPORT_WIDTH', 1920),
        viewport_height=_env_int('SCRAPER_VIEWPORT_HEIGHT', 1080),
        store_dir=_env_path('SCRAPER_STORE_DIR', DATA_DIR / 'stores'),
        dataset_path=_env_path('SCRAPER_DATASET', DATA_DIR / 'datasets' / 'listings.jsonl'),
        history_path=_env_path('SCRAPER_HISTORY', DATA_DIR / 'run_history.jsonl'),
    )

SETTINGS = load_settings()
