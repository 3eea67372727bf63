"""Record delivery: durable dataset first, then a best-effort webhook POST."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

import httpx

from .dataset import DatasetSink
from .models import ListingRecord
from .logging_config import log_event

logger = logging.getLogger('publisher')

RECORD_TYPE = 'car_listing'


def build_payload(record: ListingRecord, scraped_at: Optional[datetime] = None) -> Dict[str, Any]:
    scraped_at = scraped_at or datetime.now(timezone.utc)
    payload: Dict[str, Any] = {'type': RECORD_TYPE}
    payload.update(record.to_wire())
    payload['scrapedAt'] = scraped_at.isoformat()
    return payload


class Publisher:
    """Dataset append must succeed (errors propagate); webhook failures are only logged."""

    def __init__(self, sink: DatasetSink, webhook_url: Optional[str] = None, timeout: float = 15.0, client: Optional[httpx.Client] = None):
        self.sink = sink
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self.saved = 0
        self.webhook_ok = 0
        self.webhook_failed = 0
        if not webhook_url:
            logger.debug('No webhook URL configured; webhook delivery disabled')

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, headers={'Content-Type': 'application/json'})
        return self._client

    def publish(self, record: ListingRecord) -> bool:
        if not record.is_valid:
            logger.warning('Refusing to publish record without vin or title')
            return False
        payload = build_payload(record)
        self.sink.push(payload)
        self.saved += 1
        logger.info('  Saved to dataset')
        self.send_webhook(payload)
        return True

    def send_webhook(self, payload: Dict[str, Any]) -> bool:
        if not self.webhook_url:
            return False
        try:
            resp = self.client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            self.webhook_failed += 1
            logger.warning(f"  Webhook error: {e}")
            log_event('webhook_failed', vin=payload.get('vin'), error=str(e))
            return False
        if resp.is_success:
            self.webhook_ok += 1
            logger.info(f"  Sent to webhook ({resp.status_code})")
            return True
        self.webhook_failed += 1
        logger.warning(f"  Webhook failed: {resp.status_code}")
        log_event('webhook_failed', vin=payload.get('vin'), status=resp.status_code)
        return False

    def close(self):
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def stats(self) -> Dict[str, int]:
        return {'saved': self.saved, 'webhook_ok': self.webhook_ok, 'webhook_failed': self.webhook_failed}
