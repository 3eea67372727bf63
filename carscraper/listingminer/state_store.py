"""Named key-value stores that survive across process invocations.

Each store is a directory under ``Settings.store_dir``; JSON values live in
``<key>.json`` and binary values (screenshots) under the key itself.
Writes go through a temp file + rename so a crash never leaves a half-written blob.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Optional
import json
import logging
import os
import re

logger = logging.getLogger('state_store')

_KEY_RGX = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,199}$')


class StoreError(Exception):
    pass


class KeyValueStore:
    def __init__(self, name: str, root_dir: Path):
        if not _KEY_RGX.match(name):
            raise StoreError(f"Invalid store name: {name!r}")
        self.name = name
        self.path = Path(root_dir) / name
        self.path.mkdir(parents=True, exist_ok=True)

    def _file(self, key: str, suffix: str = '') -> Path:
        if not _KEY_RGX.match(key):
            raise StoreError(f"Invalid key: {key!r}")
        return self.path / f"{key}{suffix}"

    def _atomic_write(self, target: Path, data: bytes):
        tmp = target.with_name(target.name + '.tmp')
        with tmp.open('wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(target)

    def get_value(self, key: str) -> Optional[Any]:
        """Return the decoded JSON value, or None when absent or unreadable."""
        p = self._file(key, '.json')
        if not p.exists():
            return None
        try:
            return json.loads(p.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Store {self.name}: unreadable value for {key} ({e}); treating as absent")
            return None

    def set_value(self, key: str, value: Any):
        payload = json.dumps(value, ensure_ascii=False, indent=2, default=str).encode('utf-8')
        self._atomic_write(self._file(key, '.json'), payload)

    def get_bytes(self, key: str) -> Optional[bytes]:
        p = self._file(key)
        return p.read_bytes() if p.exists() else None

    def set_bytes(self, key: str, data: bytes) -> Path:
        p = self._file(key)
        self._atomic_write(p, data)
        return p

    def delete(self, key: str) -> bool:
        removed = False
        for p in (self._file(key, '.json'), self._file(key)):
            if p.exists():
                p.unlink()
                removed = True
        return removed


def open_store(name: str, root_dir: Path) -> KeyValueStore:
    return KeyValueStore(name, root_dir)
