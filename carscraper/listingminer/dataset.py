"""Append-only dataset sink: one JSON object per line."""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator
import json


class DatasetSink:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def push(self, item: Dict[str, Any]):
        # Errors propagate: a record only counts as saved once this line is written.
        line = json.dumps(item, ensure_ascii=False, default=str)
        with self.path.open('a', encoding='utf-8') as f:
            f.write(line + '\n')

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        with self.path.open('r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line:
                    yield json.loads(line)

    def __len__(self) -> int:
        return sum(1 for _ in self)
