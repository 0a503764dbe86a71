from __future__ import annotations

import hashlib
from typing import Dict, Optional, Tuple

from ..adapters import CreateResult


def content_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8", errors="replace")).hexdigest()


class ParseCache:
    """CREATE results keyed by path and content hash.

    Only the newest hash per path is kept, so an edited file drops its old entry.
    """

    def __init__(self, max_entries: int = 2048) -> None:
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[str, str, CreateResult]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str, source: str, language: str) -> Optional[CreateResult]:
        entry = self._entries.get(path)
        if entry is None:
            self.misses += 1
            return None
        digest, cached_language, result = entry
        if digest != content_hash(source) or cached_language != language:
            self.misses += 1
            return None
        self.hits += 1
        return result

    def put(self, path: str, source: str, language: str, result: CreateResult) -> None:
        if path not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[path] = (content_hash(source), language, result)

    def drop(self, path: str) -> None:
        self._entries.pop(path, None)

    def clear(self) -> None:
        self._entries.clear()
