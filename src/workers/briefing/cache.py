"""
Bounded TTL cache for rendered briefings.

Built once per API process and handed to whoever needs it. Keys carry
the store's briefing version, so a worker rewriting a day's insights makes
older entries unreachable without touching this process. Once the entry
count exceeds ``max_entries`` expired entries are purged first, then the
oldest are evicted.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class BriefingCache:
    def __init__(
        self,
        ttl_seconds: float = 600.0,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # key -> (expires_at, value), insertion order == age
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        if len(self._entries) > self.max_entries:
            self._prune()

    def invalidate(self, prefix: str = "") -> int:
        """Drop every key starting with ``prefix`` (all keys by default)."""
        stale = [k for k in self._entries if k.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def _prune(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at < now]
        for key in expired:
            del self._entries[key]
        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1
        logger.debug("Briefing cache pruned %d expired and %d oldest entries", len(expired), evicted)


def briefing_cache_key(location_id: str, date_key: str, consumer_id: str, version: str = "") -> str:
    return f"{location_id}:{date_key}:{consumer_id}:{version}"
