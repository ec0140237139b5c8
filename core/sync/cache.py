"""
Result Cache - short-lived memo of remote search responses
==========================================================

[CACHE] Absorbs bursts of identical queries:
- key: normalized search term (stripped, lowercased), or "creator:<slug>"
  with the slug kept as is
- TTL: 30 minutes by default
- sweep: every 10 minutes a background task drops expired entries

Read-through only. A miss or an eviction just means a live refetch.
Concurrent writers of the same key: last writer wins.
"""

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


DEFAULT_TTL = 1800.0  # 30 min
DEFAULT_CHECK_PERIOD = 600.0  # 10 min


CREATOR_KEY_PREFIX = "creator:"


def normalize_key(term: str) -> str:
    """Free-text terms are case-insensitive; creator keys keep their case."""
    key = (term or "").strip()
    if key.startswith(CREATOR_KEY_PREFIX):
        return key
    return key.lower()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    created_at: float = field(default_factory=time.time)


class ResultCache:
    """In-memory TTL cache with a periodic sweep task."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        check_period: float = DEFAULT_CHECK_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.check_period = check_period
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def get(self, term: str) -> Optional[Any]:
        """Cached value for a term, None when absent or expired."""
        key = normalize_key(term)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def set(self, term: str, value: Any, ttl: Optional[float] = None) -> None:
        key = normalize_key(term)
        if not key:
            return
        lifetime = self.ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + lifetime)

    def delete(self, term: str) -> None:
        self._entries.pop(normalize_key(term), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"[CACHE] Sweep: removed {len(expired)} expired entries")
        return len(expired)

    async def start(self) -> None:
        """Launch the background sweep."""
        if self._sweep_task is not None:
            return

        async def sweep_loop():
            while True:
                await asyncio.sleep(self.check_period)
                self.sweep()

        self._sweep_task = asyncio.create_task(sweep_loop())
        logger.info(f"[CACHE] Sweep started (ttl: {self.ttl}s, interval: {self.check_period}s)")

    async def stop(self) -> None:
        if self._sweep_task:
            self._sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "ttl": self.ttl,
            "check_period": self.check_period,
        }
