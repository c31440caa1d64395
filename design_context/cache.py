"""Content-addressed bundle cache (inputHash -> ContextBundle).

Entries are append-only: an unexpired entry is never overwritten, so a
reader holding a cached bundle always sees the same immutable value.
Entries expire after ``ttl_seconds``; when full, the oldest entry is
dropped. The cache is created by the caller and injected into the
orchestrator; there is no process-wide instance.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

from . import settings
from .logging_config import get_cache_logger
from .models import ContextBundle

logger = get_cache_logger()


class ContextCache:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.CACHE_TTL_SECONDS
        self._max_entries = max_entries if max_entries is not None else settings.CACHE_MAX_ENTRIES
        if self._max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._clock = clock
        self._lock = threading.Lock()
        # input hash -> {"bundle": ContextBundle, "created_at": float}, oldest first
        self._entries: "OrderedDict[str, Dict]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, input_hash: str) -> Optional[ContextBundle]:
        with self._lock:
            entry = self._entries.get(input_hash)
            if entry is not None and self._expired(entry):
                del self._entries[input_hash]
                self._evictions += 1
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
        logger.info(f"Cache hit for {input_hash[:19]}")
        return entry["bundle"]

    def put(self, input_hash: str, bundle: ContextBundle) -> bool:
        """Store a bundle. Returns False if a live entry already exists."""
        with self._lock:
            existing = self._entries.get(input_hash)
            if existing is not None and not self._expired(existing):
                return False
            self._entries.pop(input_hash, None)
            self._evict_expired_locked()
            while len(self._entries) >= self._max_entries:
                dropped, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.info(f"Cache full ({self._max_entries}), dropped oldest {dropped[:19]}")
            self._entries[input_hash] = {"bundle": bundle, "created_at": self._clock()}
        return True

    def evict_expired(self) -> int:
        with self._lock:
            removed = self._evict_expired_locked()
        if removed:
            logger.info(f"Evicted {removed} expired cache entries")
        return removed

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, input_hash: object) -> bool:
        with self._lock:
            entry = self._entries.get(input_hash)  # type: ignore[arg-type]
            return entry is not None and not self._expired(entry)

    # -- internals (caller holds the lock) --

    def _expired(self, entry: Dict) -> bool:
        return self._clock() - entry["created_at"] > self._ttl

    def _evict_expired_locked(self) -> int:
        stale = [key for key, entry in self._entries.items() if self._expired(entry)]
        for key in stale:
            del self._entries[key]
        self._evictions += len(stale)
        return len(stale)
