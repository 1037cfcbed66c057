from __future__ import annotations
"""Response cache for the orchestration layer.

ResponseCache – asyncio-safe in-memory cache of provider responses with a
per-entry TTL. Keys are a SHA256 of the feature type and the normalized
message, so equivalent requests share an entry. Expired entries are dropped
lazily when read; there is no background sweep.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.logging import logger
from praxis.types import FeatureType, Response

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "make_cache_key",
    "normalize_message",
]


def normalize_message(message: str) -> str:
    return " ".join(message.split()).casefold()


def make_cache_key(feature_type: FeatureType, message: str) -> str:
    raw = f"{FeatureType(feature_type).value}\x00{normalize_message(message)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Response
    expires_at: float


class ResponseCache:
    """Simple asyncio-safe TTL cache for cache key → Response."""

    def __init__(self, max_size: int = 2048, clock: Callable[[], float] = time.monotonic) -> None:
        self._max_size = max_size
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Optional[Response]:
        async with self._lock:
            entry = self._store.get(key)
            if not entry:
                return None
            if self._clock() > entry.expires_at:
                # expired
                del self._store[key]
                return None
            # Callers get their own copy; payload dicts and lists are mutable.
            return entry.payload.model_copy(deep=True)

    async def put(self, key: str, response: Response, ttl: float) -> None:
        if ttl <= 0:
            return
        async with self._lock:
            if key not in self._store and len(self._store) >= self._max_size:
                # Evict the entry closest to expiry
                oldest_key = min(self._store.values(), key=lambda e: e.expires_at).key
                self._store.pop(oldest_key, None)
                logger.debug(f"Response cache full, evicted {oldest_key[:12]}")
            self._store[key] = CacheEntry(key=key, payload=response.model_copy(deep=True), expires_at=self._clock() + ttl)
