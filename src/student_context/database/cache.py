"""
Cache for the roster-derived name index.

Holds a single index keyed by an explicit invalidation key (anonymizer seed +
roster version). A key change is a cache miss, so a stale index is never
served after a roster re-import or a reseeded anonymizer.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """The cached index with its key and expiry."""
    key: str
    value: Any
    created_at: float
    expires_at: Optional[float]


class NameIndexCache:
    """
    Cache for the name -> student id index used by name translation.

    Only one index is kept; storing an index under a new invalidation key
    replaces the previous one.
    """

    def __init__(self, ttl: Optional[int] = 300):
        """
        Initialize the name index cache.

        Args:
            ttl: Seconds an index stays valid even when the key is unchanged
                (None for no expiration)
        """
        self.ttl = ttl
        self._entry: Optional[CacheEntry] = None
        self._lock = asyncio.Lock()

    @staticmethod
    def make_invalidation_key(seed: Optional[str], roster_version: str) -> str:
        raw = f"{seed or 'none'}|{roster_version}"
        if len(raw) > 120:
            return hashlib.md5(raw.encode()).hexdigest()
        return raw.replace(":", "_")

    async def get(self, invalidation_key: str) -> Optional[Any]:
        """Return the index built for this key, or None on a miss/expiry."""
        async with self._lock:
            entry = self._entry
            if entry is None or entry.key != invalidation_key:
                logger.debug(f"Name index cache miss for {invalidation_key}")
                return None

            if entry.expires_at is not None and time.time() > entry.expires_at:
                logger.debug(f"Name index for {invalidation_key} expired")
                self._entry = None
                return None

            return entry.value

    async def set(self, invalidation_key: str, index: Any) -> None:
        now = time.time()
        async with self._lock:
            self._entry = CacheEntry(
                key=invalidation_key,
                value=index,
                created_at=now,
                expires_at=now + self.ttl if self.ttl is not None else None,
            )

    async def invalidate(self) -> None:
        """Drop the cached index."""
        async with self._lock:
            self._entry = None
