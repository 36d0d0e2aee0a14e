"""
Time-bounded cache of detected routers
"""

import time
import logging
from typing import Callable, Dict, Optional

from .address_enumerator import address_in_range
from .models import CacheEntry, RouterCandidate

logger = logging.getLogger(__name__)


class ResultCache:
    """
    Address -> CacheEntry map meant to remember the router last used.
    Stale entries are evicted lazily when lookup() walks past them.
    """

    def __init__(self, ttl_seconds: float = 300, scope_by_range: bool = False,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.scope_by_range = scope_by_range
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def put(self, candidate: RouterCandidate) -> None:
        self._entries[candidate.address] = CacheEntry(candidate=candidate, cached_at=self._clock())
        logger.debug(f"Cached router {candidate.address}")

    def lookup(self, scan_range: Optional[str] = None) -> Optional[RouterCandidate]:
        """
        Return the first fresh entry. Without scope_by_range any fresh entry
        is returned, whatever range is being scanned.
        """
        now = self._clock()
        for address, entry in list(self._entries.items()):
            if now - entry.cached_at >= self.ttl_seconds:
                del self._entries[address]
                logger.debug(f"Evicted stale cache entry for {address}")
                continue
            if self.scope_by_range and scan_range and not address_in_range(address, scan_range):
                continue
            return entry.candidate
        return None

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Detection cache cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: str) -> bool:
        return address in self._entries
