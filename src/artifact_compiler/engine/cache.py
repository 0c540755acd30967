"""LRU cache of merge results.

Merged state is derived data: it is recomputable from the log and is cached
per ``(session_id, log_cursor, ledger_size)``. Any new message moves the cursor
and any new allocation grows the ledger, so stale entries are never hit.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from artifact_compiler.engine.merge import MergeResult

logger = logging.getLogger(__name__)

CacheKey = tuple[str, int, int]


class MergeCache:
    """OrderedDict-based LRU of MergeResult objects.

    Shared by every session in a workspace, so access is guarded by a lock.
    """

    def __init__(self, *, maxsize: int = 16) -> None:
        self._cache: OrderedDict[CacheKey, MergeResult] = OrderedDict()
        self._maxsize = maxsize
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> MergeResult | None:
        """Get a merge result. Returns None on miss."""
        with self._lock:
            if key not in self._cache:
                logger.debug("Merge cache miss: %s@%d", key[0], key[1])
                return None
            self._cache.move_to_end(key)
            logger.debug("Merge cache hit: %s@%d", key[0], key[1])
            return self._cache[key]

    def put(self, key: CacheKey, result: MergeResult) -> None:
        """Store a result, evicting the least recently used entry if full."""
        if self._maxsize <= 0:
            return
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = result
            while len(self._cache) > self._maxsize:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug("Merge cache evict: %s@%d", evicted[0], evicted[1])

    def invalidate(self, session_id: str) -> None:
        """Drop every entry for one session."""
        with self._lock:
            for key in [k for k in self._cache if k[0] == session_id]:
                del self._cache[key]

    def clear(self) -> None:
        with self._lock:
            size = len(self._cache)
            self._cache.clear()
        if size > 0:
            logger.debug("Merge cache cleared (%d entries)", size)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache
