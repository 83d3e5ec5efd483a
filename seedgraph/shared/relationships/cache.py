"""In-memory cache for complete analysis results.

Entries are keyed by a fingerprint of the analysis scope and options. The
cache is an explicit object owned by whoever creates it (the application
factory, a test), never a module-level singleton.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from seedgraph.core.logging import get_logger

if TYPE_CHECKING:
    from seedgraph.shared.relationships.config import AnalysisOptions
    from seedgraph.shared.relationships.models import RelationshipAnalysisResult

logger = get_logger(__name__)

FINGERPRINT_PREFIX = "relationship_analysis_"


def fingerprint(options: AnalysisOptions) -> str:
    """Deterministic cache key for an analysis configuration."""
    payload = json.dumps(options.fingerprint_payload(), sort_keys=True, separators=(",", ":"))
    return FINGERPRINT_PREFIX + hashlib.sha256(payload.encode()).hexdigest()


class AnalysisCache:
    """Thread-safe fingerprint -> analysis result store.

    Reads and writes are serialized by a lock; concurrent writers of the same
    fingerprint overwrite each other, last writer wins.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Entry lifetime. None keeps entries until ``clear()``.
            clock: Monotonic time source, injectable for tests.
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, RelationshipAnalysisResult]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> RelationshipAnalysisResult | None:
        """Return the cached result, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                logger.debug("relationships.cache.expired", key=key)
                return None
            return result

    def set(self, key: str, result: RelationshipAnalysisResult) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), result)

    def clear(self) -> int:
        """Drop every entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.info("relationships.cache.cleared", removed=removed)
        return removed
