"""In-memory caches in front of the catalog file.

`ImageCache` holds the decoded catalog plus a bounded LRU of listing
results. It is created once per application and handed to whoever reads
or mutates the catalog; writers call `invalidate()` after every change.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.image_record import ImageRecord


class ImageCache:
    """TTL cache for the catalog and LRU/TTL cache for query results.

    Args:
        ttl_seconds: Lifetime of the cached catalog. Reading it extends its life.
        result_ttl_seconds: Lifetime of each cached query result.
        max_results: Maximum number of query results kept.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 900,
        result_ttl_seconds: float = 300,
        max_results: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.result_ttl_seconds = result_ttl_seconds
        self.max_results = max_results
        self._clock = clock
        self._records: Optional[List[ImageRecord]] = None
        self._records_at = 0.0
        self._results: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def get_records(self) -> Optional[List[ImageRecord]]:
        """Return the cached catalog, or None when missing or expired."""
        if self._records is None:
            return None
        now = self._clock()
        if now - self._records_at >= self.ttl_seconds:
            self._records = None
            return None
        self._records_at = now
        return self._records

    def set_records(self, records: List[ImageRecord]) -> None:
        self._records = list(records)
        self._records_at = self._clock()

    def get_result(self, key: str) -> Optional[Tuple[Any, float]]:
        """Return ``(result, age_seconds)`` for `key`, or None on a miss."""
        entry = self._results.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        age = self._clock() - stored_at
        if age >= self.result_ttl_seconds:
            del self._results[key]
            return None
        self._results.move_to_end(key)
        return result, age

    def set_result(self, key: str, result: Any) -> None:
        self._results[key] = (self._clock(), result)
        self._results.move_to_end(key)
        while len(self._results) > self.max_results:
            self._results.popitem(last=False)

    def invalidate(self) -> None:
        """Drop everything; call after any catalog mutation."""
        self._records = None
        self._results.clear()
        logging.info("Image cache cleared")

    def status(self) -> Dict[str, Any]:
        """Summarise cache state for diagnostics."""
        if self._records is None:
            return {"exists": False, "imageCount": 0, "age": 0.0, "isExpired": True, "cachedResults": len(self._results)}
        age = self._clock() - self._records_at
        return {
            "exists": True,
            "imageCount": len(self._records),
            "age": age,
            "isExpired": age >= self.ttl_seconds,
            "cachedResults": len(self._results),
        }
