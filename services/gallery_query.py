"""Filtering, sorting and pagination of the catalog for browsing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dal.metadata_store import MetadataStore
from models.image_record import ImageRecord
from services.id_generator import parse_upload_date
from services.image_cache import ImageCache

SORT_FIELDS = ("date", "id", "day")


@dataclass
class GalleryQuery:
    """Parameters of one listing request."""

    page: int = 1
    limit: int = 100
    day: Optional[int] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    sort_by: str = "date"
    sort_order: str = "desc"
    search: str = ""

    def cache_key(self) -> str:
        tags = ",".join(self.tags or [])
        return (
            f"images-page={self.page}&limit={self.limit}&day={self.day}&category={self.category}"
            f"&tags={tags}&sortBy={self.sort_by}&sortOrder={self.sort_order}&search={self.search}"
        )


async def load_catalog(store: MetadataStore, cache: ImageCache, refresh: bool = False) -> List[ImageRecord]:
    """Return all records, served from `cache` unless `refresh` is set."""
    if not refresh:
        cached = cache.get_records()
        if cached is not None:
            return cached
    records = await store.read_all()
    cache.set_records(records)
    return records


def _matches(record: ImageRecord, query: GalleryQuery) -> bool:
    if query.day is not None and record.day != query.day:
        return False
    if query.category and (record.category or "").lower() != query.category.lower():
        return False
    if query.tags and not any(tag in (record.tags or []) for tag in query.tags):
        return False
    if query.search:
        needle = query.search.lower()
        haystack = [record.title or "", record.category or ""] + list(record.tags or [])
        if not any(needle in value.lower() for value in haystack):
            return False
    return True


def _sort_value(record: ImageRecord, sort_by: str) -> float:
    if sort_by == "id":
        return record.id if isinstance(record.id, int) else 0
    if sort_by == "day":
        return record.day or 0
    parsed = parse_upload_date(record.upload_date)
    return parsed.timestamp() if parsed else 0


def apply_query(records: List[ImageRecord], query: GalleryQuery) -> Dict[str, Any]:
    """Filter, sort and paginate `records`.

    Returns:
        A dict with `images` (JSON mappings for the page), `totalImages`,
        `currentPage`, `totalPages` and `hasMore`.
    """
    if query.page < 1:
        raise ValueError("page must be at least 1")
    if query.limit < 1:
        raise ValueError("limit must be at least 1")
    sort_by = query.sort_by if query.sort_by in SORT_FIELDS else "date"

    filtered = [record for record in records if _matches(record, query)]
    filtered.sort(key=lambda record: _sort_value(record, sort_by), reverse=query.sort_order != "asc")

    total = len(filtered)
    start = (query.page - 1) * query.limit
    end = start + query.limit
    return {
        "images": [record.to_dict() for record in filtered[start:end]],
        "totalImages": total,
        "currentPage": query.page,
        "totalPages": math.ceil(total / query.limit),
        "hasMore": end < total,
    }


async def list_images(
    store: MetadataStore, cache: ImageCache, query: GalleryQuery, refresh: bool = False
) -> tuple[Dict[str, Any], Optional[float]]:
    """Run `query`, returning `(result, cache_age_seconds)`; the age is None on a miss."""
    key = query.cache_key()
    if not refresh:
        hit = cache.get_result(key)
        if hit is not None:
            return hit
    records = await load_catalog(store, cache, refresh=refresh)
    result = apply_query(records, query)
    cache.set_result(key, result)
    return result, None
