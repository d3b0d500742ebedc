from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ImageRecord:
    """In-memory representation of one entry in the gallery catalog.

    Attributes:
        id: Date-based identifier (``YYMMDD[day]##``); None before allocation.
        day: Gallery day bucket (1-9).
        upload_date: ISO-8601 timestamp of when the blob was stored.
        title: Display title.
        thumbnail_url: Public URL of the thumbnail blob.
        full_url: Public URL of the full-size blob.
        gcs_path: Storage path of the full-size blob.
        is_highlight: True for the single highlighted image of a day.
        category: Optional free-form category.
        tags: Optional free-form tags.
        original_id: Legacy id replaced during migration.
        filename: Basename of `gcs_path`.
        extra: Unrecognised JSON keys, kept so they survive a rewrite.
    """

    id: Optional[int]
    day: int
    upload_date: str
    title: str = ""
    thumbnail_url: str = ""
    full_url: str = ""
    gcs_path: Optional[str] = None
    is_highlight: Optional[bool] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    original_id: Optional[Any] = None
    filename: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _JSON_KEYS = {
        "id": "id",
        "day": "day",
        "upload_date": "uploadDate",
        "title": "title",
        "thumbnail_url": "thumbnailUrl",
        "full_url": "fullUrl",
        "gcs_path": "gcsPath",
        "is_highlight": "isHighlight",
        "category": "category",
        "tags": "tags",
        "original_id": "originalId",
        "filename": "filename",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRecord":
        """Build a record from its JSON mapping (camelCase keys)."""
        known = set(cls._JSON_KEYS.values())
        raw_day = data.get("day")
        try:
            day = int(raw_day) if raw_day is not None else 1
        except (TypeError, ValueError):
            day = 1
        return cls(
            id=data.get("id"),
            day=day,
            upload_date=data.get("uploadDate") or "",
            title=data.get("title") or "",
            thumbnail_url=data.get("thumbnailUrl") or "",
            full_url=data.get("fullUrl") or "",
            gcs_path=data.get("gcsPath"),
            is_highlight=data.get("isHighlight"),
            category=data.get("category"),
            tags=list(data["tags"]) if data.get("tags") is not None else None,
            original_id=data.get("originalId"),
            filename=data.get("filename"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the JSON mapping, omitting unset optional fields."""
        out: Dict[str, Any] = {}
        for attr, key in self._JSON_KEYS.items():
            value = getattr(self, attr)
            if value is None and attr not in ("id", "day", "upload_date", "title"):
                continue
            out[key] = value
        for key, value in self.extra.items():
            out.setdefault(key, value)
        return out

    def with_changes(self, **changes: Any) -> "ImageRecord":
        """Return a copy with the given fields replaced."""
        changes.setdefault("extra", dict(self.extra))
        return dataclasses.replace(self, **changes)
