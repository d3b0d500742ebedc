"""Reconcile the blob bucket with the catalog.

Images can land in the bucket without passing through the upload endpoint
(manual copies, restores from backup). `sync_catalog` lists every full-size
blob, adds a record for each one the catalog does not know yet and gives
every record a well-formed identifier, one gallery day at a time.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Dict, Iterable, List, Optional

from dal.metadata_store import MetadataStore
from models.image_record import ImageRecord
from services.blob_storage import BaseBlobStorage
from services.file_manager import day_from_path, thumbnail_path_for
from services.id_generator import migrate_to_date_based_ids, parse_date_based_id, upload_sort_key
from services.image_cache import ImageCache

IMAGES_PREFIX = "images/"

_LEADING_ID = re.compile(r"^(\d+)-")


class StorageUnavailableError(RuntimeError):
    """Raised when the blob backend cannot be reached."""


@dataclass
class SyncResult:
    total_images: int
    existing_images: int
    new_images: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalImages": self.total_images,
            "existingImages": self.existing_images,
            "newImages": self.new_images,
        }


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def record_from_blob(storage: BaseBlobStorage, path: str, now: Optional[datetime] = None) -> ImageRecord:
    """Build a catalog record for a full-size blob found in the bucket.

    The identifier and title are read back from the ``<id>-<name>.<ext>``
    filename. When the identifier is well-formed its date becomes the
    upload date; otherwise the current time is used and the identifier is
    left for migration to replace.
    """
    filename = path.rsplit("/", 1)[-1]
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename

    image_id = None
    title = stem
    match = _LEADING_ID.match(stem)
    if match:
        image_id = int(match.group(1))
        title = stem[match.end():] or stem

    parsed = parse_date_based_id(image_id)
    if parsed:
        upload_date = _iso(datetime.combine(parsed.date, time(0, 0), tzinfo=timezone.utc))
    else:
        upload_date = _iso(now or datetime.now(timezone.utc))

    return ImageRecord(
        id=image_id,
        day=day_from_path(path),
        upload_date=upload_date,
        title=title,
        thumbnail_url=storage.public_url(thumbnail_path_for(path)),
        full_url=storage.public_url(path),
        gcs_path=path,
        filename=filename,
    )


def migrate_by_day(records: Iterable[ImageRecord]) -> List[ImageRecord]:
    """Run identifier migration separately for each gallery day.

    Days keep the order in which they first appear; within a day records
    come back in chronological order. An id already used by an earlier day
    is allocated afresh.

    Raises:
        InvalidBucketError: If a record's day is outside 1-9 and needs a new id.
        CapacityExceededError: If a date and day fill up during migration.
    """
    by_day: "OrderedDict[int, List[ImageRecord]]" = OrderedDict()
    for record in records:
        by_day.setdefault(record.day or 1, []).append(record)

    migrated: List[ImageRecord] = []
    for day, day_records in by_day.items():
        migrated.extend(migrate_to_date_based_ids(day_records, day, taken=migrated))
    return migrated


def order_for_display(records: Iterable[ImageRecord]) -> List[ImageRecord]:
    """Sort by gallery day ascending, newest upload first within a day."""
    newest_first = sorted(records, key=upload_sort_key, reverse=True)
    return sorted(newest_first, key=lambda record: record.day or 1)


async def sync_catalog(
    store: MetadataStore,
    storage: BaseBlobStorage,
    cache: ImageCache,
    now: Optional[datetime] = None,
) -> SyncResult:
    """Add bucket images missing from the catalog and migrate legacy ids.

    A legacy filename-keyed catalog is accepted and rewritten as a list.

    Raises:
        StorageUnavailableError: If the storage backend is unreachable.
        IdentifierError: If migration cannot allocate an id; nothing is written.
    """
    if not await storage.check_connection():
        raise StorageUnavailableError("Storage backend is not reachable, check the storage settings")

    blob_paths = [path for path in await storage.list(IMAGES_PREFIX) if "/full/" in path]

    async with store.transaction(allow_legacy=True) as records:
        existing_count = len(records)
        known_paths = {record.gcs_path for record in records if record.gcs_path}
        new_records = [
            record_from_blob(storage, path, now) for path in blob_paths if path not in known_paths
        ]

        merged = order_for_display(migrate_by_day(records + new_records))
        records[:] = merged

    cache.invalidate()
    result = SyncResult(total_images=len(merged), existing_images=existing_count, new_images=len(new_records))
    logging.info(
        "Sync finished: %d images (%d existing, %d new from storage)",
        result.total_images,
        result.existing_images,
        result.new_images,
    )
    return result
