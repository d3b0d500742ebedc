"""Edit and delete catalog entries together with their blobs."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from dal.metadata_store import MetadataStore
from models.image_record import ImageRecord
from services.blob_storage import BaseBlobStorage, BlobNotFoundError
from services.file_manager import DayMove, copy_image_to_new_day, discard_blobs, thumbnail_path_for
from services.id_generator import validate_gallery_day
from services.image_cache import ImageCache


class ImageNotFoundError(LookupError):
    """Raised when no catalog record carries the requested id."""

    def __init__(self, image_id: int) -> None:
        super().__init__(f"Image {image_id} not found")
        self.image_id = image_id


def _find_index(records: List[ImageRecord], image_id: int) -> int:
    for index, record in enumerate(records):
        if record.id == image_id:
            return index
    raise ImageNotFoundError(image_id)


async def update_image(
    store: MetadataStore,
    storage: BaseBlobStorage,
    cache: ImageCache,
    image_id: int,
    *,
    day: Optional[int] = None,
    title: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[List[str]] = None,
    is_highlight: Optional[bool] = None,
) -> Tuple[ImageRecord, bool]:
    """Change fields of one record. Returns `(updated_record, blobs_moved)`.

    A day change copies the record's blobs into the new day folder and
    rewrites its URLs; the old blobs are deleted only once the catalog
    has been written, and the copies are removed if that write fails. The
    identifier is left untouched. Highlighting an image clears the flag on
    every other image of the same day.

    Raises:
        InvalidBucketError: If `day` is outside 1-9.
        ImageNotFoundError: If no record has `image_id`.
    """
    if day is not None:
        validate_gallery_day(day)

    move: Optional[DayMove] = None
    try:
        async with store.transaction() as records:
            index = _find_index(records, image_id)
            current = records[index]
            changes = {}

            if day is not None and day != current.day and current.gcs_path:
                logging.info("Moving image %s from day %s to day %s", image_id, current.day, day)
                move = await copy_image_to_new_day(
                    storage, current.gcs_path, day, current.id, current.title or f"image-{current.id}"
                )
                changes.update(
                    gcs_path=move.new_full_path,
                    full_url=storage.public_url(move.new_full_path),
                    thumbnail_url=storage.public_url(move.new_thumbnail_path),
                    filename=move.new_full_path.rsplit("/", 1)[-1],
                    day=day,
                )
            elif day is not None:
                changes["day"] = day

            if title is not None:
                changes["title"] = title
            if category is not None:
                changes["category"] = category
            if tags is not None:
                changes["tags"] = list(tags)

            if is_highlight is not None:
                target_day = changes.get("day", current.day)
                if is_highlight:
                    for other_index, other in enumerate(records):
                        if other_index != index and other.day == target_day and other.is_highlight:
                            records[other_index] = other.with_changes(is_highlight=False)
                changes["is_highlight"] = is_highlight

            updated = current.with_changes(**changes)
            records[index] = updated
    except Exception:
        if move is not None:
            await discard_blobs(storage, move.destinations)
        raise

    if move is not None:
        await discard_blobs(storage, move.sources)

    cache.invalidate()
    return updated, move is not None


async def _delete_blob(storage: BaseBlobStorage, path: str) -> None:
    try:
        await storage.delete(path)
        logging.info("Deleted blob %s", path)
    except BlobNotFoundError:
        logging.warning("Blob %s not found (already deleted?)", path)


async def delete_image(store: MetadataStore, storage: BaseBlobStorage, cache: ImageCache, image_id: int) -> ImageRecord:
    """Delete an image's blobs and remove its record.

    Missing blobs are tolerated; any other storage failure leaves the
    record in place and propagates.

    Raises:
        ImageNotFoundError: If no record has `image_id`.
    """
    async with store.transaction() as records:
        index = _find_index(records, image_id)
        record = records[index]
        if record.gcs_path:
            await _delete_blob(storage, record.gcs_path)
            await _delete_blob(storage, thumbnail_path_for(record.gcs_path))
        del records[index]

    cache.invalidate()
    logging.info("Deleted image %s", image_id)
    return record
