"""Helpers for storing uploaded images and recording them in the catalog.

This service coordinates processing the upload with Pillow, allocating a
date-based identifier against the current catalog, writing the full-size
and thumbnail blobs, and appending the record to the catalog. The whole
sequence runs inside one catalog transaction so concurrent uploads never
allocate against a stale record list.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from dal.metadata_store import MetadataStore
from models.image_record import ImageRecord
from services.blob_storage import BaseBlobStorage
from services.file_manager import clean_base_name, discard_blobs, full_image_path, thumbnail_path
from services.id_generator import generate_date_based_id, validate_gallery_day
from services.image_cache import ImageCache
from services.thumbnail_generator import ProcessedImage, ThumbnailGenerator


@dataclass
class BulkUploadResult:
    """Outcome of a multi-file upload."""

    uploaded: List[ImageRecord] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.uploaded) + len(self.failed)

    @property
    def success(self) -> bool:
        # More than 10% failures marks the batch as unsuccessful
        return len(self.failed) <= self.total_processed * 0.1


async def _store_processed(
    store: MetadataStore,
    storage: BaseBlobStorage,
    processed: ProcessedImage,
    original_name: str,
    day: int,
    title: Optional[str],
    now: datetime,
) -> ImageRecord:
    written: List[str] = []
    try:
        async with store.transaction() as records:
            image_id = generate_date_based_id(records, day, now)
            base_name = clean_base_name(original_name)
            full_path = full_image_path(day, image_id, base_name)
            thumb_path = thumbnail_path(day, image_id, base_name)
            upload_date = now.isoformat().replace("+00:00", "Z")

            blob_metadata = {"originalName": original_name, "day": day, "uploadDate": upload_date}
            await storage.put(full_path, processed.full_bytes, processed.content_type, {**blob_metadata, "quality": "original"})
            written.append(full_path)
            await storage.put(thumb_path, processed.thumbnail_bytes, processed.content_type, {**blob_metadata, "type": "thumbnail"})
            written.append(thumb_path)

            record = ImageRecord(
                id=image_id,
                day=day,
                upload_date=upload_date,
                title=title or base_name,
                thumbnail_url=storage.public_url(thumb_path),
                full_url=storage.public_url(full_path),
                gcs_path=full_path,
                filename=full_path.rsplit("/", 1)[-1],
            )
            # Newest uploads go first
            records.insert(0, record)
    except Exception:
        await discard_blobs(storage, written)
        raise
    return record


async def save_uploaded_image(
    store: MetadataStore,
    storage: BaseBlobStorage,
    cache: ImageCache,
    image_bytes: bytes,
    original_name: str,
    day: int,
    title: Optional[str] = None,
    processor: Optional[ThumbnailGenerator] = None,
    now: Optional[datetime] = None,
) -> ImageRecord:
    """Process, store and catalog one uploaded image.

    Args:
        store: Catalog the new record is appended to.
        storage: Blob backend receiving the full-size image and thumbnail.
        cache: Cache invalidated once the record is written.
        image_bytes: Raw bytes of the uploaded image.
        original_name: Client-supplied filename.
        day: Gallery day bucket (1-9).
        title: Optional display title; defaults to the cleaned filename stem.
        processor: Image processor; a default `ThumbnailGenerator` when omitted.
        now: Upload time; defaults to the current UTC time.

    Returns:
        The persisted ImageRecord.

    Raises:
        InvalidBucketError: If `day` is outside 1-9 (nothing is written).
        CapacityExceededError: If the date and day already hold 99 images.
        ValueError: If the bytes are not a readable image.
    """
    validate_gallery_day(day)
    processor = processor or ThumbnailGenerator()
    # Pillow work is blocking -> run in thread
    processed = await asyncio.to_thread(processor.process, image_bytes)

    record = await _store_processed(
        store, storage, processed, original_name, day, title, now or datetime.now(timezone.utc)
    )
    cache.invalidate()
    logging.info("Uploaded %s as image %s (day %s)", original_name, record.id, day)
    return record


async def save_uploaded_images(
    store: MetadataStore,
    storage: BaseBlobStorage,
    cache: ImageCache,
    files: Sequence[Tuple[str, bytes]],
    day: int,
    processor: Optional[ThumbnailGenerator] = None,
) -> BulkUploadResult:
    """Upload several `(filename, bytes)` pairs into one gallery day.

    Files are processed one after another so each allocation sees the ids
    of the previous ones. A file that cannot be processed or stored (a
    storage error, or a date and day that is already full) is recorded in
    `failed` and the batch moves on; only an invalid day aborts it.
    """
    validate_gallery_day(day)
    processor = processor or ThumbnailGenerator()
    result = BulkUploadResult()

    try:
        for filename, data in files:
            try:
                processed = await asyncio.to_thread(processor.process, data)
            except ValueError as exc:
                logging.warning("Failed to process %s: %s", filename, exc)
                result.failed.append({"filename": filename, "error": str(exc)})
                continue
            try:
                record = await _store_processed(
                    store, storage, processed, filename, day, None, datetime.now(timezone.utc)
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logging.error("Failed to store %s: %s", filename, exc)
                result.failed.append({"filename": filename, "error": str(exc)})
                continue
            result.uploaded.append(record)
            logging.info("Uploaded %s as image %s (day %s)", filename, record.id, day)
    finally:
        if result.uploaded:
            cache.invalidate()
    return result
