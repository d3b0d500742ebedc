"""Bundle selected gallery images into a ZIP archive grouped by day."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from models.image_record import ImageRecord
from services.blob_storage import BaseBlobStorage, BlobNotFoundError

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


@dataclass
class DownloadItem:
    """One image requested for download."""

    id: int
    title: str
    full_url: str
    day: Optional[int] = None
    gcs_path: Optional[str] = None


def day_folder(day: Optional[int]) -> str:
    return f"Day_{day}" if day else "Uncategorized"


def archive_name(item: DownloadItem) -> str:
    """Return ``<id>_<clean title>.<ext>`` for an archive entry."""
    source = item.gcs_path or item.full_url
    tail = source.rsplit("/", 1)[-1]
    extension = tail.rsplit(".", 1)[-1] if "." in tail else "jpg"
    return f"{item.id}_{_UNSAFE_CHARS.sub('_', item.title or '')}.{extension}"


def download_filename(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).date().isoformat()
    return f"gallery-{stamp}.zip"


def items_from_catalog(records: Iterable[ImageRecord], requested: Iterable[DownloadItem]) -> List[DownloadItem]:
    """Match requested images to catalog records by id.

    Only blobs the catalog points at can be downloaded: the path, URL and
    day come from the record, and just the client's title is kept for
    naming the entry. Ids missing from the catalog are skipped with a
    warning.
    """
    by_id = {record.id: record for record in records}
    items = []
    for wanted in requested:
        record = by_id.get(wanted.id)
        if record is None:
            logging.warning("Skipping image %s: not in the catalog", wanted.id)
            continue
        items.append(
            DownloadItem(
                id=record.id,
                title=wanted.title or record.title,
                full_url=record.full_url,
                day=record.day,
                gcs_path=record.gcs_path,
            )
        )
    return items


def _url_to_path(storage: BaseBlobStorage, url: str) -> Optional[str]:
    prefix = storage.public_base_url + "/"
    return url[len(prefix):] if url.startswith(prefix) else None


async def build_zip(storage: BaseBlobStorage, items: Iterable[DownloadItem]) -> bytes:
    """Read each item's full-size blob and write it under its day folder.

    Items are trusted as given; build them with `items_from_catalog` when
    they come from a client.

    Items whose blob cannot be found (or whose URL does not belong to the
    configured storage) are skipped with a warning.

    Raises:
        ValueError: If no items are given.
    """
    items = list(items)
    if not items:
        raise ValueError("No images provided")

    grouped: "OrderedDict[str, List[DownloadItem]]" = OrderedDict()
    for item in items:
        grouped.setdefault(day_folder(item.day), []).append(item)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as archive:
        for folder, folder_items in grouped.items():
            for item in folder_items:
                path = item.gcs_path or _url_to_path(storage, item.full_url)
                if path is None:
                    logging.warning("Skipping image %s: %s is not a stored blob", item.id, item.full_url)
                    continue
                try:
                    data = await storage.get(path)
                except BlobNotFoundError:
                    logging.warning("Skipping image %s: blob %s not found", item.id, path)
                    continue
                archive.writestr(f"{folder}/{archive_name(item)}", data)
    return buffer.getvalue()
