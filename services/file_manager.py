"""Blob path layout and relocation of images between gallery days."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Sequence, Tuple

from services.blob_storage import BaseBlobStorage, BlobNotFoundError

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")
_EXTENSION = re.compile(r"(\.[^./]+)$")

STORED_EXTENSION = ".jpg"


def clean_base_name(original_name: str) -> str:
    """Return the filename stem with every unsafe character replaced by `_`."""
    stem = PurePosixPath(original_name.replace("\\", "/")).stem or "image"
    return _UNSAFE_CHARS.sub("_", stem)


def full_image_path(day: int, image_id: int, base_name: str, extension: str = STORED_EXTENSION) -> str:
    return f"images/day-{day}/full/{image_id}-{base_name}{extension}"


def thumbnail_path(day: int, image_id: int, base_name: str, extension: str = STORED_EXTENSION) -> str:
    return f"images/day-{day}/thumbnails/{image_id}-{base_name}_thumb{extension}"


def thumbnail_path_for(full_path: str) -> str:
    """Derive the thumbnail path that belongs to a full-size image path."""
    swapped = full_path.replace("/full/", "/thumbnails/")
    if _EXTENSION.search(swapped):
        return _EXTENSION.sub(r"_thumb\1", swapped)
    return swapped + "_thumb"


def day_from_path(path: str, default: int = 1) -> int:
    """Read the gallery day from an ``images/day-<n>/...`` path."""
    match = re.search(r"day-(\d+)", path)
    return int(match.group(1)) if match else default


@dataclass
class DayMove:
    """Blobs copied into a new day folder whose originals still exist."""

    new_full_path: str
    new_thumbnail_path: str
    copied: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def sources(self) -> List[str]:
        return [source for source, _ in self.copied]

    @property
    def destinations(self) -> List[str]:
        return [destination for _, destination in self.copied]


async def copy_image_to_new_day(
    storage: BaseBlobStorage,
    gcs_path: str,
    new_day: int,
    image_id: int,
    title: str,
) -> DayMove:
    """Copy an image's full-size and thumbnail blobs into another day folder.

    The originals are left in place. Once the catalog points at the new
    paths, delete `DayMove.sources`; if the catalog write fails, delete
    `DayMove.destinations` instead. Missing source blobs are skipped.

    Args:
        storage: Blob backend holding the files.
        gcs_path: Current path of the full-size blob.
        new_day: Destination gallery day.
        image_id: Identifier used in the new filenames.
        title: Used to build the new base name.

    Returns:
        The `DayMove` describing the new paths and what was copied.
    """
    base_name = clean_base_name(title or f"image-{image_id}")
    move = DayMove(
        new_full_path=full_image_path(new_day, image_id, base_name),
        new_thumbnail_path=thumbnail_path(new_day, image_id, base_name),
    )
    current_thumbnail_path = thumbnail_path_for(gcs_path)

    try:
        for source, destination in ((gcs_path, move.new_full_path), (current_thumbnail_path, move.new_thumbnail_path)):
            if source == destination:
                continue
            if await storage.exists(source):
                await storage.copy(source, destination)
                logging.info("Copied %s -> %s", source, destination)
                move.copied.append((source, destination))
            else:
                logging.warning("Blob %s not found, nothing to move", source)
    except Exception:
        await discard_blobs(storage, move.destinations)
        raise

    return move


async def discard_blobs(storage: BaseBlobStorage, paths: Sequence[str]) -> None:
    """Delete `paths`, ignoring missing blobs and logging other failures."""
    for path in paths:
        try:
            await storage.delete(path)
            logging.info("Deleted blob %s", path)
        except BlobNotFoundError:
            continue
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logging.error("Failed to remove blob %s: %s", path, exc)
