"""JSON-file data access layer for the image catalog.

The catalog is a single JSON document holding an ordered list of image
records. Every mutation is a full read-modify-write of that document, so
all of them go through `MetadataStore.transaction()`, which holds one
`asyncio.Lock` for the whole cycle. Only writers within this process are
serialised; separate processes sharing the file still race.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import aiofiles

from models.image_record import ImageRecord


class MetadataStoreError(RuntimeError):
    """Raised when the catalog document cannot be read or has the wrong shape."""


def is_filename_keyed_document(data: Any) -> bool:
    """Return True for the legacy ``{filename: record}`` catalog shape."""
    if not isinstance(data, dict) or not data:
        return False
    first_key = next(iter(data))
    first_value = data[first_key]
    return (
        isinstance(first_key, str)
        and "." in first_key
        and isinstance(first_value, dict)
        and "filename" in first_value
        and "gcsPath" in first_value
    )


def records_from_document(data: Any) -> List[Dict[str, Any]]:
    """Return the record mappings held by either catalog shape.

    The legacy filename-keyed map is flattened in key order with the key
    copied into each record's `filename` field.

    Raises:
        MetadataStoreError: If `data` is neither a list nor a filename-keyed map.
    """
    if isinstance(data, list):
        return [dict(item) for item in data if isinstance(item, dict)]
    if is_filename_keyed_document(data):
        records = []
        for filename, item in data.items():
            entry = dict(item)
            entry.setdefault("filename", filename)
            records.append(entry)
        return records
    raise MetadataStoreError("Catalog document must be a list of image records")


class MetadataStore:
    """Read and write the image catalog.

    Args:
        path: Location of the catalog JSON file.
        mirror_path: Optional second location that receives an identical copy
            after every write (e.g. a publicly served data directory).
        lock: Lock guarding read-modify-write cycles. Share one lock between
            all stores pointing at the same file.
    """

    def __init__(self, path: Path | str, mirror_path: Optional[Path | str] = None, lock: Optional[asyncio.Lock] = None) -> None:
        self.path = Path(path)
        self.mirror_path = Path(mirror_path) if mirror_path else None
        self._lock = lock or asyncio.Lock()

    async def read_raw(self) -> Any:
        """Return the decoded JSON document, or an empty list if the file is missing."""
        if not self.path.exists():
            return []
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as exc:
            raise MetadataStoreError(f"Failed to read catalog at {self.path}") from exc
        if not content.strip():
            return []
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise MetadataStoreError(f"Catalog at {self.path} is not valid JSON") from exc

    async def read_all(self, allow_legacy: bool = False) -> List[ImageRecord]:
        """Return every record in stored order.

        Args:
            allow_legacy: Accept the filename-keyed layout and flatten it.

        Raises:
            MetadataStoreError: If the document is unreadable, or uses the legacy
                filename-keyed shape while `allow_legacy` is False (convert it
                with `migrate_db.py` first).
        """
        data = await self.read_raw()
        return self._records_from(data, allow_legacy)

    def _records_from(self, data: Any, allow_legacy: bool) -> List[ImageRecord]:
        if not isinstance(data, list) and is_filename_keyed_document(data) and not allow_legacy:
            raise MetadataStoreError(
                f"Catalog at {self.path} uses the filename-keyed layout; run migrate_db.py to convert it"
            )
        return [ImageRecord.from_dict(item) for item in records_from_document(data)]

    async def write_all(self, records: List[ImageRecord]) -> None:
        """Replace the catalog with `records` (acquires the store lock)."""
        async with self._lock:
            await self._write(records)

    @asynccontextmanager
    async def transaction(self, allow_legacy: bool = False) -> AsyncIterator[List[ImageRecord]]:
        """Hold the store lock around a read-modify-write cycle.

        Yields the current record list. Mutate it in place; if the block
        exits without an exception and the list changed, it is written back.
        A legacy document read with `allow_legacy` is always rewritten in the
        canonical list layout.
        """
        async with self._lock:
            data = await self.read_raw()
            records = self._records_from(data, allow_legacy)
            snapshot = self._dump(records) if isinstance(data, list) else None
            yield records
            if self._dump(records) != snapshot:
                await self._write(records)

    @staticmethod
    def _dump(records: List[ImageRecord]) -> str:
        return json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False)

    async def _write(self, records: List[ImageRecord]) -> None:
        content = self._dump(records)
        for target in filter(None, (self.path, self.mirror_path)):
            await self._write_file(target, content)
        logging.info("Catalog written with %d records", len(records))

    @staticmethod
    async def _write_file(target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(target.name + ".tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            await asyncio.to_thread(os.replace, tmp_path, target)
        except OSError as exc:
            raise MetadataStoreError(f"Failed to write catalog at {target}") from exc
