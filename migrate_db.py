"""One-time conversion of a legacy gallery catalog.

Older deployments stored the catalog as a map keyed by filename and used
millisecond timestamps as ids. This script rewrites the catalog as an
ordered list and gives every record a date-based id, one gallery day at a
time. Replaced ids are kept under `originalId`. A backup of the original
file is written next to it before anything changes.

Run: set the `GALLERY_DATA_DIR` environment variable (or pass the path of
      an images.json file) and run `python migrate_db.py [path]`.
"""
import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from dal.metadata_store import MetadataStore, is_filename_keyed_document
from print_db import catalog_path
from services.id_generator import is_date_based_id
from services.sync_service import migrate_by_day, order_for_display


async def migrate_catalog(path: Path, backup: bool = True) -> Dict[str, int]:
    """Convert the catalog at `path` in place and return counts of what changed.

    Raises:
        IdentifierError: If an id cannot be allocated; the file is left untouched.
        MetadataStoreError: If the catalog cannot be read.
    """
    store = MetadataStore(path)
    raw = await store.read_raw()
    was_legacy_layout = is_filename_keyed_document(raw)

    if backup and path.exists():
        backup_path = path.with_name(path.name + ".bak")
        shutil.copyfile(path, backup_path)
        logging.info("Backed up %s to %s", path, backup_path)

    async with store.transaction(allow_legacy=True) as records:
        legacy_ids = sum(1 for record in records if not is_date_based_id(record.id))
        records[:] = order_for_display(migrate_by_day(records))

    stats = {
        "totalImages": len(records),
        "migratedIds": legacy_ids,
        "convertedLayout": int(was_legacy_layout),
    }
    logging.info(
        "Migrated %s: %d images, %d new ids, layout converted: %s",
        path,
        stats["totalImages"],
        stats["migratedIds"],
        bool(was_legacy_layout),
    )
    return stats


async def main(path: Optional[Path] = None) -> None:
    stats = await migrate_catalog(path or catalog_path(sys.argv))
    print(
        f"Done: {stats['totalImages']} images, {stats['migratedIds']} new ids"
        + (", converted from filename-keyed layout" if stats["convertedLayout"] else "")
    )


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
