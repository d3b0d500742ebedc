"""Print every record stored in the gallery catalog.

Each line shows the raw identifier, its human-readable form, the gallery
day and the title. Legacy catalogs (filename-keyed or with old ids) are
printed as they are; run `migrate_db.py` to convert them.

Run: set the `GALLERY_DATA_DIR` environment variable (or pass the path of
      an images.json file) and run `python print_db.py [path]`.
"""
import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from dal.metadata_store import MetadataStore
from models.image_record import ImageRecord
from services.id_generator import format_id_for_display, is_date_based_id


def catalog_path(argv: list) -> Path:
    """Return the catalog file named on the command line or in the environment."""
    if len(argv) > 1:
        return Path(argv[1])
    data_dir = os.getenv("GALLERY_DATA_DIR")
    if not data_dir:
        raise RuntimeError("Pass a catalog path or set GALLERY_DATA_DIR")
    return Path(data_dir) / "images.json"


def describe(record: ImageRecord) -> str:
    marker = "" if is_date_based_id(record.id) else "  [legacy id]"
    original = f"  (was {record.original_id})" if record.original_id is not None else ""
    return f"{record.id}: {format_id_for_display(record.id)} | day {record.day} | {record.title!r}{original}{marker}"


async def main(path: Optional[Path] = None) -> None:
    """Print the catalog at `path`, one record per line."""
    store = MetadataStore(path or catalog_path(sys.argv))
    records = await store.read_all(allow_legacy=True)
    print(f"Catalog: {store.path} ({len(records)} images)")
    for record in records:
        print(f"  {describe(record)}")


if __name__ == "__main__":
    load_dotenv()
    asyncio.run(main())
