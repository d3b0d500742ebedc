import asyncio
import io
import zipfile
from datetime import datetime

import pytest

from models.image_record import ImageRecord
from services.zip_builder import DownloadItem, archive_name, build_zip, day_folder, download_filename, items_from_catalog


def test_day_folder_names():
    assert day_folder(3) == "Day_3"
    assert day_folder(None) == "Uncategorized"


def test_archive_name_uses_id_clean_title_and_extension():
    item = DownloadItem(id=250524101, title="Sunset Beach", full_url="/blobs/images/day-1/full/250524101-x.png")
    assert archive_name(item) == "250524101_Sunset_Beach.png"


def test_download_filename_carries_date():
    assert download_filename(datetime(2025, 5, 24, 23, 0)) == "gallery-2025-05-24.zip"


def test_build_zip_groups_by_day_and_skips_missing(storage):
    asyncio.run(storage.put("images/day-1/full/250524101-sunset.jpg", b"one"))
    asyncio.run(storage.put("images/day-2/full/250525201-temple.jpg", b"two"))
    items = [
        DownloadItem(id=250524101, title="Sunset", full_url=storage.public_url("images/day-1/full/250524101-sunset.jpg"), day=1),
        DownloadItem(id=250525201, title="Temple", full_url="", gcs_path="images/day-2/full/250525201-temple.jpg"),
        DownloadItem(id=250525202, title="Gone", full_url=storage.public_url("images/day-2/full/250525202-gone.jpg"), day=2),
        DownloadItem(id=1, title="Elsewhere", full_url="https://example.com/a.jpg", day=2),
    ]

    content = asyncio.run(build_zip(storage, items))

    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert sorted(archive.namelist()) == [
            "Day_1/250524101_Sunset.jpg",
            "Uncategorized/250525201_Temple.jpg",
        ]
        assert archive.read("Day_1/250524101_Sunset.jpg") == b"one"


def test_build_zip_requires_items(storage):
    with pytest.raises(ValueError):
        asyncio.run(build_zip(storage, []))


def test_items_from_catalog_uses_record_paths():
    records = [
        ImageRecord(
            id=250524101,
            day=1,
            upload_date="2025-05-24T10:00:00Z",
            title="Sunset",
            full_url="/blobs/images/day-1/full/250524101-sunset.jpg",
            gcs_path="images/day-1/full/250524101-sunset.jpg",
        )
    ]
    requested = [
        DownloadItem(id=250524101, title="", full_url="/blobs/private/backup.txt", day=9, gcs_path="private/backup.txt"),
        DownloadItem(id=250524199, title="Unknown", full_url="", gcs_path="private/backup.txt"),
    ]

    items = items_from_catalog(records, requested)

    assert items == [
        DownloadItem(
            id=250524101,
            title="Sunset",
            full_url="/blobs/images/day-1/full/250524101-sunset.jpg",
            day=1,
            gcs_path="images/day-1/full/250524101-sunset.jpg",
        )
    ]
