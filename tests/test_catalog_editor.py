import asyncio

import pytest

from dal.metadata_store import MetadataStore, MetadataStoreError
from models.image_record import ImageRecord
from services.catalog_editor import ImageNotFoundError, delete_image, update_image
from services.id_generator import InvalidBucketError


class ReadOnlyAfterSetupStore(MetadataStore):
    read_only = False

    async def _write(self, records):
        if self.read_only:
            raise MetadataStoreError(f"Failed to write catalog at {self.path}")
        await super()._write(records)


def stored_record(storage, image_id, day, name, **fields):
    full_path = f"images/day-{day}/full/{image_id}-{name}.jpg"
    thumb_path = f"images/day-{day}/thumbnails/{image_id}-{name}_thumb.jpg"
    asyncio.run(storage.put(full_path, b"full"))
    asyncio.run(storage.put(thumb_path, b"thumb"))
    return ImageRecord(
        id=image_id,
        day=day,
        upload_date="2025-05-24T10:00:00Z",
        title=name,
        full_url=storage.public_url(full_path),
        thumbnail_url=storage.public_url(thumb_path),
        gcs_path=full_path,
        filename=full_path.rsplit("/", 1)[-1],
        **fields,
    )


def test_update_changes_metadata(store, storage, cache):
    asyncio.run(store.write_all([stored_record(storage, 250524101, 1, "sunset")]))

    updated, moved = asyncio.run(
        update_image(store, storage, cache, 250524101, title="Golden hour", category="Nature", tags=["sky"])
    )

    assert moved is False
    assert (updated.title, updated.category, updated.tags) == ("Golden hour", "Nature", ["sky"])
    assert asyncio.run(store.read_all()) == [updated]


def test_day_change_moves_blobs_and_keeps_id(store, storage, cache):
    asyncio.run(store.write_all([stored_record(storage, 250524101, 1, "sunset")]))

    updated, moved = asyncio.run(update_image(store, storage, cache, 250524101, day=3))

    assert moved is True
    assert updated.id == 250524101
    assert updated.day == 3
    assert updated.gcs_path == "images/day-3/full/250524101-sunset.jpg"
    assert updated.thumbnail_url == "/blobs/images/day-3/thumbnails/250524101-sunset_thumb.jpg"
    assert asyncio.run(storage.list()) == [
        "images/day-3/full/250524101-sunset.jpg",
        "images/day-3/thumbnails/250524101-sunset_thumb.jpg",
    ]


def test_failed_catalog_write_keeps_original_blobs(tmp_path, storage, cache):
    store = ReadOnlyAfterSetupStore(tmp_path / "data" / "images.json")
    original = stored_record(storage, 250524101, 1, "sunset")
    asyncio.run(store.write_all([original]))
    store.read_only = True

    with pytest.raises(MetadataStoreError):
        asyncio.run(update_image(store, storage, cache, 250524101, day=3))

    assert asyncio.run(storage.list()) == [
        "images/day-1/full/250524101-sunset.jpg",
        "images/day-1/thumbnails/250524101-sunset_thumb.jpg",
    ]
    assert asyncio.run(store.read_all()) == [original]


def test_highlight_is_unique_per_day(store, storage, cache):
    records = [
        stored_record(storage, 250524101, 1, "a", is_highlight=True),
        stored_record(storage, 250524102, 1, "b"),
        stored_record(storage, 250524201, 2, "c", is_highlight=True),
    ]
    asyncio.run(store.write_all(records))

    asyncio.run(update_image(store, storage, cache, 250524102, is_highlight=True))

    flags = {record.id: record.is_highlight for record in asyncio.run(store.read_all())}
    assert flags == {250524101: False, 250524102: True, 250524201: True}


def test_update_rejects_invalid_day(store, storage, cache):
    asyncio.run(store.write_all([stored_record(storage, 250524101, 1, "sunset")]))

    with pytest.raises(InvalidBucketError):
        asyncio.run(update_image(store, storage, cache, 250524101, day=0))


def test_update_unknown_image(store, storage, cache):
    with pytest.raises(ImageNotFoundError):
        asyncio.run(update_image(store, storage, cache, 250524101, title="x"))


def test_delete_removes_blobs_and_record(store, storage, cache):
    keep = stored_record(storage, 250524102, 1, "keep")
    asyncio.run(store.write_all([stored_record(storage, 250524101, 1, "gone"), keep]))
    cache.set_records([])

    deleted = asyncio.run(delete_image(store, storage, cache, 250524101))

    assert deleted.id == 250524101
    assert asyncio.run(store.read_all()) == [keep]
    assert not asyncio.run(storage.exists("images/day-1/full/250524101-gone.jpg"))
    assert not asyncio.run(storage.exists("images/day-1/thumbnails/250524101-gone_thumb.jpg"))
    assert cache.get_records() is None


def test_delete_tolerates_missing_blobs(store, storage, cache):
    record = stored_record(storage, 250524101, 1, "gone")
    asyncio.run(storage.delete(record.gcs_path))
    asyncio.run(store.write_all([record]))

    asyncio.run(delete_image(store, storage, cache, 250524101))

    assert asyncio.run(store.read_all()) == []


def test_delete_unknown_image(store, storage, cache):
    with pytest.raises(ImageNotFoundError):
        asyncio.run(delete_image(store, storage, cache, 250524101))
