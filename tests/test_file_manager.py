import asyncio

from services.file_manager import (
    clean_base_name,
    copy_image_to_new_day,
    day_from_path,
    discard_blobs,
    full_image_path,
    thumbnail_path,
    thumbnail_path_for,
)


def test_clean_base_name():
    assert clean_base_name("My Photo (1).JPG") == "My_Photo__1_"
    assert clean_base_name("C:\\uploads\\beach.png") == "beach"
    assert clean_base_name("") == "image"


def test_path_layout():
    assert full_image_path(2, 250524201, "beach") == "images/day-2/full/250524201-beach.jpg"
    assert thumbnail_path(2, 250524201, "beach") == "images/day-2/thumbnails/250524201-beach_thumb.jpg"
    assert thumbnail_path_for("images/day-2/full/250524201-beach.jpg") == (
        "images/day-2/thumbnails/250524201-beach_thumb.jpg"
    )


def test_day_from_path():
    assert day_from_path("images/day-7/full/x.jpg") == 7
    assert day_from_path("misc/x.jpg") == 1


def test_copy_skips_missing_thumbnail_and_keeps_source(storage):
    source = "images/day-1/full/250524101-beach.jpg"
    asyncio.run(storage.put(source, b"full"))

    move = asyncio.run(copy_image_to_new_day(storage, source, 4, 250524101, "beach"))

    assert move.new_full_path == "images/day-4/full/250524101-beach.jpg"
    assert move.new_thumbnail_path == "images/day-4/thumbnails/250524101-beach_thumb.jpg"
    assert move.sources == [source]
    assert move.destinations == [move.new_full_path]
    assert sorted(asyncio.run(storage.list())) == [source, move.new_full_path]
    assert asyncio.run(storage.get(move.new_full_path)) == b"full"


def test_discard_blobs_tolerates_missing(storage):
    asyncio.run(storage.put("images/day-1/full/a.jpg", b"a"))

    asyncio.run(discard_blobs(storage, ["images/day-1/full/a.jpg", "images/day-1/full/gone.jpg"]))

    assert asyncio.run(storage.list()) == []
