import io

import pytest
from PIL import Image

from dal.metadata_store import MetadataStore
from services.blob_storage import LocalBlobStorage
from services.image_cache import ImageCache


def make_jpeg(size=(800, 600), color="red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def store(tmp_path):
    return MetadataStore(tmp_path / "data" / "images.json")


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs", "/blobs")


@pytest.fixture
def cache():
    return ImageCache()
