import pytest

from utils.settings import GallerySettings


def base_env(tmp_path, **overrides):
    env = {"GALLERY_DATA_DIR": str(tmp_path / "data"), "ADMIN_TOKEN": "secret"}
    env.update(overrides)
    return env


def test_defaults_for_local_backend(tmp_path):
    settings = GallerySettings.from_env(base_env(tmp_path))

    assert settings.storage_backend == "local"
    assert settings.metadata_path == tmp_path / "data" / "images.json"
    assert settings.public_metadata_path is None
    assert settings.local_storage_dir == tmp_path / "data" / "blobs"
    assert settings.public_base_url == "/blobs"
    assert settings.cache_ttl_seconds == 900
    assert settings.result_cache_ttl_seconds == 300
    assert settings.result_cache_max_entries == 200
    assert (tmp_path / "data").is_dir()


def test_s3_backend_defaults_public_url_to_bucket(tmp_path):
    settings = GallerySettings.from_env(base_env(tmp_path, STORAGE_BACKEND="s3", BUCKET_NAME="photos"))

    assert settings.bucket_name == "photos"
    assert settings.public_base_url == "https://storage.googleapis.com/photos"


def test_mirror_directory(tmp_path):
    settings = GallerySettings.from_env(base_env(tmp_path, GALLERY_PUBLIC_DATA_DIR=str(tmp_path / "public")))
    assert settings.public_metadata_path == tmp_path / "public" / "images.json"


@pytest.mark.parametrize(
    "overrides",
    [
        {"GALLERY_DATA_DIR": ""},
        {"ADMIN_TOKEN": " "},
        {"STORAGE_BACKEND": "ftp"},
        {"STORAGE_BACKEND": "s3"},
        {"CACHE_TTL_SECONDS": "soon"},
        {"RESULT_CACHE_MAX_ENTRIES": "-1"},
    ],
)
def test_invalid_configuration_raises(tmp_path, overrides):
    with pytest.raises(RuntimeError):
        GallerySettings.from_env(base_env(tmp_path, **overrides))


def test_data_dir_must_not_be_a_file(tmp_path):
    target = tmp_path / "file"
    target.write_text("x")
    with pytest.raises(RuntimeError):
        GallerySettings.from_env(base_env(tmp_path, GALLERY_DATA_DIR=str(target)))
