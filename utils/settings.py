"""Environment-driven configuration for the gallery service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} must be an integer") from exc
    if value < 0:
        raise RuntimeError(f"{name}={raw!r} must not be negative")
    return value


def _directory(raw: str, name: str) -> Path:
    path = Path(raw).expanduser()
    # If the path exists but is not a directory, that's a configuration error.
    if path.exists() and not path.is_dir():
        raise RuntimeError(f"{name}={raw!r} points to a file, not a directory ({path}).")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Failed to create or access directory at {path}") from exc
    return path


@dataclass
class GallerySettings:
    """Resolved service configuration.

    Attributes:
        data_dir: Directory holding `images.json`.
        public_data_dir: Optional directory receiving a mirror copy of the catalog.
        storage_backend: "local" or "s3".
        local_storage_dir: Root directory for the local blob backend.
        bucket_name: Bucket for the s3 backend.
        s3_endpoint_url: Optional S3-compatible endpoint.
        public_base_url: Prefix used to build public blob URLs.
        admin_token: Static bearer credential for mutating endpoints.
        cache_ttl_seconds: Lifetime of the cached catalog.
        result_cache_ttl_seconds: Lifetime of cached listing results.
        result_cache_max_entries: Maximum cached listing results.
    """

    data_dir: Path
    public_data_dir: Optional[Path]
    storage_backend: str
    local_storage_dir: Path
    bucket_name: Optional[str]
    s3_endpoint_url: Optional[str]
    public_base_url: str
    admin_token: str
    cache_ttl_seconds: int = 900
    result_cache_ttl_seconds: int = 300
    result_cache_max_entries: int = 200

    @property
    def metadata_path(self) -> Path:
        return self.data_dir / "images.json"

    @property
    def public_metadata_path(self) -> Optional[Path]:
        return self.public_data_dir / "images.json" if self.public_data_dir else None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GallerySettings":
        """Read settings from `env` (defaults to `os.environ`).

        Raises:
            RuntimeError: If a required variable is missing or a value is invalid.
        """
        env = os.environ if env is None else env

        data_raw = env.get("GALLERY_DATA_DIR")
        if data_raw is None or not data_raw.strip():
            raise RuntimeError(
                "GALLERY_DATA_DIR environment variable must be set to a writable "
                "directory path where the image catalog will be stored."
            )
        data_dir = _directory(data_raw, "GALLERY_DATA_DIR")

        public_raw = env.get("GALLERY_PUBLIC_DATA_DIR")
        public_dir = _directory(public_raw, "GALLERY_PUBLIC_DATA_DIR") if public_raw and public_raw.strip() else None

        backend = (env.get("STORAGE_BACKEND") or "local").strip().lower()
        if backend not in ("local", "s3"):
            raise RuntimeError(
                f'Invalid STORAGE_BACKEND value {backend!r}: expected either "local" or "s3".'
            )

        bucket = (env.get("BUCKET_NAME") or "").strip() or None
        if backend == "s3" and bucket is None:
            raise RuntimeError("Invalid configuration: STORAGE_BACKEND is s3, but BUCKET_NAME is unset")

        local_raw = env.get("LOCAL_STORAGE_DIR")
        local_dir = Path(local_raw).expanduser() if local_raw and local_raw.strip() else data_dir / "blobs"

        default_base = f"https://storage.googleapis.com/{bucket}" if backend == "s3" else "/blobs"
        public_base_url = (env.get("PUBLIC_BASE_URL") or default_base).rstrip("/")

        admin_token = env.get("ADMIN_TOKEN")
        if admin_token is None or not admin_token.strip():
            raise RuntimeError("ADMIN_TOKEN environment variable must be set")

        return cls(
            data_dir=data_dir,
            public_data_dir=public_dir,
            storage_backend=backend,
            local_storage_dir=local_dir,
            bucket_name=bucket,
            s3_endpoint_url=(env.get("S3_ENDPOINT_URL") or "").strip() or None,
            public_base_url=public_base_url,
            admin_token=admin_token.strip(),
            cache_ttl_seconds=_int_env(env, "CACHE_TTL_SECONDS", 900),
            result_cache_ttl_seconds=_int_env(env, "RESULT_CACHE_TTL_SECONDS", 300),
            result_cache_max_entries=_int_env(env, "RESULT_CACHE_MAX_ENTRIES", 200),
        )
