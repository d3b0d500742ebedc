"""Blob storage backends for full-size images and thumbnails.

Blobs are addressed by slash-separated paths such as
``images/day-1/full/250524101-sunset.jpg``. The local backend keeps them
under a directory on disk; the bucket backend talks to any S3-compatible
object store (including Google Cloud Storage's interoperability endpoint)
through boto3.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABCMeta, abstractmethod
from pathlib import Path, PurePosixPath
from typing import List, Optional

import aiofiles
import boto3
from botocore.exceptions import ClientError

from utils.settings import GallerySettings


class BlobNotFoundError(FileNotFoundError):
    """Raised when a blob path does not exist."""


class BaseBlobStorage(metaclass=ABCMeta):
    """Async blob storage interface."""

    def __init__(self, public_base_url: str) -> None:
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, path: str) -> str:
        """Return the public URL that serves `path`."""
        return f"{self.public_base_url}/{path.lstrip('/')}"

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str = "image/jpeg", metadata: Optional[dict] = None) -> str:
        return NotImplemented

    @abstractmethod
    async def get(self, path: str) -> bytes:
        return NotImplemented

    @abstractmethod
    async def delete(self, path: str) -> None:
        return NotImplemented

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        return NotImplemented

    @abstractmethod
    async def exists(self, path: str) -> bool:
        return NotImplemented

    @abstractmethod
    async def copy(self, source: str, destination: str) -> None:
        return NotImplemented

    async def check_connection(self) -> bool:
        """Return True if the backend is reachable."""
        return True


class LocalBlobStorage(BaseBlobStorage):
    """Store blobs as files below a base directory."""

    def __init__(self, base_directory: Path | str, public_base_url: str = "/blobs") -> None:
        super().__init__(public_base_url)
        self._base_directory = Path(base_directory).resolve()
        self._base_directory.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path.lstrip("/"))
        if ".." in relative.parts:
            raise ValueError(f"Invalid blob path: {path}")
        return self._base_directory.joinpath(*relative.parts)

    async def put(self, path: str, data: bytes, content_type: str = "image/jpeg", metadata: Optional[dict] = None) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        return path

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFoundError(path)
        async with aiofiles.open(target, "rb") as f:
            return await f.read()

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise BlobNotFoundError(path) from exc

    async def list(self, prefix: str = "") -> List[str]:
        paths = []
        for file_path in self._base_directory.rglob("*"):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(self._base_directory).as_posix()
            if relative.startswith(prefix):
                paths.append(relative)
        return sorted(paths)

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    async def copy(self, source: str, destination: str) -> None:
        data = await self.get(source)
        await self.put(destination, data)


class S3BlobStorage(BaseBlobStorage):
    """Store blobs in an S3-compatible bucket."""

    def __init__(self, bucket: str, public_base_url: str, endpoint_url: Optional[str] = None, client=None) -> None:
        super().__init__(public_base_url)
        self.bucket = bucket
        self._s3_client = client or boto3.client("s3", endpoint_url=endpoint_url)

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in ("404", "NoSuchKey", "NotFound")

    async def put(self, path: str, data: bytes, content_type: str = "image/jpeg", metadata: Optional[dict] = None) -> str:
        await asyncio.to_thread(
            self._s3_client.put_object,
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            Metadata={k: str(v) for k, v in (metadata or {}).items()},
        )
        return path

    async def get(self, path: str) -> bytes:
        try:
            response = await asyncio.to_thread(self._s3_client.get_object, Bucket=self.bucket, Key=path)
        except ClientError as exc:
            if self._is_missing(exc):
                raise BlobNotFoundError(path) from exc
            raise
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, path: str) -> None:
        # S3 deletes are idempotent, so check first to report missing blobs
        if not await self.exists(path):
            raise BlobNotFoundError(path)
        await asyncio.to_thread(self._s3_client.delete_object, Bucket=self.bucket, Key=path)

    async def list(self, prefix: str = "") -> List[str]:
        def _list() -> List[str]:
            keys = []
            paginator = self._s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        return sorted(await asyncio.to_thread(_list))

    async def exists(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self._s3_client.head_object, Bucket=self.bucket, Key=path)
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise
        return True

    async def copy(self, source: str, destination: str) -> None:
        await asyncio.to_thread(
            self._s3_client.copy_object,
            Bucket=self.bucket,
            Key=destination,
            CopySource={"Bucket": self.bucket, "Key": source},
        )

    async def check_connection(self) -> bool:
        try:
            await asyncio.to_thread(self._s3_client.head_bucket, Bucket=self.bucket)
        except ClientError as exc:
            logging.error("Bucket %s is not reachable: %s", self.bucket, exc)
            return False
        return True


def get_storage_instance(settings: GallerySettings) -> BaseBlobStorage:
    """Build the blob backend selected by `settings.storage_backend`."""
    if settings.storage_backend == "local":
        return LocalBlobStorage(settings.local_storage_dir, settings.public_base_url)
    elif settings.storage_backend == "s3":
        return S3BlobStorage(settings.bucket_name, settings.public_base_url, endpoint_url=settings.s3_endpoint_url)
    else:
        raise RuntimeError(
            'Invalid storage_backend configuration value: expected either "local" or "s3".'
        )
