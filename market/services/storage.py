from __future__ import annotations

import mimetypes
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from market.core.config import settings
from market.core.errors import StorageFailure


class BlobStore(Protocol):
    def put_bytes(self, *, key: str, data: bytes, content_type: str | None = None) -> str: ...

    def delete(self, *, key: str) -> None: ...


class LocalObjectStore:
    """Stores blobs on the local filesystem, served back under ``url_prefix``."""

    def __init__(self, base_dir: str, url_prefix: str):
        self.base = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def put_bytes(self, *, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self.base / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageFailure(f"Could not write blob {key}: {e}") from e
        return f"{self.url_prefix}/{key}"

    def delete(self, *, key: str) -> None:
        try:
            (self.base / key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(f"Could not delete blob {key}: {e}") from e


class S3ObjectStore:
    def __init__(self, bucket: str, region: str):
        self.bucket = bucket
        self.region = region
        self._client = boto3.client("s3", region_name=region)

    def put_bytes(self, *, key: str, data: bytes, content_type: str | None = None) -> str:
        ct = content_type or (mimetypes.guess_type(key)[0] or "application/octet-stream")
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=ct)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"Could not upload blob {key}: {e}") from e
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"Could not delete blob {key}: {e}") from e


@lru_cache(maxsize=1)
def build_blob_store() -> BlobStore:
    if settings.blob_backend == "s3":
        if not settings.s3_bucket:
            raise RuntimeError("S3_BUCKET must be set when BLOB_BACKEND=s3")
        return S3ObjectStore(settings.s3_bucket, settings.aws_region)
    if settings.blob_backend == "local":
        return LocalObjectStore(settings.media_dir, settings.media_url_prefix)
    raise RuntimeError(f"Unsupported blob backend: {settings.blob_backend}")


def get_blob_store() -> BlobStore:
    return build_blob_store()
