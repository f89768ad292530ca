from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from market.core.config import settings
from market.core.ids import blob_key
from market.core.errors import StorageFailure, ValidationError
from market.schemas.listing import ListingImage
from market.services.storage import BlobStore

log = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str | None
    data: bytes


def _object_key(upload: ImageUpload) -> str:
    ext = Path(upload.filename).suffix.lower() or mimetypes.guess_extension(upload.content_type or "") or ""
    return blob_key("listings", ext)


def validate_uploads(uploads: list[ImageUpload]) -> None:
    if len(uploads) > settings.max_listing_images:
        raise ValidationError(f"At most {settings.max_listing_images} images per listing")
    for u in uploads:
        if u.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(f"{u.filename or 'file'} is not a supported image type")


async def upload_images(store: BlobStore, uploads: list[ImageUpload]) -> list[ListingImage]:
    """
    Push uploads to the blob store before any listing row is written.
    If one upload fails, the ones already stored are deleted again.
    """
    validate_uploads(uploads)

    stored: list[ListingImage] = []
    try:
        for u in uploads:
            key = _object_key(u)
            url = await run_in_threadpool(store.put_bytes, key=key, data=u.data, content_type=u.content_type)
            stored.append(ListingImage(url=url, key=key))
    except StorageFailure:
        await discard_images(store, stored)
        raise
    return stored


async def discard_images(store: BlobStore, images: list[ListingImage]) -> None:
    # Compensation for uploads whose listing write did not commit.
    for img in images:
        if img.key is None:
            continue
        try:
            await run_in_threadpool(store.delete, key=img.key)
        except StorageFailure:
            log.exception("discard_images: orphaned blob %s", img.key)
