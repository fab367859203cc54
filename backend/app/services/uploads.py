"""Image uploads — validation, resizing and hand-off to the image store.

Every upload is re-encoded as JPEG. Posters, backdrops and profile pictures
are cropped to fixed sizes; generic images are resized only when a width or
height is requested. Pillow work runs in a worker thread.
"""

import asyncio
import io
import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from app.clients.base import IImageStore
from app.config import settings
from app.errors import NotFoundError, UpstreamError, ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
ALLOWED_FORMATS = ["JPEG", "JPG", "PNG", "WebP"]
MAX_MULTIPLE_FILES = 10
DEFAULT_FOLDER = "general"


@dataclass(frozen=True)
class ImagePreset:
    folder: str
    prefix: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: int = 85


PRESETS = {
    "poster": ImagePreset("posters", "poster", 400, 600, quality=90),
    "backdrop": ImagePreset("backdrops", "backdrop", 1280, 720, quality=85),
    "profile": ImagePreset("profiles", "profile", 200, 200, quality=90),
}


def max_size_label() -> str:
    return f"{settings.upload_max_bytes // (1024 * 1024)}MB"


def validate_image(content_type: Optional[str], size: int) -> None:
    errors = []
    if size > settings.upload_max_bytes:
        errors.append(f"File size must be less than {max_size_label()}")
    if content_type not in ALLOWED_MIME_TYPES:
        errors.append("Only JPEG, JPG, PNG, and WebP images are allowed")
    if errors:
        raise ValidationFailed(", ".join(errors))


def unique_name(prefix: str) -> str:
    """``<prefix>_<epoch ms>_<8 random chars>``"""
    alphabet = string.ascii_letters + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(8))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def process_image(
    data: bytes,
    width: Optional[int] = None,
    height: Optional[int] = None,
    quality: int = 85,
) -> tuple[bytes, tuple[int, int]]:
    """Resize and re-encode as JPEG. Returns the bytes and final (width, height).

    With both dimensions the image is cropped to cover them exactly; with one
    the other follows the aspect ratio; with none the size is kept.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img).convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationFailed("Invalid image file") from e

    if width and height:
        img = ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS)
    elif width:
        img = img.resize((width, max(1, round(img.height * width / img.width))), Image.Resampling.LANCZOS)
    elif height:
        img = img.resize((max(1, round(img.width * height / img.height)), height), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=max(1, min(quality, 100)), optimize=True)
    return out.getvalue(), img.size


class UploadService:
    """Validates, processes and stores uploaded images."""

    def __init__(self, store: IImageStore):
        self.store = store

    async def _store(self, data: bytes, folder: str, file_name: str):
        try:
            return await self.store.save(data, folder, file_name)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Image upload failed: {e}")

    async def upload(
        self,
        data: bytes,
        content_type: Optional[str],
        folder: str = DEFAULT_FOLDER,
        prefix: str = "img",
        width: Optional[int] = None,
        height: Optional[int] = None,
        quality: int = 85,
    ) -> dict:
        validate_image(content_type, len(data))
        processed, (out_w, out_h) = await asyncio.to_thread(process_image, data, width, height, quality)
        file_name = unique_name(prefix)
        try:
            stored = await self._store(processed, folder, file_name)
        except ValueError as e:
            raise ValidationFailed(str(e))

        logger.info(f"Stored {folder}/{file_name} via {self.store.name} ({len(processed)} bytes)")
        return {
            "url": stored.url,
            "fileName": file_name,
            "size": len(processed),
            "dimensions": {"width": out_w, "height": out_h},
        }

    async def upload_preset(self, kind: str, data: bytes, content_type: Optional[str]) -> dict:
        preset = PRESETS[kind]
        return await self.upload(
            data, content_type,
            folder=preset.folder, prefix=preset.prefix,
            width=preset.width, height=preset.height, quality=preset.quality,
        )

    async def delete(self, file_name: str, folder: str = DEFAULT_FOLDER) -> None:
        try:
            deleted = await self.store.delete(folder, file_name)
        except ValueError as e:
            raise ValidationFailed(str(e))
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to delete file: {e}")
        if not deleted:
            raise NotFoundError("File not found")

    async def info(self, file_name: str, folder: str = DEFAULT_FOLDER) -> dict:
        try:
            info = await self.store.info(folder, file_name)
        except ValueError as e:
            raise ValidationFailed(str(e))
        if info is None:
            raise NotFoundError("File not found")
        return {"exists": True, "size": info.size, "modified": info.modified, "path": info.path}


def upload_config() -> dict:
    return {
        "maxFileSize": max_size_label(),
        "allowedFormats": ALLOWED_FORMATS,
        "cloudinaryEnabled": settings.has_cloudinary,
        "supportedSizes": {
            kind: {"width": p.width, "height": p.height} for kind, p in PRESETS.items()
        },
    }
