"""Image storage backends — local disk and Cloudinary.

Cloudinary is spoken to directly over its REST upload API with signed
requests: the signature is the SHA-1 of the alphabetically ordered
``key=value`` parameters joined by ``&`` followed by the API secret.
"""

import asyncio
import hashlib
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx

from app.clients.base import IImageStore, StoredFileInfo, StoredImage
from app.config import Settings

logger = logging.getLogger(__name__)


def _safe_part(value: str) -> str:
    """Reject path traversal in folder and file names."""
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"Invalid path component: {value!r}")
    return value


def _with_extension(file_name: str) -> str:
    return file_name if Path(file_name).suffix else f"{file_name}.jpg"


class LocalImageStore(IImageStore):
    """Writes images under ``<root>/<folder>/`` and serves them at ``/uploads``."""

    name = "local"

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, folder: str, file_name: str) -> Path:
        return self.root / _safe_part(folder) / _with_extension(_safe_part(file_name))

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(self, data: bytes, folder: str, file_name: str) -> StoredImage:
        path = self._path(folder, file_name)
        await asyncio.to_thread(self._write, path, data)
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return StoredImage(
            url=f"{self.url_prefix}/{folder}/{path.name}",
            file_name=file_name,
            folder=folder,
            size=len(data),
        )

    async def delete(self, folder: str, file_name: str) -> bool:
        path = self._path(folder, file_name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted {path}")
        return True

    async def info(self, folder: str, file_name: str) -> Optional[StoredFileInfo]:
        path = self._path(folder, file_name)
        if not path.is_file():
            return None
        stat = path.stat()
        return StoredFileInfo(
            path=f"{folder}/{path.name}",
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


class CloudinaryImageStore(IImageStore):
    """Cloudinary upload API client (signed uploads, no SDK)."""

    name = "cloudinary"
    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        root_folder: str = "moviehub",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.root_folder = root_folder
        self.timeout = timeout
        self._transport = transport

    def sign(self, params: dict) -> str:
        payload = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
        return hashlib.sha1(f"{payload}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": self.sign(params)}

    async def _post(self, action: str, data: dict, files: Optional[dict] = None) -> dict:
        url = f"{self.API_BASE}/{self.cloud_name}/image/{action}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(url, data=data, files=files)
            resp.raise_for_status()
            return resp.json()

    async def save(self, data: bytes, folder: str, file_name: str) -> StoredImage:
        params = self._signed({"folder": f"{self.root_folder}/{folder}", "public_id": file_name})
        result = await self._post("upload", params, files={"file": (f"{file_name}.jpg", data, "image/jpeg")})
        logger.info(f"Uploaded {result.get('public_id')} to Cloudinary")
        return StoredImage(
            url=result["secure_url"],
            file_name=file_name,
            folder=folder,
            size=result.get("bytes", len(data)),
        )

    async def delete(self, folder: str, file_name: str) -> bool:
        public_id = f"{self.root_folder}/{folder}/{Path(file_name).stem}"
        result = await self._post("destroy", self._signed({"public_id": public_id}))
        return result.get("result") == "ok"

    async def info(self, folder: str, file_name: str) -> Optional[StoredFileInfo]:
        # The admin API needed for lookups is not used; only local files are inspected
        return None


def build_image_store(settings: Settings) -> IImageStore:
    """Cloudinary when its credentials are configured, local disk otherwise."""
    if settings.has_cloudinary:
        return CloudinaryImageStore(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
        )
    return LocalImageStore(settings.upload_dir)
