"""Abstract interface for image storage backends.

Uploaded images end up either on local disk (served under ``/uploads``) or on
a remote CDN. Both implement the same contract so the upload service does not
care which one is configured.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass
class StoredImage:
    """An image written to a storage backend."""
    url: str               # Public URL the frontend can load
    file_name: str         # Name without extension
    folder: str            # "posters" | "backdrops" | "profiles" | ...
    size: int = 0          # Bytes written


@dataclass
class StoredFileInfo:
    """Metadata about a stored file."""
    path: str
    size: int
    modified: Optional[datetime] = None


# ── Abstract Interface ───────────────────────────────────────────

class IImageStore(ABC):
    """Interface for image sinks (local disk, Cloudinary)."""

    name: str = ""

    @abstractmethod
    async def save(self, data: bytes, folder: str, file_name: str) -> StoredImage:
        """Store a processed JPEG and return where it can be fetched."""
        ...

    @abstractmethod
    async def delete(self, folder: str, file_name: str) -> bool:
        """Remove a stored image. Returns False when it did not exist."""
        ...

    @abstractmethod
    async def info(self, folder: str, file_name: str) -> Optional[StoredFileInfo]:
        """Metadata for a stored image, None when it does not exist."""
        ...
