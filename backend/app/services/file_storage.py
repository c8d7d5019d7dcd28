"""Blob storage service - abstract interface with local filesystem implementation."""
import hashlib
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Dict, Optional
import logging

from app.core.config import Settings
from app.core.security import create_download_token

logger = logging.getLogger(__name__)


class BlobStorage(ABC):
    """Abstract interface for document blob storage."""

    @abstractmethod
    async def put(self, path: str, data: bytes, metadata: Optional[Dict[str, str]] = None) -> str:
        """
        Store ``data`` under ``path`` and return its locator.

        Args:
            path: Relative object path (``user/case/type/name``)
            data: File contents
            metadata: Small string map stored alongside the object

        Returns:
            locator: Key to retrieve or delete the object later
        """
        pass

    @abstractmethod
    async def get(self, locator: str) -> Optional[bytes]:
        """Return the object's bytes, or None if it does not exist."""
        pass

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """Remove the object. Returns False if it was already gone."""
        pass

    @abstractmethod
    def signed_url(self, locator: str, ttl_seconds: int) -> str:
        """Time-limited URL that serves the object without other credentials."""
        pass


class LocalBlobStorage(BlobStorage):
    """Local filesystem implementation of blob storage.

    Download URLs point back at the API's download route and carry a
    short-lived signed token naming the locator.
    """

    def __init__(self, base_path: str, settings: Settings):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.settings = settings
        logger.info(f"Initialized local blob storage at: {self.base_path}")

    def _resolve(self, locator: str) -> Path:
        candidate = (self.base_path / locator).resolve()
        if self.base_path not in candidate.parents:
            raise ValueError(f"Locator escapes storage root: {locator}")
        return candidate

    async def put(self, path: str, data: bytes, metadata: Optional[Dict[str, str]] = None) -> str:
        file_path = self._resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            file_path.write_bytes(data)
            if metadata:
                meta_path = file_path.with_name(file_path.name + ".meta.json")
                meta_path.write_text(json.dumps(metadata))
        except OSError as e:
            logger.error(f"Failed to store blob {path}: {e}")
            raise

        locator = str(file_path.relative_to(self.base_path))
        logger.info(f"Stored blob: {locator}")
        return locator

    async def get(self, locator: str) -> Optional[bytes]:
        file_path = self._resolve(locator)
        if not file_path.is_file():
            logger.warning(f"Blob not found: {locator}")
            return None
        return file_path.read_bytes()

    async def delete(self, locator: str) -> bool:
        file_path = self._resolve(locator)
        if not file_path.exists():
            logger.warning(f"Blob not found for deletion: {locator}")
            return False

        file_path.unlink()
        meta_path = file_path.with_name(file_path.name + ".meta.json")
        if meta_path.exists():
            meta_path.unlink()
        logger.info(f"Deleted blob: {locator}")
        return True

    def signed_url(self, locator: str, ttl_seconds: int) -> str:
        token = create_download_token(locator, ttl_seconds, settings=self.settings)
        return f"{self.settings.API_PREFIX}/documents/download/{token}"


def get_storage_backend(settings: Settings) -> BlobStorage:
    """
    Factory function to get the configured storage backend.

    Returns:
        BlobStorage: Configured storage backend instance
    """
    if settings.STORAGE_BACKEND != "local":
        raise ValueError(f"Unsupported storage backend: {settings.STORAGE_BACKEND}")
    return LocalBlobStorage(settings.LOCAL_STORAGE_PATH, settings)


def compute_file_hash(file_data: BinaryIO) -> str:
    """
    Compute SHA-256 hash of file data.

    Args:
        file_data: Binary file data stream

    Returns:
        Hexadecimal hash string
    """
    hasher = hashlib.sha256()

    # Read file in chunks to handle large files
    file_data.seek(0)
    while chunk := file_data.read(8192):
        hasher.update(chunk)

    file_data.seek(0)
    return hasher.hexdigest()
