"""File storage abstraction for files fetched from Office 365.

Downloads made by the file repository are written through a storage
backend so the serving side can hand them out later. Files are grouped
per LMS user.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from lms_o365.config import get_settings


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def save(self, content: bytes, filename: str, user_id: int) -> str:
        """Save file content and return its storage path."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Read a file's contents."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a file."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a file exists."""


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_dir: str | None = None) -> None:
        self.base_dir = Path(base_dir or get_settings().upload_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_user_dir(self, user_id: int) -> Path:
        user_dir = self.base_dir / str(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)
        return user_dir

    async def save(self, content: bytes, filename: str, user_id: int) -> str:
        """Write content under the user's directory.

        The stored name is ``{uuid}_{filename}`` so repeated downloads of the
        same file never overwrite each other while keeping the original name
        readable.
        """
        safe_name = Path(filename).name or "file"
        file_path = self._get_user_dir(user_id) / f"{uuid4().hex}_{safe_name}"
        file_path.write_bytes(content)
        return str(file_path.relative_to(self.base_dir))

    async def read(self, path: str) -> bytes:
        file_path = self.base_dir / path
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return file_path.read_bytes()

    async def delete(self, path: str) -> None:
        file_path = self.base_dir / path
        if file_path.exists():
            file_path.unlink()

    async def exists(self, path: str) -> bool:
        return (self.base_dir / path).exists()

    def get_absolute_path(self, path: str) -> Path:
        """Get absolute path for a stored file."""
        return self.base_dir / path


_storage: StorageBackend | None = None


def get_storage() -> StorageBackend:
    """Get the configured storage backend."""
    global _storage
    if _storage is None:
        _storage = LocalStorageBackend()
    return _storage


def reset_storage() -> None:
    """Reset the storage singleton (for testing)."""
    global _storage
    _storage = None
