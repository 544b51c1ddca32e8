"""Storage backend interface and the models it exchanges.

A backend is where published snapshots live.  ``LocalBackend`` keeps them
as files in one directory; ``S3Backend`` keeps them as objects under a
bucket prefix.  Both publish all-or-nothing: a snapshot is either fully
visible under its final name or not visible at all.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel


class FileDescriptor(BaseModel):
    """A snapshot available in a backend."""

    filename: str
    size: int | None = None
    modified: datetime | None = None


class FileHandle(BaseModel):
    """A retrievable snapshot: a local path or a short-lived download URL."""

    filename: str
    path: Path | None = None
    url: str | None = None


class StorageBackend(ABC):
    """Base interface for snapshot storage.

    Implementations: ``LocalBackend``, ``S3Backend``.
    """

    @abstractmethod
    def is_remote(self) -> bool:
        """True if snapshots live outside the local filesystem."""

    @abstractmethod
    def file(self, filename: str, options: dict[str, Any] | None = None) -> FileHandle:
        """Resolve a snapshot to a ``FileHandle``.

        Raises:
            SnapshotNotFoundError: If no snapshot has this filename.
        """

    @abstractmethod
    def list_files(self) -> list[FileDescriptor]:
        """List available snapshots in a stable order.

        Only files with a recognized snapshot extension are listed.
        """

    @abstractmethod
    def upload(self, filename: str, local_path: Path, content_type: str | None = None) -> Any:
        """Publish ``local_path`` as ``filename``.

        Returns:
            Where the snapshot was published (a path or an object key).

        Raises:
            UploadError: If publishing fails; nothing is left visible.
        """

    @abstractmethod
    def exists(self, filename: str) -> bool:
        """True if a snapshot with this filename is published."""

    @abstractmethod
    def download(self, filename: str, destination: Path) -> Path:
        """Copy a snapshot to ``destination`` and return that path.

        Raises:
            SnapshotNotFoundError: If no snapshot has this filename.
            DownloadError: If the transfer fails.
        """

    @abstractmethod
    def delete(self, filename: str) -> None:
        """Delete a snapshot by filename; a missing snapshot is ignored."""
