"""Snapshot storage in a local directory.

Snapshots are published by copying to a hidden partial file in the
backend directory and renaming it into place, so a reader never sees a
half-written snapshot under its final name.
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any

from site_backup.errors import DownloadError, SnapshotNotFoundError, UploadError
from site_backup.naming import is_snapshot_filename
from site_backup.storage.base import FileDescriptor, FileHandle, StorageBackend

logger = logging.getLogger(__name__)


class LocalBackend(StorageBackend):
    """Snapshots stored as files in one local directory.

    Args:
        directory: Directory holding the snapshots.  Created on first
            upload; only files directly inside it are ever touched.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def is_remote(self) -> bool:
        return False

    def path_for(self, filename: str) -> Path:
        """Path a snapshot with this filename has (or will have).

        Raises:
            SnapshotNotFoundError: If ``filename`` would leave the directory.
        """
        if Path(filename).name != filename:
            raise SnapshotNotFoundError(f"Invalid snapshot filename: {filename!r}")
        return self.directory / filename

    def file(self, filename: str, options: dict[str, Any] | None = None) -> FileHandle:
        path = self.path_for(filename)
        if not path.is_file():
            raise SnapshotNotFoundError(f"Snapshot {filename} not found in {self.directory}")
        return FileHandle(filename=filename, path=path)

    def list_files(self) -> list[FileDescriptor]:
        """List snapshots, newest first."""
        if not self.directory.exists():
            return []

        files = []
        for entry in self.directory.iterdir():
            if not entry.is_file() or not is_snapshot_filename(entry.name):
                continue
            stat = entry.stat()
            files.append(
                FileDescriptor(
                    filename=entry.name,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime),
                )
            )

        # Newest first; filename breaks ties so the order is stable
        files.sort(key=lambda f: f.filename)
        files.sort(key=lambda f: f.modified, reverse=True)
        return files

    def upload(self, filename: str, local_path: Path, content_type: str | None = None) -> Path:
        """Publish by copying into the directory under a hidden name, then renaming.

        A file already at the destination path is left in place.
        """
        local_path = Path(local_path)
        destination = self.path_for(filename)
        if local_path.resolve() == destination.resolve():
            return destination

        partial = self.directory / f".{filename}.partial"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, partial)
            os.replace(partial, destination)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise UploadError(f"Failed to publish {filename} to {self.directory}: {e}") from e

        logger.info("Published %s to %s", filename, self.directory)
        return destination

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def download(self, filename: str, destination: Path) -> Path:
        source = self.file(filename).path
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as e:
            raise DownloadError(f"Failed to copy {filename}: {e}") from e
        return destination

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        if path.exists():
            path.unlink()
