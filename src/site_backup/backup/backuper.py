"""Create and publish snapshots.

``Backuper.run()`` dumps the store (plus the uploads tree when asked),
packages the result, and publishes it through a storage backend.

Failures are reported through ``BackupResult.success`` rather than
raised; only misuse (a local-only option on a remote backend) raises.

Usage:
    from site_backup.backup.backuper import Backuper

    backuper = Backuper(backend, archive, platform)
    result = await backuper.run("admin", filename="before-upgrade")
    if not result.success:
        print(result.error)
"""

import logging
import shutil
import tempfile
from contextlib import nullcontext
from pathlib import Path

from site_backup.backup.archive import SnapshotArchive
from site_backup.backup.models import BackupResult, Snapshot
from site_backup.errors import LocalOnlyOptionError, SiteBackupError
from site_backup.naming import (
    content_type_for,
    default_base_name,
    snapshot_filename,
    strip_extension,
)
from site_backup.state import PlatformState
from site_backup.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class Backuper:
    """Orchestrates snapshot creation.

    Args:
        backend: Where the snapshot is published.
        archive: Builds the package from the store and uploads tree.
        platform: Platform flags; ``backup_with_uploads`` is overridden
            for the duration of a run that includes uploads.
    """

    def __init__(
        self,
        backend: StorageBackend,
        archive: SnapshotArchive,
        platform: PlatformState,
    ) -> None:
        self.backend = backend
        self.archive = archive
        self.platform = platform

    def resolve_filename(self, filename: str | None, with_uploads: bool) -> Snapshot:
        """Derive the snapshot's base name and filename.

        Without ``filename`` the base name is ``<site-name>-<timestamp>``.
        A recognized extension on a supplied name is stripped; the package
        extension always follows ``with_uploads``.
        """
        if filename:
            base_name = strip_extension(Path(filename).name)
        else:
            base_name = default_base_name(self.archive.site_name or "site")
        return Snapshot(name=base_name, filename=snapshot_filename(base_name, with_uploads))

    async def run(
        self,
        requester_id: str,
        filename: str | None = None,
        with_uploads: bool = True,
        destination_dir: Path | None = None,
    ) -> BackupResult:
        """Produce and publish a snapshot.

        Args:
            requester_id: Who asked for the backup (logged).
            filename: Optional snapshot name; extension is optional.
            with_uploads: Include the uploads tree (tarball) or produce a
                SQL-only snapshot (gzipped SQL).
            destination_dir: Local backend only: move the published
                snapshot into this directory.

        Returns:
            ``BackupResult``; check ``success`` before assuming a snapshot
            was published.

        Raises:
            LocalOnlyOptionError: If ``destination_dir`` is given for a
                remote backend.
        """
        if destination_dir is not None and self.backend.is_remote():
            raise LocalOnlyOptionError(
                "A destination directory can only be used with local backups"
            )

        snapshot = self.resolve_filename(filename, with_uploads)
        result = BackupResult(snapshot=snapshot)
        logger.info("Backup %s requested by %s", snapshot.filename, requester_id)

        override = (
            self.platform.override("backup_with_uploads", True) if with_uploads else nullcontext()
        )
        try:
            if self.backend.exists(snapshot.filename):
                result.error = f"Snapshot {snapshot.filename} already exists"
                return result

            with override:
                metadata = self.archive.new_metadata(with_uploads)
                snapshot.metadata = metadata
                if self.backend.is_remote():
                    result.location = await self._publish_remote(snapshot, metadata, with_uploads)
                else:
                    result.location = await self._publish_local(
                        snapshot, metadata, with_uploads, destination_dir
                    )
        except (SiteBackupError, OSError) as e:
            logger.error("Backup %s failed: %s", snapshot.filename, e)
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception("Backup %s failed", snapshot.filename)
            result.error = f"{type(e).__name__}: {e}"
            return result

        result.success = True
        logger.info("Backup %s published to %s", snapshot.filename, result.location)
        return result

    async def _publish_remote(self, snapshot, metadata, with_uploads) -> str:
        """Build in a scratch directory, upload, and let the scratch copy go."""
        with tempfile.TemporaryDirectory(prefix="site-backup-") as work:
            package = await self.archive.build(
                Path(work) / snapshot.filename, with_uploads, metadata=metadata
            )
            key = self.backend.upload(
                snapshot.filename, package, content_type_for(snapshot.filename)
            )
        return str(key)

    async def _publish_local(self, snapshot, metadata, with_uploads, destination_dir) -> str:
        """Build straight into the backend directory; that file is the artifact."""
        package = await self.archive.build(
            self.backend.path_for(snapshot.filename), with_uploads, metadata=metadata
        )
        published = Path(
            self.backend.upload(snapshot.filename, package, content_type_for(snapshot.filename))
        )

        if destination_dir is not None:
            destination_dir = Path(destination_dir)
            destination_dir.mkdir(parents=True, exist_ok=True)
            moved = destination_dir / snapshot.filename
            shutil.move(str(published), moved)
            return str(moved)
        return str(published)
