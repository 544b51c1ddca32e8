"""Build and unpack on-disk snapshot packages.

Package layouts, chosen by filename extension:

- ``.tar.gz`` / ``.tgz``::

      dump.sql        plain SQL dump (dump.sql.gz is also accepted on unpack)
      meta.json       SnapshotMetadata
      uploads/        uploads tree (only when uploads are included)

- ``.sql.gz``: gzipped plain SQL dump
- ``.sql``: plain SQL dump

Invariants:
    - ``build`` writes to a hidden partial file next to the destination and
      renames it into place, so an existing destination is never partially
      overwritten.
    - ``unpack`` sniffs the package header before extracting and only ever
      extracts into the working directory it is given.

Usage:
    archive = SnapshotArchive(store, uploads_dir=Path("uploads"), site_name="Forum")
    path = await archive.build(Path("backups/forum.tar.gz"), include_uploads=True)
    layout = archive.unpack(path, Path("/tmp/restore-work"))
"""

import gzip
import io
import logging
import os
import shutil
import tarfile
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from site_backup.adapters.base import StoreClient
from site_backup.backup.models import ExtractedLayout, SnapshotMetadata
from site_backup.errors import ConfigurationError, CorruptArchiveError, DumpError
from site_backup.naming import TARBALL_EXTENSIONS, snapshot_extension

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

DUMP_NAME = "dump.sql"
META_NAME = "meta.json"
UPLOADS_NAME = "uploads"


class SnapshotArchive:
    """Translate between the store plus uploads tree and a snapshot package.

    Args:
        store: Store whose ``dump`` produces the SQL component.
        uploads_dir: Live uploads directory (None if the site has none).
        site_name: Written into metadata.
        source_version: Written into metadata.
    """

    def __init__(
        self,
        store: StoreClient,
        uploads_dir: Path | None = None,
        site_name: str = "",
        source_version: str = "0.0.0",
    ) -> None:
        self.store = store
        self.uploads_dir = uploads_dir
        self.site_name = site_name
        self.source_version = source_version

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def new_metadata(self, include_uploads: bool) -> SnapshotMetadata:
        return SnapshotMetadata(
            created_at=datetime.now(timezone.utc),
            source_version=self.source_version,
            includes_uploads=include_uploads,
            site_name=self.site_name,
        )

    async def build(
        self,
        destination: Path,
        include_uploads: bool,
        metadata: SnapshotMetadata | None = None,
    ) -> Path:
        """Dump the store and package it at ``destination``.

        Args:
            destination: Package path; its extension selects the format.
            include_uploads: Add the uploads tree (tarball formats only).
            metadata: Metadata to embed (default: ``new_metadata()``).

        Returns:
            ``destination``.

        Raises:
            ConfigurationError: Unrecognized extension, or uploads requested
                for a non-tarball format.
            DumpError: The store's dump producer failed or produced nothing.
        """
        destination = Path(destination)
        ext = snapshot_extension(destination.name)
        if ext is None:
            raise ConfigurationError(f"Unrecognized snapshot extension: {destination.name}")
        if include_uploads and ext not in TARBALL_EXTENSIONS:
            raise ConfigurationError(
                f"Uploads can only be packaged in a tarball, not {ext}: {destination.name}"
            )

        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(f".{destination.name}.partial")

        with tempfile.TemporaryDirectory(prefix="site-backup-") as work:
            dump_path = Path(work) / DUMP_NAME
            await self.store.dump(dump_path)
            if not dump_path.exists() or dump_path.stat().st_size == 0:
                raise DumpError("Dump producer finished but wrote no output")

            metadata = metadata or self.new_metadata(include_uploads)

            try:
                if ext in TARBALL_EXTENSIONS:
                    self._write_tarball(partial, dump_path, metadata, include_uploads)
                elif ext == ".sql.gz":
                    with open(dump_path, "rb") as src, gzip.open(partial, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                else:
                    shutil.copyfile(dump_path, partial)
                os.replace(partial, destination)
            except BaseException:
                partial.unlink(missing_ok=True)
                raise

        logger.info("Built snapshot package %s", destination)
        return destination

    def _write_tarball(
        self,
        path: Path,
        dump_path: Path,
        metadata: SnapshotMetadata,
        include_uploads: bool,
    ) -> None:
        meta_bytes = metadata.model_dump_json(indent=2).encode()

        with tarfile.open(path, mode="w:gz") as tar:
            tar.add(dump_path, arcname=DUMP_NAME)

            info = tarfile.TarInfo(META_NAME)
            info.size = len(meta_bytes)
            info.mtime = int(metadata.created_at.timestamp())
            tar.addfile(info, io.BytesIO(meta_bytes))

            if not include_uploads:
                return
            if self.uploads_dir is not None and self.uploads_dir.is_dir():
                tar.add(self.uploads_dir, arcname=UPLOADS_NAME)
            else:
                logger.warning("Uploads directory %s not found; packaging an empty tree", self.uploads_dir)
                info = tarfile.TarInfo(UPLOADS_NAME)
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)

    # ------------------------------------------------------------------
    # Unpack
    # ------------------------------------------------------------------

    def unpack(self, package_path: Path, working_dir: Path) -> ExtractedLayout:
        """Validate and extract a package into ``working_dir``.

        Raises:
            CorruptArchiveError: Header does not match the extension, the
                archive is unreadable, has unsafe member paths, or lacks a
                SQL dump.
        """
        package_path = Path(package_path)
        working_dir = Path(working_dir)
        ext = snapshot_extension(package_path.name)
        if ext is None:
            raise CorruptArchiveError(f"Unrecognized snapshot extension: {package_path.name}")

        with open(package_path, "rb") as f:
            header = f.read(2)
        is_gzip = header == GZIP_MAGIC

        if ext == ".sql":
            if is_gzip:
                raise CorruptArchiveError(f"{package_path.name} is gzip-compressed, expected plain SQL")
        elif not is_gzip:
            raise CorruptArchiveError(f"{package_path.name} is not gzip-compressed")

        working_dir.mkdir(parents=True, exist_ok=True)
        dump_path = working_dir / DUMP_NAME

        if ext == ".sql":
            shutil.copyfile(package_path, dump_path)
            return ExtractedLayout(dump_path=dump_path)

        if ext == ".sql.gz":
            _gunzip(package_path, dump_path)
            return ExtractedLayout(dump_path=dump_path)

        self._extract_tarball(package_path, working_dir)

        compressed_dump = working_dir / f"{DUMP_NAME}.gz"
        if not dump_path.is_file() and compressed_dump.is_file():
            _gunzip(compressed_dump, dump_path)
            compressed_dump.unlink()
        if not dump_path.is_file():
            raise CorruptArchiveError(f"{package_path.name} does not contain {DUMP_NAME}")

        metadata = None
        meta_path = working_dir / META_NAME
        if meta_path.is_file():
            try:
                metadata = SnapshotMetadata.model_validate_json(meta_path.read_text())
            except ValidationError as e:
                raise CorruptArchiveError(f"Invalid {META_NAME} in {package_path.name}: {e}") from e

        uploads_dir = working_dir / UPLOADS_NAME
        return ExtractedLayout(
            dump_path=dump_path,
            uploads_dir=uploads_dir if uploads_dir.is_dir() else None,
            metadata=metadata,
        )

    def _extract_tarball(self, package_path: Path, target: Path) -> None:
        """Extract a gzipped tarball into target.

        Validates every member path to prevent path traversal attacks (e.g. ../../../etc/passwd).
        """
        target = target.resolve()
        try:
            with tarfile.open(package_path, mode="r:gz") as tar:
                for member in tar.getmembers():
                    member_path = (target / member.name).resolve()
                    if not str(member_path).startswith(str(target) + os.sep) and member_path != target:
                        raise CorruptArchiveError(f"Unsafe path in snapshot: {member.name!r}")
                    if member.issym() or member.islnk():
                        raise CorruptArchiveError(f"Links are not allowed in snapshots: {member.name!r}")
                tar.extractall(target, filter="data")
        except (tarfile.TarError, EOFError, OSError) as e:
            raise CorruptArchiveError(f"Cannot read {package_path.name}: {e}") from e


def _gunzip(source: Path, destination: Path) -> None:
    try:
        with gzip.open(source, "rb") as src, open(destination, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except (gzip.BadGzipFile, EOFError, OSError) as e:
        destination.unlink(missing_ok=True)
        raise CorruptArchiveError(f"Cannot decompress {source.name}: {e}") from e
