"""Snapshot, result, and rollback models.

Usage:
    from site_backup.backup.models import Snapshot, BackupResult, RestoreResult
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class SnapshotMetadata(BaseModel):
    """Metadata stored inside a tarball snapshot as ``meta.json``."""

    created_at: datetime
    source_version: str
    includes_uploads: bool
    site_name: str = ""


class Snapshot(BaseModel):
    """A published (or about to be published) snapshot."""

    name: str                                   # logical base name, no extension
    filename: str                               # name + recognized extension
    metadata: SnapshotMetadata | None = None


@dataclass
class ExtractedLayout:
    """Files produced by unpacking a snapshot into a working directory.

    Attributes:
        dump_path: Plain SQL dump ready to be applied.
        uploads_dir: Uploads tree, or None when the snapshot has none.
        metadata: Parsed ``meta.json``, or None for SQL-only snapshots.
    """

    dump_path: Path
    uploads_dir: Path | None = None
    metadata: SnapshotMetadata | None = None


class BackupResult(BaseModel):
    """Result of ``Backuper.run()``.

    Attributes:
        success: True only if the snapshot was produced and published.
        snapshot: The snapshot, when one was produced.
        location: Where it was published (local path or object key).
        error: Error message if the backup failed.
    """

    success: bool = False
    snapshot: Snapshot | None = None
    location: str | None = None
    error: str | None = None


class RestoreState(str, Enum):
    """Restore lifecycle states, in order."""

    PENDING = "pending"
    READONLY_ENABLED = "readonly_enabled"
    UNPACKED = "unpacked"
    MIGRATED = "migrated"
    UPLOADS_RESTORED = "uploads_restored"
    READONLY_DISABLED = "readonly_disabled"


class RestoreResult(BaseModel):
    """Result of ``Restorer.run()``.

    Attributes:
        success: True if every step completed.
        snapshot: Filename of the snapshot being restored.
        state: Last state reached.
        steps: Names of the steps that completed, in order.
        error: Error message if a step failed.
    """

    success: bool = False
    snapshot: str | None = None
    state: RestoreState = RestoreState.PENDING
    steps: list[str] = Field(default_factory=list)
    error: str | None = None


class RollbackPoint(BaseModel):
    """The live store state recorded immediately before a restore."""

    database: str
    schema_name: str = "public"
    schema_version: str | None = None
    recorded_at: datetime
    swapped: bool = False           # True once the restored data went live

    @property
    def identifier(self) -> str:
        version = self.schema_version or "unversioned"
        return f"{self.database}/{self.schema_name}@{version}"
