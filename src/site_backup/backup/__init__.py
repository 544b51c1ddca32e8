"""Backup, restore, and rollback of a site's store and uploads tree.

Usage:
    from site_backup.backup import Backuper, Restorer, SnapshotArchive
    from site_backup.backup import RollbackLedger, rollback
"""

from site_backup.backup.archive import SnapshotArchive
from site_backup.backup.backuper import Backuper
from site_backup.backup.models import (
    BackupResult,
    ExtractedLayout,
    RestoreResult,
    RestoreState,
    RollbackPoint,
    Snapshot,
    SnapshotMetadata,
)
from site_backup.backup.restorer import (
    NotificationPolicy,
    Restorer,
    RestoreSession,
    SettingsNotificationPolicy,
)
from site_backup.backup.rollback import RollbackLedger, rollback

__all__ = [
    "SnapshotArchive",
    "Backuper",
    "Restorer",
    "RestoreSession",
    "NotificationPolicy",
    "SettingsNotificationPolicy",
    "RollbackLedger",
    "rollback",
    "Snapshot",
    "SnapshotMetadata",
    "ExtractedLayout",
    "BackupResult",
    "RestoreResult",
    "RestoreState",
    "RollbackPoint",
]
