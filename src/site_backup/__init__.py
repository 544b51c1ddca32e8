"""site-backup: backup, restore, rollback, and remap for a hosted site.

Snapshots a relational store plus its uploads tree into local or S3
storage, restores them behind a readonly gate with a recorded rollback
point, and rewrites text across every text column of one or all tenants.

Usage:
    from site_backup import Backuper, Restorer, RemapEngine, SnapshotArchive
    from site_backup import load_site_config, get_store, create_backend
    from site_backup import PlatformState, ReadonlyGate, RollbackLedger
"""

__version__ = "0.1.0"

# Adapters
from site_backup.adapters.base import StoreClient
from site_backup.adapters.postgres import AsyncPostgresStore

# Config
from site_backup.config.loader import load_site_config
from site_backup.config.models import SiteConfig, TenantProfile

# Factory
from site_backup.factory import get_active_tenant_name, get_store, list_tenants, resolve_url

# Storage
from site_backup.storage import create_backend, StorageBackend

# Platform state
from site_backup.state import PlatformState, ReadonlyGate

# Backup / restore / rollback
from site_backup.backup import (
    Backuper,
    Restorer,
    RollbackLedger,
    SnapshotArchive,
    rollback,
)

# Remap
from site_backup.remap import RemapEngine, RemapResult

# Errors
from site_backup.errors import SiteBackupError

__all__ = [
    # Adapters
    "StoreClient",
    "AsyncPostgresStore",
    # Config
    "load_site_config",
    "SiteConfig",
    "TenantProfile",
    # Factory
    "get_store",
    "get_active_tenant_name",
    "list_tenants",
    "resolve_url",
    # Storage
    "create_backend",
    "StorageBackend",
    # Platform state
    "PlatformState",
    "ReadonlyGate",
    # Backup
    "SnapshotArchive",
    "Backuper",
    "Restorer",
    "RollbackLedger",
    "rollback",
    # Remap
    "RemapEngine",
    "RemapResult",
    # Errors
    "SiteBackupError",
]
