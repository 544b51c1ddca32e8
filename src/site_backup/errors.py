"""Error taxonomy for backup, restore, rollback, and remap operations.

Every error raised by this package derives from ``SiteBackupError`` so the
command surface can catch one type and map it to a non-zero exit code.

Usage:
    from site_backup.errors import SiteBackupError, RestoreDisabledError

    try:
        result = await restorer.run(user_id, filename)
    except RestoreDisabledError as e:
        console.print(f"[red]{e}[/red]")
"""


class SiteBackupError(Exception):
    """Base class for all site-backup errors."""

    pass


# ============================================================================
# Configuration
# ============================================================================


class ConfigurationError(SiteBackupError):
    """Raised when configuration forbids or cannot express an operation."""

    pass


class RestoreDisabledError(ConfigurationError):
    """Raised when restores are disabled for the site."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Restores are disabled. Run: site-backup enable-restore"
        )


class LocalOnlyOptionError(ConfigurationError):
    """Raised when a local-only option is used with a remote backend."""

    pass


class InvalidLocationError(ConfigurationError):
    """Raised when a storage location override is not recognized."""

    pass


class FilenameMissingError(SiteBackupError):
    """Raised when no snapshot filename was given and none can be resolved."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "A snapshot filename is required. Run: site-backup list"
        )


# ============================================================================
# Lookup
# ============================================================================


class NotFoundError(SiteBackupError):
    """Raised when a snapshot, tenant, or other named resource is missing."""

    pass


class SnapshotNotFoundError(NotFoundError):
    """Raised when a snapshot file does not exist in the storage backend."""

    pass


class TenantNotFoundError(NotFoundError):
    """Raised when no tenant is configured or the requested one is unknown."""

    pass


# ============================================================================
# Transport and archive
# ============================================================================


class TransportError(SiteBackupError):
    """Raised when moving a snapshot to or from a backend fails."""

    pass


class UploadError(TransportError):
    """Raised when publishing a snapshot fails."""

    pass


class DownloadError(TransportError):
    """Raised when fetching a snapshot fails."""

    pass


class CorruptArchiveError(SiteBackupError):
    """Raised when a snapshot package does not match its declared format."""

    pass


# ============================================================================
# Store-side failures
# ============================================================================


class DumpError(SiteBackupError):
    """Raised when the store's dump producer fails."""

    pass


class MigrationError(SiteBackupError):
    """Raised when applying a dump or running migrations fails."""

    pass


class NoPriorStateError(SiteBackupError):
    """Raised when rollback is requested but no rollback point is recorded."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No rollback point recorded. Nothing to roll back."
        )


# ============================================================================
# Remap
# ============================================================================


class RemapError(SiteBackupError):
    """Raised when a remap aborts.

    Attributes:
        completed_tenants: Tenants fully remapped before the failure.
        failed_tenant: Tenant being remapped when the failure occurred.
        table: Table being rewritten when the failure occurred, if known.
    """

    def __init__(
        self,
        message: str,
        completed_tenants: list[str] | None = None,
        failed_tenant: str | None = None,
        table: str | None = None,
    ) -> None:
        super().__init__(message)
        self.completed_tenants: list[str] = list(completed_tenants or [])
        self.failed_tenant = failed_tenant
        self.table = table


class ColumnLengthViolationError(RemapError):
    """Raised when a replacement would exceed a column's maximum length."""

    pass
