"""Snapshot storage backends and the factory that picks one from config."""

from pathlib import Path

from site_backup.config.models import StorageSettings
from site_backup.errors import ConfigurationError, InvalidLocationError
from site_backup.storage.base import FileDescriptor, FileHandle, StorageBackend
from site_backup.storage.local import LocalBackend

LOCATIONS = ("local", "s3")
_ALIASES = {"remote": "s3"}


def create_backend(
    settings: StorageSettings | None = None,
    location: str | None = None,
    base_dir: Path | None = None,
) -> StorageBackend:
    """Create a storage backend from config.

    Args:
        settings: StorageSettings (default: local ``backups`` directory).
        location: "local", "s3" (or "remote") to override settings.backend.
        base_dir: Directory relative local paths are resolved against
            (default: current working directory).

    Raises:
        ConfigurationError: If the s3 backend is selected without a bucket.
        InvalidLocationError: If the location is not a known backend.
    """
    settings = settings or StorageSettings()
    backend = location or settings.backend
    backend = _ALIASES.get(backend, backend)

    if backend == "s3":
        from site_backup.storage.s3 import S3Backend
        if not settings.s3_bucket:
            raise ConfigurationError(
                "s3_bucket is required when the storage backend is 's3'. "
                "Add it to site.toml: [storage] s3_bucket = \"my-backups\""
            )
        return S3Backend(
            settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            signed_url_ttl=settings.signed_url_ttl,
        )

    if backend == "local":
        directory = Path(settings.local_dir).expanduser()
        if not directory.is_absolute():
            directory = Path(base_dir or Path.cwd()) / directory
        return LocalBackend(directory)

    raise InvalidLocationError(f"Unknown storage location: {backend!r}. Use 'local' or 's3'.")


__all__ = [
    "LOCATIONS",
    "create_backend",
    "StorageBackend",
    "FileDescriptor",
    "FileHandle",
    "LocalBackend",
]
