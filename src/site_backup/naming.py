"""Snapshot filename conventions.

A snapshot filename is a logical base name plus one recognized extension.
The extension decides the package format:

- ``.tar.gz`` / ``.tgz``: gzipped tarball (dump, metadata, optional uploads)
- ``.sql.gz``: gzipped plain SQL dump
- ``.sql``: plain SQL dump
"""

import re
from datetime import datetime

# Longest first so ".sql.gz" is matched before ".sql"
RECOGNIZED_EXTENSIONS = (".tar.gz", ".sql.gz", ".tgz", ".sql")
TARBALL_EXTENSIONS = (".tar.gz", ".tgz")

CONTENT_TYPES = {
    ".tar.gz": "application/gzip",
    ".tgz": "application/gzip",
    ".sql.gz": "application/gzip",
    ".sql": "application/sql",
}


def snapshot_extension(filename: str) -> str | None:
    """Return the recognized extension of ``filename``, or None."""
    for ext in RECOGNIZED_EXTENSIONS:
        if filename.endswith(ext):
            return ext
    return None


def is_snapshot_filename(filename: str) -> bool:
    ext = snapshot_extension(filename)
    return ext is not None and len(filename) > len(ext) and not filename.startswith(".")


def strip_extension(filename: str) -> str:
    """Strip a recognized extension to get the logical base name.

    Example:
        >>> strip_extension("forum-2024-01-01.tar.gz")
        'forum-2024-01-01'
        >>> strip_extension("nightly")
        'nightly'
    """
    ext = snapshot_extension(filename)
    return filename[: -len(ext)] if ext else filename


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "site"


def default_base_name(site_name: str, now: datetime | None = None) -> str:
    """Derive ``<site-name>-<timestamp>`` for an unnamed backup."""
    now = now or datetime.now()
    return f"{slugify(site_name)}-{now.strftime('%Y-%m-%d-%H%M%S')}"


def snapshot_filename(base_name: str, include_uploads: bool) -> str:
    """Append the package extension for a snapshot with or without uploads."""
    return f"{base_name}{'.tar.gz' if include_uploads else '.sql.gz'}"


def content_type_for(filename: str) -> str:
    ext = snapshot_extension(filename)
    return CONTENT_TYPES.get(ext or "", "application/octet-stream")
