"""Configuration management: site.toml loading and config models.

Usage:
    >>> from site_backup.config import load_site_config, SiteConfig, TenantProfile
"""

from site_backup.config.loader import load_site_config, resolve_path
from site_backup.config.models import (
    RestoreSettings,
    SiteConfig,
    SiteSettings,
    StorageSettings,
    TenantProfile,
)

__all__ = [
    "load_site_config",
    "resolve_path",
    "SiteConfig",
    "SiteSettings",
    "StorageSettings",
    "RestoreSettings",
    "TenantProfile",
]
