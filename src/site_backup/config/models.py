"""Pydantic models for site configuration."""

from typing import Literal

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class TenantProfile(BaseModel):
    """Database connection for one tenant from site.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class StorageSettings(BaseModel):
    """Where snapshots are published."""

    backend: Literal["local", "s3"] = "local"
    local_dir: str = "backups"
    s3_bucket: str | None = None
    s3_prefix: str = "backups"
    s3_region: str | None = None
    signed_url_ttl: int = 300  # seconds


class RestoreSettings(BaseModel):
    """Restore behaviour."""

    migrate_command: str | None = None
    live_schema: str = "public"
    staging_schema: str = "restore"
    backup_schema: str = "backup"
    migrations_table: str = "schema_migrations"


class SiteSettings(BaseModel):
    """Site identity and on-disk locations."""

    name: str = "site"
    version: str = "0.0.0"
    uploads_dir: str = "uploads"
    state_file: str = ".site-state.json"
    rollback_file: str = ".restore-rollback.json"


class SiteConfig(BaseModel):
    """Complete configuration from site.toml."""

    site: SiteSettings = Field(default_factory=SiteSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    restore: RestoreSettings = Field(default_factory=RestoreSettings)
    tenants: dict[str, TenantProfile] = Field(default_factory=dict)
