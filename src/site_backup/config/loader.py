"""TOML loader for site.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from site_backup.config.models import (
    RestoreSettings,
    SiteConfig,
    SiteSettings,
    StorageSettings,
    TenantProfile,
)
from site_backup.errors import ConfigurationError


def load_site_config(config_path: Path | None = None) -> SiteConfig:
    """Load site configuration from TOML file.

    Relative paths inside the file (uploads dir, local backup dir, state
    files) are left as written; callers resolve them against the
    directory holding the config with ``resolve_path``.

    Args:
        config_path: Path to site.toml (default: ``site.toml`` in the
            current working directory).

    Returns:
        SiteConfig with all sections and tenants.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigurationError: If the file is not valid TOML or a value is invalid.
    """
    if config_path is None:
        config_path = Path.cwd() / "site.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Site config not found: {config_path}\n"
            f"Create site.toml with [site], [storage] and [tenants.<name>] sections."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse tenants
        tenants = {}
        for name, tenant_data in data.get("tenants", {}).items():
            tenants[name] = TenantProfile(**tenant_data)

        return SiteConfig(
            site=SiteSettings(**data.get("site", {})),
            storage=StorageSettings(**data.get("storage", {})),
            restore=RestoreSettings(**data.get("restore", {})),
            tenants=tenants,
        )
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid site config {config_path}: {e}") from e


def resolve_path(value: str, config_path: Path | None = None) -> Path:
    """Resolve a configured path relative to the config file's directory."""
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    base = config_path.parent if config_path is not None else Path.cwd()
    return base / path
