"""Store factory and tenant resolution.

Tenants are the ``[tenants.<name>]`` sections of site.toml, each naming
one database.  The current tenant is chosen by:

1. ``{env_prefix}SITE_TENANT`` env var
2. a tenant named ``default``
3. the only configured tenant

Usage:
    from site_backup.factory import get_store, get_active_tenant_name

    config = load_site_config()
    name = get_active_tenant_name(config)
    store = get_store(name, config)
"""

import os
from urllib.parse import quote

from site_backup.adapters.postgres import AsyncPostgresStore
from site_backup.config.models import SiteConfig, TenantProfile
from site_backup.errors import TenantNotFoundError

DEFAULT_TENANT = "default"


# ============================================================================
# Tenant Resolution
# ============================================================================


def list_tenants(config: SiteConfig) -> list[str]:
    """Configured tenant names, in file order."""
    return list(config.tenants.keys())


def get_active_tenant_name(config: SiteConfig, env_prefix: str = "") -> str:
    """Get the current tenant name.

    Args:
        config: Loaded site configuration.
        env_prefix: Prefix for the ``SITE_TENANT`` env var lookup.
            e.g. ``"FORUM_"`` reads ``FORUM_SITE_TENANT``.

    Returns:
        Tenant name

    Raises:
        TenantNotFoundError: If no tenant can be chosen, or the env var
            names a tenant that is not configured.
    """
    tenants = list_tenants(config)

    env_tenant = os.environ.get(f"{env_prefix}SITE_TENANT")
    if env_tenant:
        if env_tenant not in config.tenants:
            raise TenantNotFoundError(
                f"Tenant '{env_tenant}' not found in site.toml.\n"
                f"Available tenants: {', '.join(tenants) or '(none)'}"
            )
        return env_tenant

    if DEFAULT_TENANT in config.tenants:
        return DEFAULT_TENANT
    if len(tenants) == 1:
        return tenants[0]

    if not tenants:
        raise TenantNotFoundError(
            "No tenants configured.\n"
            "Add a [tenants.default] section with a url to site.toml."
        )
    raise TenantNotFoundError(
        "Several tenants are configured and none is selected.\n"
        f"Set {env_prefix}SITE_TENANT to one of: {', '.join(tenants)}"
    )


def get_tenant(config: SiteConfig, name: str) -> TenantProfile:
    if name not in config.tenants:
        raise TenantNotFoundError(
            f"Tenant '{name}' not found in site.toml.\n"
            f"Available tenants: {', '.join(config.tenants) or '(none)'}"
        )
    return config.tenants[name]


# ============================================================================
# Store Factory
# ============================================================================


def resolve_url(profile: TenantProfile) -> str:
    """Resolve tenant URL with password substitution.

    Args:
        profile: Tenant profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_store(name: str, config: SiteConfig, **engine_kwargs) -> AsyncPostgresStore:
    """Create a store for a configured tenant.

    Raises:
        TenantNotFoundError: If ``name`` is not configured.
    """
    profile = get_tenant(config, name)
    return AsyncPostgresStore(
        resolve_url(profile),
        restore_settings=config.restore,
        **engine_kwargs,
    )
