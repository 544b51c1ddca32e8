"""Relational store adapters.

Provides the ``StoreClient`` Protocol and the PostgreSQL implementation.

Usage:
    from site_backup.adapters import StoreClient, AsyncPostgresStore
"""

from site_backup.adapters.base import StoreClient
from site_backup.adapters.models import StoreState, TextColumn
from site_backup.adapters.postgres import AsyncPostgresStore

__all__ = [
    "StoreClient",
    "StoreState",
    "TextColumn",
    "AsyncPostgresStore",
]
