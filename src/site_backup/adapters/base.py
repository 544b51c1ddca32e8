"""Relational store protocol definition.

Defines the ``StoreClient`` Protocol that backup, restore, rollback and
remap run against.  All methods are ``async def``.

The dump format is opaque to callers: ``dump`` produces a file and
``apply`` consumes the same kind of file.

Usage:
    from site_backup.adapters.base import StoreClient

    async def snapshot(store: StoreClient, path: Path) -> None:
        await store.dump(path)
        await store.close()
"""

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from site_backup.adapters.models import StoreState, TextColumn

if TYPE_CHECKING:
    from site_backup.backup.models import RollbackPoint


class StoreClient(Protocol):
    """Store interface that all adapters must implement."""

    async def dump(self, destination: Path) -> None:
        """Write a plain-SQL dump of the live data to ``destination``.

        Raises:
            DumpError: If the dump producer fails or exits non-zero.
        """
        ...

    async def apply(self, dump_path: Path) -> None:
        """Load a dump and make it the live data.

        The previous live data is kept aside so ``rollback_to`` can bring
        it back.  Either the new data becomes live or nothing changes.

        Raises:
            MigrationError: If loading or swapping fails.
        """
        ...

    async def migrate(self) -> None:
        """Bring the restored data up to the running schema version.

        Raises:
            MigrationError: If migrations fail.
        """
        ...

    async def current_state(self) -> StoreState:
        """Describe the live data (database, schema, schema version)."""
        ...

    async def rollback_to(self, point: "RollbackPoint") -> None:
        """Reinstate the data that was live when ``point`` was recorded."""
        ...

    async def text_columns(self) -> dict[str, list[TextColumn]]:
        """Return text-bearing columns of every user table, keyed by table."""
        ...

    async def remap_table(
        self,
        table: str,
        columns: list[TextColumn],
        search: str,
        replace: str,
        regex: bool = False,
        skip_max_length_violations: bool = False,
    ) -> int:
        """Rewrite ``search`` to ``replace`` in one table's text columns.

        All columns of the table are rewritten in a single transaction.
        In regex mode ``search`` is a store-native regular expression and
        ``replace`` may reference captured groups.

        Returns:
            Number of rows changed.

        Raises:
            ColumnLengthViolationError: If a replacement exceeds a column's
                maximum length and ``skip_max_length_violations`` is False.
                The table's transaction is rolled back.
        """
        ...

    async def close(self) -> None:
        """Close connections and clean up resources."""
        ...
