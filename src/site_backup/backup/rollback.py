"""Rollback ledger and the rollback operation.

The ledger holds at most one ``RollbackPoint``: the store state recorded
immediately before the most recent restore.  A new restore overwrites it;
a successful rollback consumes it.

With a path the ledger persists to a small JSON file, so ``site-backup
rollback`` can run in a different process from the restore it undoes.

Usage:
    from site_backup.backup.rollback import RollbackLedger, rollback

    ledger = RollbackLedger(Path(".restore-rollback.json"))
    point = await rollback(store, ledger)
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from site_backup.adapters.base import StoreClient
from site_backup.adapters.models import StoreState
from site_backup.backup.models import RollbackPoint
from site_backup.errors import NoPriorStateError

logger = logging.getLogger(__name__)


class RollbackLedger:
    """Stores the single "previous known-good state" entry."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._entry: RollbackPoint | None = None

    def record(self, state: StoreState) -> RollbackPoint:
        """Record ``state`` as the rollback point, replacing any previous one."""
        point = RollbackPoint(
            database=state.database,
            schema_name=state.schema_name,
            schema_version=state.schema_version,
            recorded_at=datetime.now(timezone.utc),
        )
        self._write(point)
        logger.info("Recorded rollback point %s", point.identifier)
        return point

    def mark_swapped(self) -> None:
        """Note that restored data went live, so rollback must swap back."""
        point = self.current()
        if point is None:
            raise NoPriorStateError()
        self._write(point.model_copy(update={"swapped": True}))

    def current(self) -> RollbackPoint | None:
        if self._path is not None:
            if not self._path.exists():
                return None
            return RollbackPoint.model_validate_json(self._path.read_text())
        return self._entry

    def clear(self) -> None:
        self._entry = None
        if self._path is not None and self._path.exists():
            self._path.unlink()

    def _write(self, point: RollbackPoint) -> None:
        self._entry = point
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        tmp_path.write_text(point.model_dump_json(indent=2))
        os.replace(tmp_path, self._path)


async def rollback(store: StoreClient, ledger: RollbackLedger) -> RollbackPoint:
    """Revert the store to the state recorded before the last restore.

    Does not engage readonly mode; the caller is responsible for making
    sure nothing else is mutating the store.

    Returns:
        The rollback point that was reinstated.

    Raises:
        NoPriorStateError: If no rollback point is recorded.
    """
    point = ledger.current()
    if point is None:
        raise NoPriorStateError()

    await store.rollback_to(point)
    ledger.clear()
    logger.info("Rolled back to %s recorded at %s", point.identifier, point.recorded_at)
    return point
