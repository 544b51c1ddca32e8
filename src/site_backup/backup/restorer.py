"""Restore a snapshot over the live site.

Lifecycle (``RestoreResult.state`` records how far a run got)::

    PENDING -> READONLY_ENABLED -> UNPACKED -> MIGRATED
            -> UPLOADS_RESTORED -> READONLY_DISABLED

Readonly mode is held from just after the rollback point is recorded until
the last step finishes, and is released on every exit path.  Everything
unpacked lives in a ``RestoreSession`` working directory that is removed
when the run ends.

Precondition failures are raised before anything changes; step failures
are reported on the returned ``RestoreResult``.

Usage:
    from site_backup.backup.restorer import Restorer

    restorer = Restorer(store, archive, backend_factory, platform, ledger)
    result = await restorer.run("admin", "forum-2024-01-01.tar.gz")
"""

import inspect
import logging
import os
import shutil
import tempfile
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol

from site_backup.adapters.base import StoreClient
from site_backup.backup.archive import SnapshotArchive
from site_backup.backup.models import RestoreResult, RestoreState
from site_backup.backup.rollback import RollbackLedger
from site_backup.errors import FilenameMissingError, RestoreDisabledError, SiteBackupError
from site_backup.state import PlatformState, ReadonlyGate
from site_backup.storage.base import StorageBackend

logger = logging.getLogger(__name__)

Checkpoint = Callable[[RestoreResult], Awaitable[None] | None]
BackendFactory = Callable[[str | None], StorageBackend]


class NotificationPolicy(Protocol):
    """Controls outgoing email after a restore."""

    def suppress_non_staff_emails(self) -> None:
        ...


class SettingsNotificationPolicy:
    """Suppress emails through the ``disable_emails`` platform setting."""

    def __init__(self, platform: PlatformState) -> None:
        self._platform = platform

    def suppress_non_staff_emails(self) -> None:
        self._platform.set("disable_emails", "non-staff")
        logger.info("Emails to non-staff users disabled")


class RestoreSession:
    """Scoped working directory for one restore.

    Usage:
        with RestoreSession() as session:
            backend.download(filename, session.download_dir / filename)
            archive.unpack(package, session.extract_dir)
    """

    def __init__(self, prefix: str = "site-restore-") -> None:
        self._prefix = prefix
        self._tmp: tempfile.TemporaryDirectory | None = None
        self.path: Path | None = None

    def __enter__(self) -> "RestoreSession":
        self._tmp = tempfile.TemporaryDirectory(prefix=self._prefix)
        self.path = Path(self._tmp.name)
        self.download_dir.mkdir()
        self.extract_dir.mkdir()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None

    @property
    def download_dir(self) -> Path:
        return self.path / "download"

    @property
    def extract_dir(self) -> Path:
        return self.path / "extract"


class Restorer:
    """Orchestrates restoring a snapshot.

    Args:
        store: Store the dump is applied to.
        archive: Unpacks packages; its ``uploads_dir`` is the live uploads
            directory replaced by a snapshot's uploads tree.
        backend_factory: Maps a location override (or None) to a backend.
            Raises ``InvalidLocationError`` for unknown locations.
        platform: Platform flags (restore toggle, readonly, emails).
        ledger: Receives the rollback point.
        notifications: Email policy (default: ``SettingsNotificationPolicy``).
        checkpoint: Called with the in-progress result after migrations
            when ``interactive`` is set; may be sync or async.  Raising
            aborts the restore.
    """

    def __init__(
        self,
        store: StoreClient,
        archive: SnapshotArchive,
        backend_factory: BackendFactory,
        platform: PlatformState,
        ledger: RollbackLedger,
        notifications: NotificationPolicy | None = None,
        checkpoint: Checkpoint | None = None,
    ) -> None:
        self.store = store
        self.archive = archive
        self.backend_factory = backend_factory
        self.platform = platform
        self.ledger = ledger
        self.notifications = notifications or SettingsNotificationPolicy(platform)
        self.checkpoint = checkpoint
        self.gate = ReadonlyGate(platform)

    async def run(
        self,
        user_id: str,
        filename: str | None,
        disable_emails: bool = False,
        location: str | None = None,
        interactive: bool = False,
    ) -> RestoreResult:
        """Restore ``filename`` over the live site.

        Raises:
            FilenameMissingError: If no filename is given.
            RestoreDisabledError: If restores are not enabled.
            InvalidLocationError: If ``location`` is not recognized.
        """
        if not filename:
            raise FilenameMissingError()
        if not self.platform.restore_enabled():
            raise RestoreDisabledError()
        backend = self.backend_factory(location)

        result = RestoreResult(snapshot=filename)
        logger.info("Restore of %s requested by %s", filename, user_id)

        try:
            with RestoreSession() as session:
                await self._run_steps(result, backend, session, disable_emails, interactive)
        except (SiteBackupError, OSError) as e:
            logger.error("Restore of %s failed at %s: %s", filename, result.state.value, e)
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception("Restore of %s failed at %s", filename, result.state.value)
            result.error = f"{type(e).__name__}: {e}"
            return result

        result.success = True
        logger.info("Restore of %s finished", filename)
        return result

    async def _run_steps(
        self,
        result: RestoreResult,
        backend: StorageBackend,
        session: RestoreSession,
        disable_emails: bool,
        interactive: bool,
    ) -> None:
        filename = result.snapshot
        handle = backend.file(filename)
        result.steps.append("resolve")

        point = self.ledger.record(await self.store.current_state())
        result.steps.append("record_rollback_point")
        logger.debug("Rollback point: %s", point.identifier)

        with self.gate.hold():
            result.state = RestoreState.READONLY_ENABLED
            result.steps.append("enable_readonly")

            if backend.is_remote():
                package = backend.download(filename, session.download_dir / filename)
            else:
                package = handle.path
            layout = self.archive.unpack(package, session.extract_dir)
            result.state = RestoreState.UNPACKED
            result.steps.append("unpack")

            await self.store.apply(layout.dump_path)
            self.ledger.mark_swapped()
            result.steps.append("apply")

            await self.store.migrate()
            result.state = RestoreState.MIGRATED
            result.steps.append("migrate")

            if interactive and self.checkpoint is not None:
                outcome = self.checkpoint(result)
                if inspect.isawaitable(outcome):
                    await outcome
                result.steps.append("checkpoint")

            if layout.uploads_dir is not None:
                self._restore_uploads(layout.uploads_dir)
                result.steps.append("restore_uploads")
            result.state = RestoreState.UPLOADS_RESTORED

            if disable_emails:
                self.notifications.suppress_non_staff_emails()
                result.steps.append("disable_emails")

        result.state = RestoreState.READONLY_DISABLED
        result.steps.append("disable_readonly")

    def _restore_uploads(self, source: Path) -> None:
        """Replace the live uploads directory with ``source``.

        The new tree is copied next to the live one first, so the live
        directory is only swapped once the copy is complete.
        """
        target = self.archive.uploads_dir
        if target is None:
            logger.warning("Snapshot contains uploads but no uploads directory is configured")
            return

        target = Path(target)
        staged = target.with_name(f".{target.name}.restoring")
        previous = target.with_name(f".{target.name}.previous")

        if staged.exists():
            shutil.rmtree(staged)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, staged)

        if target.exists():
            if previous.exists():
                shutil.rmtree(previous)
            os.replace(target, previous)
        os.replace(staged, target)
        if previous.exists():
            shutil.rmtree(previous)
        logger.info("Restored uploads into %s", target)
