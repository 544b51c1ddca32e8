"""Process-wide platform flags and the readonly gate.

``PlatformState`` holds the handful of site-wide switches this package
reads or writes: readonly mode, whether restores are allowed, whether
backups include uploads, and the outgoing-email policy.  With a path it
persists to a small JSON file so that separate CLI invocations see each
other's changes; without one it lives in memory only.

``ReadonlyGate`` is the single writer of the ``readonly`` flag.  The
platform layer is expected to reject mutating requests while it is
enabled.

Usage:
    from site_backup.state import PlatformState, ReadonlyGate

    platform = PlatformState(Path(".site-state.json"))
    gate = ReadonlyGate(platform)

    with gate.hold():
        ...  # readonly is enabled here and cleared on every exit path
"""

import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PlatformFlags(BaseModel):
    """Persisted platform switches."""

    readonly: bool = False
    allow_restore: bool = False
    backup_with_uploads: bool = True
    disable_emails: Literal["no", "non-staff", "yes"] = "no"


class PlatformState:
    """Read and write platform flags.

    Every read goes back to the backing file (when there is one) so a flag
    flipped by another process is observed immediately.
    """

    def __init__(self, path: Path | None = None, flags: PlatformFlags | None = None) -> None:
        self._path = path
        self._flags = flags or PlatformFlags()

    @property
    def path(self) -> Path | None:
        return self._path

    def flags(self) -> PlatformFlags:
        """Return a snapshot of the current flags."""
        if self._path is not None and self._path.exists():
            self._flags = PlatformFlags.model_validate_json(self._path.read_text())
        return self._flags.model_copy()

    def get(self, name: str) -> Any:
        flags = self.flags()
        if name not in PlatformFlags.model_fields:
            raise KeyError(f"Unknown platform setting: {name}")
        return getattr(flags, name)

    def set(self, name: str, value: Any) -> None:
        """Set a flag and persist it."""
        if name not in PlatformFlags.model_fields:
            raise KeyError(f"Unknown platform setting: {name}")
        data = self.flags().model_dump()
        data[name] = value
        self._flags = PlatformFlags.model_validate(data)
        self._save()
        logger.debug("Platform setting %s = %r", name, value)

    @contextmanager
    def override(self, name: str, value: Any) -> Iterator[None]:
        """Set ``name`` to ``value`` for the duration of the block.

        The previous value is restored on every exit path, including
        exceptions raised inside the block.
        """
        previous = self.get(name)
        self.set(name, value)
        try:
            yield
        finally:
            self.set(name, previous)

    # ------------------------------------------------------------------
    # Restore toggle
    # ------------------------------------------------------------------

    def restore_enabled(self) -> bool:
        return bool(self.get("allow_restore"))

    def enable_restore(self) -> None:
        self.set("allow_restore", True)

    def disable_restore(self) -> None:
        self.set("allow_restore", False)

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(self._flags.model_dump(), indent=2))
        os.replace(tmp_path, self._path)


class ReadonlyGate:
    """Enable/disable readonly mode on a ``PlatformState``.

    ``enable`` and ``disable`` are idempotent.
    """

    def __init__(self, platform: PlatformState) -> None:
        self._platform = platform

    def is_enabled(self) -> bool:
        return bool(self._platform.get("readonly"))

    def enable(self) -> None:
        if self.is_enabled():
            return
        self._platform.set("readonly", True)
        logger.info("Readonly mode enabled")

    def disable(self) -> None:
        if not self.is_enabled():
            return
        self._platform.set("readonly", False)
        logger.info("Readonly mode disabled")

    @contextmanager
    def hold(self) -> Iterator["ReadonlyGate"]:
        """Enable readonly mode for the block, disabling it on every exit."""
        self.enable()
        try:
            yield self
        finally:
            self.disable()
