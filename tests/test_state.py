"""Tests for platform flags and the readonly gate.

Verifies that:
- Flags persist to the state file and are re-read on every access
- override() restores the previous value on every exit path
- ReadonlyGate is idempotent and hold() always releases
"""

from pathlib import Path

import pytest

from site_backup.state import PlatformState, ReadonlyGate


# ============================================================================
# Test: PlatformState
# ============================================================================


class TestPlatformState:
    """Verify PlatformState get/set/override."""

    def test_defaults(self) -> None:
        platform = PlatformState()
        assert platform.get("readonly") is False
        assert platform.get("allow_restore") is False
        assert platform.get("backup_with_uploads") is True
        assert platform.get("disable_emails") == "no"

    def test_unknown_setting_raises(self) -> None:
        with pytest.raises(KeyError):
            PlatformState().set("colour", "blue")

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """A flag set through one instance is visible through another."""
        path = tmp_path / ".site-state.json"
        PlatformState(path).enable_restore()

        assert PlatformState(path).restore_enabled() is True

    def test_rereads_file_on_each_access(self, tmp_path: Path) -> None:
        """Changes made by another process are observed without reloading."""
        path = tmp_path / ".site-state.json"
        reader = PlatformState(path)
        assert reader.restore_enabled() is False

        PlatformState(path).enable_restore()
        assert reader.restore_enabled() is True

    def test_invalid_value_rejected(self) -> None:
        platform = PlatformState()
        with pytest.raises(ValueError):
            platform.set("disable_emails", "sometimes")
        assert platform.get("disable_emails") == "no"

    def test_override_restores_previous_value(self) -> None:
        platform = PlatformState()
        platform.set("backup_with_uploads", False)

        with platform.override("backup_with_uploads", True):
            assert platform.get("backup_with_uploads") is True

        assert platform.get("backup_with_uploads") is False

    def test_override_restores_on_exception(self) -> None:
        platform = PlatformState()
        platform.set("backup_with_uploads", False)

        with pytest.raises(RuntimeError):
            with platform.override("backup_with_uploads", True):
                raise RuntimeError("boom")

        assert platform.get("backup_with_uploads") is False


# ============================================================================
# Test: ReadonlyGate
# ============================================================================


class TestReadonlyGate:
    """Verify ReadonlyGate enable/disable/hold."""

    def test_enable_disable(self, platform: PlatformState) -> None:
        gate = ReadonlyGate(platform)
        gate.enable()
        assert gate.is_enabled()
        assert platform.get("readonly") is True
        gate.disable()
        assert not gate.is_enabled()

    def test_idempotent(self, platform: PlatformState) -> None:
        """Enabling twice or disabling twice is a no-op."""
        gate = ReadonlyGate(platform)
        gate.enable()
        gate.enable()
        assert gate.is_enabled()
        gate.disable()
        gate.disable()
        assert not gate.is_enabled()

    def test_hold_releases_on_exception(self, platform: PlatformState) -> None:
        gate = ReadonlyGate(platform)

        with pytest.raises(RuntimeError):
            with gate.hold():
                assert gate.is_enabled()
                raise RuntimeError("step failed")

        assert not gate.is_enabled()
