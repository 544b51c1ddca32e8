"""CLI for site backup, restore, rollback, and remap.

Usage:
    site-backup backup
    site-backup backup nightly --sql-only
    site-backup backup before-upgrade --location-dir /mnt/archive
    site-backup list
    site-backup enable-restore
    site-backup restore forum-2024-01-01-120000.tar.gz --disable-emails
    site-backup rollback
    site-backup remap http://old.example.com https://new.example.com --all-sites
    site-backup remap 'cdn(\\d)\\.old' 'cdn\\1.new' --regex

Commands:
    backup           - Create a snapshot and publish it
    restore          - Restore a snapshot over the live site
    rollback         - Revert the last restore
    remap            - Find/replace text across the store
    list             - List available snapshots
    enable-restore   - Allow restores
    disable-restore  - Forbid restores
    enable-readonly  - Put the site in readonly mode
    disable-readonly - Take the site out of readonly mode
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from site_backup.backup import (
    Backuper,
    RestoreResult,
    Restorer,
    RollbackLedger,
    SnapshotArchive,
    rollback,
)
from site_backup.config.loader import load_site_config, resolve_path
from site_backup.config.models import SiteConfig
from site_backup.errors import RemapError, SiteBackupError
from site_backup.factory import get_active_tenant_name, get_store, list_tenants
from site_backup.remap import RemapEngine
from site_backup.state import PlatformState, ReadonlyGate
from site_backup.storage import LOCATIONS, create_backend

console = Console()


# ============================================================================
# Shared helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _config_path(args: argparse.Namespace) -> Path:
    config = getattr(args, "config", None)
    return Path(config) if config else Path.cwd() / "site.toml"


def _load(args: argparse.Namespace) -> tuple[SiteConfig, Path]:
    """Load site.toml named by ``--config`` (or the one in the cwd)."""
    path = _config_path(args)
    return load_site_config(path), path


def _platform(config: SiteConfig, config_path: Path) -> PlatformState:
    return PlatformState(resolve_path(config.site.state_file, config_path))


def _ledger(config: SiteConfig, config_path: Path) -> RollbackLedger:
    return RollbackLedger(resolve_path(config.site.rollback_file, config_path))


def _backend(config: SiteConfig, config_path: Path, location: str | None = None):
    return create_backend(config.storage, location=location, base_dir=config_path.parent)


def _open_store(args: argparse.Namespace, config: SiteConfig):
    env_prefix = getattr(args, "env_prefix", "")
    tenant = get_active_tenant_name(config, env_prefix=env_prefix)
    return get_store(tenant, config)


def _archive(config: SiteConfig, config_path: Path, store) -> SnapshotArchive:
    return SnapshotArchive(
        store,
        uploads_dir=resolve_path(config.site.uploads_dir, config_path),
        site_name=config.site.name,
        source_version=config.site.version,
    )


def _confirm(args: argparse.Namespace, message: str) -> bool:
    """Ask before a destructive action unless ``--yes`` was given."""
    if getattr(args, "yes", False):
        return True
    return Confirm.ask(message, console=console, default=False)


def _fail(message: str) -> int:
    console.print(f"[bold red]x[/bold red] {escape(message)}")
    return 1


def _interactive_checkpoint(result: RestoreResult) -> None:
    """Pause after migrations so the operator can inspect the restored data."""
    console.print(
        "\n[bold]Migrations finished.[/bold] The restored data is live and the "
        "site is still readonly."
    )
    if not Confirm.ask("Continue with the uploads restore?", console=console, default=True):
        raise SiteBackupError("Restore stopped by operator after migrations")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_backup(args: argparse.Namespace) -> int:
    """Async implementation for backup command.

    Returns:
        0 on success, 1 on failure.
    """
    config, config_path = _load(args)
    store = _open_store(args, config)
    try:
        backuper = Backuper(
            _backend(config, config_path),
            _archive(config, config_path, store),
            _platform(config, config_path),
        )
        destination_dir = Path(args.location_dir) if args.location_dir else None
        console.print("Creating backup...", style="dim")
        result = await backuper.run(
            getpass.getuser(),
            filename=args.filename,
            with_uploads=not args.sql_only,
            destination_dir=destination_dir,
        )
    finally:
        await store.close()

    if not result.success:
        return _fail(f"Backup failed: {result.error}")

    console.print()
    console.print(
        f"[bold green]v[/bold green] Backup created: "
        f"[bold cyan]{result.snapshot.filename}[/bold cyan]"
    )
    console.print(f"  Location: {result.location}")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Returns:
        0 on success, 1 on failure or when the operator declines.
    """
    config, config_path = _load(args)
    platform = _platform(config, config_path)

    if args.filename and not _confirm(
        args,
        f"Restore [bold]{args.filename}[/bold]? The live data will be replaced "
        f"(it can be brought back with [cyan]site-backup rollback[/cyan])",
    ):
        console.print("Cancelled.")
        return 1

    store = _open_store(args, config)
    try:
        restorer = Restorer(
            store,
            _archive(config, config_path, store),
            lambda location: _backend(config, config_path, location),
            platform,
            _ledger(config, config_path),
            checkpoint=_interactive_checkpoint,
        )
        result = await restorer.run(
            getpass.getuser(),
            args.filename,
            disable_emails=args.disable_emails,
            location=args.location,
            interactive=args.interactive,
        )
    finally:
        await store.close()

    if not result.success:
        console.print(f"[dim]Completed steps: {', '.join(result.steps) or '(none)'}[/dim]")
        console.print(
            "[dim]Run[/dim] [cyan]site-backup rollback[/cyan] "
            "[dim]to return to the data recorded before this restore.[/dim]"
        )
        return _fail(f"Restore failed ({result.state.value}): {result.error}")

    console.print()
    console.print(
        f"[bold green]v[/bold green] Restored [bold cyan]{result.snapshot}[/bold cyan]"
    )
    if args.disable_emails:
        console.print("  Emails to non-staff users are disabled")
    return 0


async def _async_rollback(args: argparse.Namespace) -> int:
    """Async implementation for rollback command."""
    config, config_path = _load(args)
    ledger = _ledger(config, config_path)

    point = ledger.current()
    if point is not None and not _confirm(
        args,
        f"Roll back to [bold]{point.identifier}[/bold] "
        f"recorded at {point.recorded_at:%Y-%m-%d %H:%M:%S}?",
    ):
        console.print("Cancelled.")
        return 1

    store = _open_store(args, config)
    try:
        point = await rollback(store, ledger)
    finally:
        await store.close()

    console.print(
        f"[bold green]v[/bold green] Rolled back to [bold cyan]{point.identifier}[/bold cyan]"
    )
    return 0


async def _async_remap(args: argparse.Namespace) -> int:
    """Async implementation for remap command."""
    config, _ = _load(args)
    env_prefix = getattr(args, "env_prefix", "")
    scope = "all" if args.all_sites else "current"
    current = get_active_tenant_name(config, env_prefix=env_prefix)

    mode = "regex" if args.regex else "literal"
    where = "ALL sites" if scope == "all" else f"site '{current}'"
    if not _confirm(
        args,
        f"Rewrite {mode} [bold]{args.search!r}[/bold] to [bold]{args.replace!r}[/bold] "
        f"in every text column of {where}?",
    ):
        console.print("Cancelled.")
        return 1

    engine = RemapEngine(
        lambda name: get_store(name, config),
        list_tenants(config),
        current,
    )
    try:
        result = await engine.remap(
            args.search,
            args.replace,
            regex=args.regex,
            skip_max_length_violations=args.skip_max_length_violations,
            scope=scope,
        )
    except RemapError as e:
        if e.completed_tenants:
            console.print(f"[dim]Completed: {', '.join(e.completed_tenants)}[/dim]")
        if e.failed_tenant:
            console.print(f"[dim]Failed on: {e.failed_tenant}[/dim]")
        return _fail(str(e))

    table = Table(title="Remap", show_header=True, header_style="bold")
    table.add_column("Site")
    table.add_column("Rows changed", justify="right")
    for tenant in result.tenants:
        table.add_row(tenant, str(result.rows_changed[tenant]))
    console.print(table)
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, mapping domain errors to exit code 1."""
    try:
        return asyncio.run(coro_fn(args))
    except FileNotFoundError as e:
        return _fail(str(e))
    except SiteBackupError as e:
        return _fail(str(e))


def cmd_backup(args: argparse.Namespace) -> int:
    """Create a snapshot. Wraps ``_async_backup`` with ``asyncio.run()``."""
    return _run(_async_backup, args)


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a snapshot. Wraps ``_async_restore`` with ``asyncio.run()``."""
    return _run(_async_restore, args)


def cmd_rollback(args: argparse.Namespace) -> int:
    """Revert the last restore. Wraps ``_async_rollback`` with ``asyncio.run()``."""
    return _run(_async_rollback, args)


def cmd_remap(args: argparse.Namespace) -> int:
    """Find/replace text. Wraps ``_async_remap`` with ``asyncio.run()``."""
    return _run(_async_remap, args)


def cmd_list(args: argparse.Namespace) -> int:
    """List snapshots in the configured (or ``--location``) backend.

    Returns:
        0 on success, 1 if the config or backend cannot be used.
    """
    try:
        config, config_path = _load(args)
        backend = _backend(config, config_path, args.location)
        files = backend.list_files()
    except (FileNotFoundError, SiteBackupError) as e:
        return _fail(str(e))

    if not files:
        console.print("[yellow]No snapshots found.[/yellow]")
        return 0

    table = Table(title="Snapshots", show_header=True, header_style="bold")
    table.add_column("Filename")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")
    for f in files:
        table.add_row(
            f.filename,
            f"{f.size:,}" if f.size is not None else "",
            f"{f.modified:%Y-%m-%d %H:%M:%S}" if f.modified else "",
        )
    console.print(table)
    return 0


def _toggle(args: argparse.Namespace, action, message: str) -> int:
    try:
        config, config_path = _load(args)
    except (FileNotFoundError, SiteBackupError) as e:
        return _fail(str(e))
    action(_platform(config, config_path))
    console.print(f"[bold green]v[/bold green] {message}")
    return 0


def cmd_enable_restore(args: argparse.Namespace) -> int:
    return _toggle(args, lambda p: p.enable_restore(), "Restores enabled")


def cmd_disable_restore(args: argparse.Namespace) -> int:
    return _toggle(args, lambda p: p.disable_restore(), "Restores disabled")


def cmd_enable_readonly(args: argparse.Namespace) -> int:
    return _toggle(args, lambda p: ReadonlyGate(p).enable(), "Readonly mode enabled")


def cmd_disable_readonly(args: argparse.Namespace) -> int:
    return _toggle(args, lambda p: ReadonlyGate(p).disable(), "Readonly mode disabled")


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, 1 for any failure).
    """
    parser = argparse.ArgumentParser(
        prog="site-backup",
        description="Site backup, restore, rollback, and remap",
    )

    # Global options
    parser.add_argument(
        "--config",
        default=None,
        help="Path to site.toml (default: ./site.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix FORUM_ reads FORUM_SITE_TENANT)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup command
    p_backup = subparsers.add_parser("backup", help="Create a snapshot and publish it")
    p_backup.add_argument("filename", nargs="?", help="Snapshot name (default: <site>-<timestamp>)")
    p_backup.add_argument(
        "--sql-only",
        action="store_true",
        help="Back up the database only, without the uploads tree",
    )
    p_backup.add_argument(
        "--location-dir",
        default=None,
        help="Move the finished snapshot into this directory (local storage only)",
    )
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore a snapshot over the live site")
    p_restore.add_argument("filename", nargs="?", help="Snapshot filename (see: site-backup list)")
    p_restore.add_argument(
        "--disable-emails",
        action="store_true",
        help="Disable emails to non-staff users after restoring",
    )
    p_restore.add_argument(
        "--location",
        choices=[*LOCATIONS, "remote"],
        default=None,
        help="Read the snapshot from this storage location",
    )
    p_restore.add_argument(
        "--interactive",
        action="store_true",
        help="Pause after migrations until confirmed",
    )
    p_restore.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p_restore.set_defaults(func=cmd_restore)

    # rollback command
    p_rollback = subparsers.add_parser("rollback", help="Revert the last restore")
    p_rollback.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p_rollback.set_defaults(func=cmd_rollback)

    # remap command
    p_remap = subparsers.add_parser("remap", help="Find/replace text across the store")
    p_remap.add_argument("search", metavar="FROM", help="Text (or regex) to find")
    p_remap.add_argument("replace", metavar="TO", help="Replacement text")
    p_remap.add_argument(
        "--regex",
        action="store_true",
        help="Treat FROM as a regular expression; TO may reference groups",
    )
    p_remap.add_argument(
        "--skip-max-length-violations",
        action="store_true",
        help="Leave rows whose replacement would not fit unchanged",
    )
    p_remap.add_argument("--all-sites", action="store_true", help="Remap every configured site")
    p_remap.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p_remap.set_defaults(func=cmd_remap)

    # list command
    p_list = subparsers.add_parser("list", help="List available snapshots")
    p_list.add_argument(
        "--location",
        choices=[*LOCATIONS, "remote"],
        default=None,
        help="List this storage location instead of the configured one",
    )
    p_list.set_defaults(func=cmd_list)

    # toggles
    for name, func, help_text in (
        ("enable-restore", cmd_enable_restore, "Allow restores"),
        ("disable-restore", cmd_disable_restore, "Forbid restores"),
        ("enable-readonly", cmd_enable_readonly, "Put the site in readonly mode"),
        ("disable-readonly", cmd_disable_readonly, "Take the site out of readonly mode"),
    ):
        p_toggle = subparsers.add_parser(name, help=help_text)
        p_toggle.set_defaults(func=func)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
