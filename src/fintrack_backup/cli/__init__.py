"""Operator CLI for the backup engine.

Usage:
    BACKUP_PROFILE=local fintrack-backup create --description "Before import"
    fintrack-backup list --type manual --page 2 --limit 10
    fintrack-backup show backup-2026-01-15T10-30-00-123Z-1a2b3c4d
    fintrack-backup validate backup-2026-01-15T10-30-00-123Z-1a2b3c4d
    fintrack-backup --profile local restore backup-2026-01-15T10-30-00-123Z-1a2b3c4d --yes
    fintrack-backup clean --keep 5
    fintrack-backup clean --older-than-days 30 --type safety --force
    fintrack-backup delete backup-2026-01-15T10-30-00-123Z-1a2b3c4d --force
    fintrack-backup stats
    fintrack-backup schedule --interval 12h --retention-count 20
    fintrack-backup upload ./downloaded-backup.json
    fintrack-backup activity --limit 20

Commands:
    create    - Snapshot every collection of the store
    list      - List backups, newest first
    show      - Show the metadata of one backup
    validate  - Verify checksum and structure of a backup
    restore   - Restore the store from a backup (takes a safety backup first)
    clean     - Prune backups by count or age
    delete    - Delete one backup
    stats     - Store, backup and schedule statistics
    schedule  - Show or update the backup schedule
    upload    - Import a payload file as a new backup
    activity  - Show the activity log
"""

import argparse
import asyncio
import getpass
import logging
import sys
from datetime import timedelta
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fintrack_backup.backup.activity import ActivityType
from fintrack_backup.backup.engine import BackupEngine
from fintrack_backup.backup.models import BackupRecord, BackupType, CleanPolicy
from fintrack_backup.config.loader import load_backup_config
from fintrack_backup.config.models import BackupConfig, BackupSettings
from fintrack_backup.errors import BackupEngineError
from fintrack_backup.factory import ProfileNotFoundError, get_store
from fintrack_backup.stores.base import CollectionStore
from fintrack_backup.stores.memory import InMemoryCollectionStore

console = Console()
err_console = Console(stderr=True)


# ============================================================================
# Engine setup
# ============================================================================


def _load_config(args: argparse.Namespace) -> BackupConfig:
    config_path = Path(args.config) if args.config else Path.cwd() / "backup.toml"
    if config_path.exists():
        config = load_backup_config(config_path)
    else:
        config = BackupConfig(settings=BackupSettings())
    if args.backup_path:
        config.settings.path = Path(args.backup_path)
    return config


def _configure_logging(settings: BackupSettings, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _open_store(args: argparse.Namespace, config: BackupConfig, needs_store: bool) -> CollectionStore:
    """Build the store for the selected profile.

    Commands that only touch backup files run without a profile; they get
    an empty in-process store that is never read.
    """
    try:
        return get_store(args.profile, config=config)
    except ProfileNotFoundError:
        if needs_store:
            raise
        return InMemoryCollectionStore()


def _build_engine(args: argparse.Namespace, needs_store: bool = False) -> BackupEngine:
    config = _load_config(args)
    _configure_logging(config.settings, args.verbose)
    store = _open_store(args, config, needs_store)
    return BackupEngine(store, config.settings)


def _render_records(records: list[BackupRecord], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Created (UTC)")
    table.add_column("Type")
    table.add_column("Docs", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("By", style="dim")
    table.add_column("Description", style="dim")
    for record in records:
        table.add_row(
            record.id,
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.type.value,
            str(record.document_count),
            f"{record.size_bytes:,}",
            record.created_by or "",
            record.description,
        )
    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_create(args: argparse.Namespace) -> int:
    engine = _build_engine(args, needs_store=True)
    try:
        record = await engine.create_backup(
            type=BackupType(args.type),
            created_by=args.actor,
            description=args.description,
        )
    finally:
        await engine.store.close()
    console.print(
        f"[bold green]v[/bold green] Created backup [bold cyan]{record.id}[/bold cyan] "
        f"({record.document_count} documents, {record.size_bytes:,} bytes)"
    )
    return 0


async def _async_list(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    page = await engine.list_backups(
        type=BackupType(args.type) if args.type else None,
        page=args.page,
        limit=args.limit,
    )
    p = page.pagination
    _render_records(page.items, f"Backups (page {p.page}/{max(p.pages, 1)}, {p.total} total)")
    return 0


async def _async_show(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    record = await engine.get_backup(args.backup_id)
    console.print_json(data=record.model_dump(mode="json"))
    return 0


async def _async_validate(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    result = await engine.check_backup(args.backup_id)
    console.print(f"Validating: [cyan]{result.backup_id}[/cyan]")
    if result.is_valid:
        console.print("[bold green]v[/bold green] Backup is valid")
        return 0
    console.print(f"[bold red]x[/bold red] Backup is invalid: {result.reason}")
    return 1


async def _async_restore(args: argparse.Namespace) -> int:
    engine = _build_engine(args, needs_store=True)
    try:
        if not args.yes:
            console.print(f"[yellow]This will replace the store content with {args.backup_id}.[/yellow]")
            console.print("[dim]A safety backup is taken first.[/dim]")
            response = input("Continue? [y/N] ")
            if response.lower() not in ["y", "yes"]:
                console.print("Cancelled.")
                return 0
        outcome = await engine.restore(args.backup_id, actor=args.actor, timeout=args.timeout)
    finally:
        await engine.store.close()
    console.print(
        f"[bold green]v[/bold green] Restored {outcome.document_count} documents "
        f"into {len(outcome.restored_collections)} collections"
    )
    console.print(f"  Safety backup: [cyan]{outcome.safety_backup_id}[/cyan]")
    return 0


async def _async_clean(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    policy = CleanPolicy(
        keep=args.keep if args.keep is not None else engine.settings.default_keep,
        older_than=(
            timedelta(days=args.older_than_days) if args.older_than_days is not None else None
        ),
        type=BackupType(args.type) if args.type else None,
        force=args.force,
    )
    result = await engine.clean(policy, actor=args.actor)
    console.print(
        f"[bold green]v[/bold green] Deleted {result.deleted_count} backups, "
        f"freed {result.freed_bytes:,} bytes, {result.remaining_count} remaining"
    )
    return 0


async def _async_delete(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    result = await engine.delete_backup(args.backup_id, actor=args.actor, force=args.force)
    console.print(
        f"[bold green]v[/bold green] Deleted {args.backup_id} "
        f"({result.freed_bytes:,} bytes freed)"
    )
    return 0


async def _async_stats(args: argparse.Namespace) -> int:
    engine = _build_engine(args, needs_store=True)
    try:
        stats = await engine.get_stats()
    finally:
        await engine.store.close()

    table = Table(show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value")
    table.add_row("Collections", str(stats.store.collections))
    table.add_row("Documents", str(stats.store.documents))
    table.add_row("Backups", str(stats.backups.total))
    table.add_row("Total size", f"{stats.backups.total_size:,} bytes")
    table.add_row("Average size", f"{stats.backups.average_size:,.0f} bytes")
    for backup_type, count in sorted(stats.backups.by_type.items()):
        table.add_row(f"  {backup_type}", str(count))
    table.add_row("Latest", stats.backups.latest.id if stats.backups.latest else "-")
    table.add_row("Oldest", stats.backups.oldest.id if stats.backups.oldest else "-")
    table.add_row("Schedule", "enabled" if stats.schedule.enabled else "disabled")
    table.add_row("Interval", stats.schedule.interval)
    table.add_row(
        "Next backup",
        stats.schedule.next_backup.isoformat() if stats.schedule.next_backup else "-",
    )
    console.print(table)
    return 0


async def _async_schedule(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    current = engine.get_schedule()
    changes = {
        "enabled": args.enabled,
        "interval": args.interval,
    }
    retention = current.retention.model_dump()
    if args.retention_count is not None:
        retention["count"] = args.retention_count
    if args.retention_days is not None:
        retention["days"] = args.retention_days
    notification = current.notification.model_dump()
    if args.notify_target is not None:
        notification["target"] = args.notify_target

    updates = {k: v for k, v in changes.items() if v is not None}
    if updates or retention != current.retention.model_dump() or notification != current.notification.model_dump():
        new_config = current.model_dump(exclude={"updated_by", "updated_at"})
        new_config.update(updates, retention=retention, notification=notification)
        current = await engine.update_schedule(new_config, actor=args.actor)
        console.print("[bold green]v[/bold green] Schedule updated")
    console.print_json(data=current.model_dump(mode="json"))
    return 0


async def _async_upload(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    path = Path(args.file)
    record = await engine.upload_backup(
        path.read_bytes(),
        actor=args.actor,
        original_name=path.name,
        expected_checksum=args.checksum,
    )
    console.print(f"[bold green]v[/bold green] Uploaded as [bold cyan]{record.id}[/bold cyan]")
    return 0


async def _async_activity(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    entries = engine.activity_entries(
        event_type=ActivityType(args.event) if args.event else None,
        limit=args.limit,
    )
    table = Table(title="Backup activity", show_header=True, header_style="bold")
    table.add_column("Timestamp (UTC)")
    table.add_column("Event", style="cyan")
    table.add_column("Actor")
    table.add_column("Details", style="dim")
    for entry in entries:
        details = ", ".join(f"{k}={v}" for k, v in entry.details.items())
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.event_type.value,
            entry.actor or "",
            details,
        )
    console.print(table)
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def _run(handler, args: argparse.Namespace) -> int:
    """Run an async command, turning engine errors into exit code 1."""
    try:
        return asyncio.run(handler(args))
    except BackupEngineError as e:
        err_console.print(f"[bold red]Error ({e.kind.value}):[/bold red] {e.message}")
        if e.reference_id:
            err_console.print(f"  Reference: [cyan]{e.reference_id}[/cyan]")
        return 1
    except (ProfileNotFoundError, FileNotFoundError, ValueError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


# ============================================================================
# Main entry point
# ============================================================================


def _default_actor() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "operator"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fintrack-backup",
        description="Backup and restore the fintrack store",
    )
    parser.add_argument("--config", help="Path to backup.toml (default: ./backup.toml)")
    parser.add_argument("--profile", "-p", help="Store profile (default: $BACKUP_PROFILE)")
    parser.add_argument("--backup-path", help="Backup directory (overrides config and $BACKUP_PATH)")
    parser.add_argument("--actor", default=_default_actor(), help="Actor recorded in the activity log")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    types = [t.value for t in BackupType]

    p_create = subparsers.add_parser("create", help="Snapshot every collection of the store")
    p_create.add_argument("--description", "-d", help="Free-text description")
    p_create.add_argument("--type", choices=types, default=BackupType.MANUAL.value)
    p_create.set_defaults(handler=_async_create)

    p_list = subparsers.add_parser("list", help="List backups, newest first")
    p_list.add_argument("--type", choices=types)
    p_list.add_argument("--page", type=int, default=1)
    p_list.add_argument("--limit", type=int, default=10)
    p_list.set_defaults(handler=_async_list)

    p_show = subparsers.add_parser("show", help="Show the metadata of one backup")
    p_show.add_argument("backup_id")
    p_show.set_defaults(handler=_async_show)

    p_validate = subparsers.add_parser("validate", help="Verify checksum and structure")
    p_validate.add_argument("backup_id")
    p_validate.set_defaults(handler=_async_validate)

    p_restore = subparsers.add_parser("restore", help="Restore the store from a backup")
    p_restore.add_argument("backup_id")
    p_restore.add_argument("--timeout", type=float, help="Seconds allowed for the whole restore")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.set_defaults(handler=_async_restore)

    p_clean = subparsers.add_parser("clean", help="Prune backups by count or age")
    p_clean.add_argument("--keep", type=int, help="Number of most recent backups to keep")
    p_clean.add_argument("--older-than-days", type=float, help="Delete backups older than this")
    p_clean.add_argument("--type", choices=types)
    p_clean.add_argument("--force", action="store_true", help="Allow deleting backups younger than the guard window")
    p_clean.set_defaults(handler=_async_clean)

    p_delete = subparsers.add_parser("delete", help="Delete one backup")
    p_delete.add_argument("backup_id")
    p_delete.add_argument("--force", action="store_true")
    p_delete.set_defaults(handler=_async_delete)

    p_stats = subparsers.add_parser("stats", help="Store, backup and schedule statistics")
    p_stats.set_defaults(handler=_async_stats)

    p_schedule = subparsers.add_parser("schedule", help="Show or update the backup schedule")
    enabled = p_schedule.add_mutually_exclusive_group()
    enabled.add_argument("--enable", dest="enabled", action="store_const", const=True)
    enabled.add_argument("--disable", dest="enabled", action="store_const", const=False)
    p_schedule.add_argument("--interval", help="e.g. 30m, 24h, 7d, 1w")
    p_schedule.add_argument("--retention-count", type=int)
    p_schedule.add_argument("--retention-days", type=int)
    p_schedule.add_argument("--notify-target", help="Notification address")
    p_schedule.set_defaults(handler=_async_schedule)

    p_upload = subparsers.add_parser("upload", help="Import a payload file as a new backup")
    p_upload.add_argument("file")
    p_upload.add_argument("--checksum", help="Expected sha256 of the file")
    p_upload.set_defaults(handler=_async_upload)

    p_activity = subparsers.add_parser("activity", help="Show the activity log")
    p_activity.add_argument("--event", choices=[t.value for t in ActivityType])
    p_activity.add_argument("--limit", type=int, default=50)
    p_activity.set_defaults(handler=_async_activity)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    return _run(args.handler, args)


if __name__ == "__main__":
    sys.exit(main())
