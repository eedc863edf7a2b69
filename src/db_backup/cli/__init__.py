"""CLI module for running and managing database backups.

Provides commands to dump a database with live progress, list and delete
dump files, and show configured connection profiles.

Usage:
    db-backup run --host 127.0.0.1 --user root --database shop
    db-backup run --profile local
    db-backup list
    db-backup delete shop_data_20251016_091234.sql --yes
    db-backup profiles

Commands:
    run       - Back up a database into schema and data SQL files
    list      - List dump files, newest first
    delete    - Delete one dump file
    profiles  - List connection profiles from the config file
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from db_backup.backup.artifacts import ArtifactStore
from db_backup.backup.orchestrator import BackupRunner
from db_backup.config.loader import DEFAULT_CONFIG_FILE, load_backup_config
from db_backup.config.models import BackupConfig, BackupSettings
from db_backup.errors import InvalidRequestError, UnsafePathError
from db_backup.models import Stage
from db_backup.progress import ProgressRegistry

console = Console()

PASSWORD_ENV = "DB_BACKUP_PASSWORD"


# ============================================================================
# Helpers
# ============================================================================


def _load_config(args: argparse.Namespace) -> BackupConfig:
    """Load the TOML config named by ``--config``, or the default if present.

    Raises:
        FileNotFoundError: If an explicit ``--config`` file is missing.
    """
    config_path = getattr(args, "config", None)
    if config_path:
        return load_backup_config(Path(config_path))
    if DEFAULT_CONFIG_FILE.exists():
        return load_backup_config(DEFAULT_CONFIG_FILE)
    return BackupConfig()


def _effective_settings(config: BackupConfig, args: argparse.Namespace) -> BackupSettings:
    """Apply ``--output-dir`` on top of the configured settings."""
    output_dir = getattr(args, "output_dir", None)
    if output_dir:
        return config.settings.model_copy(
            update={"public_dir": Path(output_dir), "backup_subdir": ""}
        )
    return config.settings


def _build_payload(config: BackupConfig, args: argparse.Namespace) -> dict:
    """Merge profile values, CLI flags and the password env var.

    Raises:
        KeyError: If ``--profile`` names an unknown profile.
    """
    payload: dict = {}
    if args.profile:
        if args.profile not in config.profiles:
            raise KeyError(
                f"Profile '{args.profile}' not found. "
                f"Available: {', '.join(config.profiles) or '(none)'}"
            )
        payload.update(config.profiles[args.profile].model_dump(exclude={"description"}))

    for field in ("host", "port", "user", "database"):
        value = getattr(args, field)
        if value:
            payload[field] = value

    if args.password is not None:
        payload["password"] = args.password
    elif os.environ.get(PASSWORD_ENV):
        payload["password"] = os.environ[PASSWORD_ENV]

    payload["clientId"] = f"cli-{os.getpid()}"
    return payload


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_run(args: argparse.Namespace) -> int:
    """Async implementation for run command.

    Args:
        args: Parsed arguments.

    Returns:
        0 when the backup finished, 1 on failure or invalid input.
    """
    try:
        config = _load_config(args)
        payload = _build_payload(config, args)
    except (FileNotFoundError, ValueError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    settings = _effective_settings(config, args)
    registry = ProgressRegistry()
    channel = registry.subscribe(payload["clientId"], settings.channel_queue_size)
    runner = BackupRunner(registry, settings)

    try:
        task = runner.start(payload)
    except InvalidRequestError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    # Ends iteration even if the terminal event was dropped
    task.add_done_callback(lambda _: channel.close())

    console.print(
        f"Backing up [bold cyan]{payload['database']}[/bold cyan] "
        f"on [cyan]{payload['host']}[/cyan]...",
        style="dim",
    )

    last_event = None
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("start", total=100)
        async for event in channel:
            last_event = event
            progress.update(
                bar,
                completed=event.percent,
                description=f"[{event.stage.value}] {event.message}",
            )
            if event.stage.is_terminal:
                break

    registry.unregister(payload["clientId"], channel)
    artifact = await task

    if artifact is None:
        message = "Backup failed"
        if last_event is not None and last_event.stage is Stage.ERROR:
            message = last_event.message
        console.print(f"\n[bold red]x[/bold red] {message}")
        return 1

    console.print()
    console.print("[bold green]v[/bold green] Backup complete")
    console.print(f"  Schema: [cyan]{artifact.schema_file}[/cyan]")
    console.print(f"  Data:   [cyan]{artifact.data_file}[/cyan]")
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_run(args: argparse.Namespace) -> int:
    """Back up one database.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    return asyncio.run(_async_run(args))


def cmd_list(args: argparse.Namespace) -> int:
    """List dump files, newest first.

    Reads only the local backup directory -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if the config file is missing.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    store = ArtifactStore.from_settings(_effective_settings(config, args))
    items = store.list()

    if not items:
        console.print(f"[yellow]No backups in {store.root}[/yellow]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("Database")
    table.add_column("Type")
    table.add_column("Created (UTC)", style="dim")
    table.add_column("File")

    for item in items:
        table.add_row(
            item.database,
            "Structure" if item.kind == "schema" else "Data",
            item.created_at.strftime("%d-%m-%Y %H:%M:%S"),
            item.filename,
        )

    console.print(table)
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete one dump file from the backup directory.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success or cancel, 1 on invalid name or missing file.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    store = ArtifactStore.from_settings(_effective_settings(config, args))

    try:
        path = store.resolve(args.filename)
    except UnsafePathError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not args.yes:
        response = input(f"Delete {path}? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    try:
        store.delete(args.filename)
    except FileNotFoundError:
        console.print(f"[red]Error: file not found: {args.filename}[/red]")
        return 1

    console.print(f"[bold green]v[/bold green] Deleted {args.filename}")
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List connection profiles from the config file.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if the config file is missing or invalid.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not config.profiles:
        console.print("[yellow]No profiles configured.[/yellow]")
        return 0

    table = Table(
        title="Connection Profiles", show_header=True, header_style="bold"
    )
    table.add_column("Profile")
    table.add_column("Server")
    table.add_column("Database")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(
            f"[bold cyan]{name}[/bold cyan]",
            f"{profile.user}@{profile.host}:{profile.port}",
            profile.database,
            profile.description or "",
        )

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="Back up MySQL databases into schema and data SQL files",
    )
    parser.add_argument(
        "--config",
        "-c",
        help=f"Path to TOML config file (default: ./{DEFAULT_CONFIG_FILE} if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run command
    p_run = subparsers.add_parser("run", help="Back up a database")
    p_run.add_argument("--profile", "-p", help="Connection profile from the config file")
    p_run.add_argument("--host", help="Database server host")
    p_run.add_argument("--port", type=int, help="Database server port (default: 3306)")
    p_run.add_argument("--user", "-u", help="Database user")
    p_run.add_argument(
        "--password",
        help=f"Database password (default: ${PASSWORD_ENV} or profile value)",
    )
    p_run.add_argument("--database", "-d", help="Database to back up")
    p_run.add_argument("--output-dir", "-o", help="Directory for the dump files")
    p_run.set_defaults(func=cmd_run)

    # list command
    p_list = subparsers.add_parser("list", help="List dump files")
    p_list.add_argument("--output-dir", "-o", help="Directory holding the dump files")
    p_list.set_defaults(func=cmd_list)

    # delete command
    p_delete = subparsers.add_parser("delete", help="Delete a dump file")
    p_delete.add_argument("filename", help="File name (no directories)")
    p_delete.add_argument("--output-dir", "-o", help="Directory holding the dump files")
    p_delete.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_delete.set_defaults(func=cmd_delete)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List connection profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
