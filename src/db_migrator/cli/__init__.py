"""CLI module for schema diffing and migration.

Provides commands for database profile management, schema snapshots,
schema diffs and merging one schema into another.

Usage:
    DB_PROFILE=main db-migrator connect
    db-migrator status
    db-migrator profiles
    db-migrator snapshot main -o snapshots/main.json
    db-migrator diff main feature --stat
    db-migrator merge feature main --dry-run
    db-migrator merge feature main --migration-file
    db-migrator merge snapshots/feature.json main --force

Commands:
    connect   - Test a profile's connection and make it the default
    status    - Show current connection status
    profiles  - List available profiles
    snapshot  - Save a schema snapshot to JSON
    diff      - Show schema differences
    merge     - Apply schema changes from a source to a target
"""

import argparse
import asyncio
import logging
import sys
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import psycopg
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from db_migrator.config.loader import load_db_config
from db_migrator.config.models import DatabaseConfig
from db_migrator.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_active_profile_name,
    get_adapter,
    load_schema,
    read_profile_lock,
)
from db_migrator.schema.applier import Applier, ApplyError, ApplyResult
from db_migrator.schema.changes import (
    AddColumnChange,
    AlterColumnChange,
    ChangeSet,
    ChangeType,
    DropColumnChange,
)
from db_migrator.schema.differ import diff
from db_migrator.schema.orderer import order_changes
from db_migrator.schema.snapshot import save_snapshot
from db_migrator.schema.sql import ChangeRenderError, SQLGenerator
from db_migrator.schema.validator import validate_changes

console = Console()

# Errors reported as a one-line message instead of a traceback
_EXPECTED_ERRORS = (
    FileNotFoundError,
    ValueError,
    ProfileNotFoundError,
    ConnectionError,
    psycopg.Error,
)

DESTRUCTIVE = "[red]! DESTRUCTIVE[/red]"


def _load_config_optional() -> DatabaseConfig:
    """db.toml from the working directory, or defaults when there is none."""
    try:
        return load_db_config()
    except FileNotFoundError:
        return DatabaseConfig()


def _is_snapshot(source: str) -> bool:
    return source.endswith(".json")


# ============================================================================
# Diff rendering
# ============================================================================


def print_diff_stat(cs: ChangeSet) -> None:
    """Print addition / deletion / modification counts."""
    stat = cs.stat()

    console.print("Summary:")
    if stat.additions:
        console.print(f"  [green]+[/green] {stat.additions} addition(s)")
    if stat.deletions:
        console.print(f"  [red]-[/red] {stat.deletions} deletion(s)")
    if stat.modifications:
        console.print(f"  [yellow]~[/yellow] {stat.modifications} modification(s)")

    if stat.destructive:
        console.print(f"\n  [red]![/red] {stat.destructive} destructive change(s)")


def print_diff_sql(cs: ChangeSet) -> None:
    """Print the SQL for every change, each preceded by a comment.

    Everything is rendered before anything is printed.

    Raises:
        ChangeRenderError: If a change renders to nothing.
    """
    for stmt in SQLGenerator().generate(cs):
        console.print(escape(stmt), highlight=False)


def print_diff_full(cs: ChangeSet) -> None:
    """Print every change grouped by object kind, then the summary."""
    for change in cs.by_type(ChangeType.CREATE_TABLE):
        console.print(f"[green]+[/green] TABLE {escape(change.table.full_name)}")
        for col in change.table.sorted_columns():
            nullable = " NOT NULL" if not col.is_nullable else ""
            console.print(f"    {escape(col.name)} {escape(col.full_type)}{nullable}")
        console.print()

    for change in cs.by_type(ChangeType.DROP_TABLE):
        console.print(f"[red]-[/red] TABLE {escape(change.table.full_name)} {DESTRUCTIVE}")
        console.print()

    # Column changes grouped per table
    column_changes: dict[str, list] = defaultdict(list)
    for change in cs:
        if isinstance(change, (AddColumnChange, DropColumnChange, AlterColumnChange)):
            column_changes[change.table_name].append(change)

    for table_name in sorted(column_changes):
        console.print(f"[yellow]~[/yellow] TABLE {escape(table_name)}")
        for change in column_changes[table_name]:
            if isinstance(change, AddColumnChange):
                console.print(
                    f"  [green]+[/green] COLUMN {escape(change.column.name)} "
                    f"{escape(change.column.full_type)}"
                )
            elif isinstance(change, DropColumnChange):
                console.print(f"  [red]-[/red] COLUMN {escape(change.column.name)} {DESTRUCTIVE}")
            else:
                destructive = f" {DESTRUCTIVE}" if change.is_destructive else ""
                console.print(
                    f"  [yellow]~[/yellow] COLUMN {escape(change.column_name)}: "
                    f"{escape(change.alteration.format())}{destructive}"
                )
        console.print()

    index_creates = cs.by_type(ChangeType.CREATE_INDEX)
    index_drops = cs.by_type(ChangeType.DROP_INDEX)
    if index_creates or index_drops:
        for change in index_creates:
            unique = "UNIQUE " if change.index.is_unique else ""
            console.print(
                f"[green]+[/green] {unique}INDEX {escape(change.index.name)} on "
                f"{escape(change.index.table_name)}({escape(', '.join(change.index.columns))})"
            )
        for change in index_drops:
            console.print(f"[red]-[/red] INDEX {escape(change.index.name)}")
        console.print()

    constraint_adds = cs.by_type(ChangeType.ADD_CONSTRAINT)
    constraint_drops = cs.by_type(ChangeType.DROP_CONSTRAINT)
    if constraint_adds or constraint_drops:
        for change in constraint_adds:
            console.print(
                f"[green]+[/green] CONSTRAINT {escape(change.constraint.name)} "
                f"({change.constraint.constraint_type.value}) on {escape(change.table_name)}"
            )
        for change in constraint_drops:
            destructive = f" {DESTRUCTIVE}" if change.is_destructive else ""
            console.print(
                f"[red]-[/red] CONSTRAINT {escape(change.constraint.name)} "
                f"({change.constraint.constraint_type.value}){destructive}"
            )
        console.print()

    enum_creates = cs.by_type(ChangeType.CREATE_ENUM)
    enum_drops = cs.by_type(ChangeType.DROP_ENUM)
    enum_values = cs.by_type(ChangeType.ADD_ENUM_VALUE)
    if enum_creates or enum_drops or enum_values:
        for change in enum_creates:
            console.print(
                f"[green]+[/green] ENUM {escape(change.enum.full_name)} "
                f"({escape(', '.join(change.enum.values))})"
            )
        for change in enum_drops:
            console.print(f"[red]-[/red] ENUM {escape(change.enum.full_name)} {DESTRUCTIVE}")
        for change in enum_values:
            console.print(
                f"[green]+[/green] ENUM VALUE '{escape(change.value)}' to {escape(change.enum_name)}"
            )
        console.print()

    fn_creates = cs.by_type(ChangeType.CREATE_FUNCTION)
    fn_drops = cs.by_type(ChangeType.DROP_FUNCTION)
    fn_replaces = cs.by_type(ChangeType.REPLACE_FUNCTION)
    if fn_creates or fn_drops or fn_replaces:
        for change in fn_creates:
            console.print(f"[green]+[/green] FUNCTION {escape(change.function.signature)}")
        for change in fn_drops:
            console.print(f"[red]-[/red] FUNCTION {escape(change.function.signature)}")
        for change in fn_replaces:
            console.print(
                f"[yellow]~[/yellow] FUNCTION {escape(change.new_function.signature)} "
                f"\\[body changed]"
            )
        console.print()

    print_diff_stat(cs)


def _print_apply_failures(result: ApplyResult) -> None:
    console.print("\nFailed change(s):")
    for failure in result.failed:
        console.print(f"  - {escape(failure.change.description)}")
        console.print(f"    SQL: {escape(failure.sql)}", highlight=False)
        console.print(f"    Error: {escape(str(failure.error))}")


def write_migration_file(
    cs: ChangeSet,
    source: str,
    target: str,
    migration_dir: str | Path,
    include_comments: bool = True,
) -> Path:
    """Write *cs* as ``<YYYYmmddHHMMSS>_merge_<source>.sql`` in *migration_dir*.

    Returns:
        Path of the written file.

    Raises:
        ChangeRenderError: If a change renders to nothing.  No file is
            written.
    """
    generator = SQLGenerator(include_comments=include_comments)
    content = generator.generate_migration_file(cs, description=f"Merge {source} -> {target}")

    directory = Path(migration_dir)
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    safe_name = Path(source).stem if _is_snapshot(source) else source
    safe_name = safe_name.replace("/", "_").replace(" ", "_")
    path = directory / f"{timestamp}_merge_{safe_name}.sql"
    path.write_text(content)
    return path


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Args:
        args: Parsed arguments with profile and env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")

    console.print("Connecting to database...", style="dim")

    result = await connect_and_validate(profile_name=args.profile, env_prefix=env_prefix)

    if not result.success:
        console.print()
        console.print(f"[bold red]x[/bold red] {escape(result.error or 'Connection failed')}")
        return 1

    console.print()
    console.print(
        f"[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan]"
    )

    # Show profile switch notice
    if result.previous_profile and result.previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{result.previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )

    return 0


async def _async_snapshot(args: argparse.Namespace) -> int:
    """Async implementation for snapshot command."""
    config = _load_config_optional()

    console.print(f"Extracting schema from '{escape(args.source)}'...", style="dim")
    try:
        schema = await load_schema(args.source, config)
        path = save_snapshot(schema, args.output)
    except _EXPECTED_ERRORS as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    console.print(
        f"[bold green]v[/bold green] Snapshot saved: {escape(path)} "
        f"[dim]({len(schema.tables)} tables, {len(schema.enums)} enums, "
        f"{len(schema.functions)} functions)[/dim]"
    )
    return 0


async def _async_diff(args: argparse.Namespace) -> int:
    """Async implementation for diff command.

    Compares ``from`` against ``to`` (default: the active profile).
    """
    config = _load_config_optional()
    from_name = args.from_source

    try:
        to_name = args.to_source or get_active_profile_name(getattr(args, "env_prefix", ""))
        from_schema = await load_schema(from_name, config)
        to_schema = await load_schema(to_name, config)
    except _EXPECTED_ERRORS as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    cs = diff(from_schema, to_schema)

    if cs.is_empty():
        console.print(
            f"No schema differences between '{escape(from_name)}' and '{escape(to_name)}'"
        )
        return 0

    cs = order_changes(cs)
    console.print(f"Comparing '{escape(from_name)}' -> '{escape(to_name)}'\n")

    if args.stat:
        print_diff_stat(cs)
    elif args.sql:
        try:
            print_diff_sql(cs)
        except ChangeRenderError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            return 1
    else:
        print_diff_full(cs)

    return 0


async def _async_merge(args: argparse.Namespace) -> int:
    """Async implementation for merge command.

    Computes ``diff(target, source)`` so that applying the changes turns
    the target into the source.

    Returns:
        0 on success or nothing to merge, 1 on failure or cancellation.
    """
    config = _load_config_optional()
    source, target = args.source, args.target

    try:
        console.print(f"Extracting schema from '{escape(source)}'...", style="dim")
        source_schema = await load_schema(source, config)
        console.print(f"Extracting schema from '{escape(target)}'...", style="dim")
        target_schema = await load_schema(target, config)
    except _EXPECTED_ERRORS as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    cs = diff(target_schema, source_schema)

    if cs.is_empty():
        console.print(
            f"\nNo schema differences between '{escape(source)}' and '{escape(target)}'"
        )
        return 0

    cs = order_changes(cs)

    console.print(f"\nChanges to merge from '{escape(source)}' -> '{escape(target)}':\n")
    print_diff_full(cs)

    report = validate_changes(cs)
    if report.has_warnings:
        console.print("\n[yellow]![/yellow] Warnings:")
        for w in report.warnings:
            console.print(f"  - {escape(w)}")
    if report.has_errors:
        console.print("\n[red]x[/red] Potential Issues:")
        for e in report.errors:
            console.print(f"  - {escape(e)}")

    if args.dry_run:
        try:
            statements = SQLGenerator().generate(cs)
        except ChangeRenderError as e:
            console.print(f"\n[red]Error: {escape(str(e))}[/red]")
            return 1
        console.print("\n--- Dry Run: SQL that would be executed ---\n")
        for stmt in statements:
            console.print(escape(stmt), highlight=False)
        return 0

    if args.migration_file:
        migration_dir = args.migration_dir or config.migrations.directory
        try:
            path = write_migration_file(
                cs, source, target, migration_dir,
                include_comments=config.migrations.include_comments,
            )
        except ChangeRenderError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            return 1
        except OSError as e:
            console.print(f"[red]Error: failed to write migration file: {escape(str(e))}[/red]")
            return 1
        console.print(f"\n[bold green]v[/bold green] Migration file created: {escape(str(path))}")
        return 0

    if _is_snapshot(target):
        console.print(
            "[red]Error: cannot apply changes to a snapshot file. "
            "Use --dry-run or --migration-file.[/red]"
        )
        return 1

    if cs.has_destructive():
        console.print(
            f"\n[bold red]! WARNING:[/bold red] This merge contains "
            f"{cs.destructive_count()} destructive change(s) that may result in data loss."
        )

    if not args.force:
        question = (
            "Do you want to proceed?"
            if cs.has_destructive()
            else f"Apply {len(cs)} change(s) to '{escape(target)}'?"
        )
        if not Confirm.ask(question, default=False, console=console):
            console.print("Merge cancelled.")
            return 1

    console.print(f"\nApplying changes to '{escape(target)}'...")

    try:
        adapter = await get_adapter(target, config=config)
    except _EXPECTED_ERRORS as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    applier = Applier(adapter)
    try:
        if args.continue_on_error:
            result = await applier.apply_with_continue(cs)
        else:
            result = await applier.apply(cs)
    except ApplyError as e:
        console.print(f"\n[bold red]x[/bold red] Merge failed: {escape(str(e))}")
        console.print("[dim]All changes were rolled back.[/dim]")
        _print_apply_failures(e.result)
        return 1
    finally:
        await adapter.close()

    if not result.success:
        console.print(
            f"\n[bold yellow]![/bold yellow] Applied {len(result.applied)} change(s), "
            f"{len(result.failed)} failed"
        )
        _print_apply_failures(result)
        return 1

    console.print(
        f"\n[bold green]v[/bold green] Successfully merged {len(result.applied)} change(s) "
        f"from '{escape(source)}' into '{escape(target)}'"
    )
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Test a profile's connection and make it the default.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    return asyncio.run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if profile:
        table = Table(title="Connection Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
        table.add_row("Profile source", ".db-profile")

        try:
            config = load_db_config()
            if profile in config.profiles:
                p = config.profiles[profile]
                if p.description:
                    table.add_row("Description", p.description)
            table.add_row("Migrations directory", config.migrations.directory)
        except FileNotFoundError:
            table.add_row("Warning", "[yellow]db.toml not found[/yellow]")
        except ValueError:
            table.add_row("Warning", "[yellow]db.toml is invalid[/yellow]")

        console.print(table)
    else:
        console.print("[yellow]No connected profile.[/yellow]")
        console.print(
            "[dim]Run:[/dim] [cyan]DB_PROFILE=<name> db-migrator connect[/cyan]"
        )

    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found or invalid.
    """
    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Save a schema snapshot.  Wraps the async implementation."""
    return asyncio.run(_async_snapshot(args))


def cmd_diff(args: argparse.Namespace) -> int:
    """Show schema differences.  Wraps the async implementation."""
    return asyncio.run(_async_diff(args))


def cmd_merge(args: argparse.Namespace) -> int:
    """Merge schema changes.  Wraps the async implementation.

    Ctrl-C during the run cancels the apply (its transaction rolls back)
    and exits with 1.
    """
    try:
        return asyncio.run(_async_merge(args))
    except KeyboardInterrupt:
        console.print("\n[red]Merge aborted.[/red]")
        return 1


# ============================================================================
# Main entry point
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-migrator",
        description="PostgreSQL schema diff and migration toolkit",
    )

    # Global option: --env-prefix
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log executed statements and introspection details",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser(
        "connect",
        help="Test a profile's connection and make it the default",
    )
    p_connect.add_argument(
        "profile",
        nargs="?",
        default=None,
        help="Profile name (default: DB_PROFILE env var or current profile)",
    )
    p_connect.set_defaults(func=cmd_connect)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="Show current connection status",
    )
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # snapshot command
    p_snapshot = subparsers.add_parser(
        "snapshot",
        help="Save a schema snapshot to JSON",
    )
    p_snapshot.add_argument("source", help="Profile name to introspect")
    p_snapshot.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output path (default: snapshots/<name>-<timestamp>.json)",
    )
    p_snapshot.set_defaults(func=cmd_snapshot)

    # diff command
    p_diff = subparsers.add_parser(
        "diff",
        help="Show schema differences between two profiles or snapshots",
    )
    p_diff.add_argument("from_source", metavar="from", help="Profile name or .json snapshot")
    p_diff.add_argument(
        "to_source",
        metavar="to",
        nargs="?",
        default=None,
        help="Profile name or .json snapshot (default: current profile)",
    )
    diff_mode = p_diff.add_mutually_exclusive_group()
    diff_mode.add_argument("--stat", action="store_true", help="Show summary statistics only")
    diff_mode.add_argument("--sql", action="store_true", help="Show SQL statements to apply changes")
    p_diff.set_defaults(func=cmd_diff)

    # merge command
    p_merge = subparsers.add_parser(
        "merge",
        help="Merge schema changes from source into target",
    )
    p_merge.add_argument("source", help="Profile name or .json snapshot with the desired schema")
    p_merge.add_argument("target", help="Profile to change (or .json snapshot for --dry-run)")
    p_merge.add_argument(
        "--dry-run",
        action="store_true",
        help="Show SQL without applying changes",
    )
    p_merge.add_argument(
        "--migration-file",
        action="store_true",
        help="Generate a migration file instead of applying",
    )
    p_merge.add_argument(
        "--migration-dir",
        default=None,
        help="Directory for migration files (default: [migrations] directory or 'migrations')",
    )
    p_merge.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Skip confirmation prompts",
    )
    p_merge.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Apply each change on its own and keep going past failures",
    )
    p_merge.set_defaults(func=cmd_merge)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
