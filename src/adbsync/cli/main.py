"""
AdbSync CLI Main Entry Point.

Provides a command-line interface for browsing, comparing and syncing
Android device storage.
"""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Any

import click
import humanize
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from adbsync import __version__
from adbsync.core.config import AdbSyncConfig, FilterRuleConfig, default_config_path
from adbsync.core.errors import AdbSyncError
from adbsync.core.job import JobStatus
from adbsync.core.models import (
    ConflictDecision,
    ConflictPolicy,
    DiffResult,
    DiffType,
    FileCategory,
    FileEntry,
    FileTreeNode,
)
from adbsync.core.session import Session
from adbsync.sync.filters import PRESETS, FilterRule, validate_regex
from adbsync.sync.task import SyncTask

console = Console()

DIFF_STYLES = {
    DiffType.NEW: "green",
    DiffType.MODIFIED: "yellow",
    DiffType.DELETED: "red",
    DiffType.UNCHANGED: "dim",
}

DECISION_KEYS = {
    "o": ConflictDecision.OVERWRITE,
    "s": ConflictDecision.SKIP,
    "O": ConflictDecision.OVERWRITE_ALL,
    "S": ConflictDecision.SKIP_ALL,
}


def prompt_conflict(task: SyncTask, entry: FileEntry, destination: Path) -> ConflictDecision:
    """Ask on the terminal what to do with an existing destination."""
    console.print(f"[yellow]{destination} already exists[/yellow]")
    answer = click.prompt(
        "Overwrite (o), skip (s), overwrite all (O), skip all (S)",
        type=click.Choice(list(DECISION_KEYS)),
        default="s",
    )
    return DECISION_KEYS[answer]


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        session = Session(
            config=ctx.obj["config"],
            config_path=ctx.obj["config_path"],
            conflict_resolver=prompt_conflict,
        )
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def size_text(size: int | None) -> str:
    if size is None:
        return "?"
    return humanize.naturalsize(size, binary=True)


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.version_option(version=__version__, prog_name="AdbSync")
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, json_output: bool) -> None:
    """
    AdbSync - One-way sync from Android devices over adb.

    Browse device storage, compare it with a local directory and pull new
    and modified files.
    """
    ctx.ensure_object(dict)

    config_path = config or default_config_path()
    loaded = AdbSyncConfig.load(config_path)
    loaded.ensure_directories()

    ctx.obj["config"] = loaded
    ctx.obj["config_path"] = config_path
    ctx.obj["json_output"] = json_output


serial_option = click.option(
    "--serial", "-s", help="Device serial (required when several devices are attached)"
)


@cli.command("devices")
@click.pass_context
def devices(ctx: click.Context) -> None:
    """List attached devices."""
    session = get_session(ctx)

    with console.status("Scanning devices..."):
        found = session.devices()

    if ctx.obj["json_output"]:
        emit_json([device.to_dict() for device in found])
        return

    if not found:
        console.print("[yellow]No devices attached[/yellow]")
        return

    table = Table(title="Devices")
    table.add_column("Serial", style="cyan")
    table.add_column("Model", style="white")
    table.add_column("Android", style="green")
    table.add_column("Connection", style="yellow")
    table.add_column("Last sync", style="dim")

    for device in found:
        last = session.cache.last_sync_date(device.serial)
        table.add_row(
            device.serial,
            device.display_name,
            device.android_version,
            device.connection_type.name,
            humanize.naturaltime(last) if last else "",
        )

    console.print(table)


@cli.command("ls")
@click.argument("path", required=False)
@click.option("--recursive", "-R", is_flag=True, help="List subdirectories recursively")
@serial_option
@click.pass_context
def list_remote(ctx: click.Context, path: str | None, recursive: bool, serial: str | None) -> None:
    """List files on the device."""
    session = get_session(ctx)
    device = session.get_device(serial)

    with console.status("Listing..."):
        entries = session.list_remote(device.serial, path, recursive=recursive)

    if ctx.obj["json_output"]:
        emit_json([entry.to_dict() for entry in entries])
        return

    table = Table(title=f"{device.display_name}:{path or session.config.remote.scan_root}")
    table.add_column("Type", style="dim")
    table.add_column("Size", style="green", justify="right")
    table.add_column("Modified", style="yellow")
    table.add_column("Path", style="cyan")

    for entry in entries:
        table.add_row(
            "dir" if entry.is_directory else entry.category.value,
            "" if entry.is_directory else size_text(entry.size),
            entry.modified_at.strftime("%Y-%m-%d %H:%M"),
            entry.relative_path,
        )

    console.print(table)


@cli.command("du")
@click.argument("paths", nargs=-1, required=True)
@serial_option
@click.pass_context
def disk_usage(ctx: click.Context, paths: tuple[str, ...], serial: str | None) -> None:
    """Show directory sizes on the device."""
    session = get_session(ctx)
    device = session.get_device(serial)

    with console.status("Measuring..."):
        sizes = session.directory_sizes(device.serial, list(paths))

    if ctx.obj["json_output"]:
        emit_json(sizes)
        return

    table = Table(title="Directory sizes")
    table.add_column("Path", style="cyan")
    table.add_column("Size", style="green", justify="right")
    for path in paths:
        table.add_row(path, size_text(sizes.get(path)))
    console.print(table)


@cli.command("df")
@click.argument("path", required=False)
@serial_option
@click.pass_context
def storage(ctx: click.Context, path: str | None, serial: str | None) -> None:
    """Show free space on the device."""
    session = get_session(ctx)
    device = session.get_device(serial)
    total, available = session.storage_info(device.serial, path)

    if ctx.obj["json_output"]:
        emit_json({"total": total, "available": available, "used": total - available})
        return

    used_percent = (total - available) / total * 100 if total else 0.0
    console.print(
        Panel(
            f"Total: {size_text(total)}\n"
            f"Used: {size_text(total - available)} ({used_percent:.1f}%)\n"
            f"Available: {size_text(available)}",
            title=f"{device.display_name}:{path or session.config.remote.scan_root}",
        )
    )


@cli.command("stat")
@click.argument("path")
@serial_option
@click.pass_context
def stat_remote(ctx: click.Context, path: str, serial: str | None) -> None:
    """Show size and modification time of a device path."""
    session = get_session(ctx)
    device = session.get_device(serial)
    result = session.stat_remote(device.serial, path)

    if result is None:
        raise click.ClickException(f"Cannot stat {path}")

    size, modified_at = result
    if ctx.obj["json_output"]:
        emit_json({"path": path, "size": size, "modified_at": modified_at.isoformat()})
        return

    console.print(f"{path}  {size_text(size)}  {modified_at:%Y-%m-%d %H:%M:%S}")


@cli.command("version")
@click.pass_context
def adb_version(ctx: click.Context) -> None:
    """Show the adb tool version."""
    session = get_session(ctx)
    console.print(f"AdbSync {__version__}, adb {session.adb_version()}")


def _compare(
    session: Session,
    serial: str,
    remote: str | None,
    local: Path | None,
    use_hash: bool | None,
) -> DiffResult:
    with console.status("Comparing..."):
        return session.compare(serial, remote, local, use_hash=use_hash)


diff_options = [
    click.argument("remote", required=False),
    click.argument("local", required=False, type=click.Path(path_type=Path)),
    click.option("--hash/--no-hash", "use_hash", default=None, help="Compare content hashes"),
    click.option("--search", default="", help="Case-insensitive path substring"),
    click.option(
        "--type",
        "file_types",
        multiple=True,
        type=click.Choice([c.value for c in FileCategory]),
        help="Restrict to file categories",
    ),
    click.option(
        "--show",
        "diff_types",
        multiple=True,
        type=click.Choice([d.value for d in DiffType]),
        help="Restrict to diff categories",
    ),
    serial_option,
]


def with_diff_options(func: Any) -> Any:
    for option in reversed(diff_options):
        func = option(func)
    return func


@cli.command("diff")
@with_diff_options
@click.pass_context
def diff(
    ctx: click.Context,
    remote: str | None,
    local: Path | None,
    use_hash: bool | None,
    search: str,
    file_types: tuple[str, ...],
    diff_types: tuple[str, ...],
    serial: str | None,
) -> None:
    """Compare device files with a local directory."""
    session = get_session(ctx)
    device = session.get_device(serial)
    _compare(session, device.serial, remote, local, use_hash)

    result = session.filtered_diff(
        search,
        {FileCategory(t) for t in file_types},
        {DiffType(d) for d in diff_types},
    )

    if ctx.obj["json_output"]:
        emit_json(result.to_dict())
        return

    for diff_type in DiffType:
        entries = result.by_type(diff_type)
        if not entries or (diff_type == DiffType.UNCHANGED and not diff_types):
            continue
        style = DIFF_STYLES[diff_type]
        table = Table(title=f"{diff_type.value.capitalize()} ({len(entries)})", title_style=style)
        table.add_column("Path", style=style)
        table.add_column("Size", justify="right")
        table.add_column("Modified")
        for entry in entries:
            table.add_row(
                entry.relative_path,
                size_text(entry.size),
                entry.modified_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    console.print(
        Panel(
            f"{result.summary}\nTo transfer: {len(result.syncable)} files, "
            f"{size_text(result.syncable_bytes)}",
            title="Summary",
        )
    )


def _add_tree_nodes(branch: Tree, node: FileTreeNode, status: dict[str, DiffType]) -> None:
    for child in node.sorted_children:
        if child.is_directory:
            sub = branch.add(f"[bold blue]{child.name}/[/bold blue]")
            _add_tree_nodes(sub, child, status)
            continue
        diff_type = status.get(child.path)
        style = DIFF_STYLES.get(diff_type, "white") if diff_type else "white"
        size = size_text(child.entry.size) if child.entry else ""
        branch.add(f"[{style}]{child.name}[/{style}] [dim]{size}[/dim]")


@cli.command("tree")
@with_diff_options
@click.pass_context
def tree(
    ctx: click.Context,
    remote: str | None,
    local: Path | None,
    use_hash: bool | None,
    search: str,
    file_types: tuple[str, ...],
    diff_types: tuple[str, ...],
    serial: str | None,
) -> None:
    """Show the comparison as a directory tree."""
    session = get_session(ctx)
    device = session.get_device(serial)
    _compare(session, device.serial, remote, local, use_hash)

    result = session.filtered_diff(
        search,
        {FileCategory(t) for t in file_types},
        {DiffType(d) for d in diff_types},
    )
    status = {
        entry.relative_path: diff_type
        for diff_type in DiffType
        for entry in result.by_type(diff_type)
    }
    root = session.tree(result.new + result.modified + result.deleted + result.unchanged)

    view = Tree(f"[bold]{remote or session.config.remote.scan_root}[/bold]")
    _add_tree_nodes(view, root, status)
    console.print(view)


@cli.command("sync")
@click.argument("remote", required=False)
@click.argument("local", required=False, type=click.Path(path_type=Path))
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ConflictPolicy]),
    help="Conflict policy (default from configuration)",
)
@click.option("--hash/--no-hash", "use_hash", default=None, help="Compare content hashes")
@click.option("--search", default="", help="Only sync paths containing this text")
@click.option(
    "--type",
    "file_types",
    multiple=True,
    type=click.Choice([c.value for c in FileCategory]),
    help="Only sync these file categories",
)
@click.option("--retry-failed", is_flag=True, help="Run one retry pass over failed files")
@click.option("--dry-run", is_flag=True, help="Show what would be transferred")
@serial_option
@click.pass_context
def sync(
    ctx: click.Context,
    remote: str | None,
    local: Path | None,
    policy: str | None,
    use_hash: bool | None,
    search: str,
    file_types: tuple[str, ...],
    retry_failed: bool,
    dry_run: bool,
    serial: str | None,
) -> None:
    """Pull new and modified files from the device."""
    session = get_session(ctx)
    device = session.get_device(serial)
    remote = remote or session.config.remote.scan_root
    local = local or session.config.sync.default_target_path

    _compare(session, device.serial, remote, local, use_hash)
    selection = session.filtered_diff(search, {FileCategory(t) for t in file_types}).syncable

    if not selection:
        console.print("[green]Already up to date[/green]")
        return

    total_bytes = sum(entry.size for entry in selection)
    if dry_run:
        console.print(
            Panel(
                f"[yellow]DRY RUN[/yellow]\n\nFrom: {device.display_name}:{remote}\n"
                f"To: {local}\nFiles: {len(selection)} ({size_text(total_bytes)})",
                title="Sync Plan",
            )
        )
        return

    task = session.start_sync(
        device,
        selection,
        source_root=remote,
        target_root=local,
        policy=ConflictPolicy(policy) if policy else None,
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[detail]}"),
            console=console,
        ) as progress:
            bar = progress.add_task("Syncing...", total=len(task.files), detail="")
            while not session.sync.wait(task.id, timeout=0.25):
                snapshot = task.progress
                eta = (
                    humanize.naturaldelta(timedelta(seconds=snapshot.eta_seconds))
                    if snapshot.eta_seconds is not None
                    else "?"
                )
                progress.update(
                    bar,
                    completed=snapshot.processed,
                    detail=f"{size_text(int(snapshot.speed_bytes_per_sec))}/s, ETA {eta}",
                )
            progress.update(bar, completed=task.progress.processed, detail="")
    except KeyboardInterrupt:
        session.sync.cancel(task.id)
        session.sync.wait(task.id, timeout=10)
        raise

    summary = task.summary()
    if retry_failed and summary.failed:
        with console.status("Retrying failed files..."):
            result = session.sync.process_retry_queue()
        console.print(f"Retry pass: {result.succeeded} recovered, {result.remaining} still failing")

    if ctx.obj["json_output"]:
        emit_json(summary.to_dict())
    elif summary.status == JobStatus.COMPLETED:
        console.print(
            f"[green]✓ Synced {summary.processed - summary.failed - summary.skipped} files "
            f"({size_text(summary.bytes_transferred)}) in "
            f"{humanize.naturaldelta(timedelta(seconds=summary.duration_seconds))}[/green]"
        )
        if summary.skipped:
            console.print(f"Skipped {summary.skipped} existing files")
        if summary.failed:
            console.print(f"[red]{summary.failed} files failed; last error: {summary.error}[/red]")
    else:
        console.print(f"[red]✗ Sync {summary.status.name.lower()}: {summary.error or ''}[/red]")

    if summary.status != JobStatus.COMPLETED or summary.failed:
        sys.exit(1)


@cli.command("history")
@click.option("--device", "device_serial", help="Only this device")
@click.option("--limit", type=int, default=20, show_default=True, help="Entries to show")
@click.option("--stats", is_flag=True, help="Show totals instead of entries")
@click.option("--clear", is_flag=True, help="Delete all history")
@click.option("--prune", type=int, metavar="DAYS", help="Delete entries older than DAYS")
@click.pass_context
def history(
    ctx: click.Context,
    device_serial: str | None,
    limit: int,
    stats: bool,
    clear: bool,
    prune: int | None,
) -> None:
    """Show past sync runs."""
    session = get_session(ctx)

    if clear:
        session.history.clear()
        console.print("[green]History cleared[/green]")
        return
    if prune is not None:
        removed = session.history.prune(prune)
        console.print(f"Removed {removed} entries")
        return

    if stats:
        totals = session.history.statistics()
        if ctx.obj["json_output"]:
            emit_json(asdict(totals) | {"success_rate": totals.success_rate})
            return
        console.print(
            Panel(
                f"[cyan]Syncs:[/cyan] {totals.total_syncs} "
                f"({totals.successful_syncs} ok, {totals.failed_syncs} failed, "
                f"{totals.success_rate:.0f}% success)\n"
                f"[cyan]Files:[/cyan] {totals.total_files}\n"
                f"[cyan]Data:[/cyan] {size_text(totals.total_bytes)}\n"
                f"[cyan]Time:[/cyan] "
                f"{humanize.naturaldelta(timedelta(seconds=totals.total_duration_seconds))}",
                title="Sync statistics",
            )
        )
        return

    entries = session.history.entries(device_serial, limit)
    if ctx.obj["json_output"]:
        emit_json([entry.to_dict() for entry in entries])
        return

    table = Table(title="Sync history")
    table.add_column("When", style="dim")
    table.add_column("Device", style="cyan")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Size", style="green", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Target", style="white")

    for entry in entries:
        style = "green" if entry.succeeded else "red"
        table.add_row(
            humanize.naturaltime(entry.ended_at),
            entry.device_name or entry.device_serial,
            f"[{style}]{entry.status.name.lower()}[/{style}]",
            str(entry.processed),
            size_text(entry.bytes_transferred),
            humanize.naturaldelta(timedelta(seconds=entry.duration_seconds)),
            entry.target_root,
        )

    console.print(table)


@cli.group("config")
def config_group() -> None:
    """Show or change configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the current configuration."""
    config: AdbSyncConfig = ctx.obj["config"]
    emit_json(config.model_dump(mode="json"))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a dotted configuration KEY (e.g. sync.conflict_policy) to VALUE."""
    config: AdbSyncConfig = ctx.obj["config"]
    data = config.model_dump(mode="json")

    node = data
    parts = key.split(".")
    for part in parts[:-1]:
        if not isinstance(node.get(part), dict):
            raise click.BadParameter(f"Unknown configuration key: {key}", param_hint="KEY")
        node = node[part]
    if parts[-1] not in node:
        raise click.BadParameter(f"Unknown configuration key: {key}", param_hint="KEY")

    try:
        node[parts[-1]] = json.loads(value)
    except json.JSONDecodeError:
        node[parts[-1]] = value

    try:
        updated = AdbSyncConfig.model_validate(data)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="VALUE") from e
    updated.save(ctx.obj["config_path"])
    console.print(f"[green]✓ {key} = {node[parts[-1]]}[/green]")


@cli.group("filters")
def filters_group() -> None:
    """Manage include/exclude filter rules."""


def _save_filters(ctx: click.Context, rules: list[FilterRuleConfig]) -> None:
    config: AdbSyncConfig = ctx.obj["config"]
    config.filters.rules = rules
    config.save(ctx.obj["config_path"])


@filters_group.command("list")
@click.option("--presets", is_flag=True, help="List built-in presets instead")
@click.pass_context
def filters_list(ctx: click.Context, presets: bool) -> None:
    """List filter rules."""
    config: AdbSyncConfig = ctx.obj["config"]

    if presets:
        table = Table(title="Filter presets")
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        table.add_column("Rules", justify="right")
        for preset in PRESETS.values():
            table.add_row(preset.name, preset.description, str(len(preset.rules)))
        console.print(table)
        return

    if not config.filters.rules:
        console.print("No filter rules; every file is included")
        return

    table = Table(title="Filter rules")
    table.add_column("#", style="dim")
    table.add_column("Type")
    table.add_column("Pattern", style="cyan")
    table.add_column("Kind")
    table.add_column("Enabled")
    for index, rule in enumerate(config.filters.rules):
        table.add_row(
            str(index),
            rule.type,
            rule.pattern,
            "regex" if rule.is_regex else "wildcard",
            "yes" if rule.enabled else "no",
        )
    console.print(table)


@filters_group.command("add")
@click.argument("pattern")
@click.option("--exclude", is_flag=True, help="Exclude matching paths instead of including")
@click.option("--regex", is_flag=True, help="Treat PATTERN as a regular expression")
@click.option("--description", default="", help="Note shown with the rule")
@click.pass_context
def filters_add(
    ctx: click.Context, pattern: str, exclude: bool, regex: bool, description: str
) -> None:
    """Add a filter rule."""
    if regex and not validate_regex(pattern):
        raise click.BadParameter(f"Invalid regular expression: {pattern}", param_hint="PATTERN")

    rule = FilterRule(
        pattern=pattern,
        rule_type="exclude" if exclude else "include",
        is_regex=regex,
        description=description,
    )
    config: AdbSyncConfig = ctx.obj["config"]
    _save_filters(ctx, [*config.filters.rules, rule.to_config()])
    console.print(f"[green]✓ Added {rule.rule_type} rule {pattern}[/green]")


@filters_group.command("remove")
@click.argument("index", type=int)
@click.pass_context
def filters_remove(ctx: click.Context, index: int) -> None:
    """Remove the rule at INDEX."""
    config: AdbSyncConfig = ctx.obj["config"]
    rules = list(config.filters.rules)
    if not 0 <= index < len(rules):
        raise click.BadParameter(f"No rule at index {index}", param_hint="INDEX")
    removed = rules.pop(index)
    _save_filters(ctx, rules)
    console.print(f"[green]✓ Removed rule {removed.pattern}[/green]")


@filters_group.command("preset")
@click.argument("name", type=click.Choice(list(PRESETS)))
@click.pass_context
def filters_preset(ctx: click.Context, name: str) -> None:
    """Replace the rules with a built-in preset."""
    _save_filters(ctx, [rule.to_config() for rule in PRESETS[name].rules])
    console.print(f"[green]✓ Applied preset {name}[/green]")


@filters_group.command("clear")
@click.pass_context
def filters_clear(ctx: click.Context) -> None:
    """Remove every filter rule."""
    _save_filters(ctx, [])
    console.print("[green]✓ Filter rules cleared[/green]")


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except AdbSyncError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
