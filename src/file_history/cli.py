"""CLI for file-history."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from .config import BackupConfig, load_config
from .core import SaveStatus
from .errors import FileHistoryError, StaleSelectionError
from .pathcodec import decode_key, is_storage_key
from .service import FileHistoryService


app = typer.Typer(help="""\
Per-file save history kept in a hidden git repository. Record a snapshot
each time a file is saved, then browse, diff, restore or purge it.""")

console = Console()
err_console = Console(stderr=True)


class _State:
    config_path: Optional[Path] = None


state = _State()


@app.callback()
def main_callback(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file (default: user config dir)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global options."""
    state.config_path = config
    level = logging.DEBUG if verbose or os.environ.get("DEBUG") else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _load_config() -> BackupConfig:
    try:
        return load_config(state.config_path)
    except FileHistoryError as e:
        err_console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)


def get_service(compact: bool = True) -> FileHistoryService:
    """Build the service for one command invocation.

    Args:
        compact: Honor config.compact_on_start (disabled on the save path)
    """
    config = _load_config()
    if not compact:
        config = config.model_copy(update={"compact_on_start": False})
    try:
        return FileHistoryService(config)
    except FileHistoryError as e:
        err_console.print(
            f"[red]✗[/red] Cannot open backup repository "
            f"{escape(str(config.repository))}: {escape(str(e))}"
        )
        raise typer.Exit(1)


def _fail(e: Exception) -> None:
    err_console.print(f"[red]✗[/red] {escape(str(e))}")
    if isinstance(e, StaleSelectionError):
        err_console.print("[dim]Hint: run 'file-history log <file>' again to refresh ids[/dim]")
    raise typer.Exit(1)


def _key_for(service: FileHistoryService, file) -> str:
    try:
        return service.key_for(file)
    except FileHistoryError as e:
        _fail(e)


def _key_argument(service: FileHistoryService, target: str) -> str:
    """Accept either a file path or a storage key as printed by 'files'."""
    if is_storage_key(target) and not Path(target).exists():
        return target
    return _key_for(service, target)


@app.command()
def save(
    file: Path = typer.Argument(..., help="File that was just saved"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Snapshot message"),
):
    """Record a snapshot of FILE (the save hook)."""
    service = get_service(compact=False)
    if message is None:
        result = service.on_file_saved(file)
    else:
        result = service.on_file_saved_with_message(file, None, message)

    if result.status == SaveStatus.FAILED:
        err_console.print(f"[red]{escape(result.summary())}[/red]")
        raise typer.Exit(1)
    if result.status == SaveStatus.SAVED:
        console.print(f"[green]{escape(result.summary())}[/green]")
    else:
        console.print(f"[dim]{escape(result.summary())}[/dim]")


@app.command()
def describe(
    file: Path = typer.Argument(..., help="File whose newest snapshot to describe"),
    message: str = typer.Argument(..., help="New message"),
):
    """Replace the message of FILE's newest snapshot."""
    service = get_service(compact=False)
    try:
        new_id = service.describe_last_save(file, message)
    except FileHistoryError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Newest snapshot is now {new_id[:12]}")


@app.command()
def log(
    file: Path = typer.Argument(..., help="File to list snapshots of"),
    template: Optional[str] = typer.Option(
        None, "--template", "-t", help="Display template using {date} and {age}"
    ),
):
    """List FILE's snapshots, newest first."""
    service = get_service()
    key = _key_for(service, file)
    try:
        entries = service.repository.list_snapshots(key, date_template=template)
    except FileHistoryError as e:
        _fail(e)

    table = Table(title=f"{escape(decode_key(key))} ({len(entries)} snapshots)")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Saved")
    table.add_column("Message")
    for entry in entries:
        table.add_row(entry.id[:12], escape(entry.display_time), escape(entry.message))
    console.print(table)


@app.command()
def show(
    file: Path = typer.Argument(..., help="File the snapshot belongs to"),
    snapshot_id: str = typer.Argument(..., help="Snapshot id (may be abbreviated)"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the snapshot to this path instead of stdout"
    ),
):
    """Print (or write a copy of) a snapshot's content."""
    service = get_service()
    try:
        content = service.open_snapshot(_key_for(service, file), snapshot_id)
    except FileHistoryError as e:
        _fail(e)

    if output is not None:
        output.write_bytes(content)
        console.print(f"[green]✓[/green] Wrote {len(content)} bytes to {escape(str(output))}")
    else:
        sys.stdout.buffer.write(content)
        sys.stdout.flush()


@app.command()
def diff(
    file: Path = typer.Argument(..., help="File the snapshot belongs to"),
    snapshot_id: str = typer.Argument(..., help="Snapshot id (may be abbreviated)"),
):
    """Show the change a snapshot introduced over its predecessor."""
    service = get_service()
    try:
        text = service.show_diff(_key_for(service, file), snapshot_id)
    except FileHistoryError as e:
        _fail(e)

    if not text:
        console.print("[dim]No changes[/dim]")
        return
    console.print(Syntax(text, "diff", theme="ansi_dark", background_color="default"))


@app.command()
def restore(
    file: Path = typer.Argument(..., help="File to overwrite"),
    snapshot_id: str = typer.Argument(..., help="Snapshot id (may be abbreviated)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Overwrite FILE with one of its snapshots."""
    service = get_service()
    key = _key_for(service, file)
    if not service.repository.has_snapshot(key, snapshot_id):
        _fail(StaleSelectionError(key, snapshot_id))

    if not yes and not typer.confirm(f"Overwrite {file} with snapshot {snapshot_id[:12]}?"):
        console.print("[yellow]Restore cancelled[/yellow]")
        raise typer.Exit(0)

    try:
        written = service.restore_snapshot(key, snapshot_id, file)
    except FileHistoryError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Restored {escape(str(written))} from {snapshot_id[:12]}")


@app.command()
def files():
    """List every file with history."""
    service = get_service()
    candidates = service.list_files()
    if not candidates:
        console.print("[yellow]No files have history yet[/yellow]")
        return

    table = Table(title=f"Tracked files ({len(candidates)})")
    table.add_column("File", style="cyan")
    table.add_column("Key", style="dim")
    for candidate in candidates:
        table.add_row(escape(candidate.label), candidate.key)
    console.print(table)


@app.command()
def forget(
    target: str = typer.Argument(..., help="File path or storage key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    preview: bool = typer.Option(False, "--preview", help="Show the newest content first"),
):
    """Delete a file's whole history (irreversible)."""
    service = get_service()
    key = _key_argument(service, target)

    if preview:
        try:
            content = service.preview_file(key)
        except FileHistoryError as e:
            _fail(e)
        console.print(content.decode("utf-8", errors="replace"), markup=False, highlight=False)

    if not yes and not typer.confirm(f"Delete all history of {decode_key(key)}?"):
        console.print("[yellow]Nothing deleted[/yellow]")
        raise typer.Exit(0)

    try:
        service.delete_file_history(key)
    except FileHistoryError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Deleted history of {escape(decode_key(key))}")


@app.command()
def gc():
    """Compact the backup repository."""
    service = get_service(compact=False)
    try:
        service.repository.compact()
    except FileHistoryError as e:
        _fail(e)
    console.print("[green]✓[/green] Repository compacted")


@app.command()
def info():
    """Show repository location and size."""
    service = get_service(compact=False)
    stats = service.repository.stats()
    console.print(f"[bold]Repository:[/bold] {escape(stats.root)}")
    console.print(f"[bold]Contents:[/bold] {stats.summary()}")
    git_status = "[green]ok[/green]" if service.repository.git.available() else "[red]missing[/red]"
    console.print(f"[bold]Git:[/bold] {service.config.git_binary} ({git_status})")
    if service.config.exclude or service.config.exclude_globs:
        console.print("[bold]Excluded:[/bold]")
        for rule in service.config.exclude:
            console.print(f"  • {rule}", markup=False)
        for pattern in service.config.exclude_globs:
            console.print(f"  • {escape(pattern)} [dim](glob)[/dim]")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
