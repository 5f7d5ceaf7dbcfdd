"""Command line interface for FileFinder."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from filefinder.config import INDEX_DIR_ENV, AppConfig
from filefinder.index.indexer import Indexer
from filefinder.index.storage import IndexOpenError, OpenMode, SQLiteIndexStore
from filefinder.index.walker import FilesystemWalker
from filefinder.search.task import SearchTask, SessionState
from filefinder.web.app import app as web_app


console = Console()
app = typer.Typer(help="FileFinder - incremental local filename search")

WAIT_POLL_SECONDS = 0.2


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _resolve_index_dir(index_dir: Optional[Path]) -> Path:
    return AppConfig(index_dir=index_dir).resolve_index_dir(Path.cwd())


def _check_target(target: Path) -> None:
    if not target.is_dir():
        raise typer.BadParameter(f"Not a directory: {target}")


class ConsoleSink:
    """Prints matches to the console as they stream in."""

    def __init__(self, out: Console) -> None:
        self.out = out
        self.count = 0
        self.failure: Optional[str] = None

    def on_match(self, path: str) -> None:
        self.count += 1
        self.out.print(path, markup=False, highlight=False, soft_wrap=True)

    def on_complete(self) -> None:
        pass

    def on_failure(self, reason: str) -> None:
        self.failure = reason


@app.command()
def search(
    target: Path = typer.Argument(..., help="Folder to search in.", resolve_path=True),
    pattern: str = typer.Argument(..., help="Filename pattern, '*' matches anything."),
    index_dir: Path = typer.Option(None, "--index-dir", help="Index directory"),
    top_k: int = typer.Option(AppConfig().top_k, help="Maximum hits per index query"),
    ignore_case: bool = typer.Option(False, "--ignore-case", "-i", help="Case-insensitive match"),
    follow_symlinks: bool = typer.Option(False, "--follow-symlinks", help="Follow symlinks"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search filenames under TARGET, refreshing the index as it goes."""
    _setup_logging(verbose)
    _check_target(target)
    config = AppConfig(
        index_dir=_resolve_index_dir(index_dir),
        top_k=top_k,
        case_sensitive=not ignore_case,
        follow_symlinks=follow_symlinks,
    )

    sink = ConsoleSink(console)
    task = SearchTask(target, pattern, sink, config=config).start()
    try:
        while not task.wait(WAIT_POLL_SECONDS):
            pass
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling...[/yellow]")
        task.cancel()
        task.wait()

    if task.state is SessionState.FAILED:
        console.print(f"[red]Search failed: {escape(str(sink.failure))}[/red]")
        raise typer.Exit(code=1)

    suffix = " (cancelled)" if task.state is SessionState.CANCELLED else ""
    console.print(
        f"Found {sink.count} matches, removed {task.stats.stale_removed} stale entries{suffix}."
    )


@app.command()
def index(
    target: Path = typer.Argument(..., help="Folder to index.", resolve_path=True),
    index_dir: Path = typer.Option(None, "--index-dir", help="Index directory"),
    rebuild: bool = typer.Option(False, "--rebuild", help="Discard the existing index first"),
    follow_symlinks: bool = typer.Option(False, "--follow-symlinks", help="Follow symlinks"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index every file under TARGET without searching."""
    _setup_logging(verbose)
    _check_target(target)
    resolved = _resolve_index_dir(index_dir)
    mode = OpenMode.CREATE if rebuild else OpenMode.CREATE_OR_APPEND

    try:
        store = SQLiteIndexStore.open(resolved, mode=mode)
    except IndexOpenError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Indexing into [bold]{escape(str(resolved))}[/bold]...")
    indexer = Indexer(store, FilesystemWalker(follow_symlinks=follow_symlinks))
    stats = indexer.index(target)
    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, "
        f"failed: {stats.failed}, unreadable: {stats.walk.errors}"
    )


@app.command()
def prune(
    index_dir: Path = typer.Option(None, "--index-dir", help="Index directory"),
) -> None:
    """Remove index entries whose files no longer exist on disk."""
    resolved = _resolve_index_dir(index_dir)
    try:
        store = SQLiteIndexStore.open(resolved, mode=OpenMode.APPEND)
    except IndexOpenError:
        console.print("[yellow]Index not found, nothing to prune.[/yellow]")
        return

    removed = store.remove_missing_files()
    console.print(f"Removed {removed} orphaned entries.")


@app.command()
def stats(
    index_dir: Path = typer.Option(None, "--index-dir", help="Index directory"),
) -> None:
    """Show index statistics."""
    resolved = _resolve_index_dir(index_dir)
    try:
        store = SQLiteIndexStore.open(resolved, mode=OpenMode.APPEND)
    except IndexOpenError:
        console.print("[yellow]Index not found.[/yellow]")
        return

    info = store.get_stats()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Index", escape(info["index_path"]))
    table.add_row("Documents", str(info["document_count"]))
    table.add_row("Last indexed", str(info["last_indexed"] or "-"))
    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    index_dir: Path = typer.Option(None, "--index-dir", help="Index directory"),
) -> None:
    """Start the HTTP interface."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    resolved = _resolve_index_dir(index_dir)
    os.environ[INDEX_DIR_ENV] = str(resolved)
    console.print(f"Starting web interface on http://{host}:{port} (index: {resolved})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
