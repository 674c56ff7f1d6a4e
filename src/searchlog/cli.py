"""Typer-based CLI for Search Logger."""

import asyncio
import logging
import signal
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import SearchLogConfig, config_file_path, validate_port
from .models import EntryKind
from .paths import validate_log_file_name
from .service import SearchLogService
from .store import VaultStore
from .writer import LogWriter, read_log_lines

app = typer.Typer(
    name="searchlog",
    help="Search Logger - record browser search queries into an Obsidian note",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

VAULT_HELP = "Path to vault directory (default: SEARCHLOG_VAULT env or current directory)"


def _load_config(
    vault_path: Optional[str],
    note: Optional[str] = None,
    port: Optional[int] = None,
    prepend_mode: Optional[bool] = None,
    host: Optional[str] = None,
) -> SearchLogConfig:
    try:
        config = SearchLogConfig.from_sources(
            vault_path, note=note, port=port, prepend_mode=prepend_mode, host=host
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if not config.vault_path.is_dir():
        console.print(f"[red]Error: Vault directory does not exist: {config.vault_path}[/red]")
        raise typer.Exit(code=1)
    return config


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # aiohttp's own access/server chatter is only interesting when debugging
    logging.getLogger("aiohttp").setLevel(logging.DEBUG if debug else logging.WARNING)


@app.command()
def init(
    vault_path: str = typer.Option(None, "--vault", "-v", help=VAULT_HELP),
    note: str = typer.Option(None, "--note", "-n", help="Log note name, with or without .md"),
    save: bool = typer.Option(False, "--save", help="Persist the settings to .searchlog/config.toml"),
):
    """Create the log note if it does not exist yet.

    Idempotent: an existing note is left untouched.
    """
    config = _load_config(vault_path, note=note)
    store = VaultStore(config.vault_path)

    async def _init() -> tuple[Optional[str], bool]:
        error = await validate_log_file_name(store, config.log_file_name)
        if error:
            return error, False
        return None, await LogWriter(store, config.log_file_name).init_note()

    error, created = asyncio.run(_init())
    if error:
        console.print(f"[red]Error: {error}[/red]")
        raise typer.Exit(code=1)

    if created:
        console.print(f"[green]+[/green] Created new log note: {config.log_file_name}")
    else:
        console.print(f"[dim]Log note already exists: {config.log_file_name}[/dim]")

    if save:
        path = config.save()
        console.print(f"[green]+[/green] Saved settings: {path}")


@app.command()
def check(
    vault_path: str = typer.Option(None, "--vault", "-v", help=VAULT_HELP),
    note: str = typer.Option(None, "--note", "-n", help="Log note name, with or without .md"),
    port: int = typer.Option(None, "--port", "-p", help="Listener port"),
):
    """Show the effective settings and validate them."""
    config = _load_config(vault_path, note=note, port=port)
    store = VaultStore(config.vault_path)
    note_error = asyncio.run(validate_log_file_name(store, config.log_file_name))
    port_error = validate_port(config.port)

    table = Table(title="Search Logger Settings")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Status")

    ok = "[green]ok[/green]"
    table.add_row("Vault", str(config.vault_path), ok)
    table.add_row("Log note", config.log_file_name, f"[red]{note_error}[/red]" if note_error else ok)
    table.add_row("Port", str(config.port), f"[red]{port_error}[/red]" if port_error else ok)
    table.add_row("Mode", "prepend" if config.prepend_mode else "append", ok)
    table.add_row("Host", config.host, ok)
    table.add_row("Serialize commits", str(config.serialize_commits).lower(), ok)

    settings_file = config_file_path(config.vault_path)
    source = str(settings_file) if settings_file.exists() else "[dim]defaults / environment[/dim]"
    table.add_row("Settings file", source, ok)

    console.print(table)

    errors = [e for e in (note_error, port_error) if e]
    for error in errors:
        console.print(f"[red]Error: {error}[/red]")
    if errors:
        raise typer.Exit(code=1)
    console.print("[green]Settings are valid[/green]")


@app.command()
def serve(
    vault_path: str = typer.Option(None, "--vault", "-v", help=VAULT_HELP),
    note: str = typer.Option(None, "--note", "-n", help="Log note name, with or without .md"),
    port: int = typer.Option(None, "--port", "-p", help="Listener port"),
    prepend: bool = typer.Option(
        None,
        "--prepend/--append",
        help="Insert new lines at the top (prepend) or the bottom (append) of the note",
    ),
    host: str = typer.Option(None, "--host", help="Interface to bind (default: 127.0.0.1)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Run the ingestion endpoint until interrupted.

    Send SIGHUP to re-read the settings (environment and
    .searchlog/config.toml) and apply them without restarting.
    """
    _configure_logging(debug)
    config = _load_config(vault_path, note=note, port=port, prepend_mode=prepend, host=host)

    def _reload() -> SearchLogConfig:
        return SearchLogConfig.from_sources(
            vault_path, note=note, port=port, prepend_mode=prepend, host=host
        )

    try:
        asyncio.run(_serve(config, _reload))
    except KeyboardInterrupt:
        pass
    console.print("[dim]Search Logger stopped[/dim]")


async def _serve(config: SearchLogConfig, reload_config) -> None:
    service = SearchLogService(config)
    for warning in await service.start():
        console.print(f"[yellow]SearchLogger ⚠ {warning}[/yellow]")

    if not service.is_listening:
        await service.stop()
        raise typer.Exit(code=1)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    reload_lock = asyncio.Lock()

    async def _apply_reload() -> None:
        # Serialize reloads: overlapping rebinds are not supported
        async with reload_lock:
            try:
                new_config = reload_config()
            except ValueError as e:
                console.print(f"[red]Reload failed: {e}[/red]")
                return
            result = await service.apply_settings(new_config)
            for error in result.errors:
                console.print(f"[yellow]SearchLogger ⚠ {error}[/yellow]")
            console.print(
                f"[green]Settings applied:[/green] {result.config.log_file_name} "
                f"on port {result.config.port}"
            )

    reload_tasks: set[asyncio.Task] = set()

    def _reload_done(task: asyncio.Task) -> None:
        reload_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"SearchLogger: settings reload failed: {task.exception()}")

    def _on_hangup() -> None:
        task = loop.create_task(_apply_reload())
        reload_tasks.add(task)
        task.add_done_callback(_reload_done)

    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        if hasattr(signal, "SIGHUP"):
            loop.add_signal_handler(signal.SIGHUP, _on_hangup)
    except NotImplementedError:
        # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
        pass

    try:
        await stop_event.wait()
    finally:
        await service.stop()


@app.command()
def tail(
    n: int = typer.Option(20, "--n", min=1, help="Number of recent searches to display"),
    vault_path: str = typer.Option(None, "--vault", "-v", help=VAULT_HELP),
    note: str = typer.Option(None, "--note", help="Log note name, with or without .md"),
):
    """Display the most recent logged searches."""
    config = _load_config(vault_path, note=note)
    store = VaultStore(config.vault_path)

    async def _read() -> Optional[str]:
        if await store.exists(config.log_file_name) is not EntryKind.DOCUMENT:
            return None
        return await store.read(config.log_file_name)

    try:
        content = asyncio.run(_read())
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if content is None:
        console.print(f"[red]Error: Log note not found: {config.log_file_name}[/red]")
        console.print("[yellow]Run 'searchlog init' first[/yellow]")
        raise typer.Exit(code=1)

    entries = read_log_lines(content)
    if not entries:
        console.print("[dim]No searches logged yet[/dim]")
        return

    # Newest lines are at the top in prepend mode, at the bottom otherwise
    recent = entries[:n] if config.prepend_mode else list(reversed(entries[-n:]))

    table = Table(title=f"Last {len(recent)} Search(es)")
    table.add_column("Time", style="cyan", no_wrap=True)
    table.add_column("Query", style="magenta")
    table.add_column("URL", style="dim")
    for stamp, query, url in recent:
        url_str = url if len(url) <= 60 else url[:57] + "..."
        table.add_row(stamp, query, url_str)

    console.print(table)


@app.command()
def version():
    """Show Search Logger version."""
    from . import __version__
    console.print(f"Search Logger v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
