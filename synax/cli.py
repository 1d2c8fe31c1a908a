"""
Synax CLI - inspect and drive the offline outbox

Commands operate on the local database named by the config (or
SYNAX_DB_PATH). Only `sync` and `watch` talk to the API.
"""

import asyncio
import json
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from synax import __version__
from synax.config import (
    SynaxConfig,
    clear_token,
    get_credentials_file,
    load_config,
    load_token,
    save_token,
)
from synax.exceptions import SynaxError
from synax.logging.viewer import format_entry_line, query_logs, summarize_cycles
from synax.state import SyncState, SyncStateStore
from synax.store import LocalStore, QueueKind
from synax.sync.api import SynaxApiClient
from synax.sync.connectivity import ConnectivityMonitor, ProbeConnectivitySource
from synax.sync.engine import SyncEngine, SyncReport
from synax.sync.outbox import MutationOutbox

# Rich console for terminal output
console = Console()

app = typer.Typer(
    name="synax",
    help="Offline outbox and sync engine for the Synax field client",
    add_completion=False,
)

_STATUS_STYLES = {
    "pending": "yellow",
    "syncing": "blue",
    "synced": "green",
    "failed": "red",
}


def _load_config() -> SynaxConfig:
    try:
        return load_config()
    except SynaxError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _open_store(config: SynaxConfig) -> LocalStore:
    store = LocalStore(config.db_path)
    try:
        store.initialize()
    except SynaxError as e:
        console.print(f"[red]Failed to open offline database:[/red] {e}")
        raise typer.Exit(1)
    return store


def _fail(error: SynaxError) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _make_client(config: SynaxConfig) -> SynaxApiClient:
    return SynaxApiClient(config.api_base_url, timeout=config.request_timeout)


def _show_report(report: SyncReport) -> None:
    if report.skipped:
        console.print("[yellow]Sync skipped (offline or already syncing)[/yellow]")
        return
    if report.aborted:
        console.print(f"[bold red]Sync aborted:[/bold red] {report.error}")
        return

    style = "green" if report.mutations_failed == 0 and report.images_failed == 0 else "yellow"
    console.print(
        f"[{style}]Synced {report.mutations_synced}/{report.mutations_total} changes, "
        f"uploaded {report.images_uploaded}/{report.images_total} photos[/{style}] "
        f"[dim]({report.duration_ms}ms)[/dim]"
    )
    if report.mutations_failed or report.images_failed:
        console.print(
            f"[red]{report.mutations_failed} change(s) and {report.images_failed} photo(s) failed[/red]"
            " [dim]- see 'synax queue --failed'[/dim]"
        )


@app.command()
def status() -> None:
    """Show connectivity-independent sync status for the local database."""
    config = _load_config()
    with _open_store(config) as store:
        try:
            stats = store.database_stats()
        except SynaxError as e:
            _fail(e)

    state = SyncState(
        pending_mutations=stats.pending_mutations,
        pending_images=stats.pending_images,
        cached_projects=stats.projects,
        cached_floors=stats.floors,
        cached_rooms=stats.rooms,
        cached_assets=stats.assets,
    )

    console.print(Panel(
        f"[bold]API:[/bold] {config.api_base_url}\n"
        f"[bold]Database:[/bold] {config.db_path}\n"
        f"[bold]Signed in:[/bold] {'yes' if load_token() else 'no'}\n"
        f"\n"
        f"[bold]Pending:[/bold] {stats.pending_mutations} change(s), {stats.pending_images} photo(s)\n"
        f"[bold]Failed:[/bold] {stats.failed_mutations} change(s), {stats.failed_images} photo(s)\n"
        f"[bold]Cached:[/bold] {stats.projects} projects, {stats.floors} floors, "
        f"{stats.rooms} rooms, {stats.assets} assets",
        title=f"[bold cyan]Synax {__version__}[/bold cyan] [dim]{state.indicator}[/dim]",
        border_style="cyan",
    ))


@app.command()
def queue(
    images: bool = typer.Option(False, "--images", "-i", help="Show queued photos instead of changes"),
    failed: bool = typer.Option(False, "--failed", "-f", help="Show failed items instead of pending"),
) -> None:
    """List queued changes or photos in replay order."""
    config = _load_config()
    kind = QueueKind.IMAGES if images else QueueKind.MUTATIONS

    with _open_store(config) as store:
        try:
            items = store.list_failed(kind) if failed else store.list_pending(kind)
        except SynaxError as e:
            _fail(e)

    label = "photo" if images else "change"
    if not items:
        console.print(f"[dim]No {'failed' if failed else 'pending'} {label}s[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Status", width=8)
    if images:
        table.add_column("Entity")
        table.add_column("File")
        table.add_column("Size", justify="right")
        table.add_column("Change", style="dim")
    else:
        table.add_column("Change")
        table.add_column("Retries", justify="right")
        table.add_column("Error", style="red")

    for item in items:
        style = _STATUS_STYLES.get(item.status.value, "white")
        status_cell = f"[{style}]{item.status.value}[/{style}]"
        if images:
            table.add_row(
                str(item.id),
                status_cell,
                f"{item.entity_type} {item.entity_id}",
                item.filename,
                f"{len(item.blob)} B",
                str(item.mutation_id) if item.mutation_id is not None else "-",
            )
        else:
            table.add_row(
                str(item.id),
                status_cell,
                item.label,
                str(item.retry_count),
                (item.error or "")[:60],
            )

    console.print(table)


@app.command()
def enqueue(
    entity_type: str = typer.Argument(..., help="Entity type, e.g. room, asset, issue"),
    entity_id: str = typer.Argument(..., help="Id of the affected entity"),
    action: str = typer.Argument(..., help="create, update or delete"),
    data: str = typer.Option("{}", "--data", "-d", help="JSON request body"),
) -> None:
    """Record an offline change."""
    try:
        body = json.loads(data)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Error:[/bold red] --data is not valid JSON: {e}")
        raise typer.Exit(1)

    config = _load_config()
    with _open_store(config) as store:
        outbox = MutationOutbox(store, SyncStateStore())
        try:
            record = outbox.record(entity_type, entity_id, action, body)
        except SynaxError as e:
            _fail(e)

    console.print(f"[green]Queued change {record.id}:[/green] {record.label}")


@app.command()
def attach(
    entity_type: str = typer.Argument(..., help="checklistItem or issue"),
    entity_id: str = typer.Argument(..., help="Id of the entity the photo belongs to"),
    file: Path = typer.Argument(..., help="Photo to upload", exists=True, dir_okay=False),
    mutation_id: int = typer.Option(None, "--mutation-id", "-m", help="Queued change this photo belongs to"),
) -> None:
    """Queue a photo for upload."""
    config = _load_config()
    with _open_store(config) as store:
        outbox = MutationOutbox(store, SyncStateStore())
        try:
            image = outbox.record_image(
                entity_type, entity_id, file.read_bytes(), file.name, mutation_id=mutation_id
            )
        except SynaxError as e:
            _fail(e)

    console.print(f"[green]Queued photo {image.id}:[/green] {image.label}")


async def _run_sync(config: SynaxConfig, store: LocalStore) -> SyncReport:
    api = _make_client(config)
    state = SyncStateStore()
    engine = SyncEngine(store, api, state)

    try:
        state.set_online(await api.ping(config.health_path))
        if not state.state.is_online:
            console.print(f"[yellow]API unreachable at {config.api_base_url}[/yellow]")
            return SyncReport(skipped=True)

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]Syncing"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("sync", total=100)
            unsubscribe = state.subscribe(
                lambda s: progress.update(task, completed=s.sync_progress)
            )
            try:
                return await engine.sync_now()
            finally:
                unsubscribe()
    finally:
        await api.close()


@app.command()
def sync() -> None:
    """Replay queued changes and photos against the API."""
    config = _load_config()
    if not load_token():
        console.print("[yellow]Not signed in; requests will be sent without a token[/yellow]")

    with _open_store(config) as store:
        report = asyncio.run(_run_sync(config, store))

    _show_report(report)
    if report.aborted:
        raise typer.Exit(1)


@app.command()
def retry(
    max_retries: int = typer.Option(None, "--max-retries", help="Skip changes that failed this many times"),
) -> None:
    """Return failed items to the pending queue."""
    config = _load_config()
    limit = config.max_retries if max_retries is None else max_retries

    with _open_store(config) as store:
        outbox = MutationOutbox(store, SyncStateStore())
        try:
            interrupted = sum(outbox.recover_interrupted())
            mutations, images = outbox.retry_failed(max_retries=limit)
            stalled = len(outbox.failed())
        except SynaxError as e:
            _fail(e)

    if interrupted:
        console.print(f"[yellow]Recovered {interrupted} item(s) from an interrupted sync[/yellow]")
    console.print(f"[green]Re-queued {mutations} change(s) and {images} photo(s)[/green]")
    if stalled:
        console.print(
            f"[yellow]{stalled} change(s) reached {limit} retries and stay failed[/yellow] "
            "[dim]- use 'synax purge' to drop them[/dim]"
        )


@app.command()
def purge(
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Delete every failed change and photo."""
    if not yes and not typer.confirm("Delete all failed changes and photos?"):
        raise typer.Exit(0)

    config = _load_config()
    with _open_store(config) as store:
        outbox = MutationOutbox(store, SyncStateStore())
        try:
            mutations, images = outbox.purge_failed()
        except SynaxError as e:
            _fail(e)

    console.print(f"[green]Deleted {mutations} failed change(s) and {images} failed photo(s)[/green]")


@app.command()
def login(token: str = typer.Argument(..., help="Bearer token issued by the Synax API")) -> None:
    """Store the API token."""
    try:
        save_token(token)
    except SynaxError as e:
        _fail(e)
    console.print(f"[green]Token saved to {get_credentials_file()}[/green]")


@app.command()
def logout(
    keep_data: bool = typer.Option(False, "--keep-data", help="Keep the offline database"),
) -> None:
    """Forget the API token and wipe offline data."""
    config = _load_config()

    if not keep_data:
        with _open_store(config) as store:
            engine = SyncEngine(store, _make_client(config), SyncStateStore())
            try:
                pending = store.database_stats().pending_mutations
            except SynaxError as e:
                _fail(e)
            if pending and not typer.confirm(f"{pending} change(s) were never synced. Delete them?"):
                raise typer.Exit(1)
            try:
                engine.clear_local_data()
            except SynaxError as e:
                _fail(e)

    clear_token()
    console.print("[green]Signed out[/green]")


async def _watch(config: SynaxConfig, store: LocalStore, duration: float) -> None:
    api = _make_client(config)
    state = SyncStateStore(SyncState(is_online=False))
    engine = SyncEngine(store, api, state)
    engine.refresh_database_stats()

    source = ProbeConnectivitySource(
        lambda: api.ping(config.health_path),
        interval=config.probe_interval,
        online=False,
    )
    monitor = ConnectivityMonitor(source, state, store, engine)

    last_indicator = [state.state.indicator]

    def on_change(s: SyncState) -> None:
        if s.indicator != last_indicator[0]:
            last_indicator[0] = s.indicator
            console.print(f"[dim]{s.indicator}[/dim]")

    unsubscribe = state.subscribe(on_change)
    stop = asyncio.Event()
    monitor.start()
    probe = asyncio.create_task(source.run(stop))
    try:
        if duration > 0:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()
    finally:
        stop.set()
        await probe
        monitor.stop()
        await monitor.drain()
        unsubscribe()
        await api.close()


@app.command()
def watch(
    duration: float = typer.Option(0, "--duration", help="Stop after N seconds (0 = until Ctrl+C)"),
) -> None:
    """Probe the API and sync automatically whenever it comes back."""
    config = _load_config()
    console.print(
        f"[dim]Watching {config.api_base_url} every {config.probe_interval:g}s (Ctrl+C to stop)[/dim]"
    )
    with _open_store(config) as store:
        try:
            asyncio.run(_watch(config, store, duration))
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped watching[/dim]")


@app.command()
def logs(
    log_type: str = typer.Option("all", "--type", "-t", help="Log type: sync, connectivity, all"),
    since: str = typer.Option(None, "--since", "-s", help="Time filter (ISO or relative: 1h, 30m, 2d)"),
    cycle: str = typer.Option(None, "--cycle", help="Filter by sync cycle ID"),
    event: str = typer.Option(None, "--event", "-e", help="Filter by event, e.g. item_failed"),
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    stats: bool = typer.Option(False, "--stats", help="Show cycle statistics instead of entries"),
) -> None:
    """View structured sync and connectivity logs."""
    try:
        entries = query_logs(
            log_type="sync" if stats else log_type,
            since=since,
            cycle_id=cycle,
            event=event,
            limit=tail if not stats else 10000,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not entries:
        console.print("[dim]No log entries found[/dim]")
        return

    if stats:
        summary = summarize_cycles(entries)
        table = Table(show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Cycles completed", str(summary["cycles_completed"]))
        table.add_row("Cycles aborted", str(summary["cycles_aborted"]))
        table.add_row("Items synced", str(summary["items_synced"]))
        table.add_row("Items failed", str(summary["items_failed"]))
        table.add_row("Cycle p50", f"{summary['duration_p50_ms']:.0f}ms")
        table.add_row("Cycle p95", f"{summary['duration_p95_ms']:.0f}ms")
        for error_type, count in sorted(summary["failure_types"].items()):
            table.add_row(f"  {error_type}", str(count))
        console.print(table)
        return

    # Most recent last
    for entry in reversed(entries[:tail]):
        line = format_entry_line(entry)
        if entry.get("event") in ("item_failed", "cycle_aborted"):
            console.print(line, style="red", markup=False)
        elif entry.get("_source") == "connectivity":
            console.print(line, style="cyan", markup=False)
        else:
            console.print(line, style="dim", markup=False)


if __name__ == "__main__":
    app()
