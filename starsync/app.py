"""Typer CLI entrypoint for starsync."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, GlobalConfig
from .engine import GitHubStarsClient
from .exceptions import StarSyncError
from .infra import SQLiteManager
from .logging_conf import APP_LOG, ERROR_LOG, configure_logging, default_log_dir, tail_log
from .models import SearchResult, SyncOutcome, SyncStatus
from .orchestrator import SyncOrchestrator
from .scheduler import APSchedulerAdapter
from .search import SearchQueryEngine
from .store import RunHistory, SQLiteRecordStore
from .ui import SyncProgress

app = typer.Typer(
    help="Sync starred repositories into a local store and search them.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(name="config", help="Inspect configuration.", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="Inspect log files.", no_args_is_help=True, rich_markup_mode=None)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    store: SQLiteRecordStore
    history: RunHistory
    orchestrator: SyncOrchestrator
    search_engine: SearchQueryEngine
    scheduler: APSchedulerAdapter


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load_global_config()
    manager = SQLiteManager()
    store_path = repository.store_path(config)
    store = SQLiteRecordStore(manager, store_path, prefix_match=config.search.prefix_match)
    history = RunHistory(manager, store_path)
    client = GitHubStarsClient(config.api, repository.resolve_token(config))
    orchestrator = SyncOrchestrator(client, store, config.sync, history=history)
    return AppState(
        repository=repository,
        config=config,
        store=store,
        history=history,
        orchestrator=orchestrator,
        search_engine=SearchQueryEngine(store, config.search),
        scheduler=APSchedulerAdapter(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _progress_default_enabled() -> bool:
    return console.is_terminal


def _fail(exc: StarSyncError) -> None:
    console.print(f"{type(exc).__name__} ({exc.kind.value}): {exc.message}", style="red")
    raise typer.Exit(code=1)


def _render_outcome(outcome: SyncOutcome) -> Table:
    style = {
        SyncStatus.COMPLETED: "green",
        SyncStatus.CANCELLED: "yellow",
        SyncStatus.FAILED: "red",
    }[outcome.status]
    table = Table(title=f"Sync {outcome.run_id[:8]}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Status", f"[{style}]{outcome.status.value}[/{style}]")
    table.add_row("Pages fetched", str(outcome.pages_fetched))
    table.add_row("Records upserted", str(outcome.records_upserted))
    table.add_row("Records failed", str(outcome.records_failed))
    table.add_row("Failed pages", ", ".join(str(i) for i in outcome.failed_pages) or "-")
    if outcome.truncated:
        table.add_row("Truncated", "max pages reached")
    if outcome.not_attempted_from is not None:
        table.add_row("Not attempted from page", str(outcome.not_attempted_from))
    if outcome.error is not None:
        table.add_row("Error", str(outcome.error))
    return table


def _render_results(query: str, results: Sequence[SearchResult]) -> Table:
    table = Table(title=f"Results for '{query}' · {len(results)}", box=box.SIMPLE_HEAD)
    table.add_column("Rank", justify="right", style="dim")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Owner", style="magenta")
    table.add_column("Language", style="green")
    table.add_column("Stars", justify="right")
    table.add_column("URL", overflow="fold")
    for result in results:
        record = result.record
        table.add_row(
            f"{result.rank:.2f}",
            record.name,
            record.owner,
            record.language or "-",
            str(record.stars),
            record.url,
        )
    return table


def _render_history(entries: Iterable[dict]) -> Table:
    table = Table(title="Sync history", box=box.SIMPLE_HEAD)
    table.add_column("Run", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Pages", justify="right")
    table.add_column("Upserted", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Failed pages", overflow="fold")
    for entry in entries:
        table.add_row(
            str(entry["run_id"])[:8],
            str(entry["status"]),
            str(entry["started_at"]),
            str(entry["pages_fetched"]),
            str(entry["records_upserted"]),
            str(entry["records_failed"]),
            ", ".join(str(i) for i in entry["failed_pages"]) or "-",
        )
    return table


app.add_typer(config_app, name="config")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.")
) -> None:
    ctx.obj = build_state(verbose)


@app.command("sync", help="Run one sync against the remote API now.")
def sync(
    ctx: typer.Context,
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, help="Worker pool size."),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Safety cap on pages."),
    quiet: bool = typer.Option(False, "--quiet", help="Hide the progress display."),
) -> None:
    state = _get_state(ctx)
    enabled = state.config.enable_progress_bar and not quiet and _progress_default_enabled()
    try:
        with SyncProgress(enabled=enabled, console=console) as progress:
            outcome = state.orchestrator.trigger_sync(
                progress, concurrency=concurrency, max_pages=max_pages
            )
    except StarSyncError as exc:
        _fail(exc)
        return
    console.print(_render_outcome(outcome))
    if outcome.status is SyncStatus.FAILED:
        raise typer.Exit(code=1)


@app.command("search", help="Ranked full-text search over synced records.")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search text."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum results."),
) -> None:
    state = _get_state(ctx)
    try:
        results = state.search_engine.search(query, limit=limit)
    except StarSyncError as exc:
        _fail(exc)
        return
    if not results:
        console.print("No matches.", style="dim")
        return
    console.print(_render_results(query, results))


@app.command("status", help="Show store size and the most recent sync.")
def status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    table = Table(title="starsync status", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Store", str(state.store.db_path))
    table.add_row("Records", str(state.store.count()))
    last = state.history.last()
    if last:
        table.add_row("Last run", f"{last['run_id'][:8]} · {last['status']} · {last['finished_at'] or '-'}")
        table.add_row("Last run upserted", str(last["records_upserted"]))
    else:
        table.add_row("Last run", "never")
    console.print(table)


@app.command("history", help="List recent sync runs.")
def history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1, help="Number of runs to show."),
) -> None:
    state = _get_state(ctx)
    entries = state.history.recent(limit=limit)
    if not entries:
        console.print("No sync runs recorded.", style="dim")
        return
    console.print(_render_history(entries))


@app.command("reset", help="Delete every stored record and the run history.")
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm(f"Delete all records in {state.store.db_path}?"):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    state.store.clear()
    state.history.clear()
    console.print("Store cleared.", style="green")


@app.command("serve", help="Run scheduled syncs until interrupted.")
def serve(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    state.orchestrator.register_schedule(state.scheduler, state.config.schedule)
    schedule = state.config.schedule
    console.print(
        f"Scheduler running ({schedule.type.value}: {schedule.value}), "
        f"next sync at {state.scheduler.next_run_time() or '-'}. Ctrl+C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        state.orchestrator.cancel()
    finally:
        state.scheduler.shutdown()
    console.print("Scheduler stopped.", style="dim")


@config_app.command("show", help="Print the effective configuration.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    payload = state.config.model_dump(mode="json")
    if payload["api"].get("token"):
        payload["api"]["token"] = "***"
    console.print(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False))


@config_app.command("path", help="Print the configuration file location.")
def config_path(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(str(state.repository.locator.global_config_path()))


@log_app.command("tail", help="Show the last lines of a log file.")
def log_tail(
    lines: int = typer.Option(100, "--lines", "-n", min=1, help="Number of lines."),
    errors: bool = typer.Option(False, "--errors", help="Read error.log instead of starsync.log."),
) -> None:
    path = default_log_dir() / (ERROR_LOG if errors else APP_LOG)
    content = tail_log(path, lines)
    if not content:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path} · last {len(content)} lines", style="cyan")
    console.print("".join(content), markup=False, highlight=False)


if __name__ == "__main__":  # pragma: no cover
    app()
