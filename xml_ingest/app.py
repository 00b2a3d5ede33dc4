"""Typer CLI entrypoint for xml-ingest."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import ConfigRepository, IngestConfig
from .engine import DocumentTypeResolver
from .errors import IngestError, error_kind, safe_message
from .infra import SQLiteManager
from .logging_conf import configure_logging, default_log_dir, tail_log
from .models import ClaimRecord, IngestResult
from .orchestrator import CycleSummary, IngestionOrchestrator, build_claim_store, build_orchestrator
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Poll a remote directory for XML statements and ingest them.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Inspect or initialise the configuration file.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    scheduler: APSchedulerAdapter
    storage: SQLiteManager
    orchestrator: Optional[IngestionOrchestrator] = None


def build_state(verbose: bool, config_path: Optional[Path] = None) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository(path=config_path)
    return AppState(
        repository=repository,
        scheduler=APSchedulerAdapter(),
        storage=SQLiteManager(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _load_config(state: AppState) -> IngestConfig:
    try:
        return state.repository.load()
    except (ValidationError, ValueError, yaml.YAMLError) as exc:
        console.print(f"Invalid configuration {state.repository.path}:\n{exc}", style="red", markup=False)
        raise typer.Exit(code=1) from exc


def _get_orchestrator(state: AppState) -> IngestionOrchestrator:
    if state.orchestrator is None:
        config = _load_config(state)
        try:
            state.orchestrator = build_orchestrator(
                config,
                state.repository.locator,
                scheduler=state.scheduler,
                storage=state.storage,
            )
        except IngestError as exc:
            console.print(f"Cannot start ingestion: {safe_message(exc)}", style="red", markup=False)
            raise typer.Exit(code=1) from exc
    return state.orchestrator


def _render_summary_table(summary: CycleSummary) -> Table:
    table = Table(title=f"Poll cycle {summary.batch_id[:8]}", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", justify="right")
    table.add_row("listed", str(summary.listed))
    table.add_row("eligible", str(summary.eligible))
    table.add_row("claimed", str(summary.claimed))
    table.add_row("parsed", str(summary.success))
    table.add_row("failed", str(summary.failed))
    table.add_row("sink errors", str(summary.sink_errors))
    if summary.skipped:
        table.add_row("skipped", "backoff")
    if summary.error:
        table.add_row("error", Text(summary.error), style="red")
    return table


def _render_claims_table(records: list[ClaimRecord]) -> Table:
    table = Table(title=f"Recent claims · {len(records)}", box=box.SIMPLE_HEAD)
    table.add_column("Claimed at", style="green", no_wrap=True)
    table.add_column("Remote path", overflow="fold")
    for record in records:
        table.add_row(record.claimed_at.isoformat(timespec="seconds"), Text(record.path))
    return table


app.add_typer(config_app, name="config", help="Show or initialise the configuration.")
app.add_typer(log_app, name="log", help="Show the ingest log.")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to an alternative configuration file."),
) -> None:
    ctx.obj = build_state(verbose, config)


@app.command("run", help="Start the poll scheduler and block until interrupted.")
def run(
    ctx: typer.Context,
    duration: float = typer.Option(0.0, "--for", help="Stop after N seconds (0 runs until interrupted)."),
) -> None:
    state = _get_state(ctx)
    orchestrator = _get_orchestrator(state)
    orchestrator.start()
    polling = orchestrator.polling
    console.print(
        f"Polling `{polling.remote_directory}` every {polling.poll_interval_ms} ms, press Ctrl+C to stop.",
        style="cyan",
    )
    for job in state.scheduler.list_jobs():
        console.print(f"Job {job['id']}: {job['trigger']}", style="dim", markup=False)
    waiter = Event()
    try:
        if duration > 0:
            waiter.wait(duration)
        else:
            while not waiter.wait(1.0):
                pass
    except KeyboardInterrupt:
        console.print("Interrupted, shutting down.", style="yellow")
    finally:
        orchestrator.stop()
    console.print("Ingestion stopped.", style="green")


@app.command("poll-once", help="Run a single poll cycle and print its summary.")
def poll_once(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    orchestrator = _get_orchestrator(state)
    try:
        summary = orchestrator.run_cycle()
    finally:
        orchestrator.stop()
    console.print(_render_summary_table(summary))
    if summary.error:
        raise typer.Exit(code=1)


@app.command("parse", help="Classify and parse a local XML file without claiming it.")
def parse(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="XML file to parse."),
) -> None:
    resolver = DocumentTypeResolver()
    try:
        with file.open("rb") as stream:
            result = IngestResult.success(file.name, resolver.resolve_stream(stream))
    except IngestError as exc:
        result = IngestResult.failure(file.name, safe_message(exc))
        console.print(f"{error_kind(exc)}: {result.error}", style="red", markup=False)
    console.print_json(json.dumps(result.to_record(), ensure_ascii=False))
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("claims", help="Show the most recent claim records.")
def claims(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1, help="Number of records to show."),
) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    try:
        store = build_claim_store(config, state.repository.locator.project_root, state.storage)
        try:
            records = store.recent(limit)
        finally:
            store.close()
    except IngestError as exc:
        console.print(f"Claim store unavailable: {safe_message(exc)}", style="red", markup=False)
        raise typer.Exit(code=1) from exc
    if not records:
        console.print("No claims recorded yet.", style="dim")
        return
    console.print(_render_claims_table(records))


@config_app.command("show", help="Print the effective configuration as YAML.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    console.print(f"# {state.repository.path}", style="dim")
    console.print(
        yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False, allow_unicode=True),
        markup=False,
        highlight=False,
    )


@config_app.command("init", help="Write a configuration file with default values.")
def config_init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    path = state.repository.path
    if path.exists() and not force:
        console.print(f"{path} already exists, use --force to overwrite.", style="yellow")
        raise typer.Exit(code=1)
    written = state.repository.save(IngestConfig())
    console.print(f"Configuration written to {written}", style="green")


@log_app.command("show", help="Show the last lines of the ingest log.")
def log_show(
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show error.log instead.", is_flag=True),
) -> None:
    path = default_log_dir() / ("error.log" if errors else "ingest.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
