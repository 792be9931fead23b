"""Typer CLI entrypoint for the hyperlocal pipeline."""

from __future__ import annotations

import json
import signal
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, JobConfig
from .engine import ThreadPoolManager
from .errors import ConfigurationError, InvalidTransitionError
from .logging_conf import available_job_logs, configure_logging, job_log_path, log_dir, tail_log
from .orchestrator import Orchestrator, RunOptions, RunSummary
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Hyperlocal content pipeline command line.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
job_app = typer.Typer(name="job", help="Job configuration commands.", no_args_is_help=True)
entity_app = typer.Typer(name="entity", help="Entity onboarding commands.", no_args_is_help=True)
artifact_app = typer.Typer(name="artifact", help="Artifact review commands.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log viewing commands.", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    scheduler: APSchedulerAdapter
    orchestrator: Orchestrator
    thread_pool: ThreadPoolManager


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    scheduler = APSchedulerAdapter()
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    orchestrator = Orchestrator(
        config_repository=repository,
        scheduler=scheduler,
        thread_pool=thread_pool,
    )
    return AppState(
        repository=repository,
        scheduler=scheduler,
        orchestrator=orchestrator,
        thread_pool=thread_pool,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _parse_datetime(value: str, option_name: str) -> datetime:
    text = value.strip()
    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        moment = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise typer.BadParameter(
            f"{option_name} expects ISO8601, e.g. 2024-10-14T08:00+02:00."
        ) from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------
def _render_summary(summary: RunSummary) -> Table:
    table = Table(title=f"{summary.job} run result", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")
    rows = (
        ("Due", summary.due),
        ("Created", summary.created),
        ("Already exists", summary.already_exists),
        ("No content", summary.no_content),
        ("Failed", summary.failed),
        ("Outside window", summary.skipped_window),
        ("Already satisfied", summary.skipped_satisfied),
        ("Invalid timezone", summary.invalid_timezone),
        ("Deferred", summary.deferred),
        ("Filtered out", summary.filtered.dropped),
        ("Hook failures", summary.hook_failures),
    )
    for label, value in rows:
        table.add_row(label, str(value))
    return table


def _render_jobs_table(jobs: Sequence[JobConfig], scheduled: Iterable[dict[str, Any]]) -> Table:
    next_runs = {str(item.get("id")): item.get("next_run_time") for item in scheduled}
    table = Table(title=f"Jobs · {len(jobs)} configured", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Kind", style="magenta")
    table.add_column("Schedule", style="yellow")
    table.add_column("Window", style="green")
    table.add_column("Sources", overflow="fold")
    table.add_column("Next run", style="dim")
    for job in jobs:
        window = f"{job.window.start_hour:02d}-{job.window.end_hour:02d}h" if job.window else "-"
        table.add_row(
            job.job_name,
            job.kind.value,
            (job.schedule or "-") if job.enabled else "disabled",
            window,
            ", ".join(source.name for source in job.sources),
            str(next_runs.get(f"job::{job.job_name}", "-")),
        )
    return table


def _render_records(title: str, records: Sequence[dict[str, Any]], columns: Sequence[str]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    for column in columns:
        table.add_column(column, overflow="fold")
    for record in records:
        table.add_row(*("" if record.get(column) is None else str(record.get(column)) for column in columns))
    return table


app.add_typer(job_app, name="job")
app.add_typer(entity_app, name="entity")
app.add_typer(artifact_app, name="artifact")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


# ----------------------------------------------------------------------
# Runs
# ----------------------------------------------------------------------
@app.command("run", help="Run a content job once over every due entity.")
def run_job(
    ctx: typer.Context,
    job: str = typer.Argument(..., help="Job name."),
    test: Optional[str] = typer.Option(
        None, "--test", help="Process only this entity, ignoring window and satisfaction checks."
    ),
    batch: Optional[int] = typer.Option(None, "--batch", min=1, help="Entities processed concurrently."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Process at most N entities."),
    force: bool = typer.Option(False, "--force", help="Ignore the local-time window.", is_flag=True),
    quiet: bool = typer.Option(False, "--quiet", help="Print a one-line summary.", is_flag=True),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    options = RunOptions(test_entity_id=test, batch_size=batch, limit=limit, force=force)
    try:
        summary = state.orchestrator.run_job(job, options)
    except FileNotFoundError:
        console.print(f"Job `{job}` not found.", style="red")
        raise typer.Exit(code=1)
    except ConfigurationError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=2)
    if as_json:
        console.print_json(json.dumps(summary.as_dict(), default=str))
    elif quiet:
        console.print(
            f"{summary.job}: created {summary.created}, existing {summary.already_exists}, "
            f"failed {summary.failed}, due {summary.due}"
        )
    else:
        console.print(_render_summary(summary))
    for error in summary.errors:
        console.print(f"- {error}", style="red" if summary.failed else "yellow")
    if summary.failed:
        raise typer.Exit(code=1)


@app.command("sweep", help="Publish scheduled artifacts whose time has come.")
def sweep(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    published = state.orchestrator.sweep()
    console.print(f"Published {len(published)} scheduled artifacts.", style="green")


@app.command("serve", help="Run every enabled job on its crontab until interrupted.")
def serve(
    ctx: typer.Context,
    http_port: Optional[int] = typer.Option(
        None, "--http", help="Also serve the cron HTTP endpoints on this port."
    ),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address for --http."),
) -> None:
    state = _get_state(ctx)
    jobs = state.repository.list_jobs()
    registered = state.orchestrator.register_schedules(jobs)
    console.print(f"Scheduled {registered} of {len(jobs)} jobs. Press Ctrl+C to stop.", style="green")
    try:
        if http_port is not None:
            import uvicorn

            from .web import create_app

            uvicorn.run(create_app(lambda: state.orchestrator), host=host, port=http_port)
        else:
            stop = threading.Event()
            signal.signal(signal.SIGTERM, lambda *_: stop.set())
            try:
                stop.wait()
            except KeyboardInterrupt:
                pass
    finally:
        state.scheduler.shutdown()
        state.thread_pool.shutdown(wait=False)
        state.orchestrator.close()
    console.print("Scheduler stopped.", style="dim")


@app.command("runs", help="Show recent run summaries.")
def runs(
    ctx: typer.Context,
    job: Optional[str] = typer.Option(None, "--job", help="Only runs of this job."),
    limit: int = typer.Option(20, "--limit", help="Number of runs to show."),
) -> None:
    state = _get_state(ctx)
    records = state.orchestrator.list_runs(job=job, limit=limit)
    if not records:
        console.print("No runs recorded yet.", style="dim")
        return
    rows = []
    for record in records:
        summary = record.get("summary") or {}
        rows.append(
            {
                "started_at": record.get("started_at"),
                "job": record.get("job"),
                "success": record.get("success"),
                "partial": record.get("partial"),
                "created": summary.get("created", 0),
                "failed": summary.get("failed", 0),
                "stop_reason": summary.get("stop_reason"),
            }
        )
    console.print(
        _render_records(
            f"Last {len(rows)} runs",
            rows,
            ("started_at", "job", "success", "partial", "created", "failed", "stop_reason"),
        )
    )


# ----------------------------------------------------------------------
# Jobs and entities
# ----------------------------------------------------------------------
@job_app.command("list", help="List configured jobs and their schedule.")
def job_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    jobs = state.repository.list_jobs()
    if not jobs:
        console.print(
            f"No jobs configured; add YAML files under {state.repository.locator.jobs_dir}.",
            style="yellow",
        )
        raise typer.Exit(code=0)
    console.print(_render_jobs_table(jobs, state.scheduler.list_jobs()))


@entity_app.command("import", help="Import entities from a YAML or JSON file.")
def entity_import(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Entity file."),
) -> None:
    state = _get_state(ctx)
    try:
        created, updated = state.orchestrator.import_entities(path)
    except ValueError as exc:
        console.print(f"Invalid entity file: {exc}", style="red")
        raise typer.Exit(code=1)
    console.print(f"Imported entities: {created} new, {updated} updated.", style="green")


@entity_app.command("list", help="List known entities.")
def entity_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    records = state.orchestrator.list_entities()
    if not records:
        console.print("No entities yet; use `hyperlocal entity import`.", style="dim")
        return
    console.print(
        _render_records(
            f"Entities · {len(records)}",
            records,
            ("id", "name", "city", "country", "timezone", "active"),
        )
    )


# ----------------------------------------------------------------------
# Artifacts
# ----------------------------------------------------------------------
@artifact_app.command("list", help="List recent artifacts.")
def artifact_list(
    ctx: typer.Context,
    entity: Optional[str] = typer.Option(None, "--entity", help="Filter by entity id."),
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
    job: Optional[str] = typer.Option(None, "--job", help="Filter by job."),
    limit: int = typer.Option(20, "--limit", help="Number of artifacts to show."),
) -> None:
    state = _get_state(ctx)
    records = state.orchestrator.list_artifacts(entity_id=entity, status=status, job=job, limit=limit)
    if not records:
        console.print("No artifacts found.", style="dim")
        return
    console.print(
        _render_records(
            f"Artifacts · {len(records)}",
            records,
            ("id", "job", "entity_id", "status", "headline", "created_at"),
        )
    )


@artifact_app.command("status", help="Move an artifact to a new status.")
def artifact_status(
    ctx: typer.Context,
    artifact_id: str = typer.Argument(..., help="Artifact id."),
    status: str = typer.Argument(..., help="Target status."),
    reset: bool = typer.Option(False, "--reset", help="Allow rejected -> draft.", is_flag=True),
    at: Optional[str] = typer.Option(None, "--at", help="Publish time when scheduling (ISO8601)."),
) -> None:
    state = _get_state(ctx)
    scheduled_for = _parse_datetime(at, "--at") if at else None
    try:
        record = state.orchestrator.set_status(
            artifact_id, status, reset=reset, scheduled_for=scheduled_for
        )
    except KeyError:
        console.print(f"Artifact `{artifact_id}` not found.", style="red")
        raise typer.Exit(code=1)
    except (InvalidTransitionError, ValueError) as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)
    console.print(f"Artifact `{artifact_id}` is now {record['status']}.", style="green")


@artifact_app.command("resend", help="Republish an artifact as a fresh copy.")
def artifact_resend(
    ctx: typer.Context,
    artifact_id: str = typer.Argument(..., help="Artifact id."),
    reason: str = typer.Option("", "--reason", help="Recorded with the resend."),
) -> None:
    state = _get_state(ctx)
    result = state.orchestrator.resend(artifact_id, reason=reason)
    if not result.created:
        console.print(f"Resend not performed: {result.outcome.value} {result.error or ''}".strip(), style="red")
        raise typer.Exit(code=1)
    console.print(f"Resent as `{result.slug}` ({result.artifact_id}).", style="green")


# ----------------------------------------------------------------------
# Logs
# ----------------------------------------------------------------------
@log_app.command("list", help="List job log files.")
def log_list() -> None:
    logs = list(available_job_logs())
    if not logs:
        console.print("No job logs yet.", style="dim")
        return
    table = Table(title="Log files", box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of the pipeline log or a job log.")
def log_show(
    job: Optional[str] = typer.Option(None, "--job", help="Job name (default: pipeline log)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    path = job_log_path(job) if job else log_dir() / "pipeline.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{job or 'pipeline'} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
