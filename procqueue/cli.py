from __future__ import annotations
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import get_value, set_value, get_all, ensure_bootstrapped, load_worker_settings
from .errors import ConfigError, QueueError

app = typer.Typer(add_completion=False, help="procqueue — material processing queue")
console = Console()


def _store(max_attempts: Optional[int] = None):
    from .store import QueueStore
    try:
        return QueueStore(max_attempts=max_attempts)
    except QueueError as e:
        console.print(f"[red]Queue database unavailable[/]: {escape(str(e))}")
        raise typer.Exit(code=1)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.callback()
def _bootstrap() -> None:
    """Ensure DB is initialized before any command."""
    try:
        ensure_bootstrapped()
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(code=1)


# ---------------------------
# config group
# ---------------------------
config_app = typer.Typer(help="Manage procqueue configuration")
app.add_typer(config_app, name="config")


@config_app.command("get")
def config_get(key: str = typer.Argument(..., help="Config key (e.g., max_attempts)")):
    value = get_value(key)
    if value is None:
        console.print(f"[yellow]{key}[/] is not set")
        raise typer.Exit(code=1)
    console.print(value)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key (e.g., max_attempts)"),
    value: str = typer.Argument(..., help="Value as string (e.g., 3)"),
):
    try:
        set_value(key, value)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(code=1)
    console.print(f"[green]OK[/] {key}={value}")


@config_app.command("show")
def config_show():
    cfg = get_all()
    table = Table(title="procqueue config")
    table.add_column("key")
    table.add_column("value")
    for k, v in cfg.items():
        table.add_row(k, v)
    console.print(table)


# ---------------------------
# jobs
# ---------------------------
@app.command("enqueue")
def enqueue(
    payload_ref: str = typer.Argument(..., help="Reference of the resource to process (e.g., a material id)"),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", "-m", help="Override the configured max_attempts"),
):
    store = _store()
    try:
        job = store.enqueue(payload_ref, max_attempts=max_attempts)
    except (ValueError, QueueError) as e:
        console.print(f"[red]Failed to enqueue job:[/] {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(f"[green]Job enqueued:[/] {job.id} (payload={escape(job.payload_ref)}, max_attempts={job.max_attempts})")


@app.command("status")
def _status():
    from .commands.status import status
    try:
        status(_store())
    except QueueError as e:
        console.print(f"[red]Error fetching queue stats:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command("list")
def _list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only jobs in this status"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n"),
):
    from .commands.list_jobs import list_jobs
    if not list_jobs(_store(), status, limit):
        raise typer.Exit(code=1)


@app.command("show")
def _show(
    target: str = typer.Argument(..., help="Job id, or payload ref with --payload"),
    by_payload: bool = typer.Option(False, "--payload", help="Look up the latest job for a payload ref"),
):
    from .commands.list_jobs import show_job
    store = _store()
    job_id = target
    if by_payload:
        job = store.get_job_by_payload(target)
        if job is None:
            console.print(f"[red]No job for payload {escape(target)}[/]")
            raise typer.Exit(code=1)
        job_id = job.id
    if not show_job(store, job_id):
        raise typer.Exit(code=1)


# ---------------------------
# worker group
# ---------------------------
worker_app = typer.Typer(help="Run the processing worker")
app.add_typer(worker_app, name="worker")


@worker_app.command("start")
def worker_start(
    processor: Optional[str] = typer.Option(None, "--processor", "-p", help="Processor callable as package.module:function"),
    command: Optional[str] = typer.Option(None, "--cmd", "-c", help="Shell command template containing {payload}"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-job timeout in seconds (--cmd only)"),
    poll_interval: Optional[int] = typer.Option(None, "--poll-interval", help="Poll interval in ms (overrides QUEUE_POLL_INTERVAL)"),
):
    from .worker.processors import CommandProcessor, load_processor
    from .worker.supervisor import run_worker

    try:
        if bool(processor) == bool(command):
            raise ConfigError("Exactly one of --processor or --cmd must be provided.")
        settings = load_worker_settings(poll_interval_ms=poll_interval)
        fn = load_processor(processor) if processor else CommandProcessor(command, timeout=timeout)
    except ConfigError as e:
        console.print(f"[red]Fatal configuration error:[/] {escape(str(e))}")
        raise typer.Exit(code=1)

    run_worker(_store(settings.max_attempts), fn, settings)


if __name__ == "__main__":
    app()
