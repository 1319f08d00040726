from __future__ import annotations
from typing import Optional
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from ..constants import JobStatus
from ..store import QueueStore

console = Console()

def list_jobs(store: QueueStore, status: Optional[str] = None, limit: Optional[int] = None) -> bool:
    valid = [s.value for s in JobStatus]
    if status is not None and status not in valid:
        console.print(f"[red]Invalid status. Must be one of: {', '.join(valid)}")
        return False

    jobs = store.list_jobs(JobStatus(status) if status else None, limit=limit)

    table = Table(title=f"Jobs ({status or 'all'})")
    table.add_column("id")
    table.add_column("payload")
    table.add_column("status")
    table.add_column("attempts")
    table.add_column("created_at")
    table.add_column("last_error")

    for j in jobs:
        table.add_row(j.id, escape(j.payload_ref), j.status.value, f"{j.attempts}/{j.max_attempts}",
                      j.created_at, escape(j.last_error or ""))

    console.print(table)
    return True


def show_job(store: QueueStore, job_id: str) -> bool:
    job = store.get_job(job_id)
    if job is None:
        console.print(f"[red]Job {job_id} not found[/]")
        return False

    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_column("field")
    table.add_column("value")
    table.add_row("payload", escape(job.payload_ref))
    table.add_row("status", job.status.value)
    table.add_row("attempts", f"{job.attempts}/{job.max_attempts}")
    table.add_row("created_at", job.created_at)
    table.add_row("updated_at", job.updated_at)
    table.add_row("started_at", job.started_at or "—")
    table.add_row("completed_at", job.completed_at or "—")
    table.add_row("last_error", escape(job.last_error or "—"))
    console.print(table)
    return True
