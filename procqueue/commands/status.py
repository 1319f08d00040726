from __future__ import annotations
from rich.console import Console
from rich.table import Table
from ..store import QueueStore

console = Console()

def status(store: QueueStore):
    stats = store.get_stats()

    job_table = Table(title="Queue Summary")
    job_table.add_column("status")
    job_table.add_column("count")
    for key, value in stats.as_dict().items():
        job_table.add_row(key, str(value))
    console.print(job_table)
