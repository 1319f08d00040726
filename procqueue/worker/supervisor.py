from __future__ import annotations
import signal
import threading
from typing import Optional

from rich.console import Console
from rich.markup import escape

from ..config import WorkerSettings
from ..errors import QueueError
from ..store import QueueStore
from ..util.time import utcnow_iso
from .loop import QueueWorker
from .processors import Processor

console = Console()


def log_initial_stats(store: QueueStore) -> None:
    try:
        stats = store.get_stats()
    except QueueError as e:
        console.log(f"[red]Error fetching queue stats:[/] {escape(str(e))}")
        return
    console.log(
        f"Initial queue statistics: total={stats.total} pending={stats.pending} "
        f"processing={stats.processing} completed={stats.completed} failed={stats.failed}"
    )


def log_status(store: QueueStore, worker: QueueWorker) -> None:
    status = worker.get_status()
    try:
        stats = store.get_stats()
    except QueueError as e:
        console.log(f"[red]Error in status update:[/] {escape(str(e))}")
        return
    console.log(
        f"--- Queue status {utcnow_iso()} --- running={status.is_running} "
        f"backoff={status.current_backoff:.0f}ms consecutive_errors={status.consecutive_errors} | "
        f"{stats.pending} pending, {stats.processing} processing, "
        f"{stats.completed} completed, {stats.failed} failed"
    )


def _install_signal_handlers(stop_event: threading.Event) -> None:
    # signal.signal only works from the main thread
    if threading.current_thread() is not threading.main_thread():
        return

    def _handler(signum, frame):
        console.log(f"Received signal {signum}, shutting down after the current job")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


def run_worker(
    store: QueueStore,
    processor: Processor,
    settings: WorkerSettings,
    stop_event: Optional[threading.Event] = None,
    install_signals: bool = True,
) -> QueueWorker:
    """Long-running entry point: start the loop and log a status snapshot periodically."""
    if stop_event is None:
        stop_event = threading.Event()
    worker = QueueWorker(
        store,
        processor,
        poll_interval_ms=settings.poll_interval_ms,
        max_backoff_ms=settings.max_backoff_ms,
        backoff_multiplier=settings.backoff_multiplier,
    )

    console.log("[bold]Material processing queue worker[/]")
    console.log(
        f"Configuration: poll={settings.poll_interval_ms}ms max_backoff={settings.max_backoff_ms}ms "
        f"multiplier={settings.backoff_multiplier} status_every={settings.status_interval_seconds}s"
    )
    log_initial_stats(store)

    if install_signals:
        _install_signal_handlers(stop_event)
    worker.start()
    try:
        while not stop_event.wait(settings.status_interval_seconds):
            if not worker.is_running:
                console.log(f"[red]Worker {escape(worker.worker_id)} stopped unexpectedly[/]")
                break
            log_status(store, worker)
    except KeyboardInterrupt:
        console.log("CTRL+C received → graceful stop")
    finally:
        worker.stop()
    console.log("Graceful shutdown complete")
    return worker
