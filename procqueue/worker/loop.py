from __future__ import annotations
import threading
from typing import Optional

from rich.console import Console
from rich.markup import escape

from ..constants import DEFAULTS, MIN_POLL_INTERVAL_MS
from ..errors import QueueError
from ..models import Job, WorkerStatus
from ..store import QueueStore
from ..util.ids import make_worker_id
from .processors import Processor

console = Console()


class QueueWorker:
    """Cooperative polling loop over a QueueStore.

    One loop per instance. Several instances may share a store; the store's
    atomic claim keeps them from processing the same job. After an error the
    wait between polls grows by ``backoff_multiplier`` up to ``max_backoff_ms``
    and drops back to the poll interval after the next clean iteration.
    """

    def __init__(
        self,
        store: QueueStore,
        processor: Processor,
        poll_interval_ms: int = int(DEFAULTS["poll_interval_ms"]),
        max_backoff_ms: int = int(DEFAULTS["max_backoff_ms"]),
        backoff_multiplier: float = float(DEFAULTS["backoff_multiplier"]),
        worker_id: Optional[str] = None,
    ):
        if backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        self.store = store
        self.processor = processor
        self.worker_id = worker_id or make_worker_id()
        self._tag = escape(f"[{self.worker_id}]")
        self.max_backoff = max_backoff_ms
        self.backoff_multiplier = backoff_multiplier
        self.consecutive_errors = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self.set_poll_interval(poll_interval_ms, quiet=True)

    # -----------------------
    # Lifecycle
    # -----------------------
    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            if not self._stop_event.is_set():
                console.log(f"{self._tag} already running")
                return
            # previous loop was told to stop but has not exited yet
            self._thread.join()
        elif self._running:
            console.log(f"{self._tag} already running")
            return
        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._run, name=self.worker_id, daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop after the current iteration; an in-flight job is never interrupted."""
        if not self._running:
            console.log(f"{self._tag} not running")
            return
        console.log(f"{self._tag} stopping...")
        self._stop_event.set()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def run(self) -> None:
        """Run the loop in the calling thread until stop() is called."""
        if self._running:
            raise RuntimeError(f"Worker {self.worker_id} is already running")
        self._stop_event.clear()
        self._running = True
        self._run()

    def _run(self) -> None:
        console.log(f"[bold cyan]{self._tag} started[/] (poll={self.poll_interval}ms)")
        try:
            while not self._stop_event.is_set():
                if self._stop_event.wait(self.current_backoff / 1000.0):
                    break
                self.run_once()
        finally:
            self._running = False
            console.log(f"{self._tag} stopped")

    # -----------------------
    # One iteration
    # -----------------------
    def run_once(self) -> Optional[Job]:
        """Claim, process and record one job. Returns the claimed job, if any."""
        try:
            job = self.store.claim_next()
        except QueueError as e:
            console.log(f"[red]{self._tag} queue error while claiming:[/] {escape(str(e))}")
            self._record_error()
            return None

        if job is None:
            self._record_success()
            return None

        console.log(f"{self._tag} Picked job: {job.id} | payload: {escape(job.payload_ref)} "
                    f"(attempt {job.attempts}/{job.max_attempts})")
        try:
            result = self.processor(job.payload_ref)
            if result is False:
                raise RuntimeError("Processor reported failure")
        except Exception as e:
            self._fail(job, e)
            self._record_error()
            return job

        try:
            self.store.mark_completed(job.id)
        except QueueError as e:
            console.log(f"[red]{self._tag} could not mark {job.id} completed:[/] {escape(str(e))}")
            self._record_error()
            return job

        console.log(f"{self._tag} completed: {job.id}")
        self._record_success()
        return job

    def _fail(self, job: Job, exc: Exception) -> None:
        error = str(exc) or type(exc).__name__
        console.log(f"[red]{self._tag} job {job.id} failed:[/] {escape(error)}")
        try:
            updated = self.store.mark_failed(job.id, error)
        except QueueError as e:
            console.log(f"[red]{self._tag} could not record failure of {job.id}:[/] {escape(str(e))}")
            return
        if updated.is_terminal:
            console.log(f"{self._tag} job {job.id} failed permanently after {updated.attempts} attempts")
        else:
            console.log(f"{self._tag} job {job.id} will retry (attempt {updated.attempts}/{updated.max_attempts})")

    # -----------------------
    # Backoff
    # -----------------------
    def _record_error(self) -> None:
        self.consecutive_errors += 1
        new_backoff = min(self.current_backoff * self.backoff_multiplier, self.max_backoff)
        console.log(
            f"{self._tag} {self.consecutive_errors} consecutive errors; "
            f"backing off from {self.current_backoff:.0f}ms to {new_backoff:.0f}ms"
        )
        self.current_backoff = new_backoff

    def _record_success(self) -> None:
        if self.consecutive_errors > 0:
            console.log(f"{self._tag} recovered, resetting backoff")
        self.consecutive_errors = 0
        self.current_backoff = self.poll_interval

    def set_poll_interval(self, interval_ms: int, quiet: bool = False) -> None:
        if interval_ms < MIN_POLL_INTERVAL_MS:
            raise ValueError(f"Poll interval must be at least {MIN_POLL_INTERVAL_MS}ms")
        if interval_ms > self.max_backoff:
            raise ValueError(f"Poll interval must not exceed max backoff ({self.max_backoff}ms)")
        self.poll_interval = interval_ms
        self.current_backoff = interval_ms
        if not quiet:
            console.log(f"{self._tag} poll interval set to {interval_ms}ms")

    def get_status(self) -> WorkerStatus:
        return WorkerStatus(
            is_running=self._running,
            poll_interval=self.poll_interval,
            current_backoff=self.current_backoff,
            consecutive_errors=self.consecutive_errors,
        )
