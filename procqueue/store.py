from __future__ import annotations
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from rich.console import Console
from rich.markup import escape

from .config import parse_value
from .constants import DEFAULTS, JobStatus, MAX_ERROR_LENGTH
from .db import PathLike, db_path, get_connection, get_config, init_db
from .errors import JobNotFoundError, JobStateError, QueueStoreError
from .models import Job, QueueStats
from .util.ids import new_job_id
from .util.time import utcnow_iso

console = Console()


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class QueueStore:
    """SQLite-backed processing queue.

    Each operation opens its own connection, so one store (or one database
    file) may be shared by several worker threads and processes. All status
    transitions go through enqueue / claim_next / mark_completed /
    mark_failed.
    """

    def __init__(self, path: Optional[PathLike] = None, max_attempts: Optional[int] = None):
        self.path = path or db_path()
        try:
            init_db(self.path)
            if max_attempts is None:
                max_attempts = parse_value("max_attempts", get_config("max_attempts", DEFAULTS["max_attempts"], self.path))
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot open queue database {self.path}: {e}") from e
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    # -----------------------
    # Connection handling
    # -----------------------
    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self.path)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot connect to queue database: {e}") from e
        try:
            # IMMEDIATE takes the write lock up front so select-then-update is atomic
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            _rollback(conn)
            raise QueueStoreError(str(e)) from e
        except BaseException:
            _rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _fetch(conn: sqlite3.Connection, job_id: str) -> Optional[sqlite3.Row]:
        return conn.execute("SELECT * FROM processing_queue WHERE id=?", (job_id,)).fetchone()

    # -----------------------
    # Transitions
    # -----------------------
    def enqueue(self, payload_ref: str, max_attempts: Optional[int] = None) -> Job:
        if not payload_ref or not str(payload_ref).strip():
            raise ValueError("payload_ref cannot be empty")
        retries = self.max_attempts if max_attempts is None else int(max_attempts)
        if retries < 1:
            raise ValueError("max_attempts must be at least 1")

        job_id = new_job_id()
        now = utcnow_iso()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO processing_queue(id, payload_ref, status, attempts, max_attempts,
                                             created_at, updated_at)
                VALUES(?, ?, ?, 0, ?, ?, ?)
                """,
                (job_id, str(payload_ref), JobStatus.PENDING.value, retries, now, now),
            )
            job = Job.from_row(self._fetch(conn, job_id))
        console.log(f"Added job {job.id} to queue for {escape(job.payload_ref)}")
        return job

    def claim_next(self) -> Optional[Job]:
        """Atomically claim the oldest pending job, or return None."""
        with self._transaction(immediate=True) as conn:
            row = conn.execute(
                """
                SELECT id
                FROM processing_queue
                WHERE status = ?
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (JobStatus.PENDING.value,),
            ).fetchone()
            if not row:
                return None

            now = utcnow_iso()
            updated = conn.execute(
                """
                UPDATE processing_queue
                SET status = ?, attempts = attempts + 1, started_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (JobStatus.PROCESSING.value, now, now, row["id"], JobStatus.PENDING.value),
            )
            if updated.rowcount != 1:
                return None
            return Job.from_row(self._fetch(conn, row["id"]))

    def _require_processing(self, conn: sqlite3.Connection, job_id: str) -> sqlite3.Row:
        row = self._fetch(conn, job_id)
        if row is None:
            raise JobNotFoundError(job_id)
        if row["status"] != JobStatus.PROCESSING.value:
            raise JobStateError(job_id, row["status"], JobStatus.PROCESSING.value)
        return row

    def mark_completed(self, job_id: str) -> Job:
        with self._transaction(immediate=True) as conn:
            self._require_processing(conn, job_id)
            now = utcnow_iso()
            conn.execute(
                "UPDATE processing_queue SET status=?, completed_at=?, updated_at=? WHERE id=? AND status=?",
                (JobStatus.COMPLETED.value, now, now, job_id, JobStatus.PROCESSING.value),
            )
            return Job.from_row(self._fetch(conn, job_id))

    def mark_failed(self, job_id: str, error: str) -> Job:
        """Record a failed attempt; re-queue while attempts remain, else fail for good."""
        msg = (error or "").strip() or "Processing failed (no error message)"
        with self._transaction(immediate=True) as conn:
            row = self._require_processing(conn, job_id)
            now = utcnow_iso()
            if int(row["attempts"]) < int(row["max_attempts"]):
                conn.execute(
                    "UPDATE processing_queue SET status=?, last_error=?, updated_at=? WHERE id=?",
                    (JobStatus.PENDING.value, msg[:MAX_ERROR_LENGTH], now, job_id),
                )
            else:
                conn.execute(
                    """
                    UPDATE processing_queue
                    SET status=?, last_error=?, completed_at=?, updated_at=?
                    WHERE id=?
                    """,
                    (JobStatus.FAILED.value, msg[:MAX_ERROR_LENGTH], now, now, job_id),
                )
            return Job.from_row(self._fetch(conn, job_id))

    # -----------------------
    # Reads
    # -----------------------
    def get_stats(self) -> QueueStats:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS c FROM processing_queue GROUP BY status"
            ).fetchall()
        valid = {s.value for s in JobStatus}
        stats = QueueStats()
        for r in rows:
            if r["status"] in valid:
                setattr(stats, r["status"], r["c"])
            stats.total += r["c"]
        return stats

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._transaction() as conn:
            row = self._fetch(conn, job_id)
        return Job.from_row(row) if row else None

    def get_job_by_payload(self, payload_ref: str) -> Optional[Job]:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM processing_queue
                WHERE payload_ref = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (payload_ref,),
            ).fetchone()
        return Job.from_row(row) if row else None

    def list_jobs(self, status: Optional[JobStatus] = None, limit: Optional[int] = None) -> List[Job]:
        sql = "SELECT * FROM processing_queue"
        params: list = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(JobStatus(status).value)
        sql += " ORDER BY created_at ASC, rowid ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Job.from_row(r) for r in rows]
