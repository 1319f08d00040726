import threading

import pytest

from procqueue.constants import JobStatus
from procqueue.errors import JobNotFoundError, JobStateError, QueueStoreError
from procqueue.store import QueueStore


def test_enqueue_creates_pending_job(store):
    job = store.enqueue("material-1")
    assert job.status == JobStatus.PENDING
    assert job.attempts == 0
    assert job.max_attempts == 3
    assert job.payload_ref == "material-1"
    assert store.get_job(job.id) == job


def test_enqueue_rejects_empty_payload(store):
    with pytest.raises(ValueError):
        store.enqueue("  ")


def test_duplicate_payloads_create_distinct_jobs(store):
    a = store.enqueue("material-1")
    b = store.enqueue("material-1")
    assert a.id != b.id
    assert store.get_stats().total == 2
    assert store.get_job_by_payload("material-1").id == b.id


def test_claims_follow_insertion_order(store):
    a = store.enqueue("A")
    b = store.enqueue("B")
    assert store.claim_next().id == a.id
    assert store.claim_next().id == b.id
    assert store.claim_next() is None


def test_claim_moves_job_to_processing_and_counts_attempt(store):
    store.enqueue("A")
    job = store.claim_next()
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1
    assert job.started_at is not None


def test_mark_completed(store):
    store.enqueue("A")
    job = store.claim_next()
    done = store.mark_completed(job.id)
    assert done.status == JobStatus.COMPLETED
    assert done.completed_at is not None


def test_mark_completed_requires_processing(store):
    job = store.enqueue("A")
    with pytest.raises(JobStateError):
        store.mark_completed(job.id)
    with pytest.raises(JobNotFoundError):
        store.mark_completed("missing")


def test_completed_job_is_absorbing(store):
    store.enqueue("A")
    job = store.claim_next()
    store.mark_completed(job.id)
    with pytest.raises(JobStateError):
        store.mark_failed(job.id, "late failure")
    assert store.claim_next() is None


def test_failed_job_retries_until_max_attempts(store):
    job = store.enqueue("A")
    for attempt in range(1, 4):
        claimed = store.claim_next()
        assert claimed.id == job.id
        assert claimed.attempts == attempt
        failed = store.mark_failed(job.id, f"boom {attempt}")

    assert failed.status == JobStatus.FAILED
    assert failed.attempts == 3
    assert failed.last_error == "boom 3"
    assert store.claim_next() is None
    with pytest.raises(JobStateError):
        store.mark_failed(job.id, "again")


def test_retry_keeps_error_and_goes_back_to_pending(store):
    job = store.enqueue("A")
    store.claim_next()
    retried = store.mark_failed(job.id, "parse error")
    assert retried.status == JobStatus.PENDING
    assert retried.last_error == "parse error"


def test_per_job_max_attempts(store):
    job = store.enqueue("A", max_attempts=1)
    store.claim_next()
    assert store.mark_failed(job.id, "nope").status == JobStatus.FAILED


def test_error_text_is_truncated(store):
    job = store.enqueue("A", max_attempts=1)
    store.claim_next()
    failed = store.mark_failed(job.id, "x" * 5000)
    assert len(failed.last_error) == 4000


def test_stats_after_enqueue_and_complete(store):
    for i in range(5):
        store.enqueue(f"m{i}")
    for _ in range(2):
        job = store.claim_next()
        store.mark_completed(job.id)

    stats = store.get_stats()
    assert stats.total == 5
    assert stats.pending == 3
    assert stats.processing == 0
    assert stats.completed == 2
    assert stats.failed == 0


def test_list_jobs_by_status(store):
    store.enqueue("A")
    store.enqueue("B")
    store.claim_next()
    assert [j.payload_ref for j in store.list_jobs()] == ["A", "B"]
    assert [j.payload_ref for j in store.list_jobs(JobStatus.PENDING)] == ["B"]
    assert len(store.list_jobs(limit=1)) == 1


def test_concurrent_claimers_never_share_a_job(db_file):
    store = QueueStore(db_file, max_attempts=3)
    for i in range(40):
        store.enqueue(f"m{i}")

    claimed = []
    lock = threading.Lock()

    def claimer():
        own = QueueStore(db_file)
        while True:
            job = own.claim_next()
            if job is None:
                return
            with lock:
                claimed.append(job.id)

    threads = [threading.Thread(target=claimer) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(claimed) == 40
    assert len(set(claimed)) == 40
    assert store.get_stats().processing == 40


def test_default_max_attempts_comes_from_config(db_file):
    from procqueue.config import set_value
    set_value("max_attempts", "5", db_file)
    assert QueueStore(db_file).enqueue("A").max_attempts == 5


def test_unusable_database_raises_store_error(tmp_path):
    # a directory cannot be opened as a database file
    with pytest.raises(QueueStoreError):
        QueueStore(tmp_path)


def test_invalid_stored_max_attempts_is_a_config_error(db_file):
    from procqueue.db import init_db, set_config
    from procqueue.errors import ConfigError
    init_db(db_file)
    set_config("max_attempts", "abc", db_file)
    with pytest.raises(ConfigError, match="max_attempts"):
        QueueStore(db_file)
