import pytest

from procqueue.store import QueueStore


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    path = tmp_path / "queue.db"
    monkeypatch.setenv("PROCQUEUE_DB", str(path))
    monkeypatch.delenv("QUEUE_POLL_INTERVAL", raising=False)
    return path


@pytest.fixture
def store(db_file):
    return QueueStore(db_file, max_attempts=3)
