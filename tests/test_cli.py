from typer.testing import CliRunner

from procqueue.cli import app
from procqueue.constants import JobStatus
from procqueue.store import QueueStore

runner = CliRunner()


def test_enqueue_and_status(db_file):
    result = runner.invoke(app, ["enqueue", "material-1"])
    assert result.exit_code == 0
    assert "Job enqueued" in result.output

    jobs = QueueStore(db_file).list_jobs()
    assert [j.payload_ref for j in jobs] == ["material-1"]
    assert jobs[0].status == JobStatus.PENDING

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "pending" in result.output


def test_enqueue_with_max_attempts(db_file):
    result = runner.invoke(app, ["enqueue", "material-1", "--max-attempts", "5"])
    assert result.exit_code == 0
    assert QueueStore(db_file).list_jobs()[0].max_attempts == 5


def test_list_rejects_unknown_status(db_file):
    result = runner.invoke(app, ["list", "--status", "dead"])
    assert result.exit_code == 1


def test_show_job(db_file):
    job = QueueStore(db_file).enqueue("material-7")
    result = runner.invoke(app, ["show", job.id])
    assert result.exit_code == 0
    assert "material-7" in result.output

    result = runner.invoke(app, ["show", "--payload", "material-7"])
    assert result.exit_code == 0

    result = runner.invoke(app, ["show", "missing"])
    assert result.exit_code == 1


def test_config_set_and_get(db_file):
    assert runner.invoke(app, ["config", "set", "max_attempts", "4"]).exit_code == 0
    result = runner.invoke(app, ["config", "get", "max_attempts"])
    assert result.exit_code == 0
    assert "4" in result.output
    assert runner.invoke(app, ["config", "set", "nope", "1"]).exit_code == 1


def test_worker_start_needs_a_processor(db_file):
    result = runner.invoke(app, ["worker", "start"])
    assert result.exit_code == 1


def test_worker_start_bad_poll_interval_is_fatal(db_file, monkeypatch):
    monkeypatch.setenv("QUEUE_POLL_INTERVAL", "soon")
    result = runner.invoke(app, ["worker", "start", "--cmd", "echo {payload}"])
    assert result.exit_code == 1
    assert "QUEUE_POLL_INTERVAL" in result.output


def test_worker_start_bad_processor_path_is_fatal(db_file):
    result = runner.invoke(app, ["worker", "start", "--processor", "no_such_module_xyz:run"])
    assert result.exit_code == 1


def test_invalid_stored_config_exits_cleanly(db_file):
    from procqueue.db import init_db, set_config
    init_db(db_file)
    set_config("max_attempts", "abc", db_file)

    for args in (["enqueue", "m1"], ["status"], ["list"]):
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)
        assert "Invalid configuration" in result.output


def test_worker_store_uses_settings_max_attempts(db_file):
    from procqueue.cli import _store
    assert _store(7).enqueue("m1").max_attempts == 7
