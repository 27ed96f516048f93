"""Tests for the operator CLI against a file-backed queue."""

import pytest
import yaml
from click.testing import CliRunner

from overviewer_agent.cli import main
from overviewer_agent.cli.main import cli
from overviewer_agent.core.job import JobStatus
from overviewer_agent.queue import FileStreamQueue


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    monkeypatch.setattr(main.console, "width", 200)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "overviewer.yaml"
    path.write_text(yaml.safe_dump({"queue": {"backend": "file", "root": str(tmp_path / "queue")}}))
    return path


@pytest.fixture
def queue(tmp_path):
    return FileStreamQueue(tmp_path / "queue")


def invoke(config_path, *args):
    return CliRunner().invoke(cli, ["--config", str(config_path), *args])


def test_enqueue_creates_queued_job(config_path, queue):
    result = invoke(
        config_path, "enqueue",
        "--repo", "acme/widgets",
        "--installation-id", "42",
        "--issue", "7",
        "--title", "Crash on empty input",
        "--param", "labels=bug",
    )

    assert result.exit_code == 0, result.output
    assert "Queued job" in result.output

    [job] = queue.list_jobs()
    assert job.status == JobStatus.QUEUED
    assert job.repo_slug == "acme/widgets"
    assert job.task_params == {"labels": "bug", "issueNumber": 7, "issueTitle": "Crash on empty input"}
    assert queue.pending_count() == 0


def test_enqueue_rejects_bad_repo(config_path):
    result = invoke(config_path, "enqueue", "--repo", "widgets", "--installation-id", "42")

    assert result.exit_code != 0
    assert "owner/name" in result.output


def test_enqueue_rejects_bad_param(config_path):
    result = invoke(config_path, "enqueue", "--repo", "acme/widgets", "-i", "42", "--param", "novalue")

    assert result.exit_code != 0
    assert "key=value" in result.output


def test_status_shows_record(config_path, queue, make_job):
    job_id = queue.enqueue(make_job())

    result = invoke(config_path, "status", job_id)

    assert result.exit_code == 0, result.output
    assert "acme/widgets" in result.output
    assert "queued" in result.output


def test_status_unknown_job(config_path):
    result = invoke(config_path, "status", "missing")

    assert result.exit_code == 1
    assert "Job not found" in result.output


def test_jobs_filters_by_status(config_path, queue, make_job):
    queue.enqueue(make_job(repo_name="widgets"))
    cancelled = queue.enqueue(make_job(repo_name="gadgets"))
    queue.cancel(cancelled)

    result = invoke(config_path, "jobs", "--status", "cancelled")

    assert result.exit_code == 0, result.output
    assert "acme/gadgets" in result.output
    assert "acme/widgets" not in result.output


def test_jobs_empty(config_path):
    result = invoke(config_path, "jobs")

    assert result.exit_code == 0
    assert "No jobs" in result.output


def test_cancel_and_retry(config_path, queue, make_job):
    job_id = queue.enqueue(make_job())

    result = invoke(config_path, "cancel", job_id)
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert queue.get_job(job_id).status == JobStatus.CANCELLED

    result = invoke(config_path, "retry", job_id)
    assert result.exit_code == 1
    assert "Error" in result.output


def test_retry_failed_job(config_path, queue, make_job):
    job_id = queue.enqueue(make_job())
    queue.update_status(job_id, JobStatus.IN_PROGRESS)
    queue.update_status(job_id, JobStatus.FAILED, error="boom")

    result = invoke(config_path, "retry", job_id)

    assert result.exit_code == 0, result.output
    record = queue.get_job(job_id)
    assert record.status == JobStatus.QUEUED
    assert record.retry_count == 1


def test_stats_counts_statuses(config_path, queue, make_job):
    queue.enqueue(make_job())
    queue.enqueue(make_job())

    result = invoke(config_path, "stats")

    assert result.exit_code == 0, result.output
    assert "queued" in result.output
    assert "pending entries" in result.output


def test_init_writes_config_without_secrets(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "config" / "overviewer.yaml"

    result = CliRunner().invoke(cli, ["--config", str(path), "init"])

    assert result.exit_code == 0, result.output
    written = yaml.safe_load(path.read_text())
    assert "queue" in written
    assert "api_key" not in written["llm"]
    assert "token" not in written["github"]
    assert "private_key" not in written["github"]
