"""Tests for the Job model and its status state machine."""

import pytest

from overviewer_agent.core.job import Job, JobStatus, TaskType, can_transition
from overviewer_agent.errors import InvalidStatusTransition


class TestTransitions:
    def test_happy_path_sets_timestamps(self, make_job):
        job = make_job()
        job.mark_in_progress()
        assert job.started_at is not None
        job.mark_completed({"summary": "done"})
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at is not None
        assert job.result == {"summary": "done"}

    def test_same_status_is_idempotent(self, make_job):
        job = make_job()
        job.mark_in_progress()
        started = job.started_at
        job.transition_to(JobStatus.IN_PROGRESS)
        assert job.started_at == started

    @pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.CANCELLED])
    def test_terminal_statuses_are_final(self, make_job, terminal):
        job = make_job()
        job.mark_in_progress()
        job.transition_to(terminal)
        for target in (JobStatus.QUEUED, JobStatus.IN_PROGRESS, JobStatus.FAILED):
            with pytest.raises(InvalidStatusTransition):
                job.transition_to(target)

    def test_queued_cannot_complete_directly(self, make_job):
        job = make_job()
        with pytest.raises(InvalidStatusTransition):
            job.mark_completed()

    def test_failed_only_goes_back_to_queued(self):
        assert can_transition(JobStatus.FAILED, JobStatus.QUEUED)
        assert not can_transition(JobStatus.FAILED, JobStatus.IN_PROGRESS)
        assert not can_transition(JobStatus.FAILED, JobStatus.COMPLETED)


class TestRetryEdge:
    def test_reset_for_retry_bumps_count(self, make_job):
        job = make_job()
        job.mark_in_progress()
        job.mark_failed("HTTP 503")
        job.reset_for_retry(max_retries=5)
        assert job.status == JobStatus.QUEUED
        assert job.retry_count == 1
        assert job.started_at is None
        assert job.last_error == "HTTP 503"

    def test_retry_edge_is_bounded(self, make_job):
        job = make_job(retry_count=5, status=JobStatus.FAILED)
        with pytest.raises(InvalidStatusTransition):
            job.reset_for_retry(max_retries=5)

    def test_cancel_records_reason(self, make_job):
        job = make_job()
        job.mark_cancelled("by operator")
        assert job.last_error == "Cancelled: by operator"


class TestJobFields:
    def test_issue_number_accepts_both_spellings(self, make_job):
        assert make_job(task_params={"issueNumber": "12"}).issue_number == 12
        assert make_job(task_params={"issue_number": 3}).issue_number == 3
        assert make_job(task_params={"issueNumber": "abc"}).issue_number is None
        assert make_job(task_params={}).issue_number is None

    def test_json_roundtrip_keeps_enums_as_values(self, make_job):
        job = make_job()
        restored = Job.model_validate_json(job.model_dump_json())
        assert restored.task_type == TaskType.BUG_FIX.value
        assert restored.created_at == job.created_at
        assert restored.repo_slug == "acme/widgets"

    def test_rejects_unknown_task_type(self):
        with pytest.raises(ValueError):
            Job(installation_id=1, repo_owner="a", repo_name="b", task_type="rewrite_everything")
