"""Tests for the directory-backed job stream."""

import pytest

from overviewer_agent.core.job import JobStatus
from overviewer_agent.errors import InvalidStatusTransition, JobNotFoundError
from overviewer_agent.queue.file_queue import FileStreamQueue


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(tmp_path, clock):
    q = FileStreamQueue(tmp_path / "queue", reclaim_idle_ms=60_000, clock=clock)
    q.ensure_group()
    return q


class TestEnqueueDequeue:
    def test_enqueue_writes_status_record(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        record = queue.get_job(job_id)
        assert record.status == JobStatus.QUEUED
        assert record.updated_at is not None

    def test_delivery_follows_append_order(self, queue, make_job):
        first = queue.enqueue(make_job())
        second = queue.enqueue(make_job())

        a = queue.dequeue("w1")
        b = queue.dequeue("w1")
        assert (a.job.id, b.job.id) == (first, second)
        assert a.entry_id < b.entry_id
        assert queue.dequeue("w1") is None

    def test_entry_is_checked_out_once(self, queue, make_job):
        queue.enqueue(make_job())
        assert queue.dequeue("w1") is not None
        assert queue.dequeue("w2") is None
        assert queue.pending_count() == 1

    def test_empty_queue_returns_none_without_blocking(self, queue):
        assert queue.dequeue("w1", block_ms=0) is None


class TestAcknowledge:
    def test_ack_clears_pending(self, queue, make_job):
        queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.acknowledge(delivery.entry_id)
        assert queue.pending_count() == 0

    def test_ack_twice_is_noop(self, queue, make_job):
        queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.acknowledge(delivery.entry_id)
        queue.acknowledge(delivery.entry_id)
        assert queue.pending_count() == 0
        assert queue.dequeue("w1") is None


class TestReclaim:
    def test_idle_entry_is_reclaimed(self, queue, clock, make_job):
        job_id = queue.enqueue(make_job())
        queue.dequeue("dead-worker")

        clock.advance(30)
        assert queue.dequeue("w2") is None

        clock.advance(31)
        delivery = queue.dequeue("w2")
        assert delivery.job.id == job_id
        assert delivery.reclaimed is True


class TestRequeue:
    def test_requeue_appends_new_entry_with_backoff(self, queue, clock, make_job):
        job_id = queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        queue.update_status(job_id, JobStatus.FAILED, error="HTTP 503")

        record = queue.requeue(queue.get_job(job_id), backoff_delay=4.0, entry_id=delivery.entry_id)

        assert record.status == JobStatus.QUEUED
        assert record.retry_count == 1
        assert record.not_before.timestamp() == pytest.approx(clock.now + 4.0)
        assert queue.pending_count() == 0

        # Not due yet
        assert queue.dequeue("w1") is None
        clock.advance(4.0)
        redelivered = queue.dequeue("w1")
        assert redelivered.job.id == job_id
        assert redelivered.job.retry_count == 1
        assert redelivered.entry_id != delivery.entry_id

    def test_requeue_from_in_progress_marks_failed_first(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.update_status(job_id, JobStatus.IN_PROGRESS)

        record = queue.requeue(queue.get_job(job_id), backoff_delay=0, entry_id=delivery.entry_id)
        assert record.status == JobStatus.QUEUED
        assert record.retry_count == 1

    def test_requeue_respects_retry_budget(self, tmp_path, clock, make_job):
        queue = FileStreamQueue(tmp_path / "q", max_retries=1, clock=clock)
        job_id = queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        queue.requeue(queue.get_job(job_id), backoff_delay=0, entry_id=delivery.entry_id)

        delivery = queue.dequeue("w1")
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        with pytest.raises(InvalidStatusTransition):
            queue.requeue(queue.get_job(job_id), backoff_delay=0, entry_id=delivery.entry_id)


class TestStatusTable:
    def test_update_status_validates_transitions(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        with pytest.raises(InvalidStatusTransition):
            queue.update_status(job_id, JobStatus.COMPLETED)
        assert queue.get_job(job_id).status == JobStatus.QUEUED

    def test_update_status_is_idempotent(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        record = queue.update_status(job_id, JobStatus.COMPLETED, result={"pr_url": "u"})
        assert record.result == {"pr_url": "u"}

    def test_update_unknown_job(self, queue):
        with pytest.raises(JobNotFoundError):
            queue.update_status("missing", JobStatus.IN_PROGRESS)

    def test_cancel_only_from_queued(self, queue, make_job):
        queued = queue.enqueue(make_job())
        running = queue.enqueue(make_job())
        queue.update_status(running, JobStatus.IN_PROGRESS)

        assert queue.cancel(queued) is True
        assert queue.cancel(queued) is True
        assert queue.get_job(queued).status == JobStatus.CANCELLED
        assert queue.cancel(running) is False

    def test_operator_retry_of_failed_job(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        delivery = queue.dequeue("w1")
        queue.update_status(job_id, JobStatus.IN_PROGRESS)
        queue.update_status(job_id, JobStatus.FAILED, error="boom")
        queue.acknowledge(delivery.entry_id)

        record = queue.retry(job_id)
        assert record.status == JobStatus.QUEUED
        assert record.retry_count == 1
        assert queue.dequeue("w1").job.retry_count == 1

    def test_retry_of_queued_job_rejected(self, queue, make_job):
        job_id = queue.enqueue(make_job())
        with pytest.raises(InvalidStatusTransition):
            queue.retry(job_id)

    def test_listing_and_stats(self, queue, make_job):
        a = queue.enqueue(make_job())
        b = queue.enqueue(make_job())
        queue.update_status(b, JobStatus.IN_PROGRESS)
        queue.dequeue("w1")

        assert [j.id for j in queue.get_jobs_by_status(JobStatus.QUEUED)] == [a]
        assert {j.id for j in queue.list_jobs()} == {a, b}
        assert len(queue.list_jobs(limit=1)) == 1

        stats = queue.stats()
        assert stats["queued"] == 1
        assert stats["in_progress"] == 1
        assert stats["completed"] == 0
        assert stats["pending_entries"] == 1


class TestMalformedEntries:
    def test_corrupt_entry_is_quarantined(self, queue, make_job):
        (queue.stream_dir / "000000000000.json").write_text("{not json")
        job_id = queue.enqueue(make_job())

        delivery = queue.dequeue("w1")
        assert delivery.job.id == job_id
        assert (queue.malformed_dir / "stream_000000000000.json").exists()
