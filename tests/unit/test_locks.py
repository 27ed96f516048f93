"""Tests for the mkdir-based file lock."""

import os

import pytest

from overviewer_agent.queue import FileLock


def test_second_holder_is_refused(tmp_path):
    first = FileLock(tmp_path, "seq")
    second = FileLock(tmp_path, "seq")

    assert first.acquire()
    assert not second.acquire()

    first.release()
    assert second.acquire()
    second.release()


def test_pid_is_recorded(tmp_path):
    with FileLock(tmp_path, "seq") as lock:
        assert lock.pid_file.read_text() == str(os.getpid())
    assert not (tmp_path / "seq.lock").exists()


def test_dead_holder_is_reclaimed(tmp_path):
    lock_path = tmp_path / "seq.lock"
    lock_path.mkdir()
    # PIDs above the kernel maximum cannot be alive
    (lock_path / "pid").write_text("99999999")

    lock = FileLock(tmp_path, "seq")
    assert lock.acquire()
    lock.release()


def test_garbage_pid_is_stale(tmp_path):
    lock_path = tmp_path / "seq.lock"
    lock_path.mkdir()
    (lock_path / "pid").write_text("not-a-pid")

    assert FileLock(tmp_path, "seq").acquire()


def test_context_manager_times_out(tmp_path):
    holder = FileLock(tmp_path, "seq")
    holder.acquire()

    with pytest.raises(TimeoutError):
        with FileLock(tmp_path, "seq", timeout=0.05):
            pass

    holder.release()
