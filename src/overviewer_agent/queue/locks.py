"""Atomic file locking using mkdir."""

import logging
import os
import shutil
import time
from pathlib import Path

logger = logging.getLogger(__name__)

# A lock directory younger than this may still be waiting for its PID file
_PID_GRACE_SECONDS = 5.0


class FileLock:
    """
    Atomic file lock using mkdir.

    - mkdir is atomic on local filesystems, so exactly one process wins
    - The holder's PID is stored for stale lock detection
    - A lock whose PID is dead (or missing past a short grace period) is reclaimed
    """

    def __init__(self, lock_dir: Path, name: str, timeout: float = 0.0):
        self.lock_dir = Path(lock_dir)
        self.name = name
        self.timeout = timeout
        self.lock_path = self.lock_dir / f"{name}.lock"
        self.pid_file = self.lock_path / "pid"
        self._acquired = False

    def acquire(self, timeout: float = 0.0, poll_interval: float = 0.01) -> bool:
        """Try to take the lock, polling for up to ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        while True:
            if self._try_acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(poll_interval)

    def _try_acquire(self) -> bool:
        if self.lock_path.exists():
            if self._is_stale_lock():
                logger.info(f"Removing stale lock {self.name}")
                self._remove_lock()
            else:
                return False

        try:
            self.lock_path.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            return False
        self.pid_file.write_text(str(os.getpid()))
        self._acquired = True
        return True

    def release(self) -> None:
        if self._acquired:
            self._remove_lock()
            self._acquired = False

    def _is_stale_lock(self) -> bool:
        try:
            pid = int(self.pid_file.read_text().strip())
        except FileNotFoundError:
            try:
                age = time.time() - self.lock_path.stat().st_mtime
            except FileNotFoundError:
                return False
            return age > _PID_GRACE_SECONDS
        except ValueError:
            logger.warning(f"Lock {self.name} has invalid PID (stale)")
            return True

        try:
            os.kill(pid, 0)
            return False
        except ProcessLookupError:
            logger.warning(f"Lock {self.name} held by dead PID {pid} (stale)")
            return True
        except PermissionError:
            # Process exists under another user; assume the lock is live
            return False

    def _remove_lock(self) -> None:
        try:
            shutil.rmtree(self.lock_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock directory {self.lock_path}: {e}")

    def __enter__(self):
        if not self.acquire(timeout=self.timeout):
            raise TimeoutError(f"Could not acquire lock {self.name} within {self.timeout}s")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
