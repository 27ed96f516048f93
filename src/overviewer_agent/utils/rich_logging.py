"""Rich logging with job context and better formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

PACKAGE_LOGGER = "overviewer_agent"


class JobLogFormatter(logging.Formatter):
    """Plain formatter with worker and job context (used for log files)."""

    def __init__(self, worker_id: str):
        super().__init__()
        self.worker_id = worker_id

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        job_context = ""
        if getattr(record, "job_id", None):
            job_context = f"[{record.job_id[:8]}] "

        phase_context = ""
        if getattr(record, "phase", None):
            phase_context = f"[{record.phase}] "

        line = (
            f"{timestamp} {record.levelname:8s} [{self.worker_id}] "
            f"{phase_context}{job_context}{record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JobLogger(logging.LoggerAdapter):
    """Logger adapter that adds job context to all log messages."""

    def __init__(self, logger: logging.Logger, worker_id: str):
        super().__init__(logger, {})
        self.worker_id = worker_id
        self.current_job_id: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_job_context(self, job_id: Optional[str] = None, phase: Optional[str] = None):
        if job_id:
            self.current_job_id = job_id
        if phase is not None:
            self.current_phase = phase

    def clear_context(self):
        self.current_job_id = None
        self.current_phase = None

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        if self.current_job_id:
            extra["job_id"] = self.current_job_id
        if self.current_phase:
            extra["phase"] = self.current_phase
        kwargs["extra"] = extra
        return msg, kwargs

    def job_started(self, job_id: str, repo_slug: str, task_type: str, attempt: int):
        self.set_job_context(job_id=job_id)
        self.info(f"📋 Starting job {job_id} ({task_type}) on {repo_slug}, attempt {attempt}")

    def phase_change(self, phase: str):
        self.set_job_context(phase=phase)
        phase_emoji = {
            "workspace": "📁",
            "credentials": "🔑",
            "cloning": "⬇️",
            "reasoning": "🤖",
            "creating_pr": "🔀",
            "finalizing": "💾",
        }
        emoji = phase_emoji.get(phase.lower(), "▶️")
        self.info(f"{emoji} Phase: {phase}")

    def job_completed(self, duration_seconds: float, iterations: int, pr_url: Optional[str] = None):
        msg = f"✅ Job completed in {duration_seconds:.1f}s ({iterations} iterations)"
        if pr_url:
            msg += f" → {pr_url}"
        self.info(msg)
        self.clear_context()

    def job_failed(self, error: str, retry_count: int, will_retry: bool):
        suffix = "requeued" if will_retry else "permanent"
        self.error(f"❌ Job failed (attempt {retry_count + 1}, {suffix}): {error}")
        self.clear_context()


def setup_rich_logging(
    worker_id: str,
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    use_file: bool = True,
) -> JobLogger:
    """
    Configure the package logger and return a job-aware adapter.

    Console output goes through ``rich`` when attached to a terminal; when
    stdout is redirected (supervised process) a plain formatter is used so
    log collectors get one line per record.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in package_logger.handlers[:]:
        handler.close()
        package_logger.removeHandler(handler)

    stdout_is_tty = sys.stdout.isatty() if hasattr(sys.stdout, "isatty") else False
    if stdout_is_tty:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setFormatter(logging.Formatter(f"[{worker_id}] %(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(JobLogFormatter(worker_id))
    package_logger.addHandler(console_handler)

    if use_file and log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{worker_id}.log")
        file_handler.setFormatter(JobLogFormatter(worker_id))
        package_logger.addHandler(file_handler)

    return JobLogger(logging.getLogger(f"{PACKAGE_LOGGER}.worker.{worker_id}"), worker_id)
