"""Core job model, configuration and agent runtime."""

from .config import OverviewerConfig, load_config
from .job import Job, JobStatus, TaskType, TriggerType

__all__ = [
    "Job",
    "JobStatus",
    "OverviewerConfig",
    "TaskType",
    "TriggerType",
    "load_config",
]
