"""Shared utility functions."""

from .atomic_io import atomic_write_model, atomic_write_text
from .rich_logging import JobLogger, setup_rich_logging
from .subprocess_utils import SubprocessError, redact, run_command, run_git_command
from .validators import validate_branch_name, validate_identifier, validate_owner_repo

__all__ = [
    "JobLogger",
    "SubprocessError",
    "atomic_write_model",
    "atomic_write_text",
    "redact",
    "run_command",
    "run_git_command",
    "setup_rich_logging",
    "validate_branch_name",
    "validate_identifier",
    "validate_owner_repo",
]
