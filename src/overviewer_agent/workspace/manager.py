"""Per-job workspace directories and the git operations run inside them."""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ..core.config import GitHubConfig, WorkspaceConfig
from ..core.job import Job
from ..errors import ErrorKind, PathEscapeError, RepositoryError, WorkspaceError, classify_error
from ..utils.subprocess_utils import SubprocessError, run_git_command
from ..utils.validators import validate_branch_name, validate_identifier, validate_owner_repo

logger = logging.getLogger(__name__)


class Workspace:
    """A directory bound to one job. Every tool path is resolved through here."""

    def __init__(self, job_id: str, root: Path):
        self.job_id = job_id
        self.root = Path(os.path.realpath(root))

    def resolve(self, relative: str) -> Path:
        """Canonical absolute path for ``relative``; rejects anything outside the root."""
        resolved = Path(os.path.realpath(self.root / relative))
        if resolved != self.root and self.root not in resolved.parents:
            raise PathEscapeError(f"Path escapes the workspace: {relative}")
        return resolved

    def __repr__(self) -> str:
        return f"Workspace(job_id={self.job_id!r}, root={str(self.root)!r})"


class WorkspaceManager:
    """
    Creates, populates and destroys job workspaces.

    Git failures surface as ``RepositoryError`` classified with the shared
    error classifier, so a flaky remote (5xx, connection reset) is retried
    while a missing repository or rejected push is not.
    """

    def __init__(self, config: Optional[WorkspaceConfig] = None, github: Optional[GitHubConfig] = None):
        self.config = config or WorkspaceConfig()
        self.github = github or GitHubConfig()
        self.root = Path(self.config.root)

    def path_for(self, job_id: str) -> Path:
        return self.root / validate_identifier(job_id, "job id")

    def create(self, job_id: str) -> Workspace:
        """Fresh empty workspace; leftovers from an earlier attempt are removed first."""
        path = self.path_for(job_id)
        self.destroy(job_id)
        try:
            path.mkdir(parents=True)
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace {path}: {e}") from e
        logger.debug(f"Created workspace {path}")
        return Workspace(job_id, path)

    def destroy(self, job_id: str) -> None:
        path = self.path_for(job_id)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.debug(f"Removed workspace {path}")
        except OSError as e:
            logger.warning(f"Failed to remove workspace {path}: {e}")

    def _remote_url(self, job: Job, token: Optional[str] = None) -> str:
        slug = validate_owner_repo(job.repo_owner, job.repo_name)
        auth = f"x-access-token:{token}@" if token else ""
        return f"https://{auth}{self.github.clone_host}/{slug}.git"

    def _git(self, args: list[str], workspace: Workspace, token: Optional[str] = None, timeout: Optional[int] = None):
        try:
            return run_git_command(
                args,
                cwd=workspace.root,
                timeout=timeout or self.config.git_timeout,
                secrets=[token] if token else None,
            )
        except SubprocessError as e:
            kind = classify_error(RuntimeError(e.stderr or str(e)))
            raise RepositoryError(f"git {args[0]} failed: {e.stderr.strip() or e}", kind=kind) from e
        except subprocess.TimeoutExpired as e:
            raise RepositoryError(f"git {args[0]} timed out after {e.timeout}s", kind=ErrorKind.TRANSIENT) from None
        except OSError as e:
            raise RepositoryError(f"git {args[0]} failed: {e}", kind=ErrorKind.FATAL) from e

    def clone(self, workspace: Workspace, job: Job, token: str) -> None:
        """Shallow clone into the workspace; the token never stays in ``.git/config``."""
        args = ["clone", "--depth", str(self.config.clone_depth)]
        if job.ref_name:
            args += ["--branch", job.ref_name.removeprefix("refs/heads/")]
        args += [self._remote_url(job, token), "."]
        self._git(args, workspace, token)
        self._git(["remote", "set-url", "origin", self._remote_url(job)], workspace)
        self._git(["config", "user.name", self.github.commit_author_name], workspace)
        self._git(["config", "user.email", self.github.commit_author_email], workspace)
        logger.info(f"Cloned {job.repo_slug} into {workspace.root}")

    def head_commit(self, workspace: Workspace) -> str:
        return self._git(["rev-parse", "HEAD"], workspace, timeout=30).stdout.strip()

    def has_changes(self, workspace: Workspace) -> bool:
        status = self._git(["status", "--porcelain"], workspace, timeout=30)
        return bool(status.stdout.strip())

    def create_branch(self, workspace: Workspace, branch_name: str) -> None:
        # -B resets the branch if a redelivered job already created it
        self._git(["checkout", "-B", validate_branch_name(branch_name)], workspace, timeout=30)

    def commit_all(self, workspace: Workspace, message: str) -> None:
        self._git(["add", "-A"], workspace, timeout=60)
        self._git(["commit", "-m", message], workspace, timeout=60)

    def push(self, workspace: Workspace, job: Job, branch_name: str, token: str) -> None:
        branch_name = validate_branch_name(branch_name)
        self._git(
            ["push", "--force", self._remote_url(job, token), f"HEAD:refs/heads/{branch_name}"],
            workspace,
            token,
        )
        logger.info(f"Pushed {branch_name} to {job.repo_slug}")
