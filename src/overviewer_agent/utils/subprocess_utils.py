"""Standardized subprocess utilities for git commands."""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class SubprocessError(Exception):
    """Exception raised when a subprocess command fails."""

    def __init__(self, cmd: str, returncode: int, stderr: str, stdout: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(
            f"Command failed with exit code {returncode}: {cmd}\nstderr: {stderr}"
        )


def redact(text: str, secrets: Optional[List[str]] = None) -> str:
    """Mask secrets (tokens embedded in clone URLs) before they reach logs."""
    for secret in secrets or []:
        if secret:
            text = text.replace(secret, "***")
    return text


def run_command(
    cmd: Union[str, List[str]],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: Optional[int] = None,
    env: Optional[dict] = None,
    secrets: Optional[List[str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run a command with standardized error handling.

    Args:
        cmd: Command to run (string or list)
        cwd: Working directory
        check: Raise exception on non-zero exit
        timeout: Timeout in seconds
        env: Environment variables
        secrets: Strings masked out of error messages

    Raises:
        SubprocessError: If check=True and command fails
        subprocess.TimeoutExpired: If timeout exceeded
    """
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            check=False,  # We handle check ourselves for better error messages
        )
    except subprocess.TimeoutExpired:
        cmd_str = cmd if isinstance(cmd, str) else " ".join(cmd)
        logger.error(f"Command timed out after {timeout}s: {redact(cmd_str, secrets)}")
        raise

    if check and result.returncode != 0:
        cmd_str = cmd if isinstance(cmd, str) else " ".join(cmd)
        raise SubprocessError(
            cmd=redact(cmd_str, secrets),
            returncode=result.returncode,
            stderr=redact(result.stderr, secrets),
            stdout=redact(result.stdout, secrets),
        )

    return result


def run_git_command(
    args: List[str],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: int = 30,
    env: Optional[dict] = None,
    secrets: Optional[List[str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run a git command with standardized error handling.

    Args:
        args: Git command arguments (without 'git' prefix)
        cwd: Working directory (git repo)
        check: Raise exception on non-zero exit
        timeout: Timeout in seconds (default: 30)
    """
    try:
        return run_command(
            ["git"] + args,
            cwd=cwd,
            check=check,
            timeout=timeout,
            env=env,
            secrets=secrets,
        )
    except SubprocessError:
        logger.error(f"Git command failed in {cwd}: git {redact(' '.join(args), secrets)}")
        raise
