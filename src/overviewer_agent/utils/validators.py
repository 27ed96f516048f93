"""Validation for names that end up in paths, refs and URLs."""

import re


def validate_branch_name(branch_name: str) -> str:
    """
    Validate a git branch name against a strict whitelist.

    Raises:
        ValueError: If branch name is invalid
    """
    if not branch_name:
        raise ValueError("Branch name cannot be empty")

    if not re.match(r'^[a-zA-Z0-9/_.-]+$', branch_name):
        raise ValueError(f"Invalid branch name: {branch_name}")

    if branch_name.startswith('/') or branch_name.endswith('/'):
        raise ValueError("Branch name cannot start or end with /")

    if '..' in branch_name or branch_name.endswith('.lock'):
        raise ValueError("Branch name contains invalid sequence")

    if len(branch_name) > 255:
        raise ValueError("Branch name too long")

    return branch_name


def validate_identifier(value: str, name: str = "identifier") -> str:
    """
    Validate a job or worker id before it becomes a directory name.

    Raises:
        ValueError: If identifier is invalid
    """
    if not value:
        raise ValueError(f"{name} cannot be empty")

    if not re.match(r'^[a-zA-Z0-9_-]+$', value):
        raise ValueError(f"Invalid {name}: {value}")

    if len(value) > 128:
        raise ValueError(f"{name} too long")

    return value


def validate_owner_repo(owner: str, repo: str) -> str:
    """
    Validate repository coordinates and return the ``owner/repo`` slug.

    Raises:
        ValueError: If either part is malformed
    """
    if not re.match(r'^[a-zA-Z0-9_-]+$', owner or ""):
        raise ValueError(f"Invalid repository owner: {owner}")
    if not re.match(r'^[a-zA-Z0-9_.-]+$', repo or "") or repo in (".", ".."):
        raise ValueError(f"Invalid repository name: {repo}")
    return f"{owner}/{repo}"
