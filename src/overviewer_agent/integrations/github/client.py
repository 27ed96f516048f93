"""GitHub client for pull requests and issue comments."""

import logging
from typing import Optional

from github import Auth, Github, GithubException
from github.PullRequest import PullRequest
from github.Repository import Repository

from ...errors import RepositoryError, classify_error

logger = logging.getLogger(__name__)


class GitHubClient:
    """GitHub API client scoped to one installation token."""

    def __init__(self, token: str, api_url: str = "https://api.github.com", timeout: int = 10):
        self.gh = Github(auth=Auth.Token(token), base_url=api_url, timeout=timeout)
        self._repos: dict[str, Repository] = {}

    def _repo(self, owner: str, repo: str) -> Repository:
        slug = f"{owner}/{repo}"
        if slug not in self._repos:
            self._repos[slug] = self.gh.get_repo(slug)
        return self._repos[slug]

    def _wrap(self, action: str, error: GithubException) -> RepositoryError:
        return RepositoryError(f"{action} failed: HTTP {error.status}: {error.data}", kind=classify_error(error))

    def get_default_branch(self, owner: str, repo: str) -> str:
        try:
            return self._repo(owner, repo).default_branch
        except GithubException as e:
            raise self._wrap("Fetching default branch", e) from e

    def get_pr_by_branch(self, owner: str, repo: str, branch_name: str) -> Optional[PullRequest]:
        """Open PR whose head is ``branch_name``, if any."""
        pulls = self._repo(owner, repo).get_pulls(state="open", head=f"{owner}:{branch_name}")
        for pr in pulls:
            return pr
        return None

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head_branch: str,
        base_branch: str,
    ) -> PullRequest:
        """Open a PR, or return the one already open for ``head_branch``."""
        try:
            existing = self.get_pr_by_branch(owner, repo, head_branch)
            if existing is not None:
                logger.info(f"Reusing open PR #{existing.number} for {head_branch}")
                return existing
            return self._repo(owner, repo).create_pull(
                title=title,
                body=body,
                head=head_branch,
                base=base_branch,
            )
        except GithubException as e:
            raise self._wrap("Creating pull request", e) from e

    def comment_on_issue(self, owner: str, repo: str, issue_number: int, body: str) -> str:
        """Post a comment and return its URL."""
        try:
            comment = self._repo(owner, repo).get_issue(issue_number).create_comment(body)
        except GithubException as e:
            raise self._wrap(f"Commenting on #{issue_number}", e) from e
        return comment.html_url
