"""Shared fixtures for unit tests."""

import pytest

from overviewer_agent.core.config import clear_config_cache
from overviewer_agent.core.job import Job, TaskType


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def make_job():
    def _make(**overrides) -> Job:
        defaults = dict(
            installation_id=42,
            repo_owner="acme",
            repo_name="widgets",
            task_type=TaskType.BUG_FIX,
            task_params={"issueNumber": 7, "issueTitle": "Crash on empty input", "issueBody": "Stack trace..."},
        )
        defaults.update(overrides)
        return Job(**defaults)

    return _make
