"""Tests for prompt construction."""

from overviewer_agent.core.job import TaskType
from overviewer_agent.core.prompt_builder import RESPONSE_FORMAT, PromptBuilder


class TestTaskPrompt:
    def test_issue_fields(self, make_job):
        prompt = PromptBuilder().build_task_prompt(make_job())
        assert "Issue Title: Crash on empty input" in prompt
        assert "Stack trace..." in prompt
        assert "Repository: acme/widgets" in prompt
        assert "Analyze and fix this issue" in prompt

    def test_command_args_used_as_description(self, make_job):
        job = make_job(task_type=TaskType.DOCUMENTATION, task_params={"args": "document the CLI"})
        prompt = PromptBuilder().build_task_prompt(job)
        assert "Issue Title: No title" in prompt
        assert "document the CLI" in prompt
        assert "documentation" in prompt.lower()

    def test_every_task_type_has_guidance(self, make_job):
        builder = PromptBuilder()
        for task_type in TaskType:
            assert builder.build_task_prompt(make_job(task_type=task_type))
            assert builder.pr_title(make_job(task_type=task_type))


class TestSystemPrompt:
    def test_contains_catalog_and_format(self):
        prompt = PromptBuilder().build_system_prompt("- read_file: Read a file")
        assert "- read_file: Read a file" in prompt
        assert RESPONSE_FORMAT in prompt


class TestPullRequestText:
    def test_title_prefix(self, make_job):
        assert PromptBuilder().pr_title(make_job()) == "Fix: Crash on empty input"

    def test_body_links_issue(self, make_job):
        assert PromptBuilder().pr_body(make_job(), "Guarded empty input") == "Guarded empty input\n\nFixes #7"

    def test_body_without_issue(self, make_job):
        assert PromptBuilder().pr_body(make_job(task_params={}), "Done") == "Done"
