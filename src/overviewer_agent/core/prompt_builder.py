"""System and task prompts for the agent loop."""

from .job import Job, TaskType

RESPONSE_FORMAT = """## Response Format

You must respond in JSON format with ONE of these structures:

### When you need to take an action:
{
  "reasoning": "Explain your thinking about what you need to do next",
  "action": {
    "tool": "tool_name",
    "parameters": {
      "param1": "value1"
    }
  }
}

### When you're done:
{
  "reasoning": "Explain what you accomplished",
  "finished": true,
  "finalAnswer": "Summary of changes made and how they address the issue"
}"""

GUIDELINES = """## Guidelines

- Start by exploring the repository structure using list_directory
- Read a file before modifying it
- Use search_code or semantic_search to find relevant code
- Make changes incrementally and run the project's tests with run_command
- Focus on the specific task; do not over-engineer
- Comment on the issue to keep users informed of your progress
- Never write placeholder or incomplete code
- Preserve existing functionality"""

TASK_GUIDANCE = {
    TaskType.BUG_FIX: "Analyze and fix this issue. Reproduce the failure first when you can.",
    TaskType.REFACTOR: "Refactor the code for maintainability without changing behavior.",
    TaskType.TEST_GENERATION: "Add tests covering the described behavior, following the project's test conventions.",
    TaskType.DOCUMENTATION: "Write or update documentation for the described area.",
    TaskType.DEPENDENCY_UPDATE: "Update the dependencies described and fix any breakage the update causes.",
    TaskType.CODE_QUALITY: "Improve code quality in the described area (naming, duplication, lint issues).",
    TaskType.SECURITY_AUDIT: "Audit the described area for security issues and fix what you find.",
}

PR_TITLE_PREFIX = {
    TaskType.BUG_FIX: "Fix",
    TaskType.REFACTOR: "Refactor",
    TaskType.TEST_GENERATION: "Tests",
    TaskType.DOCUMENTATION: "Docs",
    TaskType.DEPENDENCY_UPDATE: "Deps",
    TaskType.CODE_QUALITY: "Quality",
    TaskType.SECURITY_AUDIT: "Security",
}

NUDGE_MESSAGE = (
    "Your last response contained neither an action nor \"finished\": true. "
    "Reply with a single JSON object in one of the formats from the instructions."
)


class PromptBuilder:
    """Builds the prompts the agent loop sends to the provider."""

    def build_system_prompt(self, tool_catalog: str) -> str:
        return (
            "You are an autonomous software engineering agent that resolves repository "
            "tasks by exploring code and making changes.\n\n"
            "## Available Tools\n\n"
            f"{tool_catalog}\n\n"
            f"{RESPONSE_FORMAT}\n\n"
            f"{GUIDELINES}"
        )

    def build_task_prompt(self, job: Job) -> str:
        params = job.task_params
        title = params.get("issueTitle") or params.get("title") or "No title"
        description = (
            params.get("issueBody")
            or params.get("body")
            or params.get("args")
            or "No description provided"
        )
        guidance = TASK_GUIDANCE[TaskType(job.task_type)]
        return (
            f"Issue Title: {title}\n\n"
            f"Issue Description:\n{description}\n\n"
            f"Repository: {job.repo_slug}\n\n"
            f"Your task: {guidance} Start by exploring the repository structure."
        )

    def pr_title(self, job: Job) -> str:
        params = job.task_params
        title = params.get("issueTitle") or params.get("title") or "Automated change"
        return f"{PR_TITLE_PREFIX[TaskType(job.task_type)]}: {title}"

    def pr_body(self, job: Job, summary: str) -> str:
        body = summary
        if job.issue_number is not None:
            body += f"\n\nFixes #{job.issue_number}"
        return body
