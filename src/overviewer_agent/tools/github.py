"""Tools that talk to the hosting repository."""

from .base import Tool, ToolContext, ToolParameter, ToolResult


class CommentOnIssueTool(Tool):
    name = "comment_on_issue"
    description = "Post a comment on the GitHub issue"
    parameters = {
        "message": ToolParameter(type="string", description="Comment message to post", required=True),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        if not context.issue_number:
            return ToolResult.fail("No issue number available")
        if context.repo is None:
            return ToolResult.fail("Repository client not available")

        url = context.repo.comment_on_issue(
            context.repo_owner,
            context.repo_name,
            context.issue_number,
            str(params["message"]),
        )
        output = "Comment posted successfully"
        return ToolResult.ok(f"{output}: {url}" if url else output)
