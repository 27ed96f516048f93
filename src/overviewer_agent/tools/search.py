"""Code search tools: regex over files and semantic lookup."""

import asyncio
import fnmatch
import os
import re
from pathlib import Path

from .base import Tool, ToolContext, ToolParameter, ToolResult
from .filesystem import is_hidden

MAX_SEARCH_FILE_BYTES = 2 * 1024 * 1024
MAX_REPORTED_FILES = 200


class SearchCodeTool(Tool):
    name = "search_code"
    description = "Search for a pattern in code files"
    parameters = {
        "pattern": ToolParameter(
            type="string",
            description="Text pattern or regex to search for (case-insensitive)",
            required=True,
        ),
        "filePattern": ToolParameter(
            type="string",
            description="File name glob to search (e.g., '*.py', '*.ts')",
        ),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        try:
            regex = re.compile(str(params["pattern"]), re.IGNORECASE)
        except re.error as e:
            return ToolResult.fail(f"Invalid pattern: {e}")
        file_glob = params.get("filePattern") or params.get("file_pattern")

        root = context.workspace.root
        results: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not is_hidden(d))
            for filename in sorted(filenames):
                if is_hidden(filename):
                    continue
                if file_glob and not fnmatch.fnmatch(filename, file_glob):
                    continue
                path = Path(dirpath) / filename
                count = _count_matches(path, regex)
                if count:
                    results.append(f"{path.relative_to(root).as_posix()}: {count} match(es)")

        if not results:
            return ToolResult.ok("No matches found")
        extra = len(results) - MAX_REPORTED_FILES
        if extra > 0:
            results = results[:MAX_REPORTED_FILES] + [f"... ({extra} more files)"]
        return ToolResult.ok("\n".join(results))


def _count_matches(path: Path, regex: re.Pattern) -> int:
    try:
        if path.stat().st_size > MAX_SEARCH_FILE_BYTES:
            return 0
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return 0
    return sum(1 for _ in regex.finditer(content))


class SemanticSearchTool(Tool):
    name = "semantic_search"
    description = (
        "Search the codebase semantically to find relevant files based on meaning, "
        "not just keywords"
    )
    parameters = {
        "query": ToolParameter(
            type="string",
            description=(
                "Natural language description of what you're looking for "
                "(e.g., 'password validation logic', 'payment processing functions')"
            ),
            required=True,
        ),
        "limit": ToolParameter(
            type="number",
            description="Maximum number of results to return (default: 5)",
        ),
    }

    async def run(self, params: dict, context: ToolContext) -> ToolResult:
        if context.code_search is None:
            return ToolResult.fail("Code indexer not available")
        try:
            limit = int(params.get("limit") or 5)
        except (TypeError, ValueError):
            return ToolResult.fail(f"limit must be a number, got {params.get('limit')!r}")

        results = await asyncio.to_thread(context.code_search.search_code, str(params["query"]), limit)
        lines = [
            f"{i}. {path} (relevance: {score * 100:.1f}%)"
            for i, (path, score) in enumerate(results, start=1)
        ]
        return ToolResult.ok(f"Found {len(results)} relevant files:\n" + "\n".join(lines))
