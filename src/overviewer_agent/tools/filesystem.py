"""File tools scoped to the job workspace."""

import os
import shutil

from .base import Tool, ToolContext, ToolParameter, ToolResult

# Never listed or searched
SKIP_NAMES = frozenset({"node_modules", "dist", "build", ".git", ".next", "__pycache__"})


def is_hidden(name: str) -> bool:
    return name.startswith(".") or name in SKIP_NAMES


class ReadFileTool(Tool):
    name = "read_file"
    description = "Read the contents of a file in the repository"
    parameters = {
        "path": ToolParameter(
            type="string",
            description="Relative path to the file from the repository root",
            required=True,
        ),
    }

    def __init__(self, max_bytes: int = 512 * 1024):
        self.max_bytes = max_bytes

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        path = context.workspace.resolve(str(params["path"]))
        if path.is_dir():
            return ToolResult.fail(f"{params['path']} is a directory")

        size = path.stat().st_size
        with open(path, "rb") as f:
            data = f.read(self.max_bytes)
        content = data.decode("utf-8", errors="replace")
        if size > self.max_bytes:
            content += f"\n[truncated: showing first {self.max_bytes} of {size} bytes]"
        return ToolResult.ok(content)


class WriteFileTool(Tool):
    name = "write_file"
    description = "Write or create a file in the repository"
    parameters = {
        "path": ToolParameter(
            type="string",
            description="Relative path to the file from the repository root",
            required=True,
        ),
        "content": ToolParameter(
            type="string",
            description="Content to write to the file",
            required=True,
        ),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        path = context.workspace.resolve(str(params["path"]))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(params["content"]), encoding="utf-8")
        return ToolResult.ok(f"File written successfully: {params['path']}")


class ListDirectoryTool(Tool):
    name = "list_directory"
    description = "List files and directories in a given path"
    parameters = {
        "path": ToolParameter(
            type="string",
            description="Relative path to the directory from the repository root (use '.' for root)",
            required=True,
        ),
        "recursive": ToolParameter(
            type="boolean",
            description="Whether to list files recursively",
        ),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        root = context.workspace.resolve(str(params["path"]))
        if not root.is_dir():
            return ToolResult.fail(f"Not a directory: {params['path']}")

        recursive = params.get("recursive") in (True, "true", "True", 1)
        entries: list[str] = []

        def scan(directory, prefix: str) -> None:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
            for entry in children:
                if is_hidden(entry.name):
                    continue
                relative = f"{prefix}{entry.name}"
                if entry.is_dir(follow_symlinks=False):
                    entries.append(f"{relative}/")
                    if recursive:
                        scan(entry.path, f"{relative}/")
                else:
                    entries.append(relative)

        scan(root, "")
        return ToolResult.ok("\n".join(entries) if entries else "(empty directory)")


class MoveFileTool(Tool):
    name = "move_file"
    description = "Move or rename a file in the repository"
    parameters = {
        "from": ToolParameter(type="string", description="Current path of the file", required=True),
        "to": ToolParameter(type="string", description="New path for the file", required=True),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        source = context.workspace.resolve(str(params["from"]))
        target = context.workspace.resolve(str(params["to"]))
        if not source.exists():
            return ToolResult.fail(f"No such file: {params['from']}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        return ToolResult.ok(f"File moved: {params['from']} -> {params['to']}")


class DeleteFileTool(Tool):
    name = "delete_file"
    description = "Delete a file in the repository"
    parameters = {
        "path": ToolParameter(
            type="string",
            description="Relative path to the file from the repository root",
            required=True,
        ),
    }

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        path = context.workspace.resolve(str(params["path"]))
        if path.is_dir():
            return ToolResult.fail(f"{params['path']} is a directory; only files can be deleted")
        path.unlink()
        return ToolResult.ok(f"File deleted: {params['path']}")
