"""Job workspaces."""

from .manager import Workspace, WorkspaceManager

__all__ = ["Workspace", "WorkspaceManager"]
