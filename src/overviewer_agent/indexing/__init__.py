"""Semantic indexes over the tool catalog and cloned repositories."""

from .code_index import CodeIndex
from .tool_index import ToolSimilarityIndex

__all__ = ["CodeIndex", "ToolSimilarityIndex"]
