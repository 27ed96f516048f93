"""Semantic index of a cloned repository for the ``semantic_search`` tool."""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from .embeddings import Embedder, VectorStore

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = {".ts", ".js", ".tsx", ".jsx", ".py", ".go", ".rs", ".java"}
SKIP_DIRS = {"node_modules", "dist", "build", "__pycache__"}
MAX_SYMBOLS = 20
MAX_FILE_BYTES = 256 * 1024

_SYMBOL_PATTERN = re.compile(
    r"^\s*(?:export\s+)?(?:async\s+)?(?:def|class|function|func|fn|const|let|var)\s+(\w+)",
    re.MULTILINE,
)


def extract_symbols(content: str) -> list[str]:
    """Top declared names in a source file, in order of appearance."""
    return _SYMBOL_PATTERN.findall(content)[:MAX_SYMBOLS]


class CodeIndex:
    """Embeds one summary line per code file and answers nearest-file queries."""

    def __init__(self, embedder: Embedder, store: VectorStore):
        self._embedder = embedder
        self._store = store

    def scan(self, root: Path) -> list[Path]:
        files = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.suffix in CODE_EXTENSIONS:
                    files.append(path)
        return files

    def build(self, root: Path, commit_sha: Optional[str] = None) -> int:
        """Index ``root``; skipped when the table already matches ``commit_sha``."""
        root = Path(root)
        commit_sha = commit_sha or ""
        if commit_sha and self._store.stored_commit() == commit_sha:
            logger.info(f"Code index up to date at {commit_sha[:8]}")
            return 0

        records, summaries = [], []
        for path in self.scan(root):
            try:
                if path.stat().st_size > MAX_FILE_BYTES:
                    continue
                content = path.read_text(errors="replace")
            except OSError as e:
                logger.debug(f"Skipping {path}: {e}")
                continue
            relative = path.relative_to(root).as_posix()
            summary = f"File: {relative}. Functions: {', '.join(extract_symbols(content))}"
            records.append({"path": relative, "language": path.suffix.lstrip("."), "summary": summary})
            summaries.append(summary)

        vectors = self._embedder.embed_texts(summaries)
        if vectors is None:
            logger.warning("Embedding model unavailable; code index not built")
            return 0

        count = self._store.replace(records, vectors, commit_sha)
        logger.info(f"Indexed {count} code files under {root}")
        return count

    def search_code(self, query: str, limit: int = 5) -> list[tuple[str, float]]:
        """Most relevant file paths for a natural-language query."""
        embedding = self._embedder.embed_query(query)
        if embedding is None:
            raise RuntimeError("Embedding model unavailable")
        return [(hit["path"], hit["score"]) for hit in self._store.query(embedding, n_results=limit)]
