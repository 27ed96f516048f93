"""Embedding index over the tool catalog, used to rescue misspelled tool names."""

import logging
from typing import Iterable, Optional

from .embeddings import Embedder, cosine_scores

logger = logging.getLogger(__name__)


class ToolSimilarityIndex:
    """
    Ranks catalog tools by semantic similarity to a probe string.

    Catalog vectors are computed once, on first lookup. When the embedding
    model is unavailable every lookup returns no candidates.
    """

    def __init__(self, embedder: Embedder, tools: Iterable[tuple[str, str]] = ()):
        self._embedder = embedder
        self._catalog: list[tuple[str, str]] = list(tools)
        self._vectors: Optional[list[list[float]]] = None

    def add(self, name: str, description: str) -> None:
        self._catalog.append((name, description))
        self._vectors = None

    def _ensure_vectors(self) -> bool:
        if self._vectors is not None:
            return True
        texts = [f"{name}: {description}" for name, description in self._catalog]
        vectors = self._embedder.embed_texts(texts)
        if vectors is None:
            return False
        self._vectors = vectors
        return True

    def find_similar(self, probe: str, limit: int = 1) -> list[tuple[str, float]]:
        """Best-scoring tool names for ``probe``, highest first."""
        if not self._catalog or not self._ensure_vectors():
            return []
        query = self._embedder.embed_query(probe)
        if query is None:
            return []

        scores = cosine_scores(query, self._vectors)
        ranked = sorted(
            zip((name for name, _ in self._catalog), scores),
            key=lambda item: item[1],
            reverse=True,
        )
        return ranked[:limit]
