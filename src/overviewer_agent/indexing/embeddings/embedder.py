"""Wraps SentenceTransformer for embedding tools, history entries and code files."""

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

MODEL_NAME = "nomic-ai/nomic-embed-text-v1.5"


def cosine_scores(query: Sequence[float], documents: Sequence[Sequence[float]]) -> list[float]:
    """Cosine similarity of one query vector against each document vector."""
    if len(documents) == 0:
        return []
    q = np.asarray(query, dtype=np.float32)
    docs = np.asarray(documents, dtype=np.float32)
    q_norm = np.linalg.norm(q) or 1.0
    doc_norms = np.linalg.norm(docs, axis=1)
    doc_norms = np.where(doc_norms == 0, 1.0, doc_norms)
    return (docs @ q / (doc_norms * q_norm)).tolist()


class Embedder:
    """Lazy-loading embedding model with Matryoshka dimension truncation.

    A model that fails to load is never retried; callers see ``None``
    and fall back to their non-semantic path.
    """

    def __init__(
        self,
        model_name: str = MODEL_NAME,
        dimensions: int = 256,
    ) -> None:
        self._model_name = model_name
        self._dimensions = dimensions
        self._model = None
        # Tri-state: None = untried, True = loaded, False = failed permanently
        self._available: Optional[bool] = None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def available(self) -> bool:
        return self._ensure_model()

    def _ensure_model(self) -> bool:
        if self._available is not None:
            return self._available

        try:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self._model_name, trust_remote_code=True)
            self._available = True
        except Exception:
            logger.warning("Failed to load embedding model %s", self._model_name, exc_info=True)
            self._available = False
        return self._available

    def _encode(self, texts: list[str]) -> np.ndarray:
        raw = np.asarray(self._model.encode(texts, show_progress_bar=False))
        truncated = raw[:, :self._dimensions]
        norms = np.linalg.norm(truncated, axis=1, keepdims=True)
        norms = np.where(norms == 0, 1.0, norms)
        return truncated / norms

    def embed_texts(self, texts: list[str]) -> Optional[list[list[float]]]:
        """Batch embed documents with the 'search_document: ' prefix."""
        if not self._ensure_model():
            return None
        if not texts:
            return []
        try:
            return self._encode([f"search_document: {t}" for t in texts]).tolist()
        except Exception:
            logger.warning("embed_texts failed for %d texts", len(texts), exc_info=True)
            return None

    def embed_query(self, text: str) -> Optional[list[float]]:
        """Embed a single query with the 'search_query: ' prefix."""
        if not self._ensure_model():
            return None
        try:
            return self._encode([f"search_query: {text}"])[0].tolist()
        except Exception:
            logger.warning("embed_query failed", exc_info=True)
            return None
