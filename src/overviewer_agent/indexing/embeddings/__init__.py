"""Embedding model and vector storage."""

from .embedder import MODEL_NAME, Embedder, cosine_scores
from .vector_store import VectorStore

__all__ = ["MODEL_NAME", "Embedder", "VectorStore", "cosine_scores"]
