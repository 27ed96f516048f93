"""Conversation history budget.

Keeps the agent's history under a token budget by dropping the entries
least relevant to the current goal, preserving the original order of the
entries that survive.
"""

import logging
import math
from typing import List, Optional, Sequence

from ..indexing.embeddings import Embedder, cosine_scores
from ..llm import Message

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... [truncated]"


class ContextManager:
    """
    Relevance-ranked history compression.

    Entries are scored by cosine similarity to the goal. When no embedder is
    configured, or it cannot produce vectors, later entries score higher.
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        max_tokens: int = 8000,
        tokens_per_char: float = 0.25,
        keep_ratio: float = 0.7,
    ):
        self.embedder = embedder
        self.max_tokens = max_tokens
        self.tokens_per_char = tokens_per_char
        self.keep_ratio = keep_ratio

    def estimate_tokens(self, history: Sequence[Message]) -> int:
        total_chars = sum(len(entry.content) for entry in history)
        return math.ceil(total_chars * self.tokens_per_char)

    def compress_history(self, history: List[Message], goal: str) -> List[Message]:
        """
        Return ``history`` itself when under budget, else a relevance-filtered subsequence.

        The first entry is the task prompt and is always kept. The rest are
        taken in score order, skipping any that no longer fit. The
        best-scoring entry is clipped to the remaining budget rather than
        dropped, so an oversized tool output still reaches the model.
        """
        if self.estimate_tokens(history) < self.max_tokens:
            return history

        scores = self._score(history, goal)
        budget = self.max_tokens * self.keep_ratio
        # sorted() is stable, so equal scores keep earlier entries first
        ranked = sorted(range(1, len(history)), key=lambda i: scores[i], reverse=True)

        kept: dict[int, Message] = {}
        used = 0
        for position, index in enumerate([0] + ranked):
            entry = history[index]
            cost = self.estimate_tokens([entry])
            remaining = budget - used
            if cost > remaining:
                if position > 1 or remaining < 1:
                    continue
                entry = self._truncate(entry, remaining)
                cost = self.estimate_tokens([entry])
            kept[index] = entry
            used += cost

        compressed = [kept[i] for i in sorted(kept)]
        logger.info(f"Compressed history from {len(history)} to {len(compressed)} entries")
        return compressed

    def _truncate(self, entry: Message, max_tokens: float) -> Message:
        max_chars = int(max_tokens / self.tokens_per_char)
        if max_chars <= len(TRUNCATION_MARKER):
            content = entry.content[:max_chars]
        else:
            content = entry.content[: max_chars - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
        return entry.model_copy(update={"content": content})

    def _score(self, history: Sequence[Message], goal: str) -> list[float]:
        if self.embedder is not None:
            goal_vector = self.embedder.embed_query(goal)
            vectors = self.embedder.embed_texts([entry.content for entry in history])
            if goal_vector is not None and vectors is not None:
                return cosine_scores(goal_vector, vectors)
            logger.debug("Embedder unavailable; scoring history by recency")

        count = len(history)
        return [(index + 1) / count for index in range(count)]
