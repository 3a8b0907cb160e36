"""
Memory recall: top-K cosine similarity over a linear scan.

At the target scale (hundreds to low thousands of memories per entity) a
linear scan is enough. Anything exposing the same ``top_k`` signature can
replace RetrievalEngine in MemorySession.
"""

from typing import Optional, Sequence, List

from .schemas import MemoryRecord, ScoredMemory
from .vector_math import Vector, cosine_similarity


class RetrievalEngine:
    """
    Ranks memories against a query vector.

    Steps:
    1. Drop memories without an embedding
    2. Score each by cosine similarity
    3. Keep scores >= threshold
    4. Stable sort by score, descending (ties keep insertion order)
    5. Truncate to k
    """

    def top_k(
        self,
        query_vector: Optional[Vector],
        memories: Optional[Sequence[MemoryRecord]],
        k: int = 5,
        threshold: float = 0.7,
    ) -> List[ScoredMemory]:
        """
        Find the k most similar memories above a threshold.

        Args:
            query_vector: Query embedding
            memories: Candidate memories in insertion order
            k: Maximum results
            threshold: Minimum similarity (inclusive)

        Returns:
            ScoredMemory list sorted by score, best first
        """
        if query_vector is None or len(query_vector) == 0 or not memories or k <= 0:
            return []

        scored = []
        for memory in memories:
            if not memory.embedding:
                continue
            score = cosine_similarity(query_vector, memory.embedding)
            if score >= threshold:
                scored.append(ScoredMemory(memory=memory, score=score))

        # list.sort is stable, also with reverse=True
        scored.sort(key=lambda item: item.score, reverse=True)

        return scored[:k]


def find_top_k_similar(
    query_vector: Optional[Vector],
    memories: Optional[Sequence[MemoryRecord]],
    k: int = 5,
    threshold: float = 0.7,
) -> List[ScoredMemory]:
    """Standalone wrapper around RetrievalEngine.top_k."""
    return RetrievalEngine().top_k(query_vector, memories, k=k, threshold=threshold)
