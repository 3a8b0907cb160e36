"""
Vector math for memory retrieval.

Fails soft: bad or missing vectors give a 0 similarity instead of raising,
so one broken record cannot block retrieval for the whole store.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np


logger = logging.getLogger(__name__)

Vector = Sequence[float]


def cosine_similarity(vec_a: Optional[Vector], vec_b: Optional[Vector]) -> float:
    """
    Cosine similarity between two vectors.

    Args:
        vec_a: First embedding vector
        vec_b: Second embedding vector

    Returns:
        Similarity in [-1, 1]; 0.0 for missing, mismatched or zero-norm input
    """
    if vec_a is None or vec_b is None or len(vec_a) == 0 or len(vec_a) != len(vec_b):
        logger.warning(
            "Vector dimension mismatch or invalid vectors (%s vs %s)",
            None if vec_a is None else len(vec_a),
            None if vec_b is None else len(vec_b),
        )
        return 0.0

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def normalize(vector: Optional[Vector]) -> List[float]:
    """
    Scale a vector to unit length.

    Zero-norm vectors come back unchanged; empty input gives ``[]``.
    """
    if vector is None or len(vector) == 0:
        return []

    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return list(vector)

    return (arr / norm).tolist()


def average(vectors: Sequence[Vector]) -> List[float]:
    """
    Element-wise mean of equal-dimension vectors.

    Dimensions are not validated; callers must not mix embedding models.
    """
    if vectors is None or len(vectors) == 0:
        return []

    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()
