"""
Embedding similarity for the "similar images" search.
"""
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """
    Cosine similarity of two vectors.
    Missing, empty or different-length vectors score 0.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank_similar(
    source: Sequence[float],
    candidates: Iterable[Tuple[Any, Optional[Sequence[float]]]],
    threshold: float,
    limit: int,
) -> List[Tuple[Any, float]]:
    """
    Score candidates against the source vector.

    Args:
        source: Query embedding
        candidates: (item, embedding) pairs
        threshold: Minimum similarity to keep
        limit: Maximum results

    Returns:
        List of (item, similarity) sorted by similarity descending
    """
    scored = []
    for item, vector in candidates:
        score = cosine_similarity(source, vector)
        if score >= threshold:
            scored.append((item, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
