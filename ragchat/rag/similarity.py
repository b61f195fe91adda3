"""Cosine similarity and best-match search over a VectorStore."""
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import structlog

from ragchat.errors import ZeroMagnitudeVector
from ragchat.rag.store import Chunk, VectorStore

logger = structlog.get_logger()

# A chunk only wins if it scores strictly above this value.
SIMILARITY_FLOOR = 0.0


@dataclass
class SearchMatch:
    """Best-matching chunk for a query vector."""

    chunk: Chunk
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors of possibly different lengths.

    The dot product runs over the coordinates both vectors have; each
    magnitude uses every coordinate of its own vector, so the shorter vector
    behaves as if zero-padded.

    Raises:
        ZeroMagnitudeVector: If either vector has zero magnitude
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    shared = min(vec_a.size, vec_b.size)

    dot = float(np.dot(vec_a[:shared], vec_b[:shared]))
    sq_a = float(np.dot(vec_a, vec_a))
    sq_b = float(np.dot(vec_b, vec_b))

    if sq_a == 0.0 or sq_b == 0.0:
        raise ZeroMagnitudeVector("vectors should not be null (all zeros)")

    return dot / (math.sqrt(sq_a) * math.sqrt(sq_b))


def best_match(store: VectorStore, query_vector: Sequence[float]) -> Optional[SearchMatch]:
    """Find the stored chunk most similar to query_vector.

    Only a strict improvement over the running best (starting at
    SIMILARITY_FLOOR) replaces it, so ties keep the earlier chunk and a store
    where nothing scores above the floor yields None.

    Raises:
        ZeroMagnitudeVector: If any comparison is undefined; no partial result
    """
    best: Optional[SearchMatch] = None
    max_similarity = SIMILARITY_FLOOR

    for chunk in store:
        similarity = cosine_similarity(chunk.vector, query_vector)
        if similarity > max_similarity:
            best = SearchMatch(chunk=chunk, similarity=similarity)
            max_similarity = similarity

    logger.debug(
        "vector_search_completed",
        candidates=len(store),
        matched_id=best.chunk.id if best else None,
        similarity=best.similarity if best else None,
    )

    return best


def search(store: VectorStore, query_vector: Sequence[float]) -> str:
    """Return the text of the best-matching chunk, or "" if none qualifies."""
    match = best_match(store, query_vector)
    return match.chunk.text if match else ""
