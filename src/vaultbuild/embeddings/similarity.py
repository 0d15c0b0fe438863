"""Pairwise cosine similarity and top-K neighbour lists."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Mapping, Sequence

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10


def pair_key(a: str, b: str) -> str:
    """Order-independent key for a pair of hashes: ``"{low}-{high}"``."""
    return f"{a}-{b}" if a < b else f"{b}-{a}"


def usable_vectors(hash_map: Mapping[str, Sequence[float]]) -> tuple[list[str], np.ndarray]:
    """Return sorted hashes and their matrix, dropping unusable vectors.

    Empty vectors are dropped, and so are vectors whose size differs from the
    most common size in the map.
    """
    sizes = Counter(len(v) for v in hash_map.values() if v)
    if not sizes:
        return [], np.empty((0, 0))
    dimension = max(sizes, key=lambda d: (sizes[d], d))

    hashes = sorted(h for h, v in hash_map.items() if v and len(v) == dimension)
    dropped = len(hash_map) - len(hashes)
    if dropped:
        logger.warning("Skipping %d embeddings that are empty or not %d-dimensional", dropped, dimension)
    if not hashes:
        return [], np.empty((0, dimension))
    return hashes, np.asarray([hash_map[h] for h in hashes], dtype=np.float64)


def cosine_matrix(matrix: np.ndarray) -> np.ndarray:
    """All-pairs cosine similarity; zero vectors score 0 against everything."""
    norms = np.linalg.norm(matrix, axis=1)
    safe = np.where(norms == 0.0, 1.0, norms)
    unit = matrix / safe[:, None]
    return unit @ unit.T


def compute_similarity(hash_map: Mapping[str, Sequence[float]]) -> dict[str, float]:
    """Cosine similarity for every unordered pair of distinct items.

    Keys are :func:`pair_key` strings; there are no self-pairs. Fewer than two
    usable vectors yields an empty map.
    """
    hashes, matrix = usable_vectors(hash_map)
    if len(hashes) < 2:
        logger.info("Not enough items with embeddings to compute similarity (%d)", len(hashes))
        return {}

    scores = cosine_matrix(matrix)
    similarity: dict[str, float] = {}
    for i in range(len(hashes)):
        for j in range(i + 1, len(hashes)):
            similarity[f"{hashes[i]}-{hashes[j]}"] = float(scores[i, j])
    logger.info("Computed similarity for %d pairs", len(similarity))
    return similarity


def top_k_neighbours(
    similarity: Mapping[str, float],
    hashes: Sequence[str] | None = None,
    k: int = DEFAULT_TOP_K,
) -> dict[str, list[str]]:
    """Up to *k* most similar hashes per hash, best first.

    Ties on score are broken by hash lexical order so the output is stable.

    Args:
        similarity: Pair map from compute_similarity().
        hashes: Known hashes, used to split pair keys when hashes contain
            ``-``. Only hashes that appear in some pair get an entry.
        k: Neighbours kept per hash.
    """
    known = set(hashes) if hashes is not None else None
    scored: dict[str, list[tuple[float, str]]] = {}
    for key, score in similarity.items():
        a, b = _split_pair(key, known)
        scored.setdefault(a, []).append((score, b))
        scored.setdefault(b, []).append((score, a))

    neighbours: dict[str, list[str]] = {}
    for h in sorted(scored):
        ranked = sorted(scored.get(h, []), key=lambda item: (-item[0], item[1]))
        neighbours[h] = [other for _, other in ranked[: max(k, 0)]]
    return neighbours


def _split_pair(key: str, known: set[str] | None) -> tuple[str, str]:
    """Split a pair key back into its two hashes.

    Hashes may themselves contain ``-``; when the known hash list is given
    the split point is the one that yields two known hashes.
    """
    if known:
        for i, ch in enumerate(key):
            if ch == "-" and key[:i] in known and key[i + 1 :] in known:
                return key[:i], key[i + 1 :]
    a, _, b = key.partition("-")
    return a, b
