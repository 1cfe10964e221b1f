"""
Vector and string similarity functions.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from prosemerge.core.errors import DimensionMismatchError
from prosemerge.core.models import SimilarityClass, SimilarityThresholds


IDENTICAL_THRESHOLD = 0.9999

# Scores are rounded so that identical vectors score exactly 1.0
SCORE_PRECISION = 12


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return round(float(np.dot(va, vb) / magnitude), SCORE_PRECISION)


def cosine_similarity_matrix(
    source: Sequence[Sequence[float]],
    target: Sequence[Sequence[float]]
) -> np.ndarray:
    """
    Pairwise cosine similarities between two batches of vectors.

    Rows with zero magnitude produce zero similarity.

    Returns:
        Array of shape (len(source), len(target))
    """
    if len(source) == 0 or len(target) == 0:
        return np.zeros((len(source), len(target)), dtype=np.float64)

    src = _as_matrix(source)
    tgt = _as_matrix(target)
    if src.shape[1] != tgt.shape[1]:
        raise DimensionMismatchError(src.shape[1], tgt.shape[1])

    src_norms = np.linalg.norm(src, axis=1, keepdims=True)
    tgt_norms = np.linalg.norm(tgt, axis=1, keepdims=True)
    src_unit = np.divide(src, src_norms, out=np.zeros_like(src), where=src_norms != 0)
    tgt_unit = np.divide(tgt, tgt_norms, out=np.zeros_like(tgt), where=tgt_norms != 0)
    return np.round(src_unit @ tgt_unit.T, SCORE_PRECISION)


def _as_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Stack vectors into a 2-D array, rejecting ragged input."""
    width = len(vectors[0])
    for vector in vectors:
        if len(vector) != width:
            raise DimensionMismatchError(width, len(vector))
    return np.asarray(vectors, dtype=np.float64).reshape(len(vectors), width)


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning ``a`` into ``b``."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost   # substitution
            )
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """
    Normalised edit similarity between 0.0 and 1.0.

    Two empty strings are identical.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def classify_similarity(
    score: float,
    thresholds: Optional[SimilarityThresholds] = None
) -> SimilarityClass:
    """Bucket a similarity score."""
    thresholds = thresholds or SimilarityThresholds()
    if score >= IDENTICAL_THRESHOLD:
        return SimilarityClass.IDENTICAL
    if score >= thresholds.equivalent_threshold:
        return SimilarityClass.EQUIVALENT
    if score >= thresholds.similar_threshold:
        return SimilarityClass.SIMILAR
    return SimilarityClass.DIFFERENT
