"""Cosine similarity helpers shared by the chunkers and the vector store."""
from typing import Sequence

import numpy as np

from clioindex.core.errors import DimensionMismatchError


def as_vector(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), 0.0 when either vector has zero norm.

    Raises DimensionMismatchError when the vectors differ in length.
    """
    va = as_vector(a)
    vb = as_vector(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError(expected=va.shape[0], actual=vb.shape[0])

    magnitude = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


def cosine_similarity_matrix(queries: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Pairwise cosine similarity between rows of `queries` (QxD) and `matrix` (NxD).
    Rows with zero norm score 0 against everything.
    """
    if queries.ndim == 1:
        queries = queries.reshape(1, -1)
    if matrix.size == 0:
        return np.zeros((queries.shape[0], 0), dtype=np.float64)
    if queries.shape[1] != matrix.shape[1]:
        raise DimensionMismatchError(expected=matrix.shape[1], actual=queries.shape[1])

    q_norms = np.linalg.norm(queries, axis=1)
    m_norms = np.linalg.norm(matrix, axis=1)
    denom = np.outer(q_norms, m_norms)
    dots = queries @ matrix.T

    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / np.where(denom > 0, denom, 1.0), 0.0)
    return sims
