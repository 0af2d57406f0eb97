"""Ranked result containers shared by the search providers and HybridSearch."""
from dataclasses import dataclass
from typing import Optional

from .chunks import Chunk
from .library import Document


@dataclass
class SearchResult:
    """Dense hit: a chunk and its cosine similarity to the query."""
    chunk: Chunk
    similarity: float
    document: Optional[Document] = None


@dataclass
class KeywordResult:
    """Sparse hit: a chunk and its keyword (BM25) score."""
    chunk: Chunk
    score: float


@dataclass
class HybridResult(SearchResult):
    """
    Fused hit. `similarity` holds the boosted RRF score; the raw per-list
    scores and 1-based ranks are kept for diagnostics.
    """
    dense_score: float = 0.0
    sparse_score: float = 0.0
    dense_rank: Optional[int] = None
    sparse_rank: Optional[int] = None
    exact_match: bool = False
