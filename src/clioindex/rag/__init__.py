"""
ClioIndex Retrieval Module

Vector storage, search providers, hybrid fusion and the query facade.
"""

from clioindex.rag.vector_store import VectorStore, IntegrityReport, StoreStatistics
from clioindex.rag.providers import (
    DenseSearchProvider,
    SparseSearchProvider,
    ExactDenseSearch,
    BM25KeywordIndex,
    build_dense_provider,
    register_dense_strategy,
)
from clioindex.rag.hybrid_search import HybridSearch, reciprocal_rank_fusion, extract_keywords
from clioindex.rag.retriever import HybridRetriever

__all__ = [
    "VectorStore",
    "IntegrityReport",
    "StoreStatistics",
    "DenseSearchProvider",
    "SparseSearchProvider",
    "ExactDenseSearch",
    "BM25KeywordIndex",
    "build_dense_provider",
    "register_dense_strategy",
    "HybridSearch",
    "reciprocal_rank_fusion",
    "extract_keywords",
    "HybridRetriever",
]
