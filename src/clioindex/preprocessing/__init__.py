"""
ClioIndex Preprocessing Module

Text cleanup, chunking, quality filtering and deduplication ahead of embedding.
"""

from clioindex.preprocessing.embedding_cache import EmbeddingCache
from clioindex.preprocessing.quality import (
    ChunkQualityScorer,
    QualityScore,
    QualityCriterion,
    QualityRejection,
    FilterStats,
    QualityFilterResult,
)
from clioindex.preprocessing.dedup import (
    ChunkDeduplicator,
    DeduplicationResult,
    compute_content_hash,
    calculate_similarity,
    is_near_duplicate,
)
from clioindex.preprocessing.text_preprocessor import TextPreprocessor, PreprocessingStats
from clioindex.preprocessing.fixed_chunker import (
    FixedWindowChunker,
    ChunkingStats,
    chunking_stats,
    WORD_TOLERANCE,
)
from clioindex.preprocessing.semantic_chunker import SemanticBoundaryChunker, SemanticBoundary
from clioindex.preprocessing.unified_chunker import UnifiedChunker, ChunkedDocument

__all__ = [
    # Cache
    "EmbeddingCache",

    # Quality
    "ChunkQualityScorer",
    "QualityScore",
    "QualityCriterion",
    "QualityRejection",
    "FilterStats",
    "QualityFilterResult",

    # Deduplication
    "ChunkDeduplicator",
    "DeduplicationResult",
    "compute_content_hash",
    "calculate_similarity",
    "is_near_duplicate",

    # Cleanup
    "TextPreprocessor",
    "PreprocessingStats",

    # Chunkers
    "FixedWindowChunker",
    "ChunkingStats",
    "chunking_stats",
    "WORD_TOLERANCE",
    "SemanticBoundaryChunker",
    "SemanticBoundary",
    "UnifiedChunker",
    "ChunkedDocument",
]
