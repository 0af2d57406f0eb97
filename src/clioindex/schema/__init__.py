from .base import IdMixin, TimestampMixin, UtcTimestamp, new_id, utcnow
from .library import Document, DocumentPage
from .chunks import Chunk, EmbeddingVector
from .similarity import DocumentSimilarity
from .search import SearchResult, KeywordResult, HybridResult
from .configs import (
    ChunkingStrategy,
    CHUNKING_PRESETS,
    FixedChunkingConfig,
    SemanticChunkingConfig,
    QualityFilterConfig,
    DeduplicationConfig,
    PreprocessingConfig,
    HybridSearchConfig,
    IndexingConfig,
    merge_with_defaults,
)

__all__ = [
    "IdMixin", "TimestampMixin", "UtcTimestamp", "new_id", "utcnow",
    "Document", "DocumentPage", "Chunk", "EmbeddingVector", "DocumentSimilarity",
    "SearchResult", "KeywordResult", "HybridResult",
    "ChunkingStrategy", "CHUNKING_PRESETS",
    "FixedChunkingConfig", "SemanticChunkingConfig", "QualityFilterConfig",
    "DeduplicationConfig", "PreprocessingConfig", "HybridSearchConfig", "IndexingConfig",
    "merge_with_defaults",
]
