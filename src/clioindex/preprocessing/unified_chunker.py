"""
Unified Chunker - one entry point for the fixed and semantic strategies.

Strategies:
1. SemanticBoundaryChunker - embedding-driven topic boundaries (better quality, slower)
2. FixedWindowChunker - word windows with overlap (fastest, deterministic)

AUTO picks semantic when an embedding function is available and the document
is small enough, fixed otherwise.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from clioindex.core.logging import get_logger
from clioindex.preprocessing.embedding_cache import EmbeddingCache
from clioindex.preprocessing.fixed_chunker import FixedWindowChunker, chunking_stats
from clioindex.preprocessing.semantic_chunker import EmbeddingFunction, SemanticBoundaryChunker
from clioindex.schema.chunks import Chunk
from clioindex.schema.configs import ChunkingStrategy, IndexingConfig
from clioindex.schema.library import DocumentPage

logger = get_logger(__name__)


@dataclass
class ChunkedDocument:
    """Result of document chunking."""
    chunks: List[Chunk]
    strategy: ChunkingStrategy
    metadata: Dict[str, Any] = field(default_factory=dict)


class UnifiedChunker:
    """
    Usage:
        chunker = UnifiedChunker(config, embed_fn=service.embed, cache=cache)
        result = await chunker.chunk(pages, document_id, title="...")
    """

    def __init__(
        self,
        config: Optional[IndexingConfig] = None,
        embed_fn: Optional[EmbeddingFunction] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.config = config or IndexingConfig()
        self.embed_fn = embed_fn
        self.cache = cache if cache is not None else EmbeddingCache(max_size=self.config.embedding_cache_size)

        self._fixed_chunker = FixedWindowChunker(self.config.fixed)
        self._semantic_chunker: Optional[SemanticBoundaryChunker] = None

        # Performance stats
        self.stats: Dict[str, Any] = {
            "total_chunks": 0,
            "total_documents": 0,
            "total_time": 0.0,
            "strategy_usage": {}
        }

        logger.info(
            "unified_chunker_initialized",
            strategy=self.config.chunking_strategy.value,
            semantic_available=embed_fn is not None,
            cache_size=self.cache.max_size
        )

    async def chunk(
        self,
        pages: Sequence[DocumentPage],
        document_id: str,
        title: Optional[str] = None,
        strategy: Optional[ChunkingStrategy] = None,
    ) -> ChunkedDocument:
        """
        Chunk pages using the configured (or overridden) strategy.

        Raises ValueError when SEMANTIC is requested without an embedding function.
        """
        start_time = time.time()

        selected = strategy or self.config.chunking_strategy
        if selected == ChunkingStrategy.AUTO:
            selected = self._auto_select_strategy(pages)

        logger.info("chunking_document", document_id=document_id, strategy=selected.value, pages=len(pages))

        if selected == ChunkingStrategy.SEMANTIC:
            chunks = await self._get_semantic_chunker().create_chunks(pages, document_id, title)
        else:
            chunks = self._fixed_chunker.create_chunks(pages, document_id, title)

        duration = time.time() - start_time
        self.stats["total_documents"] += 1
        self.stats["total_chunks"] += len(chunks)
        self.stats["total_time"] += duration
        self.stats["strategy_usage"][selected.value] = \
            self.stats["strategy_usage"].get(selected.value, 0) + 1

        stats = chunking_stats(chunks)
        logger.info(
            "chunking_complete",
            chunks=len(chunks),
            duration=duration,
            strategy=selected.value,
            avg_words=stats.average_word_count
        )

        return ChunkedDocument(
            chunks=chunks,
            strategy=selected,
            metadata={
                "duration": duration,
                "stats": stats,
                "cache_stats": self.cache.get_stats(),
            },
        )

    def _auto_select_strategy(self, pages: Sequence[DocumentPage]) -> ChunkingStrategy:
        if self.embed_fn is None:
            return ChunkingStrategy.FIXED
        total_words = sum(len(p.text.split()) for p in pages)
        if total_words < self.config.auto_semantic_max_words:
            return ChunkingStrategy.SEMANTIC
        return ChunkingStrategy.FIXED

    def _get_semantic_chunker(self) -> SemanticBoundaryChunker:
        if self.embed_fn is None:
            raise ValueError("Semantic chunking requires an embedding function")
        if self._semantic_chunker is None:
            self._semantic_chunker = SemanticBoundaryChunker(
                self.embed_fn,
                config=self.config.semantic,
                cache=self.cache,
            )
        return self._semantic_chunker

    def get_stats(self) -> Dict[str, Any]:
        """Get performance statistics."""
        stats = dict(self.stats)
        stats["strategy_usage"] = dict(self.stats["strategy_usage"])
        stats["cache"] = self.cache.get_stats()

        if stats["total_documents"] > 0:
            stats["avg_chunks_per_doc"] = stats["total_chunks"] / stats["total_documents"]
            stats["avg_time_per_doc"] = stats["total_time"] / stats["total_documents"]

        return stats

    def clear_cache(self):
        """Clear embedding cache."""
        self.cache.clear()
        logger.info("cache_cleared")
