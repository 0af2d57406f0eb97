"""
Main indexing orchestrator.

Coordinates: preprocess → chunk → quality filter → deduplicate → embed → persist → similarities

Every collaborator (store, embedder, cache, keyword index) is injected, so the
pipeline can run against an in-memory database and a stub embedder in tests.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from clioindex.core.errors import DocumentNotFoundError, IndexingCancelledError
from clioindex.core.logging import get_logger
from clioindex.preprocessing import (
    ChunkDeduplicator,
    ChunkQualityScorer,
    EmbeddingCache,
    TextPreprocessor,
    UnifiedChunker,
    chunking_stats,
)
from clioindex.rag.providers import BM25KeywordIndex
from clioindex.rag.vector_store import VectorStore
from clioindex.schema import Chunk, Document, DocumentPage, IndexingConfig
from clioindex.utils.pages import load_pages

logger = get_logger(__name__)


# ============================================================================
# RESULT MODELS
# ============================================================================

class IndexingStage(str, Enum):
    PREPROCESSING = "preprocessing"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    SIMILARITIES = "similarities"
    COMPLETED = "completed"
    ERROR = "error"


class IndexingProgress(BaseModel):
    stage: IndexingStage
    progress: int  # 0-100
    message: str
    current_chunk: Optional[int] = None
    total_chunks: Optional[int] = None


class IndexingResult(BaseModel):
    """Result from indexing one document."""
    document_id: str
    title: str
    chunks_created: int
    chunks_filtered: int
    duplicates_removed: int
    similarities: int
    strategy: str
    duration: float


ProgressCallback = Callable[[IndexingProgress], None]


@dataclass
class DocumentInput:
    """One document to index: extracted pages plus bibliographic metadata."""
    pages: List[DocumentPage]
    title: str
    author: Optional[str] = None
    year: Optional[str] = None
    file_path: Optional[str] = None
    bibtex_key: Optional[str] = None
    summary: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# MAIN INDEXING PIPELINE
# ============================================================================

class IndexingPipeline:
    """
    Indexes documents into a VectorStore.

    Flow:
    1. Preprocess pages (OCR cleanup, headers/footers, page numbers)
    2. Chunk (fixed, semantic or auto)
    3. Drop low-quality chunks
    4. Drop duplicate chunks
    5. Embed in batches through the cache and persist each batch
    6. Compute similarity edges against the rest of the library

    A failure after the document row is written removes the document (and
    whatever chunks were already saved) before the error propagates.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder,
        config: Optional[IndexingConfig] = None,
        cache: Optional[EmbeddingCache] = None,
        keyword_index: Optional[BM25KeywordIndex] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.config = config or IndexingConfig()
        self.cache = cache if cache is not None else EmbeddingCache(max_size=self.config.embedding_cache_size)
        self.keyword_index = keyword_index

        self.preprocessor = TextPreprocessor(self.config.preprocessing)
        self.chunker = UnifiedChunker(self.config, embed_fn=embedder.embed, cache=self.cache)
        self.quality_scorer = ChunkQualityScorer(self.config.quality)
        self.deduplicator = ChunkDeduplicator(self.config.dedup)

        logger.info(
            "indexing_pipeline_initialized",
            strategy=self.config.chunking_strategy.value,
            batch_size=self.config.embedding_batch_size
        )

    async def index_document(
        self,
        doc: DocumentInput,
        document_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexingResult:
        """
        Index one document and return a summary of what was stored.

        An explicit document_id must not exist yet; use reindex_document to
        replace a stored document.
        """
        if document_id is not None and self.store.get_document(document_id) is not None:
            raise ValueError(
                f"Document {document_id} already exists; use reindex_document to replace it"
            )

        start_time = time.time()

        def report(stage: IndexingStage, progress: int, message: str, **extra):
            if on_progress is not None:
                on_progress(IndexingProgress(stage=stage, progress=progress, message=message, **extra))

        document = Document(
            title=doc.title,
            author=doc.author,
            year=doc.year,
            file_path=doc.file_path,
            bibtex_key=doc.bibtex_key,
            summary=doc.summary,
            page_count=len(doc.pages),
            metadata_=dict(doc.metadata),
        )
        if document_id is not None:
            document.id = document_id

        logger.info("indexing_document", document_id=document.id, title=doc.title, pages=len(doc.pages))
        document = self.store.save_document(document)

        try:
            # 1. Preprocess
            pages = doc.pages
            if self.config.enable_preprocessing:
                report(IndexingStage.PREPROCESSING, 5, "Cleaning page text")
                pages, prep_stats = self.preprocessor.preprocess(pages)
                logger.debug(
                    "preprocessing_stats",
                    headers_removed=prep_stats.headers_removed,
                    footers_removed=prep_stats.footers_removed,
                    page_numbers_removed=prep_stats.page_numbers_removed,
                    characters_removed=prep_stats.characters_removed
                )

            # 2. Chunk
            report(IndexingStage.CHUNKING, 20, "Splitting text into chunks")
            chunked = await self.chunker.chunk(pages, document.id, title=doc.title)
            chunks = chunked.chunks
            initial_count = len(chunks)

            # 3. Quality filtering
            filtered = 0
            if self.config.enable_quality_filtering:
                quality = self.quality_scorer.filter_by_quality(chunks)
                chunks = quality.passed
                filtered = quality.stats.filtered
                logger.info(
                    "quality_filtering_complete",
                    passed=quality.stats.passed,
                    total=quality.stats.total,
                    filter_rate=quality.stats.filter_rate
                )

            # 4. Deduplication
            duplicates = 0
            if self.config.enable_deduplication:
                dedup = self.deduplicator.deduplicate(chunks)
                chunks = dedup.unique_chunks
                duplicates = dedup.duplicate_count

            report(
                IndexingStage.CHUNKING, 45, f"{len(chunks)} chunks created",
                total_chunks=len(chunks),
            )

            # 5. Embed and persist
            await self._embed_and_save(chunks, report)
            if self.keyword_index is not None:
                self.keyword_index.invalidate()

            # 6. Similarities
            report(IndexingStage.SIMILARITIES, 95, "Computing similarities with other documents")
            similarities = self.store.compute_and_save_similarities(
                document.id, self.config.similarity_threshold
            )
        except Exception:
            logger.error("indexing_failed", document_id=document.id, title=doc.title, exc_info=True)
            self.store.delete_document(document.id)
            if self.keyword_index is not None:
                self.keyword_index.invalidate()
            report(IndexingStage.ERROR, 0, f"Indexing failed: {doc.title}")
            raise

        duration = time.time() - start_time
        stats = chunking_stats(chunks)
        report(
            IndexingStage.COMPLETED, 100,
            f"Indexed {len(chunks)} chunks, {similarities} similarities",
        )
        logger.info(
            "document_indexed",
            document_id=document.id,
            chunks=len(chunks),
            initial_chunks=initial_count,
            total_words=stats.total_words,
            avg_words=stats.average_word_count,
            similarities=similarities,
            duration=duration
        )

        return IndexingResult(
            document_id=document.id,
            title=document.title,
            chunks_created=len(chunks),
            chunks_filtered=filtered,
            duplicates_removed=duplicates,
            similarities=similarities,
            strategy=chunked.strategy.value,
            duration=duration,
        )

    async def _embed_and_save(self, chunks: List[Chunk], report) -> None:
        """Embed in batches of `embedding_batch_size`; each batch is saved before the next one starts."""
        batch_size = self.config.embedding_batch_size
        total = len(chunks)
        report(IndexingStage.EMBEDDING, 50, "Generating embeddings", total_chunks=total)

        for offset in range(0, total, batch_size):
            batch = chunks[offset:offset + batch_size]
            vectors = await self.cache.batch_get_or_compute(
                [c.content for c in batch], self.embedder.embed_batch
            )
            self.store.save_chunks(list(zip(batch, vectors)))

            done = offset + len(batch)
            report(
                IndexingStage.EMBEDDING,
                50 + (done * 45) // total,
                f"Embeddings: {done}/{total}",
                current_chunk=done,
                total_chunks=total,
            )

    async def index_many(
        self,
        docs: Sequence[DocumentInput],
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[Callable[[int, IndexingProgress], None]] = None,
    ) -> List[IndexingResult]:
        """
        Index documents one at a time. A failing document is logged and
        skipped. Cancellation is checked between documents only and raises
        IndexingCancelledError carrying the results completed so far.
        """
        results: List[IndexingResult] = []

        for i, doc in enumerate(docs):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("batch_indexing_cancelled", completed=len(results), total=len(docs))
                raise IndexingCancelledError(completed=results)

            callback = None
            if on_progress is not None:
                callback = lambda progress, index=i: on_progress(index, progress)

            try:
                results.append(await self.index_document(doc, on_progress=callback))
            except Exception as e:
                logger.error("batch_document_failed", title=doc.title, error=str(e))

        logger.info("batch_indexing_complete", indexed=len(results), total=len(docs))
        return results

    async def reindex_document(
        self,
        document_id: str,
        pages: Optional[List[DocumentPage]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexingResult:
        """
        Delete then recreate a document under the same id. Pages are reloaded
        from the document's file_path when not given.
        """
        existing = self.store.get_document(document_id)
        if existing is None:
            raise DocumentNotFoundError(document_id)

        if pages is None:
            if not existing.file_path:
                raise ValueError(f"Document {document_id} has no file_path to reload pages from")
            pages = load_pages(existing.file_path)

        logger.info("reindexing_document", document_id=document_id, title=existing.title)
        self.store.delete_document(document_id)

        doc = DocumentInput(
            pages=pages,
            title=existing.title,
            author=existing.author,
            year=existing.year,
            file_path=existing.file_path,
            bibtex_key=existing.bibtex_key,
            summary=existing.summary,
            metadata=dict(existing.metadata_ or {}),
        )
        return await self.index_document(doc, document_id=document_id, on_progress=on_progress)


# ============================================================================
# FACTORY FUNCTION (Easy initialization with defaults)
# ============================================================================

def create_default_pipeline(settings=None, engine=None, embedder=None, config=None) -> IndexingPipeline:
    """
    Create an IndexingPipeline wired from Settings: SQLite store, FastEmbed
    (or OpenAI) embeddings and a keyword index.
    """
    from clioindex.utils.db import create_db_engine

    if settings is None:
        from clioindex.config import settings
    if engine is None:
        engine = create_db_engine(settings.database_url)
    if embedder is None:
        from clioindex.utils.embeddings import EmbeddingService
        embedder = EmbeddingService(settings.embedding_model)

    store = VectorStore(engine)
    pipeline = IndexingPipeline(
        store=store,
        embedder=embedder,
        config=config or settings.indexing_config(),
        keyword_index=BM25KeywordIndex(store),
    )

    logger.info("default_pipeline_created")
    return pipeline
