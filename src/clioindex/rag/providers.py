"""
Search providers.

HybridSearch and the retriever only see the two interfaces below. The dense
strategy is picked by name (`Settings.dense_strategy`) from a small registry,
so an approximate index can be plugged in without touching callers.
"""
from typing import Callable, Dict, List, Optional, Sequence

import bm25s

from clioindex.core.errors import SparseIndexUnavailableError
from clioindex.core.logging import get_logger
from clioindex.rag.vector_store import VectorStore
from clioindex.schema import Chunk, KeywordResult, SearchResult

logger = get_logger(__name__)


# ============================================================================
# PROVIDER INTERFACES
# ============================================================================

class DenseSearchProvider:
    """Protocol for vector search."""
    def search(
        self,
        query_vector: Sequence[float],
        k: int,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[SearchResult]:
        """Top-k chunks by descending similarity."""
        raise NotImplementedError


class SparseSearchProvider:
    """Protocol for keyword search."""
    def search(
        self,
        query_text: str,
        k: int,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[KeywordResult]:
        """Top-k chunks by descending keyword score."""
        raise NotImplementedError

    def is_available(self) -> bool:
        raise NotImplementedError


# ============================================================================
# CONCRETE IMPLEMENTATIONS
# ============================================================================

class ExactDenseSearch(DenseSearchProvider):
    """Brute-force cosine search over every stored embedding."""

    def __init__(self, store: VectorStore):
        self.store = store

    def search(self, query_vector, k, document_ids=None):
        return self.store.search(query_vector, k, document_ids=document_ids)


class BM25KeywordIndex(SparseSearchProvider):
    """
    In-memory BM25 index over the store's chunks.

    The index is rebuilt lazily after `invalidate()`; the pipeline calls it
    whenever chunks are written or deleted.
    """

    def __init__(self, store: VectorStore, stopwords: Optional[str] = "en"):
        self.store = store
        self.stopwords = stopwords
        self._retriever: Optional[bm25s.BM25] = None
        self._chunks: List[Chunk] = []
        self._dirty = True

    @classmethod
    def from_store(cls, store: VectorStore, **kwargs) -> "BM25KeywordIndex":
        index = cls(store, **kwargs)
        index.rebuild()
        return index

    def invalidate(self):
        self._dirty = True

    def rebuild(self):
        chunks = self.store.iter_chunks()
        self._chunks = chunks
        self._dirty = False

        if not chunks:
            self._retriever = None
            logger.info("keyword_index_empty")
            return

        corpus_tokens = bm25s.tokenize(
            [c.content for c in chunks], stopwords=self.stopwords, show_progress=False
        )
        retriever = bm25s.BM25()
        retriever.index(corpus_tokens, show_progress=False)
        self._retriever = retriever
        logger.info("keyword_index_built", chunks=len(chunks))

    def is_available(self) -> bool:
        if self._dirty:
            self.rebuild()
        return self._retriever is not None

    def search(self, query_text, k, document_ids=None):
        if not self.is_available():
            raise SparseIndexUnavailableError("Keyword index has no chunks")
        if k <= 0:
            return []

        query_tokens = bm25s.tokenize(
            [query_text], stopwords=self.stopwords, return_ids=False, show_progress=False
        )[0]
        query_tokens = [t for t in query_tokens if t in self._retriever.vocab_dict]
        if not query_tokens:
            return []

        # Filtering happens after scoring, so fetch everything when restricted
        fetch_k = len(self._chunks) if document_ids is not None else min(k, len(self._chunks))
        results, scores = self._retriever.retrieve([query_tokens], k=fetch_k, show_progress=False)

        allowed = set(document_ids) if document_ids is not None else None
        hits: List[KeywordResult] = []
        for i in range(results.shape[1]):
            score = float(scores[0, i])
            if score <= 0:
                continue
            chunk = self._chunks[int(results[0, i])]
            if allowed is not None and chunk.document_id not in allowed:
                continue
            hits.append(KeywordResult(chunk=chunk, score=score))
            if len(hits) >= k:
                break
        return hits


# ============================================================================
# DENSE STRATEGY REGISTRY
# ============================================================================

DenseProviderFactory = Callable[[VectorStore], DenseSearchProvider]

DENSE_STRATEGIES: Dict[str, DenseProviderFactory] = {
    "exact": ExactDenseSearch,
}


def register_dense_strategy(name: str, factory: DenseProviderFactory):
    DENSE_STRATEGIES[name] = factory


def build_dense_provider(store: VectorStore, strategy: str = "exact") -> DenseSearchProvider:
    try:
        factory = DENSE_STRATEGIES[strategy]
    except KeyError:
        raise ValueError(
            f"Unknown dense search strategy: {strategy}. Available: {sorted(DENSE_STRATEGIES)}"
        )
    return factory(store)
