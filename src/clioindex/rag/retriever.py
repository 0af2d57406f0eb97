"""
RAG Retriever Service
Embeds a query, runs hybrid search over the store and attaches each hit's
parent document.
"""
from typing import List, Optional, Sequence

from clioindex.core.logging import get_logger
from clioindex.rag.hybrid_search import HybridSearch
from clioindex.rag.providers import BM25KeywordIndex, build_dense_provider
from clioindex.rag.vector_store import VectorStore
from clioindex.schema import SearchResult
from clioindex.schema.configs import HybridSearchConfig

logger = get_logger(__name__)


class HybridRetriever:
    """
    Query-side facade.

    `embedder` is anything with an async `embed(text)`; in production the
    EmbeddingService, in tests a stub.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder,
        search: Optional[HybridSearch] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.search = search or HybridSearch(
            dense=build_dense_provider(store),
            sparse=BM25KeywordIndex(store),
        )

    @classmethod
    def create(
        cls,
        store: VectorStore,
        embedder,
        config: Optional[HybridSearchConfig] = None,
        dense_strategy: str = "exact",
    ) -> "HybridRetriever":
        search = HybridSearch(
            dense=build_dense_provider(store, dense_strategy),
            sparse=BM25KeywordIndex(store),
            config=config,
        )
        return cls(store, embedder, search=search)

    async def retrieve(
        self,
        query: str,
        k: int = 10,
        document_ids: Optional[Sequence[str]] = None,
        use_hybrid: Optional[bool] = None,
    ) -> List[SearchResult]:
        """
        Args:
            query: Natural language query
            k: Number of chunks to return
            document_ids: Optional restriction to some documents
            use_hybrid: Override the configured hybrid mode for this call

        Returns:
            Ranked SearchResults (HybridResults when fusion ran) with
            `document` populated.
        """
        query_vector = await self.embedder.embed(query)
        results = self.search.search(query, query_vector, k, document_ids, use_hybrid=use_hybrid)

        documents = self.store.get_documents(r.chunk.document_id for r in results)
        for result in results:
            result.document = documents.get(result.chunk.document_id)
        for document_id in documents:
            self.store.touch_document(document_id)

        logger.info("retrieval_complete", query_length=len(query), results=len(results), documents=len(documents))
        return results
