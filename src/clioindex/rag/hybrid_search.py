"""
Hybrid Search - dense and sparse retrieval fused with Reciprocal Rank Fusion.

    RRF(d) = sum_i weight_i / (K + rank_i(d))

RRF only looks at ranks, so cosine similarities and BM25 scores never have to
be put on the same scale. Chunks that contain a literal query keyword get a
multiplicative boost so proper nouns and technical terms are not lost to
embedding drift.
"""
import re
import time
from typing import Dict, List, Optional, Sequence

from clioindex.core.errors import SparseIndexUnavailableError
from clioindex.core.logging import get_logger
from clioindex.rag.providers import DenseSearchProvider, SparseSearchProvider
from clioindex.schema import HybridResult, KeywordResult, SearchResult
from clioindex.schema.configs import HybridSearchConfig, merge_with_defaults

logger = get_logger(__name__)

NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def extract_keywords(query: str, min_length: int = 5) -> List[str]:
    """Lowercased query tokens of at least `min_length` characters."""
    tokens = NON_ALNUM.sub(" ", query.lower()).split()
    return [t for t in tokens if len(t) >= min_length]


def reciprocal_rank_fusion(
    dense_results: Sequence[SearchResult],
    sparse_results: Sequence[KeywordResult],
    k: int,
    query: Optional[str] = None,
    config: Optional[HybridSearchConfig] = None,
) -> List[HybridResult]:
    """Fuse two ranked lists into the top-k HybridResults (ranks are 1-based)."""
    cfg = config or HybridSearchConfig()
    keywords = extract_keywords(query, cfg.keyword_min_length) if query else []

    def has_keyword(content: str) -> bool:
        lowered = content.lower()
        return any(kw in lowered for kw in keywords)

    fused: Dict[str, HybridResult] = {}

    for rank, result in enumerate(dense_results, 1):
        entry = fused.get(result.chunk.id)
        if entry is None:
            entry = HybridResult(chunk=result.chunk, similarity=0.0, document=result.document)
            fused[result.chunk.id] = entry
        if entry.dense_rank is None:
            entry.dense_rank = rank
            entry.dense_score = result.similarity
            entry.similarity += cfg.dense_weight / (cfg.rrf_k + rank)

    for rank, result in enumerate(sparse_results, 1):
        entry = fused.get(result.chunk.id)
        if entry is None:
            entry = HybridResult(chunk=result.chunk, similarity=0.0)
            fused[result.chunk.id] = entry
        if entry.sparse_rank is None:
            entry.sparse_rank = rank
            entry.sparse_score = result.score
            entry.similarity += cfg.sparse_weight / (cfg.rrf_k + rank)

    boosted = 0
    if keywords:
        for entry in fused.values():
            if has_keyword(entry.chunk.content):
                entry.exact_match = True
                entry.similarity *= cfg.exact_match_boost
                boosted += 1

    if boosted:
        logger.debug("exact_match_boost_applied", chunks=boosted, keywords=keywords)

    ranked = sorted(fused.values(), key=lambda e: e.similarity, reverse=True)
    return ranked[:k]


class HybridSearch:
    """
    Combines one dense and one optional sparse provider.

    Falls back to the dense results, unmodified, when hybrid mode is off or the
    sparse side cannot answer.
    """

    def __init__(
        self,
        dense: DenseSearchProvider,
        sparse: Optional[SparseSearchProvider] = None,
        config: Optional[HybridSearchConfig] = None,
    ):
        self.dense = dense
        self.sparse = sparse
        self.config = config or HybridSearchConfig()

    def search(
        self,
        query: str,
        query_vector: Sequence[float],
        k: int = 10,
        document_ids: Optional[Sequence[str]] = None,
        use_hybrid: Optional[bool] = None,
    ) -> List[SearchResult]:
        start_time = time.time()
        hybrid = self.config.enabled if use_hybrid is None else use_hybrid

        if not hybrid or self.sparse is None:
            return self.dense.search(query_vector, k, document_ids)

        try:
            if not self.sparse.is_available():
                logger.warning("sparse_index_unavailable", fallback="dense")
                return self.dense.search(query_vector, k, document_ids)

            candidate_size = max(k * self.config.candidate_multiplier, self.config.min_candidates)
            dense_results = self.dense.search(query_vector, candidate_size, document_ids)
            sparse_results = self.sparse.search(query, candidate_size, document_ids)
        except SparseIndexUnavailableError:
            logger.warning("sparse_index_unavailable", fallback="dense")
            return self.dense.search(query_vector, k, document_ids)

        results = reciprocal_rank_fusion(dense_results, sparse_results, k, query, self.config)

        logger.info(
            "hybrid_search_complete",
            results=len(results),
            dense=len(dense_results),
            sparse=len(sparse_results),
            duration=time.time() - start_time
        )
        return results

    def set_weights(self, dense_weight: float, sparse_weight: float):
        """Set fusion weights; they are renormalized to sum to 1."""
        self.config = merge_with_defaults(
            self.config, {"dense_weight": dense_weight, "sparse_weight": sparse_weight}
        )

    def get_config(self) -> Dict[str, float]:
        return {
            "k": self.config.rrf_k,
            "dense_weight": self.config.dense_weight,
            "sparse_weight": self.config.sparse_weight,
        }
