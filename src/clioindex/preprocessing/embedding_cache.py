"""
Embedding Cache - LRU memo from text to embedding vector.

Avoids recomputing embeddings for identical sentence windows during
semantic chunking, and for repeated queries.
"""
import hashlib
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from clioindex.core.logging import get_logger

logger = get_logger(__name__)

Vector = List[float]
ComputeFn = Callable[[str], Awaitable[Vector]]
BatchComputeFn = Callable[[List[str]], Awaitable[List[Vector]]]

SHORT_TEXT_LENGTH = 100


class EmbeddingCache:
    """
    LRU cache for embeddings.

    Keys are the lowercased, stripped text for short texts and a digest of the
    text for longer ones. The cache never holds more than `max_size` entries.
    Not thread-safe: one owner per instance.
    """

    def __init__(self, max_size: int = 500):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: "OrderedDict[str, Vector]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return self._key(text) in self._entries

    def get(self, text: str) -> Optional[Vector]:
        """Get embedding from cache, marking it most recently used."""
        key = self._key(text)
        if key in self._entries:
            self.hits += 1
            self._entries.move_to_end(key)
            return self._entries[key]

        self.misses += 1
        return None

    def put(self, text: str, embedding: Sequence[float]) -> None:
        """Store embedding in cache, evicting the least recently used entry at capacity."""
        key = self._key(text)
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = list(embedding)

    set = put

    async def get_or_compute(self, text: str, compute_fn: ComputeFn) -> Vector:
        """Return the cached embedding or compute, store and return it."""
        cached = self.get(text)
        if cached is not None:
            return cached

        embedding = await compute_fn(text)
        self.put(text, embedding)
        return list(embedding)

    async def batch_get_or_compute(
        self,
        texts: Sequence[str],
        batch_compute_fn: BatchComputeFn,
    ) -> List[Vector]:
        """
        Resolve a batch of texts in input order.

        Cache hits are served directly; all misses are sent to
        `batch_compute_fn` in a single call.
        """
        results: List[Optional[Vector]] = [None] * len(texts)
        missing_indices: List[int] = []

        for i, text in enumerate(texts):
            cached = self.get(text)
            if cached is not None:
                results[i] = cached
            else:
                missing_indices.append(i)

        if missing_indices:
            missing_texts = [texts[i] for i in missing_indices]
            computed = await batch_compute_fn(missing_texts)
            if len(computed) != len(missing_texts):
                raise ValueError(
                    f"Batch embedding returned {len(computed)} vectors for {len(missing_texts)} texts"
                )
            for i, embedding in zip(missing_indices, computed):
                self.put(texts[i], embedding)
                results[i] = list(embedding)

            logger.debug(
                "embedding_batch_resolved",
                hits=len(texts) - len(missing_indices),
                computed=len(missing_indices)
            )

        return results  # type: ignore[return-value]

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self.hits + self.misses
        hit_rate = self.hits / total if total > 0 else 0.0

        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": hit_rate
        }

    def clear(self) -> None:
        """Clear cache."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str) -> str:
        if len(text) <= SHORT_TEXT_LENGTH:
            return text.lower().strip()
        digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
        return f"hash_{digest}_{len(text)}"
