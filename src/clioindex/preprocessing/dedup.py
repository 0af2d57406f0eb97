"""
Chunk Deduplicator - removes exact and near-duplicate chunks.

Phases:
1. Content hash: MD5 of normalized text (exact matches, O(n))
2. Similarity: Jaccard over token sets, only between nearby chunks of the
   same document, where overlapping windows produce near-duplicates

The first-seen chunk of a duplicate group is always the one kept.
"""
import hashlib
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from clioindex.core.logging import get_logger
from clioindex.schema.chunks import Chunk
from clioindex.schema.configs import DeduplicationConfig

logger = get_logger(__name__)

WHITESPACE = re.compile(r"\s+")
PUNCTUATION = re.compile(r"[^\w\s]|_", re.UNICODE)


@dataclass
class DeduplicationResult:
    unique_chunks: List[Chunk] = field(default_factory=list)
    duplicate_count: int = 0
    # kept chunk id -> [kept id, removed id, ...]
    duplicate_map: Dict[str, List[str]] = field(default_factory=dict)


def normalize_content(content: str) -> str:
    text = WHITESPACE.sub(" ", content.lower())
    return PUNCTUATION.sub("", text).strip()


def compute_content_hash(content: str) -> str:
    return hashlib.md5(normalize_content(content).encode("utf-8")).hexdigest()


def _similarity_tokens(text: str) -> Set[str]:
    return {w for w in text.lower().split() if len(w) > 2}


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the two texts' token sets (tokens longer than 2 chars)."""
    words1 = _similarity_tokens(text1)
    words2 = _similarity_tokens(text2)

    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0

    intersection = len(words1 & words2)
    return intersection / len(words1 | words2)


def is_near_duplicate(content: str, existing_contents: Iterable[str], threshold: float = 0.85) -> bool:
    return any(calculate_similarity(content, other) >= threshold for other in existing_contents)


class ChunkDeduplicator:
    def __init__(self, config: Optional[DeduplicationConfig] = None):
        self.config = config or DeduplicationConfig()

    def deduplicate(self, chunks: Sequence[Chunk]) -> DeduplicationResult:
        """Run the enabled phases in order; each phase sees the previous one's survivors."""
        result = DeduplicationResult(unique_chunks=list(chunks))
        if not chunks:
            return result

        if self.config.use_content_hash:
            by_hash = self.deduplicate_by_hash(result.unique_chunks)
            result.unique_chunks = by_hash.unique_chunks
            result.duplicate_count += by_hash.duplicate_count
            self._merge_groups(result.duplicate_map, by_hash.duplicate_map)

        if self.config.use_similarity:
            by_sim = self.deduplicate_by_similarity(result.unique_chunks)
            result.unique_chunks = by_sim.unique_chunks
            result.duplicate_count += by_sim.duplicate_count
            self._merge_groups(result.duplicate_map, by_sim.duplicate_map)

        if result.duplicate_count:
            logger.info(
                "chunks_deduplicated",
                total=len(chunks),
                removed=result.duplicate_count,
                remaining=len(result.unique_chunks)
            )
        return result

    @staticmethod
    def _merge_groups(target: Dict[str, List[str]], groups: Dict[str, List[str]]):
        for kept_id, ids in groups.items():
            target.setdefault(kept_id, [kept_id]).extend(ids[1:])

    def deduplicate_by_hash(self, chunks: Sequence[Chunk]) -> DeduplicationResult:
        seen: Dict[str, Chunk] = {}
        duplicate_map: Dict[str, List[str]] = {}
        unique: List[Chunk] = []

        for chunk in chunks:
            digest = compute_content_hash(chunk.content)
            if digest in seen:
                kept_id = seen[digest].id
                duplicate_map.setdefault(kept_id, [kept_id]).append(chunk.id)
            else:
                seen[digest] = chunk
                unique.append(chunk)

        return DeduplicationResult(
            unique_chunks=unique,
            duplicate_count=len(chunks) - len(unique),
            duplicate_map=duplicate_map,
        )

    def deduplicate_by_similarity(self, chunks: Sequence[Chunk]) -> DeduplicationResult:
        threshold = self.config.similarity_threshold
        window = self.config.comparison_window
        duplicate_map: Dict[str, List[str]] = {}
        removed: Set[str] = set()

        by_document: "OrderedDict[str, List[Chunk]]" = OrderedDict()
        for chunk in chunks:
            by_document.setdefault(chunk.document_id, []).append(chunk)

        for doc_chunks in by_document.values():
            for i, chunk in enumerate(doc_chunks):
                if chunk.id in removed:
                    continue
                for other in doc_chunks[i + 1:i + window]:
                    if other.id in removed:
                        continue
                    if calculate_similarity(chunk.content, other.content) >= threshold:
                        removed.add(other.id)
                        duplicate_map.setdefault(chunk.id, [chunk.id]).append(other.id)

        return DeduplicationResult(
            unique_chunks=[c for c in chunks if c.id not in removed],
            duplicate_count=len(removed),
            duplicate_map=duplicate_map,
        )
