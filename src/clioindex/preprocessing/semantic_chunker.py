"""
Semantic boundary chunker.

Algorithm:
1. Split each page into sentences (abbreviations are not terminators)
2. Slide a window of N sentences over the document
3. Embed every window (through the EmbeddingCache)
4. Compare consecutive windows with cosine similarity
5. Place boundaries where similarity drops well below the document average
6. Group the sentences between boundaries into size-bounded chunks

Every sentence remembers the page and character span it came from, so each
chunk can report the page and offsets of its first sentence.
"""
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import numpy as np

from clioindex.core.logging import get_logger
from clioindex.preprocessing.embedding_cache import EmbeddingCache
from clioindex.preprocessing.fixed_chunker import title_prefix
from clioindex.schema.chunks import Chunk
from clioindex.schema.configs import SemanticChunkingConfig
from clioindex.schema.library import DocumentPage
from clioindex.utils.vectors import cosine_similarity

logger = get_logger(__name__)

EmbeddingFunction = Callable[[str], Awaitable[List[float]]]

SENTENCE_BREAK = re.compile(r"(?<=[.!?;])\s+")
WORD = re.compile(r"\S+")
LEADING_PUNCT = re.compile(r"^\W+")

Range = Tuple[int, int]  # [start, end) sentence indices


@dataclass(frozen=True)
class Sentence:
    text: str
    page_index: int
    page_number: int
    start: int
    end: int

    @property
    def word_count(self) -> int:
        return len(self.text.split())


@dataclass(frozen=True)
class SemanticBoundary:
    position: int           # index of the first sentence after the boundary
    similarity_drop: float
    confidence: float       # 0-1


def _clean_text(text: str) -> str:
    text = re.sub(r"\n{3,}", "\n\n", text)
    return re.sub(r" {2,}", " ", text).strip()


class SemanticBoundaryChunker:
    """
    Embedding-driven chunker. `embed_fn` is awaited once per distinct window;
    repeated windows are served by the cache, which may be shared with
    other components.
    """

    def __init__(
        self,
        embed_fn: EmbeddingFunction,
        config: Optional[SemanticChunkingConfig] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.embed_fn = embed_fn
        self.config = config or SemanticChunkingConfig()
        self.cache = cache if cache is not None else EmbeddingCache(max_size=500)
        self._abbreviations = {a.lower() for a in self.config.abbreviations}

    async def create_chunks(
        self,
        pages: Sequence[DocumentPage],
        document_id: str,
        title: Optional[str] = None,
    ) -> List[Chunk]:
        sentences = self.split_sentences(pages)
        if not sentences:
            return []

        boundaries = await self.detect_boundaries([s.text for s in sentences])
        ranges = self._assemble_ranges(sentences, boundaries)

        prefix = title_prefix(title) if self.config.include_title else ""
        chunks: List[Chunk] = []
        for start, end in ranges:
            chunks.append(self._build_chunk(sentences[start:end], document_id, prefix, len(chunks)))

        stats = self.cache.get_stats()
        logger.info(
            "semantic_chunking_complete",
            document_id=document_id,
            sentences=len(sentences),
            boundaries=len(boundaries),
            chunks=len(chunks),
            cache_hit_rate=stats["hit_rate"]
        )
        return chunks

    # ------------------------------------------------------------------
    # Sentence splitting
    # ------------------------------------------------------------------

    def split_sentences(self, pages: Sequence[DocumentPage]) -> List[Sentence]:
        sentences: List[Sentence] = []
        for page_index, page in enumerate(pages):
            for start, end in self._sentence_spans(page.text):
                text = page.text[start:end]
                if len(text) <= self.config.min_sentence_length:
                    continue
                for s, e in self._limit_words(page.text, start, end):
                    sentences.append(Sentence(page.text[s:e], page_index, page.page_number, s, e))
        return sentences

    def _sentence_spans(self, text: str) -> List[Range]:
        spans: List[Range] = []
        seg_start = 0
        for match in SENTENCE_BREAK.finditer(text):
            if self._ends_with_abbreviation(text, seg_start, match.start()):
                continue
            spans.append((seg_start, match.start()))
            seg_start = match.end()
        spans.append((seg_start, len(text)))

        stripped = []
        for start, end in spans:
            segment = text[start:end]
            lead = len(segment) - len(segment.lstrip())
            trail = len(segment) - len(segment.rstrip())
            if end - trail > start + lead:
                stripped.append((start + lead, end - trail))
        return stripped

    def _ends_with_abbreviation(self, text: str, seg_start: int, pos: int) -> bool:
        if text[pos - 1] != ".":
            return False
        token_start = max(seg_start, max(text.rfind(c, seg_start, pos) for c in (" ", "\n", "\t")) + 1)
        token = LEADING_PUNCT.sub("", text[token_start:pos - 1])
        return token.lower() in self._abbreviations

    def _limit_words(self, text: str, start: int, end: int) -> List[Range]:
        """Cut a sentence longer than max_chunk_size words into word windows."""
        limit = self.config.max_chunk_size
        words = [m.span() for m in WORD.finditer(text, start, end)]
        if len(words) <= limit:
            return [(start, end)]
        return [
            (words[i][0], words[min(i + limit, len(words)) - 1][1])
            for i in range(0, len(words), limit)
        ]

    # ------------------------------------------------------------------
    # Boundary detection
    # ------------------------------------------------------------------

    async def detect_boundaries(self, sentences: Sequence[str]) -> List[SemanticBoundary]:
        window_size = self.config.window_size
        if len(sentences) < window_size * 2:
            return []

        windows = [
            " ".join(sentences[i:i + window_size])
            for i in range(len(sentences) - window_size + 1)
        ]
        embeddings = []
        for window in windows:
            embeddings.append(await self.cache.get_or_compute(window, self.embed_fn))

        similarities = [
            cosine_similarity(embeddings[i], embeddings[i + 1])
            for i in range(len(embeddings) - 1)
        ]
        avg_similarity = float(np.mean(similarities))
        threshold = min(self.config.similarity_threshold, avg_similarity - self.config.boundary_margin)

        boundaries = []
        for i, sim in enumerate(similarities):
            if sim < threshold:
                drop = avg_similarity - sim
                boundaries.append(
                    SemanticBoundary(
                        position=i + window_size,
                        similarity_drop=drop,
                        confidence=min(1.0, drop / self.config.confidence_scale),
                    )
                )

        return self.filter_close_boundaries(boundaries, self.config.min_boundary_distance)

    @staticmethod
    def filter_close_boundaries(boundaries: Sequence[SemanticBoundary], min_distance: int) -> List[SemanticBoundary]:
        """Among boundaries closer than `min_distance` sentences, keep the more confident one."""
        if not boundaries:
            return []

        ordered = sorted(boundaries, key=lambda b: b.position)
        kept = [ordered[0]]
        for boundary in ordered[1:]:
            last = kept[-1]
            if boundary.position - last.position >= min_distance:
                kept.append(boundary)
            elif boundary.confidence > last.confidence:
                kept[-1] = boundary
        return kept

    # ------------------------------------------------------------------
    # Chunk assembly
    # ------------------------------------------------------------------

    def _assemble_ranges(self, sentences: Sequence[Sentence], boundaries: Sequence[SemanticBoundary]) -> List[Range]:
        positions = [0] + [b.position for b in boundaries if 0 < b.position < len(sentences)] + [len(sentences)]
        raw = list(zip(positions, positions[1:]))

        def words(start: int, end: int) -> int:
            return sum(s.word_count for s in sentences[start:end])

        merged: List[Range] = []
        carry: Optional[int] = None
        for i, (start, end) in enumerate(raw):
            if carry is not None:
                start, carry = carry, None
            is_last = i == len(raw) - 1
            if words(start, end) < self.config.min_chunk_size:
                if not is_last:
                    carry = start
                    continue
                if merged:
                    merged[-1] = (merged[-1][0], end)
                    continue
            merged.append((start, end))

        ranges: List[Range] = []
        for start, end in self._split_at_pages(sentences, merged):
            if words(start, end) > self.config.max_chunk_size:
                ranges.extend(self._split_large_range(sentences, start, end))
            else:
                ranges.append((start, end))
        return ranges

    @staticmethod
    def _split_at_pages(sentences: Sequence[Sentence], ranges: Sequence[Range]) -> List[Range]:
        """Cut ranges wherever the page changes; a chunk never spans two pages."""
        cut: List[Range] = []
        for start, end in ranges:
            for i in range(start + 1, end):
                if sentences[i].page_index != sentences[i - 1].page_index:
                    cut.append((start, i))
                    start = i
            cut.append((start, end))
        return cut

    def _split_large_range(self, sentences: Sequence[Sentence], start: int, end: int) -> List[Range]:
        """Re-split at sentence granularity near 80% of the max, overlapping sub-chunks."""
        target = self.config.max_chunk_size * 0.8
        overlap = self.config.overlap_sentences
        ranges: List[Range] = []

        current_start = start
        current_words = 0
        for i in range(start, end):
            sentence_words = sentences[i].word_count
            if current_words + sentence_words > target and i > current_start:
                ranges.append((current_start, i))
                current_start = max(current_start + 1, i - overlap) if overlap else i
                current_words = sum(s.word_count for s in sentences[current_start:i])
                if current_words + sentence_words > self.config.max_chunk_size:
                    current_start = i
                    current_words = 0
            current_words += sentence_words

        if current_start < end:
            ranges.append((current_start, end))
        return ranges

    def _build_chunk(
        self,
        sentences: Sequence[Sentence],
        document_id: str,
        prefix: str,
        chunk_index: int,
    ) -> Chunk:
        first, last = sentences[0], sentences[-1]

        return Chunk(
            document_id=document_id,
            content=prefix + _clean_text(" ".join(s.text for s in sentences)),
            page_number=first.page_number,
            chunk_index=chunk_index,
            start_position=first.start,
            end_position=last.end,
        )
