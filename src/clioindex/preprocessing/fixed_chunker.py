"""
Fixed window chunker.

Splits each page into windows of `max_chunk_size` words, with
`overlap_size` words shared between neighbours on the same page. Chunk
content is the exact slice of the page text covered by the window, so
`start_position`/`end_position` index straight into `page.text`.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from clioindex.core.logging import get_logger
from clioindex.schema.chunks import Chunk
from clioindex.schema.configs import CHUNKING_PRESETS, FixedChunkingConfig
from clioindex.schema.library import DocumentPage

logger = get_logger(__name__)

WORD = re.compile(r"\S+")

# A short trailing window may be folded into the previous chunk as long as the
# result exceeds max_chunk_size by no more than this many words.
WORD_TOLERANCE = 10


def title_prefix(title: Optional[str]) -> str:
    return f"[Doc: {title}]\n\n" if title else ""


@dataclass
class ChunkingStats:
    total_chunks: int = 0
    total_words: int = 0
    average_word_count: float = 0.0
    min_word_count: int = 0
    max_word_count: int = 0


def chunking_stats(chunks: Sequence[Chunk]) -> ChunkingStats:
    if not chunks:
        return ChunkingStats()
    counts = [c.word_count for c in chunks]
    return ChunkingStats(
        total_chunks=len(chunks),
        total_words=sum(counts),
        average_word_count=sum(counts) / len(counts),
        min_word_count=min(counts),
        max_word_count=max(counts),
    )


class FixedWindowChunker:
    def __init__(self, config: Optional[FixedChunkingConfig] = None):
        self.config = config or FixedChunkingConfig()

    @classmethod
    def from_preset(cls, name: str) -> "FixedWindowChunker":
        try:
            preset = CHUNKING_PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown chunking preset: {name}")
        return cls(preset.model_copy())

    def create_chunks(
        self,
        pages: Sequence[DocumentPage],
        document_id: str,
        title: Optional[str] = None,
    ) -> List[Chunk]:
        prefix = title_prefix(title) if self.config.include_title else ""
        chunks: List[Chunk] = []

        for page in pages:
            for start, end in self._page_windows(page.text):
                chunks.append(
                    Chunk(
                        document_id=document_id,
                        content=prefix + page.text[start:end],
                        page_number=page.page_number,
                        chunk_index=len(chunks),
                        start_position=start,
                        end_position=end,
                    )
                )

        logger.debug("fixed_chunking_complete", document_id=document_id, pages=len(pages), chunks=len(chunks))
        return chunks

    def _page_windows(self, text: str) -> List[Tuple[int, int]]:
        """Character spans of the word windows of one page."""
        spans = [m.span() for m in WORD.finditer(text)]
        if not spans:
            return []

        cfg = self.config
        step = cfg.max_chunk_size - cfg.overlap_size
        windows: List[Tuple[int, int]] = []  # word index ranges
        start = 0
        while True:
            end = min(start + cfg.max_chunk_size, len(spans))
            windows.append((start, end))
            if end == len(spans):
                break
            start += step

        if len(windows) > 1:
            last_start, last_end = windows[-1]
            prev_start, _ = windows[-2]
            merged_words = last_end - prev_start
            if last_end - last_start < cfg.min_chunk_size and merged_words <= cfg.max_chunk_size + WORD_TOLERANCE:
                windows[-2:] = [(prev_start, last_end)]

        return [(spans[s][0], spans[e - 1][1]) for s, e in windows]
