"""
Text Preprocessor - cleans extracted page text before chunking.

- OCR artifact cleanup (non-printable characters, letter-spaced words,
  scanner rules and separator lines)
- Repeated header/footer removal (lines recurring on most pages)
- Page number removal
"""
import math
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Set, Tuple

from clioindex.core.logging import get_logger
from clioindex.schema.configs import PreprocessingConfig
from clioindex.schema.library import DocumentPage

logger = get_logger(__name__)

LETTER = r"[^\W\d_]"

SPACED_LETTERS = re.compile(rf"\b{LETTER}(?:[ \t]+{LETTER}\b){{2,}}")
SCANNER_RULES = re.compile(r"[|l1I]{5,}")
SEPARATOR_LINES = re.compile(r"[-_=]{5,}")
MULTI_SPACE = re.compile(r" {2,}")
MULTI_NEWLINE = re.compile(r"\n{3,}")
NOISE_LINE = re.compile(r"^[0-9\s.,;:!?-]+$", re.MULTILINE)
BLANK_LINE = re.compile(r"^\s*\n", re.MULTILINE)

BARE_PAGE_NUMBER = re.compile(r"^\s*\d{1,4}\s*$", re.MULTILINE)
DASHED_PAGE_NUMBER = re.compile(r"^\s*[-–—]\s*\d+\s*[-–—]\s*$", re.MULTILINE)
LABELLED_PAGE_NUMBER = re.compile(r"^\s*Page\s+\d+\s*$", re.MULTILINE | re.IGNORECASE)

MIN_PAGES_FOR_HEADER_DETECTION = 3
MIN_REPEATED_LINE_LENGTH = 3


@dataclass
class PreprocessingStats:
    headers_removed: int = 0
    footers_removed: int = 0
    page_numbers_removed: int = 0
    characters_removed: int = 0
    original_length: int = 0
    processed_length: int = 0


def _is_printable(ch: str) -> bool:
    # letters, numbers, punctuation, symbols and whitespace survive
    return ch.isspace() or unicodedata.category(ch)[0] in "LNPS"


def _join_letters(match: re.Match) -> str:
    return re.sub(r"\s+", "", match.group(0))


def _normalize_line(line: str) -> str:
    text = re.sub(r"\d+", "#", line.lower())
    return re.sub(r"\s+", " ", text).strip()


class TextPreprocessor:
    def __init__(self, config: Optional[PreprocessingConfig] = None):
        self.config = config or PreprocessingConfig()

    def preprocess(self, pages: Sequence[DocumentPage]) -> Tuple[List[DocumentPage], PreprocessingStats]:
        """Run header/footer removal across pages, then per-page cleanup."""
        cfg = self.config
        stats = PreprocessingStats(original_length=sum(len(p.text) for p in pages))
        result = list(pages)

        if cfg.enable_header_footer_removal:
            result, stats.headers_removed, stats.footers_removed = self.remove_headers_footers(
                result, cfg.header_footer_threshold
            )

        cleaned_pages = []
        for page in result:
            text = page.text
            original_length = len(text)

            if cfg.enable_page_number_removal:
                cleaned = self.remove_page_numbers(text)
                if len(cleaned) < len(text):
                    stats.page_numbers_removed += 1
                text = cleaned

            if cfg.enable_ocr_cleanup:
                text = self.clean_ocr_artifacts(text)

            stats.characters_removed += original_length - len(text)
            cleaned_pages.append(replace(page, text=text))

        stats.processed_length = sum(len(p.text) for p in cleaned_pages)

        logger.debug(
            "pages_preprocessed",
            pages=len(cleaned_pages),
            headers_removed=stats.headers_removed,
            footers_removed=stats.footers_removed,
            characters_removed=stats.characters_removed
        )
        return cleaned_pages, stats

    def clean_ocr_artifacts(self, text: str) -> str:
        cleaned = "".join(ch for ch in text if _is_printable(ch))
        cleaned = SPACED_LETTERS.sub(_join_letters, cleaned)   # "h e l l o" -> "hello"
        cleaned = SCANNER_RULES.sub("", cleaned)
        cleaned = SEPARATOR_LINES.sub("", cleaned)
        cleaned = MULTI_SPACE.sub(" ", cleaned)
        cleaned = MULTI_NEWLINE.sub("\n\n", cleaned)
        cleaned = NOISE_LINE.sub("", cleaned)
        cleaned = BLANK_LINE.sub("\n", cleaned)
        return cleaned.strip()

    def remove_page_numbers(self, text: str) -> str:
        cleaned = BARE_PAGE_NUMBER.sub("", text)
        cleaned = DASHED_PAGE_NUMBER.sub("", cleaned)
        return LABELLED_PAGE_NUMBER.sub("", cleaned)

    def remove_headers_footers(
        self,
        pages: Sequence[DocumentPage],
        threshold: float = 0.5,
    ) -> Tuple[List[DocumentPage], int, int]:
        """
        Drop lines that repeat (digits ignored) in the first or last two
        non-empty lines of at least `threshold` of the pages.
        Needs 3+ pages to detect anything.
        """
        if len(pages) < MIN_PAGES_FOR_HEADER_DETECTION:
            return list(pages), 0, 0

        min_occurrences = math.ceil(len(pages) * threshold)
        header_counts: Counter = Counter()
        footer_counts: Counter = Counter()

        for page in pages:
            lines = [line for line in page.text.split("\n") if line.strip()]
            if not lines:
                continue
            header_counts.update(_normalize_line(line) for line in lines[:2])
            footer_counts.update(_normalize_line(line) for line in lines[-2:])

        repeated_headers = self._repeated(header_counts, min_occurrences)
        repeated_footers = self._repeated(footer_counts, min_occurrences)

        headers_removed = 0
        footers_removed = 0
        cleaned_pages = []
        for page in pages:
            lines = page.text.split("\n")
            kept = []
            for i, line in enumerate(lines):
                normalized = _normalize_line(line)
                if i < 2 and normalized in repeated_headers:
                    headers_removed += 1
                    continue
                if i >= len(lines) - 2 and normalized in repeated_footers:
                    footers_removed += 1
                    continue
                kept.append(line)
            cleaned_pages.append(replace(page, text="\n".join(kept)))

        return cleaned_pages, headers_removed, footers_removed

    @staticmethod
    def _repeated(counts: Counter, min_occurrences: int) -> Set[str]:
        return {
            text for text, count in counts.items()
            if count >= min_occurrences and len(text) > MIN_REPEATED_LINE_LENGTH
        }

    @staticmethod
    def quick_clean(text: str) -> str:
        return re.sub(r"\s+", " ", text).strip()
