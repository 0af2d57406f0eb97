"""
Chunk Quality Scorer - flags low-information chunks before they are embedded.

Metrics:
- Shannon entropy of the word distribution, normalized to 0-1
- Unique word ratio (repetition)
- Average word length (OCR garbage is either very short or very long)
- Sentence count (fragments have none)
"""
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel

from clioindex.core.logging import get_logger
from clioindex.schema.configs import QualityFilterConfig

logger = get_logger(__name__)

NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)
SENTENCE_END = re.compile(r"[.!?;]+(?:\s|$)")

OPTIMAL_WORD_LENGTH = 6.0

T = TypeVar("T")


class QualityScore(BaseModel):
    entropy: float
    unique_word_ratio: float
    avg_word_length: float
    sentence_count: int
    word_count: int
    overall_score: float


class QualityCriterion(str, Enum):
    LOW_ENTROPY = "low_entropy"
    LOW_UNIQUE_WORD_RATIO = "low_unique_word_ratio"
    TOO_FEW_SENTENCES = "too_few_sentences"
    TOO_FEW_WORDS = "too_few_words"
    WORDS_TOO_LONG = "words_too_long"
    WORDS_TOO_SHORT = "words_too_short"


@dataclass(frozen=True)
class QualityRejection:
    criterion: QualityCriterion
    value: float
    threshold: float
    message: str


@dataclass
class FilterStats:
    total: int = 0
    passed: int = 0
    filtered: int = 0
    filter_rate: float = 0.0


@dataclass
class QualityFilterResult(Generic[T]):
    passed: List[T] = field(default_factory=list)
    filtered: List[Tuple[T, QualityRejection]] = field(default_factory=list)
    stats: FilterStats = field(default_factory=FilterStats)


def tokenize(text: str) -> List[str]:
    """Whitespace tokens with every non letter/digit character stripped."""
    words = (NON_ALNUM.sub("", w) for w in text.split())
    return [w for w in words if w]


def count_sentences(text: str) -> int:
    return len(SENTENCE_END.findall(text))


def normalized_entropy(words: Sequence[str]) -> float:
    """Shannon entropy of lowercase word frequencies divided by log2(vocabulary)."""
    if not words:
        return 0.0

    freq = Counter(w.lower() for w in words)
    total = len(words)
    entropy = -sum((c / total) * math.log2(c / total) for c in freq.values())

    max_entropy = math.log2(len(freq))
    if max_entropy == 0:
        return 0.0
    return min(1.0, entropy / max_entropy)


class ChunkQualityScorer:
    """Scores chunk text and filters chunks below the configured thresholds."""

    def __init__(self, config: Optional[QualityFilterConfig] = None):
        self.config = config or QualityFilterConfig()

    def score(self, content: str) -> QualityScore:
        words = tokenize(content)
        word_count = len(words)
        unique = {w.lower() for w in words}

        unique_word_ratio = len(unique) / word_count if word_count else 0.0
        avg_word_length = sum(len(w) for w in words) / word_count if word_count else 0.0
        sentence_count = count_sentences(content)
        entropy = normalized_entropy(words)

        length_score = max(0.0, 1 - abs(avg_word_length - OPTIMAL_WORD_LENGTH) / 10)
        sentence_score = min(1.0, sentence_count / 5)
        overall = (
            0.35 * entropy
            + 0.25 * unique_word_ratio
            + 0.20 * length_score
            + 0.20 * sentence_score
        )

        return QualityScore(
            entropy=entropy,
            unique_word_ratio=unique_word_ratio,
            avg_word_length=avg_word_length,
            sentence_count=sentence_count,
            word_count=word_count,
            overall_score=overall,
        )

    def rejection_reason(self, score: QualityScore) -> Optional[QualityRejection]:
        """First failed criterion, or None when the chunk passes."""
        cfg = self.config

        if score.entropy < cfg.min_entropy:
            return QualityRejection(
                QualityCriterion.LOW_ENTROPY, score.entropy, cfg.min_entropy,
                f"low entropy ({score.entropy:.2f} < {cfg.min_entropy})",
            )
        if score.unique_word_ratio < cfg.min_unique_word_ratio:
            return QualityRejection(
                QualityCriterion.LOW_UNIQUE_WORD_RATIO, score.unique_word_ratio, cfg.min_unique_word_ratio,
                f"low unique word ratio ({score.unique_word_ratio:.2f} < {cfg.min_unique_word_ratio})",
            )
        if score.sentence_count < cfg.min_sentence_count:
            return QualityRejection(
                QualityCriterion.TOO_FEW_SENTENCES, score.sentence_count, cfg.min_sentence_count,
                f"too few sentences ({score.sentence_count} < {cfg.min_sentence_count})",
            )
        if score.word_count < cfg.min_word_count:
            return QualityRejection(
                QualityCriterion.TOO_FEW_WORDS, score.word_count, cfg.min_word_count,
                f"too few words ({score.word_count} < {cfg.min_word_count})",
            )
        if score.avg_word_length > cfg.max_avg_word_length:
            return QualityRejection(
                QualityCriterion.WORDS_TOO_LONG, score.avg_word_length, cfg.max_avg_word_length,
                f"avg word too long ({score.avg_word_length:.1f} > {cfg.max_avg_word_length})",
            )
        if score.avg_word_length < cfg.min_avg_word_length:
            return QualityRejection(
                QualityCriterion.WORDS_TOO_SHORT, score.avg_word_length, cfg.min_avg_word_length,
                f"avg word too short ({score.avg_word_length:.1f} < {cfg.min_avg_word_length})",
            )
        return None

    def meets_threshold(self, score: QualityScore) -> bool:
        return self.rejection_reason(score) is None

    def filter_by_quality(self, chunks: Sequence[T]) -> QualityFilterResult[T]:
        """
        Split chunks (anything with a `content` attribute) into passed and
        filtered, preserving order.
        """
        result: QualityFilterResult[T] = QualityFilterResult()

        for chunk in chunks:
            reason = self.rejection_reason(self.score(chunk.content))
            if reason is None:
                result.passed.append(chunk)
            else:
                result.filtered.append((chunk, reason))
                logger.debug("chunk_filtered", criterion=reason.criterion.value, reason=reason.message)

        total = len(chunks)
        result.stats = FilterStats(
            total=total,
            passed=len(result.passed),
            filtered=len(result.filtered),
            filter_rate=len(result.filtered) / total if total else 0.0,
        )
        return result
