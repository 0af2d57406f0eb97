"""
Tests for ChunkQualityScorer.
"""
from types import SimpleNamespace

import pytest

from clioindex.preprocessing.quality import (
    ChunkQualityScorer,
    QualityCriterion,
    count_sentences,
    normalized_entropy,
    tokenize,
)
from clioindex.schema import QualityFilterConfig

GOOD_TEXT = (
    "The archive preserves letters written by merchants who traded along the northern coast. "
    "Each letter records prices, weather and the names of ships that carried grain between ports."
)


def chunk(content):
    return SimpleNamespace(content=content)


# ============================================================================
# Metric helpers
# ============================================================================

class TestMetrics:

    def test_tokenize_strips_punctuation(self):
        assert tokenize("Hello, world! -- (test_case)") == ["Hello", "world", "testcase"]

    def test_count_sentences(self):
        assert count_sentences("One. Two! Three? Four; five") == 4
        assert count_sentences("no terminator here") == 0

    def test_entropy_of_single_repeated_word_is_zero(self):
        assert normalized_entropy(["spam"] * 50) == 0.0

    def test_entropy_of_distinct_words_is_one(self):
        words = [f"word{i}" for i in range(30)]
        assert normalized_entropy(words) == pytest.approx(1.0)

    def test_entropy_of_empty_is_zero(self):
        assert normalized_entropy([]) == 0.0

    def test_entropy_ignores_case(self):
        assert normalized_entropy(["Word", "word", "WORD"]) == 0.0


# ============================================================================
# Scoring
# ============================================================================

class TestScoring:

    def test_score_fields(self):
        score = ChunkQualityScorer().score("Alpha beta gamma. Delta epsilon.")

        assert score.word_count == 5
        assert score.sentence_count == 2
        assert score.unique_word_ratio == 1.0
        assert score.avg_word_length == pytest.approx(len("Alphabetagammadeltaepsilon") / 5)
        assert 0.0 <= score.overall_score <= 1.0

    def test_empty_text_scores_zero(self):
        score = ChunkQualityScorer().score("")

        assert score.word_count == 0
        assert score.unique_word_ratio == 0.0
        assert score.avg_word_length == 0.0
        assert score.entropy == 0.0

    def test_good_text_passes(self):
        scorer = ChunkQualityScorer()
        assert scorer.meets_threshold(scorer.score(GOOD_TEXT))


# ============================================================================
# Rejection reasons
# ============================================================================

class TestRejection:

    def test_repeated_word_rejected_for_entropy_first(self):
        scorer = ChunkQualityScorer()
        reason = scorer.rejection_reason(scorer.score("spam " * 40 + "."))

        assert reason is not None
        assert reason.criterion == QualityCriterion.LOW_ENTROPY

    def test_fragment_without_sentence(self):
        scorer = ChunkQualityScorer()
        text = GOOD_TEXT.replace(".", "").replace(",", "")
        reason = scorer.rejection_reason(scorer.score(text))

        assert reason.criterion == QualityCriterion.TOO_FEW_SENTENCES

    def test_too_few_words(self):
        scorer = ChunkQualityScorer()
        reason = scorer.rejection_reason(scorer.score("A short but valid sentence."))

        assert reason.criterion == QualityCriterion.TOO_FEW_WORDS
        assert reason.value == 5
        assert reason.threshold == 20

    def test_words_too_long(self):
        scorer = ChunkQualityScorer(QualityFilterConfig(min_word_count=1))
        text = " ".join(f"{'x' * 25}{i}" for i in range(10)) + "."
        reason = scorer.rejection_reason(scorer.score(text))

        assert reason.criterion == QualityCriterion.WORDS_TOO_LONG

    def test_words_too_short(self):
        scorer = ChunkQualityScorer(QualityFilterConfig(min_word_count=1, min_avg_word_length=3.0))
        text = "a b c d e f g h i j k l m n o p q r s t."
        reason = scorer.rejection_reason(scorer.score(text))

        assert reason.criterion == QualityCriterion.WORDS_TOO_SHORT

    def test_message_is_human_readable(self):
        scorer = ChunkQualityScorer()
        reason = scorer.rejection_reason(scorer.score("Too short."))

        assert "too few words" in reason.message


# ============================================================================
# Filtering
# ============================================================================

class TestFilterByQuality:

    def test_splits_and_preserves_order(self):
        scorer = ChunkQualityScorer()
        good_a = chunk(GOOD_TEXT)
        bad = chunk("spam " * 40)
        good_b = chunk(GOOD_TEXT.upper())

        result = scorer.filter_by_quality([good_a, bad, good_b])

        assert result.passed == [good_a, good_b]
        assert [c for c, _ in result.filtered] == [bad]
        assert result.stats.total == 3
        assert result.stats.passed == 2
        assert result.stats.filtered == 1
        assert result.stats.filter_rate == pytest.approx(1 / 3)

    def test_empty_input(self):
        result = ChunkQualityScorer().filter_by_quality([])

        assert result.passed == []
        assert result.stats.filter_rate == 0.0
