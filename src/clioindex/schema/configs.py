"""
Typed configuration for every indexing and search component.

Components receive one of these models at construction time. Partial overrides
(from settings, CLI flags or callers) go through `merge_with_defaults`, which
returns a new validated model and never mutates the defaults.
"""
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field, model_validator


ConfigT = TypeVar("ConfigT", bound=BaseModel)


class ChunkingStrategy(str, Enum):
    """Available chunking strategies."""
    FIXED = "fixed"          # Word windows with overlap (fast, deterministic)
    SEMANTIC = "semantic"    # Embedding-driven topic boundaries
    AUTO = "auto"            # Semantic when possible, fixed for very large docs


class FixedChunkingConfig(BaseModel):
    max_chunk_size: int = Field(default=300, gt=0)   # words
    min_chunk_size: int = Field(default=100, ge=0)   # words
    overlap_size: int = Field(default=50, ge=0)      # words shared by neighbours
    include_title: bool = False

    @model_validator(mode="after")
    def _check_sizes(self):
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        if self.overlap_size >= self.max_chunk_size:
            raise ValueError("overlap_size must be smaller than max_chunk_size")
        return self


CHUNKING_PRESETS: Dict[str, FixedChunkingConfig] = {
    "cpu_optimized": FixedChunkingConfig(max_chunk_size=300, min_chunk_size=100, overlap_size=50),
    "standard": FixedChunkingConfig(max_chunk_size=500, min_chunk_size=150, overlap_size=75),
    "large": FixedChunkingConfig(max_chunk_size=800, min_chunk_size=250, overlap_size=100),
}


DEFAULT_ABBREVIATIONS: Tuple[str, ...] = (
    "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "vs", "etc", "e.g", "i.e",
)


class SemanticChunkingConfig(BaseModel):
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    window_size: int = Field(default=3, ge=1)          # sentences per window
    min_chunk_size: int = Field(default=50, ge=0)      # words
    max_chunk_size: int = Field(default=500, gt=0)     # words
    overlap_sentences: int = Field(default=1, ge=0)
    boundary_margin: float = Field(default=0.1, ge=0.0)
    min_boundary_distance: int = Field(default=3, ge=1)  # sentences
    confidence_scale: float = Field(default=0.3, gt=0.0)
    min_sentence_length: int = Field(default=10, ge=0)   # chars, shorter fragments dropped
    abbreviations: Tuple[str, ...] = DEFAULT_ABBREVIATIONS
    include_title: bool = True

    @model_validator(mode="after")
    def _check_sizes(self):
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        return self


class QualityFilterConfig(BaseModel):
    min_entropy: float = Field(default=0.3, ge=0.0, le=1.0)
    min_unique_word_ratio: float = Field(default=0.4, ge=0.0, le=1.0)
    min_sentence_count: int = Field(default=1, ge=0)
    min_word_count: int = Field(default=20, ge=0)
    min_avg_word_length: float = Field(default=2.0, ge=0.0)
    max_avg_word_length: float = Field(default=20.0, gt=0.0)

    @model_validator(mode="after")
    def _check_band(self):
        if self.min_avg_word_length > self.max_avg_word_length:
            raise ValueError("min_avg_word_length must not exceed max_avg_word_length")
        return self


class DeduplicationConfig(BaseModel):
    use_content_hash: bool = True
    use_similarity: bool = False
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    comparison_window: int = Field(default=5, ge=2)  # positions, including the chunk itself


class PreprocessingConfig(BaseModel):
    enable_ocr_cleanup: bool = True
    enable_header_footer_removal: bool = True
    enable_page_number_removal: bool = True
    header_footer_threshold: float = Field(default=0.5, gt=0.0, le=1.0)


class HybridSearchConfig(BaseModel):
    enabled: bool = True
    rrf_k: int = Field(default=60, gt=0)
    dense_weight: float = Field(default=0.6, ge=0.0)
    sparse_weight: float = Field(default=0.4, ge=0.0)
    exact_match_boost: float = Field(default=2.0, ge=1.0)
    keyword_min_length: int = Field(default=5, ge=1)  # tokens of 5+ chars count as keywords
    candidate_multiplier: int = Field(default=5, ge=1)
    min_candidates: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _normalize_weights(self):
        total = self.dense_weight + self.sparse_weight
        if total <= 0:
            raise ValueError("dense_weight + sparse_weight must be positive")
        self.dense_weight = self.dense_weight / total
        self.sparse_weight = self.sparse_weight / total
        return self


class IndexingConfig(BaseModel):
    chunking_strategy: ChunkingStrategy = ChunkingStrategy.FIXED
    fixed: FixedChunkingConfig = Field(default_factory=FixedChunkingConfig)
    semantic: SemanticChunkingConfig = Field(default_factory=SemanticChunkingConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    quality: QualityFilterConfig = Field(default_factory=QualityFilterConfig)
    dedup: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    enable_preprocessing: bool = True
    enable_quality_filtering: bool = True
    enable_deduplication: bool = True
    embedding_cache_size: int = Field(default=500, gt=0)
    embedding_batch_size: int = Field(default=32, gt=0)
    similarity_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    auto_semantic_max_words: int = Field(default=20000, gt=0)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def merge_with_defaults(defaults: ConfigT, overrides: Optional[Mapping[str, Any]] = None) -> ConfigT:
    """
    Overlay partial overrides on a config model and validate the result.

    Unknown top-level keys are rejected so typos surface at construction time
    instead of being silently ignored.
    """
    model_cls = type(defaults)
    if not overrides:
        return defaults.model_copy(deep=True)

    unknown = set(overrides) - set(model_cls.model_fields)
    if unknown:
        raise ValueError(f"Unknown {model_cls.__name__} fields: {sorted(unknown)}")

    payload = _deep_merge(defaults.model_dump(), overrides)
    return model_cls.model_validate(payload)
