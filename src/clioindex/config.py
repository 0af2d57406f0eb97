from pydantic_settings import BaseSettings, SettingsConfigDict

from clioindex.schema.configs import (
    CHUNKING_PRESETS,
    ChunkingStrategy,
    DeduplicationConfig,
    HybridSearchConfig,
    IndexingConfig,
    QualityFilterConfig,
    PreprocessingConfig,
)


class Settings(BaseSettings):
    app_name: str = "ClioIndex"

    # SQLite file next to the project by default (single-user, local)
    database_url: str = "sqlite:///.clioindex/vectors.db"

    # Embedding backend: FastEmbed model names or OpenAI "text-embedding-*"
    embedding_model: str = "BAAI/bge-small-en-v1.5"

    # Generic environment (debug/prod)
    APP_ENV: str = "local"  # or "production"
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # Indexing
    chunking_preset: str = "cpu_optimized"  # cpu_optimized, standard, large
    use_semantic_chunking: bool = False
    enable_preprocessing: bool = True
    enable_quality_filtering: bool = True
    min_chunk_entropy: float = 0.3
    min_unique_word_ratio: float = 0.4
    enable_deduplication: bool = True
    enable_similarity_dedup: bool = False
    dedup_similarity_threshold: float = 0.85
    embedding_cache_size: int = 500
    embedding_batch_size: int = 32
    document_similarity_threshold: float = 0.5

    # Search
    dense_strategy: str = "exact"
    hybrid_enabled: bool = True
    dense_weight: float = 0.6
    sparse_weight: float = 0.4
    top_k: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def indexing_config(self) -> IndexingConfig:
        """Translate flat settings into the typed indexing configuration."""
        if self.chunking_preset not in CHUNKING_PRESETS:
            raise ValueError(
                f"Unknown chunking preset: {self.chunking_preset}. "
                f"Expected one of {sorted(CHUNKING_PRESETS)}"
            )
        fixed = CHUNKING_PRESETS[self.chunking_preset].model_copy()
        return IndexingConfig(
            chunking_strategy=(
                ChunkingStrategy.SEMANTIC if self.use_semantic_chunking else ChunkingStrategy.FIXED
            ),
            fixed=fixed,
            preprocessing=PreprocessingConfig(),
            quality=QualityFilterConfig(
                min_entropy=self.min_chunk_entropy,
                min_unique_word_ratio=self.min_unique_word_ratio,
            ),
            dedup=DeduplicationConfig(
                use_similarity=self.enable_similarity_dedup,
                similarity_threshold=self.dedup_similarity_threshold,
            ),
            enable_preprocessing=self.enable_preprocessing,
            enable_quality_filtering=self.enable_quality_filtering,
            enable_deduplication=self.enable_deduplication,
            embedding_cache_size=self.embedding_cache_size,
            embedding_batch_size=self.embedding_batch_size,
            similarity_threshold=self.document_similarity_threshold,
        )

    def hybrid_config(self) -> HybridSearchConfig:
        return HybridSearchConfig(
            enabled=self.hybrid_enabled,
            dense_weight=self.dense_weight,
            sparse_weight=self.sparse_weight,
        )


settings = Settings()

# SQLite is the supported local backend; anything else must name a driver.
if "://" not in settings.database_url:
    raise ValueError(
        f"Invalid DATABASE_URL: {settings.database_url}\n"
        "Expected a SQLAlchemy URL, e.g. sqlite:///.clioindex/vectors.db"
    )
