"""
Core Indexing Pipeline

- pipeline.py: orchestrator (preprocess, chunk, filter, dedup, embed, persist, similarities)
"""

from .pipeline import (
    IndexingPipeline,
    IndexingResult,
    IndexingProgress,
    IndexingStage,
    DocumentInput,
    create_default_pipeline,
)

__all__ = [
    "IndexingPipeline",
    "IndexingResult",
    "IndexingProgress",
    "IndexingStage",
    "DocumentInput",
    "create_default_pipeline",
]
