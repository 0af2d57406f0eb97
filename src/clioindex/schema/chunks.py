from datetime import datetime
from typing import List, Optional

import numpy as np
from sqlmodel import Field
from sqlalchemy import Column, ForeignKey, LargeBinary, String, UniqueConstraint
from sqlalchemy.types import TypeDecorator

from .base import IdMixin, timestamp_field


class EmbeddingVector(TypeDecorator):
    """
    Stores a float vector as raw float64 bytes.

    float64 keeps Python floats bit-exact through a save/load round trip.
    """
    impl = LargeBinary
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return np.asarray(value, dtype=np.float64).tobytes()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return np.frombuffer(value, dtype=np.float64).tolist()


class Chunk(IdMixin, table=True):
    """
    Atomic unit of retrievable text.

    chunk_index is unique and increasing within a document. Filtering stages
    may leave gaps; indices are never reused.
    """
    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
    )

    document_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )

    content: str

    # Source location
    page_number: int = 1
    chunk_index: int = 0
    start_position: int = 0  # char offset into the page text
    end_position: int = 0

    # Embedding (1:1 with the chunk once indexed)
    embedding: Optional[List[float]] = Field(default=None, sa_column=Column(EmbeddingVector))
    embedding_dim: Optional[int] = None

    created_at: datetime = timestamp_field()

    @property
    def word_count(self) -> int:
        return len(self.content.split())
