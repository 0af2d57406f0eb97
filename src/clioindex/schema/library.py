from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlmodel import Field
from sqlalchemy import Column, JSON

from .base import IdMixin, TimestampMixin, timestamp_field


@dataclass(frozen=True)
class DocumentPage:
    """One page of extracted text, as produced by the upstream extractor."""
    page_number: int
    text: str


class Document(IdMixin, TimestampMixin, table=True):
    """
    An indexed source (article, book, report).
    Owns its chunks; deleting it cascades to chunks, embeddings and
    similarity edges.
    """
    __tablename__ = "documents"

    file_path: Optional[str] = None
    title: str
    author: Optional[str] = None
    year: Optional[str] = None
    bibtex_key: Optional[str] = Field(default=None, index=True)
    page_count: int = 0
    summary: Optional[str] = None

    metadata_: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))

    indexed_at: datetime = timestamp_field()
    last_accessed_at: datetime = timestamp_field()

    @property
    def display_string(self) -> str:
        if self.author and self.year:
            return f"{self.author} ({self.year})"
        return self.title
