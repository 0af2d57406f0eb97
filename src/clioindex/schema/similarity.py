from datetime import datetime

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, ForeignKey, String

from .base import timestamp_field


class DocumentSimilarity(SQLModel, table=True):
    """
    Cross-document similarity edge, computed after a document is indexed.
    Stored once per pair, with the newer document as source.
    """
    __tablename__ = "document_similarities"

    source_document_id: str = Field(
        sa_column=Column(
            String, ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
        )
    )
    target_document_id: str = Field(
        sa_column=Column(
            String, ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True, index=True
        )
    )
    score: float
    computed_at: datetime = timestamp_field()
