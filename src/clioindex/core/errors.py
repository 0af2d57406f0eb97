"""
Exception hierarchy for the indexing and retrieval engine.

Chunkers, the quality scorer and the deduplicator never raise on bad input;
these errors cover the storage and search layers.
"""
from typing import Optional


class ClioIndexError(Exception):
    """Base class for all ClioIndex errors."""


class DimensionMismatchError(ClioIndexError):
    """An embedding does not have the dimension used by the store."""

    def __init__(self, expected: int, actual: int, context: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.context = context
        message = f"Embedding dimension mismatch: expected {expected}, got {actual}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class DocumentNotFoundError(ClioIndexError):
    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class SparseIndexUnavailableError(ClioIndexError):
    """The keyword index cannot answer queries (not built, or empty)."""


class IndexingCancelledError(ClioIndexError):
    """Batch indexing was cancelled between two documents."""

    def __init__(self, completed: Optional[list] = None):
        self.completed = completed or []
        super().__init__(f"Indexing cancelled after {len(self.completed)} document(s)")
