"""
Vector Store
SQLModel persistence for documents, chunks, embeddings and document
similarity edges, with exact (brute force) cosine search.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, select, delete

from clioindex.core.errors import DimensionMismatchError
from clioindex.core.logging import get_logger
from clioindex.schema import Chunk, Document, DocumentSimilarity, SearchResult, utcnow
from clioindex.utils.vectors import cosine_similarity_matrix

logger = get_logger(__name__)


class IntegrityReport(BaseModel):
    total_chunks: int
    orphaned_chunks: int
    chunks_without_embedding: int
    dimension_mismatches: int

    @property
    def ok(self) -> bool:
        return not (self.orphaned_chunks or self.chunks_without_embedding or self.dimension_mismatches)


class StoreStatistics(BaseModel):
    document_count: int
    chunk_count: int
    embedding_count: int
    similarity_count: int
    embedding_dimension: Optional[int] = None
    database_url: str


class VectorStore:
    """
    Persistent store bound to one engine.

    Not found returns None or an empty list. Integrity violations (dimension
    mismatch, empty vectors) raise.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # ==========================================
    # Documents
    # ==========================================

    def save_document(self, document: Document) -> Document:
        with self._session() as session:
            document = session.merge(document)
            session.commit()
            session.refresh(document)
        logger.debug("document_saved", document_id=document.id, title=document.title)
        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._session() as session:
            return session.get(Document, document_id)

    def get_all_documents(self) -> List[Document]:
        """All documents, most recently indexed first."""
        with self._session() as session:
            statement = select(Document).order_by(Document.indexed_at.desc(), Document.created_at.desc())
            return list(session.exec(statement).all())

    def get_documents(self, document_ids: Iterable[str]) -> Dict[str, Document]:
        ids = list(set(document_ids))
        if not ids:
            return {}
        with self._session() as session:
            statement = select(Document).where(Document.id.in_(ids))
            return {doc.id: doc for doc in session.exec(statement).all()}

    def touch_document(self, document_id: str) -> bool:
        with self._session() as session:
            document = session.get(Document, document_id)
            if document is None:
                return False
            document.last_accessed_at = utcnow()
            session.add(document)
            session.commit()
            return True

    def delete_document(self, document_id: str) -> bool:
        """
        Remove a document with its chunks and similarity edges in one
        transaction. Returns False when the document does not exist.
        """
        with self._session() as session:
            if session.get(Document, document_id) is None:
                return False
            try:
                session.exec(
                    delete(DocumentSimilarity).where(
                        or_(
                            DocumentSimilarity.source_document_id == document_id,
                            DocumentSimilarity.target_document_id == document_id,
                        )
                    )
                )
                session.exec(delete(Chunk).where(Chunk.document_id == document_id))
                session.exec(delete(Document).where(Document.id == document_id))
                session.commit()
            except Exception:
                session.rollback()
                logger.error("document_delete_failed", document_id=document_id, exc_info=True)
                raise

        logger.info("document_deleted", document_id=document_id)
        return True

    # ==========================================
    # Chunks
    # ==========================================

    def save_chunk(self, chunk: Chunk, embedding: Sequence[float]) -> Chunk:
        return self.save_chunks([(chunk, embedding)])[0]

    def save_chunks(self, pairs: Sequence[Tuple[Chunk, Sequence[float]]]) -> List[Chunk]:
        """Attach embeddings and persist all chunks in a single transaction."""
        if not pairs:
            return []

        expected = self.embedding_dimension
        for chunk, embedding in pairs:
            dim = len(embedding)
            if dim == 0:
                raise ValueError(f"Empty embedding for chunk {chunk.id}")
            if expected is None:
                expected = dim
            elif dim != expected:
                raise DimensionMismatchError(expected, dim, context=f"chunk {chunk.id}")

        saved = []
        with self._session() as session:
            for chunk, embedding in pairs:
                chunk.embedding = [float(x) for x in embedding]
                chunk.embedding_dim = len(embedding)
                session.add(chunk)
                saved.append(chunk)
            session.commit()

        logger.debug("chunks_saved", count=len(saved), document_id=saved[0].document_id)
        return saved

    def get_chunks_for_document(self, document_id: str) -> List[Chunk]:
        with self._session() as session:
            statement = (
                select(Chunk)
                .where(Chunk.document_id == document_id)
                .order_by(Chunk.chunk_index)
            )
            return list(session.exec(statement).all())

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        with self._session() as session:
            return session.get(Chunk, chunk_id)

    def get_chunks(self, chunk_ids: Sequence[str]) -> List[Chunk]:
        """Chunks in the order of `chunk_ids`; unknown ids are skipped."""
        if not chunk_ids:
            return []
        with self._session() as session:
            found = {
                c.id: c for c in session.exec(select(Chunk).where(Chunk.id.in_(list(chunk_ids)))).all()
            }
        return [found[cid] for cid in chunk_ids if cid in found]

    def iter_chunks(self, document_ids: Optional[Sequence[str]] = None) -> List[Chunk]:
        """Every embedded chunk, optionally restricted to some documents."""
        with self._session() as session:
            statement = select(Chunk).where(Chunk.embedding_dim.is_not(None))
            if document_ids is not None:
                statement = statement.where(Chunk.document_id.in_(list(document_ids)))
            statement = statement.order_by(Chunk.document_id, Chunk.chunk_index)
            return list(session.exec(statement).all())

    @property
    def embedding_dimension(self) -> Optional[int]:
        """Dimension shared by the stored embeddings, None while the store is empty."""
        with self._session() as session:
            statement = (
                select(Chunk.embedding_dim, func.count())
                .where(Chunk.embedding_dim.is_not(None))
                .group_by(Chunk.embedding_dim)
                .order_by(func.count().desc())
                .limit(1)
            )
            row = session.exec(statement).first()
        return row[0] if row else None

    # ==========================================
    # Search
    # ==========================================

    def search(
        self,
        query_vector: Sequence[float],
        k: int = 10,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[SearchResult]:
        """Exact cosine top-k over all stored embeddings (zero norms score 0)."""
        if len(query_vector) == 0:
            raise ValueError("Query vector is empty")
        if k <= 0:
            return []

        expected = self.embedding_dimension
        if expected is not None and len(query_vector) != expected:
            raise DimensionMismatchError(expected, len(query_vector), context="query")

        chunks = self.iter_chunks(document_ids)
        if not chunks:
            return []

        matrix = np.array([c.embedding for c in chunks], dtype=np.float64)
        query = np.asarray(query_vector, dtype=np.float64)
        scores = cosine_similarity_matrix(query, matrix)[0]

        # stable sort keeps storage order among ties
        order = np.argsort(-scores, kind="stable")[:k]
        return [SearchResult(chunk=chunks[i], similarity=float(scores[i])) for i in order]

    # ==========================================
    # Document similarity
    # ==========================================

    def compute_and_save_similarities(self, document_id: str, threshold: float = 0.5) -> int:
        """
        Score the document against every other stored document and replace
        its similarity edges.

        Pair score: mean, over this document's chunks, of the best cosine
        match among the other document's chunks. Edges with score >= threshold
        are kept. Returns the number of edges written.
        """
        own = self.iter_chunks([document_id])
        if not own:
            logger.warning("similarity_skipped_no_chunks", document_id=document_id)
            return 0

        own_matrix = np.array([c.embedding for c in own], dtype=np.float64)

        others: Dict[str, List[List[float]]] = defaultdict(list)
        with self._session() as session:
            statement = select(Chunk).where(
                Chunk.document_id != document_id, Chunk.embedding_dim.is_not(None)
            )
            for chunk in session.exec(statement).all():
                others[chunk.document_id].append(chunk.embedding)

        edges: List[DocumentSimilarity] = []
        for other_id, vectors in others.items():
            sims = cosine_similarity_matrix(own_matrix, np.array(vectors, dtype=np.float64))
            score = float(sims.max(axis=1).mean())
            if score >= threshold:
                edges.append(
                    DocumentSimilarity(
                        source_document_id=document_id,
                        target_document_id=other_id,
                        score=score,
                    )
                )

        with self._session() as session:
            session.exec(
                delete(DocumentSimilarity).where(
                    or_(
                        DocumentSimilarity.source_document_id == document_id,
                        DocumentSimilarity.target_document_id == document_id,
                    )
                )
            )
            for edge in edges:
                session.add(edge)
            session.commit()

        logger.info(
            "document_similarities_computed",
            document_id=document_id,
            compared=len(others),
            edges=len(edges),
            threshold=threshold
        )
        return len(edges)

    def get_similar_documents(self, document_id: str, limit: int = 5) -> List[Tuple[Document, float]]:
        """Neighbours through edges in either direction, best score first."""
        with self._session() as session:
            statement = select(DocumentSimilarity).where(
                or_(
                    DocumentSimilarity.source_document_id == document_id,
                    DocumentSimilarity.target_document_id == document_id,
                )
            )
            edges = list(session.exec(statement).all())

        scores = {}
        for edge in edges:
            other = edge.target_document_id if edge.source_document_id == document_id else edge.source_document_id
            scores[other] = max(scores.get(other, float("-inf")), edge.score)

        documents = self.get_documents(scores)
        ranked = sorted(
            ((documents[doc_id], score) for doc_id, score in scores.items() if doc_id in documents),
            key=lambda pair: pair[1],
            reverse=True,
        )
        return ranked[:limit]

    # ==========================================
    # Maintenance
    # ==========================================

    def verify_integrity(self) -> IntegrityReport:
        with self._session() as session:
            total = session.exec(select(func.count()).select_from(Chunk)).one()
            orphaned = session.exec(
                select(func.count())
                .select_from(Chunk)
                .outerjoin(Document, Chunk.document_id == Document.id)
                .where(Document.id.is_(None))
            ).one()
            missing = session.exec(
                select(func.count()).select_from(Chunk).where(Chunk.embedding_dim.is_(None))
            ).one()

        expected = self.embedding_dimension
        mismatches = 0
        if expected is not None:
            with self._session() as session:
                mismatches = session.exec(
                    select(func.count())
                    .select_from(Chunk)
                    .where(Chunk.embedding_dim.is_not(None), Chunk.embedding_dim != expected)
                ).one()

        report = IntegrityReport(
            total_chunks=total,
            orphaned_chunks=orphaned,
            chunks_without_embedding=missing,
            dimension_mismatches=mismatches,
        )
        if report.ok:
            logger.info("integrity_verified", total_chunks=total)
        else:
            logger.warning("integrity_issues_found", **report.model_dump())
        return report

    def clean_orphaned_chunks(self) -> int:
        """Delete chunks whose document no longer exists. Returns the count removed."""
        with self._session() as session:
            orphan_ids = list(
                session.exec(
                    select(Chunk.id)
                    .outerjoin(Document, Chunk.document_id == Document.id)
                    .where(Document.id.is_(None))
                ).all()
            )
            if orphan_ids:
                session.exec(delete(Chunk).where(Chunk.id.in_(orphan_ids)))
                session.commit()

        logger.info("orphaned_chunks_cleaned", removed=len(orphan_ids))
        return len(orphan_ids)

    def get_statistics(self) -> StoreStatistics:
        with self._session() as session:
            documents = session.exec(select(func.count()).select_from(Document)).one()
            chunks = session.exec(select(func.count()).select_from(Chunk)).one()
            embeddings = session.exec(
                select(func.count()).select_from(Chunk).where(Chunk.embedding_dim.is_not(None))
            ).one()
            similarities = session.exec(select(func.count()).select_from(DocumentSimilarity)).one()

        return StoreStatistics(
            document_count=documents,
            chunk_count=chunks,
            embedding_count=embeddings,
            similarity_count=similarities,
            embedding_dimension=self.embedding_dimension,
            database_url=self.engine.url.render_as_string(hide_password=True),
        )
