"""
Tests for VectorStore persistence, exact search, similarity edges and
maintenance operations (in-memory SQLite).
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event
from sqlmodel import Session

from clioindex.core.errors import DimensionMismatchError
from clioindex.schema import Chunk, Document


def orphan_document(engine, document_id):
    """Delete a document row while foreign keys are off, leaving its chunks behind."""
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        conn.exec_driver_sql("DELETE FROM documents WHERE id = ?", (document_id,))
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")


# ============================================================================
# Documents
# ============================================================================

class TestDocuments:

    def test_save_and_get(self, store):
        saved = store.save_document(Document(title="Ledgers", author="Braudel", year="1949"))

        loaded = store.get_document(saved.id)
        assert loaded.title == "Ledgers"
        assert loaded.display_string == "Braudel (1949)"

    def test_get_missing_returns_none(self, store):
        assert store.get_document("missing") is None

    def test_metadata_round_trip(self, store):
        saved = store.save_document(Document(title="T", metadata_={"tags": ["trade"], "pages": 3}))
        assert store.get_document(saved.id).metadata_ == {"tags": ["trade"], "pages": 3}

    def test_get_all_documents_most_recent_first(self, store):
        store.save_document(Document(title="old", indexed_at=datetime(2020, 1, 1, tzinfo=timezone.utc)))
        store.save_document(Document(title="new", indexed_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))

        assert [d.title for d in store.get_all_documents()] == ["new", "old"]

    def test_touch_document(self, store):
        saved = store.save_document(Document(title="T", last_accessed_at=datetime(2020, 1, 1, tzinfo=timezone.utc)))

        assert store.touch_document(saved.id) is True
        assert store.get_document(saved.id).last_accessed_at > datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert store.touch_document("missing") is False

    def test_timestamps_round_trip_as_utc(self, store):
        indexed = datetime(2023, 6, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))
        saved = store.save_document(Document(title="T", indexed_at=indexed))

        loaded = store.get_document(saved.id)
        assert loaded.indexed_at == indexed
        assert loaded.indexed_at.tzinfo == timezone.utc
        assert loaded.indexed_at.hour == 10
        assert loaded.created_at.tzinfo == timezone.utc
        assert loaded.last_accessed_at <= datetime.now(timezone.utc)

    def test_naive_timestamp_is_read_as_utc(self, store):
        saved = store.save_document(Document(title="T", indexed_at=datetime(2021, 3, 4, 5, 6)))

        assert store.get_document(saved.id).indexed_at == datetime(2021, 3, 4, 5, 6, tzinfo=timezone.utc)

    def test_get_documents_by_ids(self, store):
        a = store.save_document(Document(title="A"))
        store.save_document(Document(title="B"))

        found = store.get_documents([a.id, "missing"])
        assert list(found) == [a.id]


# ============================================================================
# Chunks and embeddings
# ============================================================================

class TestChunks:

    def test_embedding_round_trip_is_exact(self, store, make_document):
        vector = [0.1, 1 / 3, -2.5e-8, 12345.6789]
        document = make_document("A", [("text", vector)])

        chunk = store.get_chunks_for_document(document.id)[0]
        assert chunk.embedding == vector
        assert chunk.embedding_dim == 4

    def test_chunks_ordered_by_index(self, store):
        document = store.save_document(Document(title="A"))
        store.save_chunks([
            (Chunk(document_id=document.id, content="second", chunk_index=1), [0.0, 1.0]),
            (Chunk(document_id=document.id, content="first", chunk_index=0), [1.0, 0.0]),
        ])

        assert [c.content for c in store.get_chunks_for_document(document.id)] == ["first", "second"]

    def test_get_chunks_preserves_requested_order(self, store, make_document):
        document = make_document("A", [("one", [1.0, 0.0]), ("two", [0.0, 1.0])])
        one, two = store.get_chunks_for_document(document.id)

        assert [c.id for c in store.get_chunks([two.id, "missing", one.id])] == [two.id, one.id]

    def test_empty_embedding_rejected(self, store):
        document = store.save_document(Document(title="A"))
        with pytest.raises(ValueError):
            store.save_chunk(Chunk(document_id=document.id, content="x"), [])

    def test_dimension_mismatch_within_batch(self, store):
        document = store.save_document(Document(title="A"))
        with pytest.raises(DimensionMismatchError):
            store.save_chunks([
                (Chunk(document_id=document.id, content="a", chunk_index=0), [1.0, 0.0]),
                (Chunk(document_id=document.id, content="b", chunk_index=1), [1.0, 0.0, 0.0]),
            ])
        assert store.get_chunks_for_document(document.id) == []

    def test_dimension_mismatch_against_store(self, store, make_document):
        make_document("A", [("a", [1.0, 0.0, 0.0])])
        other = store.save_document(Document(title="B"))

        with pytest.raises(DimensionMismatchError) as exc_info:
            store.save_chunk(Chunk(document_id=other.id, content="b"), [1.0, 0.0])

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_embedding_dimension(self, store, make_document):
        assert store.embedding_dimension is None
        make_document("A", [("a", [1.0, 0.0, 0.0])])
        assert store.embedding_dimension == 3

    def test_iter_chunks_filters_documents(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0]), ("a2", [0.0, 1.0])])
        make_document("B", [("b1", [1.0, 1.0])])

        assert len(store.iter_chunks()) == 3
        assert [c.content for c in store.iter_chunks([a.id])] == ["a1", "a2"]


# ============================================================================
# Search
# ============================================================================

class TestSearch:

    def test_ranks_by_cosine(self, store, make_document):
        make_document("A", [("east", [1.0, 0.0]), ("north", [0.0, 1.0]), ("northeast", [1.0, 1.0])])

        results = store.search([1.0, 0.1], k=3)

        assert [r.chunk.content for r in results] == ["east", "northeast", "north"]
        assert results[0].similarity > results[1].similarity > results[2].similarity

    def test_stored_vector_matches_itself(self, store, make_document):
        vector = [0.3, -0.2, 0.9]
        make_document("A", [("self", vector), ("other", [-0.3, 0.2, -0.9])])

        results = store.search(vector, k=1)

        assert results[0].chunk.content == "self"
        assert results[0].similarity == pytest.approx(1.0)

    def test_k_limits_results(self, store, make_document):
        make_document("A", [(f"c{i}", [1.0, float(i)]) for i in range(5)])
        assert len(store.search([1.0, 0.0], k=2)) == 2
        assert store.search([1.0, 0.0], k=0) == []

    def test_document_filter(self, store, make_document):
        make_document("A", [("a", [1.0, 0.0])])
        b = make_document("B", [("b", [0.0, 1.0])])

        results = store.search([1.0, 0.0], k=5, document_ids=[b.id])

        assert [r.chunk.content for r in results] == ["b"]

    def test_empty_store(self, store):
        assert store.search([1.0, 0.0], k=5) == []

    def test_query_dimension_mismatch(self, store, make_document):
        make_document("A", [("a", [1.0, 0.0])])
        with pytest.raises(DimensionMismatchError):
            store.search([1.0, 0.0, 0.0], k=5)

    def test_empty_query_rejected(self, store):
        with pytest.raises(ValueError):
            store.search([], k=5)


# ============================================================================
# Deletion
# ============================================================================

class TestDeletion:

    def test_cascade_leaves_other_documents_untouched(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0]), ("a2", [0.9, 0.1])])
        b = make_document("B", [("b1", [1.0, 0.0])])
        store.compute_and_save_similarities(b.id, threshold=0.5)

        assert store.delete_document(a.id) is True

        assert store.get_document(a.id) is None
        assert store.get_chunks_for_document(a.id) == []
        assert store.get_similar_documents(b.id) == []
        assert store.get_document(b.id) is not None
        assert [c.content for c in store.get_chunks_for_document(b.id)] == ["b1"]
        assert store.get_statistics().similarity_count == 0

    def test_failed_delete_leaves_document_intact(self, engine, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0]), ("a2", [0.9, 0.1])])
        b = make_document("B", [("b1", [1.0, 0.0])])
        store.compute_and_save_similarities(b.id, threshold=0.5)

        def fail_on_document_delete(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("DELETE FROM DOCUMENTS"):
                raise RuntimeError("disk I/O error")

        event.listen(engine, "before_cursor_execute", fail_on_document_delete)
        try:
            with pytest.raises(RuntimeError):
                store.delete_document(a.id)
        finally:
            event.remove(engine, "before_cursor_execute", fail_on_document_delete)

        assert store.get_document(a.id) is not None
        assert [c.content for c in store.get_chunks_for_document(a.id)] == ["a1", "a2"]
        assert [d.id for d, _ in store.get_similar_documents(b.id)] == [a.id]

    def test_delete_missing(self, store):
        assert store.delete_document("missing") is False


# ============================================================================
# Document similarity
# ============================================================================

class TestSimilarities:

    def test_mean_of_best_matches(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0, 0.0]), ("a2", [0.0, 1.0, 0.0])])
        b = make_document("B", [("b1", [1.0, 0.0, 0.0])])
        make_document("C", [("c1", [0.0, 0.0, 1.0])])

        written = store.compute_and_save_similarities(a.id, threshold=0.5)

        assert written == 1
        neighbours = store.get_similar_documents(a.id)
        assert [(d.id, s) for d, s in neighbours] == [(b.id, pytest.approx(0.5))]

    def test_edges_visible_from_both_sides(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0])])
        b = make_document("B", [("b1", [1.0, 0.0])])
        store.compute_and_save_similarities(b.id, threshold=0.5)

        assert [d.id for d, _ in store.get_similar_documents(a.id)] == [b.id]
        assert [d.id for d, _ in store.get_similar_documents(b.id)] == [a.id]

    def test_recompute_replaces_edges(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0])])
        make_document("B", [("b1", [1.0, 0.0])])

        store.compute_and_save_similarities(a.id, threshold=0.5)
        store.compute_and_save_similarities(a.id, threshold=0.5)

        assert store.get_statistics().similarity_count == 1

    def test_limit(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0])])
        for i in range(4):
            make_document(f"N{i}", [(f"n{i}", [1.0, 0.1 * i])])
        store.compute_and_save_similarities(a.id, threshold=0.5)

        assert len(store.get_similar_documents(a.id, limit=2)) == 2

    def test_no_chunks(self, store):
        document = store.save_document(Document(title="empty"))
        assert store.compute_and_save_similarities(document.id) == 0


# ============================================================================
# Maintenance
# ============================================================================

class TestMaintenance:

    def test_integrity_ok(self, store, make_document):
        make_document("A", [("a", [1.0, 0.0])])

        report = store.verify_integrity()

        assert report.ok
        assert report.total_chunks == 1

    def test_orphans_detected_and_cleaned(self, engine, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0]), ("a2", [0.0, 1.0])])
        make_document("B", [("b1", [1.0, 0.0])])
        orphan_document(engine, a.id)

        report = store.verify_integrity()
        assert report.orphaned_chunks == 2
        assert not report.ok

        assert store.clean_orphaned_chunks() == 2
        assert store.verify_integrity().ok
        assert store.get_statistics().chunk_count == 1

    def test_chunk_without_embedding_reported(self, engine, store):
        document = store.save_document(Document(title="A"))
        with Session(engine) as session:
            session.add(Chunk(document_id=document.id, content="no vector"))
            session.commit()

        assert store.verify_integrity().chunks_without_embedding == 1

    def test_statistics(self, store, make_document):
        a = make_document("A", [("a1", [1.0, 0.0]), ("a2", [0.0, 1.0])])
        make_document("B", [("b1", [1.0, 0.0])])
        store.compute_and_save_similarities(a.id, threshold=0.1)

        stats = store.get_statistics()

        assert stats.document_count == 2
        assert stats.chunk_count == 3
        assert stats.embedding_count == 3
        assert stats.similarity_count == 1
        assert stats.embedding_dimension == 2
        assert stats.database_url == "sqlite://"
