"""
Pytest configuration and shared fixtures for ClioIndex tests.
"""
import re
from typing import List

import numpy as np
import pytest

from clioindex.rag import VectorStore
from clioindex.schema import Chunk, Document, DocumentPage
from clioindex.utils.db import create_db_engine


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> VectorStore:
    return VectorStore(engine)


# ============================================================================
# Mock Services
# ============================================================================

TOPICS = {
    "history": ["history", "ancient", "empire", "historical", "medieval", "roman"],
    "science": ["science", "research", "experiment", "study", "laboratory", "hypothesis"],
    "business": ["business", "company", "market", "economy", "profit", "trade"],
    "art": ["painting", "sculpture", "artist", "museum", "canvas", "gallery"],
}

EMBEDDING_DIM = len(TOPICS) + 1


def keyword_vector(text: str) -> List[float]:
    """Deterministic topic vector: one dimension per topic plus a small constant."""
    words = re.findall(r"\w+", text.lower())
    vec = [float(sum(words.count(w) for w in vocab)) for vocab in TOPICS.values()]
    vec.append(0.05)
    norm = np.linalg.norm(vec)
    return [v / norm for v in vec]


class KeywordEmbedder:
    """Stand-in for EmbeddingService with the same async surface."""

    def __init__(self):
        self.calls = 0
        self.batch_calls = 0

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        return keyword_vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls += 1
        return [keyword_vector(t) for t in texts]


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


# ============================================================================
# Sample Data Fixtures
# ============================================================================

HISTORY_TEXT = (
    "The Roman empire shaped ancient history across the Mediterranean world. "
    "Historical sources describe medieval kingdoms that inherited Roman law and custom. "
    "Ancient historians wrote about the empire with admiration and some suspicion. "
    "Medieval chroniclers copied those historical accounts into monastery libraries. "
    "Scholars of history still debate why the western empire declined so quickly."
)

HISTORY_TEXT_2 = (
    "Byzantine emperors preserved Roman administration long after the western collapse. "
    "Their historical chronicles record sieges, treaties and ancient rivalries with Persia. "
    "Medieval pilgrims crossed the empire carrying relics and stories to distant towns. "
    "Modern history courses still begin with these ancient sources and their biases."
)

SCIENCE_TEXT = (
    "Modern science relies on careful research and repeatable experiment design. "
    "Every laboratory study begins with a hypothesis that can be falsified by data. "
    "Research groups publish each experiment so others can repeat the study. "
    "A good hypothesis guides the laboratory work and the later statistical analysis. "
    "Science advances when research results survive independent experiment replication."
)


@pytest.fixture
def history_pages() -> List[DocumentPage]:
    return [
        DocumentPage(page_number=1, text=HISTORY_TEXT),
        DocumentPage(page_number=2, text=HISTORY_TEXT_2),
    ]


@pytest.fixture
def science_pages() -> List[DocumentPage]:
    return [DocumentPage(page_number=1, text=SCIENCE_TEXT)]


@pytest.fixture
def make_document(store):
    """Persist a document and embedded chunks built from (content, vector) pairs."""
    def _make(title: str, contents_and_vectors, **fields) -> Document:
        document = store.save_document(Document(title=title, **fields))
        pairs = [
            (
                Chunk(document_id=document.id, content=content, chunk_index=i, page_number=1),
                vector,
            )
            for i, (content, vector) in enumerate(contents_and_vectors)
        ]
        store.save_chunks(pairs)
        return document

    return _make
