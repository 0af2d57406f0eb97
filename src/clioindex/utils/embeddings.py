import asyncio
import os
from typing import List, Optional

from dotenv import load_dotenv
from fastembed import TextEmbedding

from clioindex.core.logging import get_logger

logger = get_logger(__name__)

load_dotenv()

DEFAULT_EMBEDDING_MODEL = "BAAI/bge-small-en-v1.5"

OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}
OPENAI_MAX_INPUTS = 2048  # per embeddings.create request


class EmbeddingService:
    """
    Embedding backend for the indexing pipeline and retriever.

    The provider follows the model name: "text-embedding-*" goes to the
    OpenAI API, anything else is loaded locally through FastEmbed
    (BAAI/bge-*, snowflake/*, nomic-ai/*, ...).

    Every vector returned by one instance has the same length; a backend
    that answers with a different length raises ValueError instead of
    letting mixed dimensions reach the store.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        self._dimensions: Optional[int] = None

        if self.model.startswith("text-embedding-"):
            self.provider = "openai"
            self._init_openai(self.model)
        else:
            self.provider = "fastembed"
            self.embeddings = TextEmbedding(model_name=self.model)

        logger.info(
            "embedding_service_ready",
            provider=self.provider,
            model=self.model,
            dimensions=self._dimensions
        )

    def _init_openai(self, model: str):
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError(
                "OpenAI embeddings need the openai package. "
                "Install with: pip install clioindex[openai]"
            )

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not set (environment or .env file)")

        self.client = OpenAI(api_key=api_key)
        self._dimensions = OPENAI_DIMENSIONS.get(model)
        if self._dimensions is None:
            logger.warning("unknown_openai_model", model=model, assumed_dimensions=1536)
            self._dimensions = 1536

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        if self.provider == "openai":
            vectors = self._embed_openai(texts)
        else:
            # FastEmbed yields numpy arrays lazily
            vectors = [embedding.tolist() for embedding in self.embeddings.embed(texts)]

        self._check_dimensions(vectors)
        return vectors

    def _embed_openai(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), OPENAI_MAX_INPUTS):
            batch = texts[start:start + OPENAI_MAX_INPUTS]
            response = self.client.embeddings.create(
                model=self.model,
                input=batch,
                encoding_format="float"
            )
            vectors.extend(item.embedding for item in response.data)

        logger.debug("openai_embeddings_created", texts=len(texts), model=self.model)
        return vectors

    def _check_dimensions(self, vectors: List[List[float]]):
        lengths = {len(v) for v in vectors}
        if self._dimensions is None and len(lengths) == 1:
            self._dimensions = lengths.pop()
            return
        if lengths - {self._dimensions}:
            raise ValueError(
                f"Embedding backend returned dimensions {sorted(lengths)}, "
                f"expected {self._dimensions} for {self.model}"
            )

    async def embed(self, text: str) -> List[float]:
        """Async single-text embedding; the blocking call runs in a worker thread."""
        return await asyncio.to_thread(self.embed_query, text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Async batch embedding; one backend call for the whole list."""
        return await asyncio.to_thread(self.embed_documents, texts)

    def get_dimensions(self) -> int:
        """Dimensionality of embeddings produced by this model."""
        if self._dimensions is None:
            self.embed_query("dimension probe")
        return self._dimensions
