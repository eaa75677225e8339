from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import numpy as np
from openai import OpenAI
from sentence_transformers import SentenceTransformer


@runtime_checkable
class Embedder(Protocol):
    """Maps texts to vectors; dimensionality must stay fixed within a run."""

    @property
    def name(self) -> str: ...

    def embed(self, texts: Sequence[str]) -> np.ndarray: ...

    def embed_query(self, text: str) -> np.ndarray: ...


def cosine_similarity(query_vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Compute cosine similarity between one query vector and many vectors.

    Args:
        query_vector: Query embedding vector.
        matrix: Candidate embedding matrix where each row is one vector.

    Returns:
        A 1D array of cosine similarity scores aligned to matrix rows. Rows
        whose norm (or the query's norm) is zero score exactly `0.0`.
    """
    query = np.asarray(query_vector, dtype=np.float64)
    candidates = np.asarray(matrix, dtype=np.float64)
    if candidates.size == 0:
        return np.zeros(len(candidates), dtype=np.float64)

    denominator = np.linalg.norm(candidates, axis=1) * np.linalg.norm(query)
    dots = candidates @ query
    scores = np.zeros_like(dots)
    np.divide(dots, denominator, out=scores, where=denominator != 0)
    return scores


class OpenAIEmbedder:
    """Embedding provider backed by the OpenAI embeddings API."""

    KNOWN_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, client: OpenAI, model: str = "text-embedding-3-small"):
        """Store the injected client used for every embedding request.

        Args:
            client: Configured `openai.OpenAI` client.
            model: Embedding model name.
        """
        self._client = client
        self.model = model
        self.dimension = self.KNOWN_DIMENSIONS.get(model, 1536)

    @classmethod
    def create(cls, model: str = "text-embedding-3-small") -> "OpenAIEmbedder":
        """Build an embedder with a default client reading `OPENAI_API_KEY`."""
        return cls(client=OpenAI(), model=model)

    @property
    def name(self) -> str:
        return f"OpenAI({self.model})"

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Generate embedding vectors for input texts.

        Returns:
            A `float32` NumPy matrix shaped `(len(texts), embedding_dim)`.
        """
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        response = self._client.embeddings.create(model=self.model, input=list(texts))
        vectors = [row.embedding for row in response.data]
        return np.array(vectors, dtype=np.float32)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


class SentenceTransformerEmbedder:
    """Local embedding provider using a sentence-transformers model."""

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, model: SentenceTransformer, model_name: str | None = None):
        self._model = model
        self._model_name = model_name or self.DEFAULT_MODEL

    @classmethod
    def from_pretrained(cls, model_name: str | None = None) -> "SentenceTransformerEmbedder":
        name = model_name or cls.DEFAULT_MODEL
        return cls(SentenceTransformer(name), model_name=name)

    @property
    def name(self) -> str:
        return f"SentenceTransformer({self._model_name})"

    @property
    def dimension(self) -> int:
        return self._model.get_sentence_embedding_dimension()

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return self._model.encode(list(texts), convert_to_numpy=True)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]
