"""Shared pytest fixtures for retrieval_eval unit tests."""
from __future__ import annotations

import numpy as np
import pytest

from retrieval_eval.schema import Corpus, Document, create_corpus, create_document

RAG_TEXT = (
    "Retrieval-Augmented Generation (RAG) combines retrieval with generation. "
    "It retrieves relevant documents and uses them to generate answers. "
    "RAG improves accuracy by grounding responses in real data. "
    "The retrieval step is critical for RAG performance."
)

POLICY_TEXT = (
    "Employees may work remotely from home.\n\n"
    "VPN is required for all connections.\n\n"
    "Lost devices must be reported within one hour."
)


class FakeEmbedder:
    """Deterministic offline embedder: a bag-of-characters vector per text."""

    name = "fake"

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def _vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dim, dtype=np.float64)
        for char in text.lower():
            if char.isalnum():
                vector[ord(char) % self.dim] += 1.0
        return vector

    def embed(self, texts):
        self.calls.append(list(texts))
        return np.array([self._vector(text) for text in texts])

    def embed_query(self, text: str) -> np.ndarray:
        self.query_calls.append(text)
        return self._vector(text)


@pytest.fixture()
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def rag_document() -> Document:
    return create_document("rag.md", RAG_TEXT)


@pytest.fixture()
def sample_corpus() -> Corpus:
    return create_corpus(
        [
            create_document("rag.md", RAG_TEXT, {"title": "RAG overview"}),
            create_document("policy.md", POLICY_TEXT, {"title": "Remote Work Policy"}),
        ]
    )


@pytest.fixture()
def policy_document() -> Document:
    return create_document("policy.md", POLICY_TEXT)
