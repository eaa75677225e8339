from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import chromadb
import numpy as np

from .embeddings import cosine_similarity
from .schema import PositionAwareChunk, RetrievalResult


@runtime_checkable
class VectorStore(Protocol):
    """Similarity index contract used by the evaluation runs.

    Implementations must score by cosine similarity, order results by
    descending score with ties broken by insertion order, and return at most
    `k` chunks.
    """

    @property
    def name(self) -> str: ...

    def add(self, chunks: Sequence[PositionAwareChunk], embeddings: Sequence[Sequence[float]]) -> None: ...

    def search(self, query_embedding: Sequence[float], k: int = 5) -> list[PositionAwareChunk]: ...

    def clear(self) -> None: ...


def _check_aligned(chunks: Sequence[PositionAwareChunk], embeddings: Sequence[Sequence[float]]) -> None:
    if len(chunks) != len(embeddings):
        raise ValueError(f"got {len(chunks)} chunks but {len(embeddings)} embeddings")


class InMemoryVectorStore:
    """Append-only brute-force cosine index held entirely in memory."""

    name = "InMemory"

    def __init__(self) -> None:
        self._chunks: list[PositionAwareChunk] = []
        self._embeddings: list[np.ndarray] = []

    def __len__(self) -> int:
        return len(self._chunks)

    def add(self, chunks: Sequence[PositionAwareChunk], embeddings: Sequence[Sequence[float]]) -> None:
        _check_aligned(chunks, embeddings)
        self._chunks.extend(chunks)
        # Copy so later mutation of the caller's buffers cannot change the index.
        self._embeddings.extend(np.array(vector, dtype=np.float64, copy=True) for vector in embeddings)

    def search_with_scores(self, query_embedding: Sequence[float], k: int = 5) -> list[RetrievalResult]:
        """Score every stored chunk and return the top `k` as scored results.

        Args:
            query_embedding: Embedded query vector.
            k: Maximum number of results.

        Returns:
            Results sorted by descending cosine score; equal scores keep the
            order in which chunks were added.
        """
        if not self._chunks or k <= 0:
            return []

        scores = cosine_similarity(np.asarray(query_embedding, dtype=np.float64), np.vstack(self._embeddings))
        ranked = np.argsort(-scores, kind="stable")[:k]
        return [
            RetrievalResult(chunk=self._chunks[idx], score=float(scores[idx]), source="dense")
            for idx in ranked
        ]

    def search(self, query_embedding: Sequence[float], k: int = 5) -> list[PositionAwareChunk]:
        return [result.chunk for result in self.search_with_scores(query_embedding, k)]

    def clear(self) -> None:
        self._chunks = []
        self._embeddings = []


class ChromaVectorStore:
    """Chroma-backed index using cosine distance.

    Chroma ids are insertion positions, so duplicate chunk text (which shares a
    content-hash id) never collides inside the collection.
    """

    name = "Chroma"

    def __init__(self, client=None, collection_name: str = "retrieval-eval"):
        """Create (or replace) the backing collection.

        Args:
            client: Chroma client; an in-process `EphemeralClient` when omitted.
            collection_name: Collection used for this run's chunks.
        """
        self._client = client if client is not None else chromadb.EphemeralClient()
        self._collection_name = collection_name
        self._chunks: list[PositionAwareChunk] = []
        self._collection = self._create_collection()

    def _create_collection(self):
        # list_collections yields names on some chromadb releases, Collection objects on others
        existing = {getattr(collection, "name", collection) for collection in self._client.list_collections()}
        if self._collection_name in existing:
            self._client.delete_collection(self._collection_name)
        return self._client.create_collection(
            name=self._collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def add(self, chunks: Sequence[PositionAwareChunk], embeddings: Sequence[Sequence[float]]) -> None:
        _check_aligned(chunks, embeddings)
        if not chunks:
            return
        offset = len(self._chunks)
        self._collection.add(
            ids=[str(offset + idx) for idx in range(len(chunks))],
            embeddings=[np.asarray(vector, dtype=np.float64).tolist() for vector in embeddings],
            documents=[chunk.content for chunk in chunks],
            metadatas=[{"doc_id": chunk.doc_id, "start": chunk.start, "end": chunk.end} for chunk in chunks],
        )
        self._chunks.extend(chunks)

    def search_with_scores(self, query_embedding: Sequence[float], k: int = 5) -> list[RetrievalResult]:
        if not self._chunks or k <= 0:
            return []

        response = self._collection.query(
            query_embeddings=[np.asarray(query_embedding, dtype=np.float64).tolist()],
            n_results=min(k, len(self._chunks)),
        )
        hits = [
            (float(1.0 - distance), int(chunk_id))
            for chunk_id, distance in zip(response["ids"][0], response["distances"][0], strict=True)
        ]
        hits.sort(key=lambda hit: (-hit[0], hit[1]))
        return [RetrievalResult(chunk=self._chunks[idx], score=score, source="dense") for score, idx in hits]

    def search(self, query_embedding: Sequence[float], k: int = 5) -> list[PositionAwareChunk]:
        return [result.chunk for result in self.search_with_scores(query_embedding, k)]

    def clear(self) -> None:
        self._chunks = []
        self._collection = self._create_collection()
