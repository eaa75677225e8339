from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, NewType

from .errors import ValidationError

DocumentId = NewType("DocumentId", str)
QueryId = NewType("QueryId", str)
QueryText = NewType("QueryText", str)
ChunkId = NewType("ChunkId", str)
PositionAwareChunkId = NewType("PositionAwareChunkId", str)


def _frozen(metadata: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable source document; `content` is the full text being chunked."""

    id: DocumentId
    content: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))


@dataclass(frozen=True, slots=True)
class Corpus:
    """Ordered, read-only collection of documents evaluated together."""

    documents: tuple[Document, ...]
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))

    def get_document(self, doc_id: str) -> Document | None:
        for document in self.documents:
            if document.id == doc_id:
                return document
        return None


@dataclass(frozen=True, slots=True)
class Chunk:
    """Bare text piece identified by its content hash."""

    id: ChunkId
    content: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))


@dataclass(frozen=True, slots=True)
class PositionAwareChunk:
    """Chunk carrying its exact `[start, end)` offsets in the source document."""

    id: PositionAwareChunkId
    content: str
    doc_id: DocumentId
    start: int
    end: int
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))


@dataclass(frozen=True, slots=True)
class CharacterSpan:
    """Half-open character interval anchored to one document.

    Raises:
        ValidationError: If the interval is empty, negative, or `text` does not
            have exactly `end - start` characters.
    """

    doc_id: DocumentId
    start: int
    end: int
    text: str

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValidationError(f"span start must be non-negative, got {self.start}")
        if self.end <= self.start:
            raise ValidationError(f"span end ({self.end}) must be greater than start ({self.start})")
        if len(self.text) != self.end - self.start:
            raise ValidationError(
                f"span text length {len(self.text)} does not match range length {self.end - self.start}"
            )


@dataclass(frozen=True, slots=True)
class Query:
    id: QueryId
    text: QueryText
    metadata: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))


@dataclass(frozen=True, slots=True)
class ChunkLevelGroundTruth:
    """Query labeled with the content-hash ids of the chunks that answer it."""

    query: Query
    relevant_chunk_ids: tuple[ChunkId, ...]


@dataclass(frozen=True, slots=True)
class TokenLevelGroundTruth:
    """Query labeled with the exact character spans that answer it."""

    query: Query
    relevant_spans: tuple[CharacterSpan, ...]


@dataclass(slots=True)
class RetrievalResult:
    """Scored hit returned by a similarity index."""

    chunk: PositionAwareChunk
    score: float
    source: str


@dataclass(slots=True)
class EvaluationResult:
    """Averaged metric scores plus counters for every recoverable skip."""

    metrics: dict[str, float]
    query_count: int = 0
    skipped_queries: int = 0
    skipped_chunks: int = 0
    skipped_spans: int = 0


def create_document(id: str, content: str, metadata: Mapping[str, Any] | None = None) -> Document:
    return Document(id=DocumentId(id), content=content, metadata=_frozen(metadata))


def create_corpus(documents: list[Document], metadata: Mapping[str, Any] | None = None) -> Corpus:
    return Corpus(documents=tuple(documents), metadata=_frozen(metadata))


def create_query(id: str, text: str, metadata: Mapping[str, Any] | None = None) -> Query:
    return Query(id=QueryId(id), text=QueryText(text), metadata=_frozen(metadata))


def create_character_span(doc_id: str, start: int, end: int, text: str) -> CharacterSpan:
    return CharacterSpan(doc_id=DocumentId(doc_id), start=start, end=end, text=text)


def position_aware_chunk_to_span(chunk: PositionAwareChunk) -> CharacterSpan:
    return CharacterSpan(doc_id=chunk.doc_id, start=chunk.start, end=chunk.end, text=chunk.content)
