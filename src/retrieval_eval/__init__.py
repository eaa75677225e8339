"""Retrieval evaluation for RAG pipelines at chunk and character-span granularity."""

from .chunking import ChunkerPositionAdapter, RecursiveCharacterChunker
from .errors import ConfigurationError, LoadError, LocationError, ValidationError
from .evaluation import ChunkLevelEvaluation, TokenLevelEvaluation
from .schema import (
    CharacterSpan,
    ChunkLevelGroundTruth,
    Corpus,
    Document,
    EvaluationResult,
    PositionAwareChunk,
    Query,
    TokenLevelGroundTruth,
)
from .vector_store import InMemoryVectorStore

__all__ = [
    "CharacterSpan",
    "ChunkLevelEvaluation",
    "ChunkLevelGroundTruth",
    "ChunkerPositionAdapter",
    "ConfigurationError",
    "Corpus",
    "Document",
    "EvaluationResult",
    "InMemoryVectorStore",
    "LoadError",
    "LocationError",
    "PositionAwareChunk",
    "Query",
    "RecursiveCharacterChunker",
    "TokenLevelEvaluation",
    "TokenLevelGroundTruth",
    "ValidationError",
]
