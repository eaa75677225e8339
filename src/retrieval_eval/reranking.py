from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from sentence_transformers import CrossEncoder

from .schema import PositionAwareChunk
from .settings import EvaluationSettings


@runtime_checkable
class Reranker(Protocol):
    """Reorders first-pass retrieval candidates; never returns more than `top_k`."""

    @property
    def name(self) -> str: ...

    def rerank(
        self, query: str, chunks: Sequence[PositionAwareChunk], top_k: int | None = None
    ) -> list[PositionAwareChunk]: ...


class LocalCrossEncoderReranker:
    """Second-stage reranker using a local cross-encoder model."""

    def __init__(self, model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"):
        """Initialize the cross-encoder used for pairwise query-chunk scoring.

        Args:
            model_name: Sentence-transformers cross-encoder model identifier.
        """
        self.model_name = model_name
        self.model = CrossEncoder(model_name)

    @classmethod
    def from_settings(cls, settings: EvaluationSettings) -> "LocalCrossEncoderReranker":
        """Build a reranker for the model named by `RAG_EVAL_RERANK_MODEL`."""
        return cls(model_name=settings.rerank_model)

    @property
    def name(self) -> str:
        return f"CrossEncoder({self.model_name})"

    def rerank(
        self, query: str, chunks: Sequence[PositionAwareChunk], top_k: int | None = None
    ) -> list[PositionAwareChunk]:
        """Reorder retrieval candidates by cross-encoder relevance score.

        Args:
            query: User query string.
            chunks: First-pass retrieval candidates to re-score.
            top_k: Number of reranked chunks to return; all when omitted.

        Returns:
            Chunks sorted by descending cross-encoder score. Ties keep their
            first-pass order.
        """
        if not chunks:
            return []

        pairs = [[query, chunk.content] for chunk in chunks]
        scores = self.model.predict(pairs)

        order = sorted(range(len(chunks)), key=lambda idx: float(scores[idx]), reverse=True)
        ranked = [chunks[idx] for idx in order]
        limit = len(ranked) if top_k is None else top_k
        return ranked[:limit]
