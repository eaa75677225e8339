from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Generic, Protocol, Sequence, TypeVar

from opentelemetry import trace

from .chunking import Chunker, ChunkerPositionAdapter, PositionAwareChunker, as_position_aware
from .embeddings import Embedder
from .errors import ConfigurationError, LoadError, ValidationError
from .hashing import generate_chunk_id
from .metrics import (
    DEFAULT_CHUNK_LEVEL_METRICS,
    DEFAULT_TOKEN_LEVEL_METRICS,
    ChunkLevelMetric,
    TokenLevelMetric,
    average_scores,
)
from .reranking import Reranker
from .schema import (
    CharacterSpan,
    ChunkId,
    ChunkLevelGroundTruth,
    Corpus,
    EvaluationResult,
    PositionAwareChunk,
    Query,
    TokenLevelGroundTruth,
    position_aware_chunk_to_span,
)
from .tracing import (
    ATTR_EMBEDDING_MODEL_NAME,
    ATTR_EVALUATION_CHUNK_COUNT,
    ATTR_EVALUATION_K,
    ATTR_EVALUATION_MODE,
    ATTR_EVALUATION_QUERY_COUNT,
    get_tracer,
    traced_retrieval,
)
from .vector_store import InMemoryVectorStore, VectorStore

logger = logging.getLogger(__name__)

GroundTruthT = TypeVar("GroundTruthT", ChunkLevelGroundTruth, TokenLevelGroundTruth)
UnitT = TypeVar("UnitT", ChunkId, CharacterSpan)
LoadedT_co = TypeVar("LoadedT_co", covariant=True)


class GroundTruthLoader(Protocol[LoadedT_co]):
    """Fetches a labeled query set by dataset name; failures are fatal."""

    def load(self, dataset_name: str) -> Sequence[LoadedT_co]: ...


class _RetrievalEvaluation(ABC, Generic[GroundTruthT, UnitT]):
    """Shared segment → embed → index → retrieve → score pipeline.

    Subclasses only decide how retrieved chunks and labels are turned into
    comparable units (content-hash ids or character spans).
    """

    mode = ""

    def __init__(
        self,
        corpus: Corpus,
        dataset_name: str | None = None,
        loader: GroundTruthLoader[GroundTruthT] | None = None,
    ):
        self._corpus = corpus
        self._dataset_name = dataset_name
        self._loader = loader

    @property
    def corpus(self) -> Corpus:
        return self._corpus

    @abstractmethod
    def _default_metrics(self) -> Sequence[ChunkLevelMetric | TokenLevelMetric]: ...

    def _index_corpus(self, chunks: list[PositionAwareChunk]) -> None:
        """Hook called once the corpus has been segmented."""

    @abstractmethod
    def _prepare(
        self, ground_truth: list[GroundTruthT], result: EvaluationResult
    ) -> list[tuple[Query, list[UnitT]]]: ...

    @abstractmethod
    def _to_units(self, retrieved: list[PositionAwareChunk]) -> list[UnitT]: ...

    def run(
        self,
        chunker: Chunker | PositionAwareChunker,
        embedder: Embedder,
        k: int = 5,
        vector_store: VectorStore | None = None,
        reranker: Reranker | None = None,
        metrics: Sequence[ChunkLevelMetric | TokenLevelMetric] | None = None,
        batch_size: int = 100,
        ground_truth: Sequence[GroundTruthT] | None = None,
        tracer: trace.Tracer | None = None,
    ) -> EvaluationResult:
        """Evaluate one retrieval configuration against the labeled queries.

        Args:
            chunker: Segmentation strategy; text-only chunkers are wrapped in a
                `ChunkerPositionAdapter`.
            embedder: Embedding provider for chunks and queries.
            k: Number of chunks retrieved (and kept after reranking) per query.
            vector_store: Index to use; a fresh `InMemoryVectorStore` when omitted.
                It is cleared when the run ends, successfully or not.
            reranker: Optional second-stage reranker.
            metrics: Metrics to compute; the mode's defaults when omitted.
            batch_size: Number of chunks embedded per request.
            ground_truth: Labeled queries; fetched through the loader when omitted.
            tracer: OpenTelemetry tracer; the package tracer when omitted.

        Returns:
            `EvaluationResult` with the mean of every metric and skip counters.

        Raises:
            ConfigurationError: If `batch_size < 1` or no ground truth source exists.
            LoadError: If the loader fails; no partial result is produced.
        """
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}")
        if ground_truth is None and (self._loader is None or self._dataset_name is None):
            raise ConfigurationError("provide ground_truth or configure a loader and dataset_name")

        store: VectorStore = vector_store if vector_store is not None else InMemoryVectorStore()
        active_metrics = list(metrics) if metrics is not None else list(self._default_metrics())
        position_chunker = as_position_aware(chunker)
        tracer = tracer if tracer is not None else get_tracer(__name__)
        result = EvaluationResult(metrics={})

        with tracer.start_as_current_span("evaluation.run") as span:
            span.set_attribute(ATTR_EVALUATION_MODE, self.mode)
            span.set_attribute(ATTR_EVALUATION_K, k)
            span.set_attribute(ATTR_EMBEDDING_MODEL_NAME, embedder.name)
            try:
                chunks = self._segment(position_chunker, result)
                span.set_attribute(ATTR_EVALUATION_CHUNK_COUNT, len(chunks))
                self._index_corpus(chunks)
                self._embed_and_index(chunks, embedder, store, batch_size)

                labeled = self._prepare(self._obtain_ground_truth(ground_truth, result), result)
                span.set_attribute(ATTR_EVALUATION_QUERY_COUNT, len(labeled))

                def retrieve(query_text: str) -> list[PositionAwareChunk]:
                    retrieved = store.search(embedder.embed_query(query_text), k)
                    if reranker is not None:
                        retrieved = reranker.rerank(query_text, retrieved, k)[:k]
                    return retrieved

                traced = traced_retrieval(retrieve, tracer)
                scores: dict[str, list[float]] = {metric.name: [] for metric in active_metrics}
                for query, relevant in labeled:
                    retrieved_units = self._to_units(traced(str(query.text)))
                    for metric in active_metrics:
                        scores[metric.name].append(metric.calculate(retrieved_units, relevant))

                result.metrics = average_scores(scores)
                result.query_count = len(labeled)
            finally:
                store.clear()

        logger.info(
            "%s evaluation with %s: %d queries scored, %d skipped queries, %d skipped chunks, %d skipped spans",
            self.mode,
            position_chunker.name,
            result.query_count,
            result.skipped_queries,
            result.skipped_chunks,
            result.skipped_spans,
        )
        return result

    def _segment(self, chunker: PositionAwareChunker, result: EvaluationResult) -> list[PositionAwareChunk]:
        skipped_before = chunker.skipped_chunks if isinstance(chunker, ChunkerPositionAdapter) else 0
        chunks = [chunk for document in self._corpus.documents for chunk in chunker.chunk_with_positions(document)]
        if isinstance(chunker, ChunkerPositionAdapter):
            result.skipped_chunks = chunker.skipped_chunks - skipped_before
        logger.debug("segmented %d documents into %d chunks", len(self._corpus.documents), len(chunks))
        return chunks

    @staticmethod
    def _embed_and_index(
        chunks: list[PositionAwareChunk], embedder: Embedder, store: VectorStore, batch_size: int
    ) -> None:
        # Sequential batches keep index insertion order equal to corpus order.
        for offset in range(0, len(chunks), batch_size):
            batch = chunks[offset : offset + batch_size]
            vectors = embedder.embed([chunk.content for chunk in batch])
            if len(vectors) != len(batch):
                raise ValueError(f"embedder returned {len(vectors)} vectors for {len(batch)} texts")
            store.add(batch, vectors)

    def _obtain_ground_truth(
        self, ground_truth: Sequence[GroundTruthT] | None, result: EvaluationResult
    ) -> list[GroundTruthT]:
        if ground_truth is not None:
            return list(ground_truth)
        if self._loader is None or self._dataset_name is None:
            raise ConfigurationError("provide ground_truth or configure a loader and dataset_name")

        # Loaders that drop malformed labels expose running counters.
        spans_before = getattr(self._loader, "skipped_spans", 0)
        queries_before = getattr(self._loader, "skipped_queries", 0)
        try:
            items = list(self._loader.load(self._dataset_name))
        except LoadError:
            raise
        except Exception as exc:
            raise LoadError(f"failed to load ground truth dataset {self._dataset_name!r}: {exc}") from exc
        result.skipped_spans += getattr(self._loader, "skipped_spans", 0) - spans_before
        result.skipped_queries += getattr(self._loader, "skipped_queries", 0) - queries_before
        return items


class ChunkLevelEvaluation(_RetrievalEvaluation[ChunkLevelGroundTruth, ChunkId]):
    """Scores retrieval by content-hash chunk identity (recall/precision/F1)."""

    mode = "chunk-level"

    def __init__(
        self,
        corpus: Corpus,
        dataset_name: str | None = None,
        loader: GroundTruthLoader[ChunkLevelGroundTruth] | None = None,
    ):
        super().__init__(corpus, dataset_name=dataset_name, loader=loader)
        self._chunk_id_map: dict[str, ChunkId] = {}

    def _default_metrics(self) -> Sequence[ChunkLevelMetric]:
        return DEFAULT_CHUNK_LEVEL_METRICS

    def _index_corpus(self, chunks: list[PositionAwareChunk]) -> None:
        self._chunk_id_map = {str(chunk.id): generate_chunk_id(chunk.content) for chunk in chunks}

    def _prepare(
        self, ground_truth: list[ChunkLevelGroundTruth], result: EvaluationResult
    ) -> list[tuple[Query, list[ChunkId]]]:
        known_ids = set(self._chunk_id_map.values())
        labeled: list[tuple[Query, list[ChunkId]]] = []
        for item in ground_truth:
            relevant = list(item.relevant_chunk_ids)
            if relevant and not any(chunk_id in known_ids for chunk_id in relevant):
                result.skipped_queries += 1
                logger.warning(
                    "skipping query %s: none of its %d relevant chunk ids exist in the corpus",
                    item.query.id,
                    len(relevant),
                )
                continue
            labeled.append((item.query, relevant))
        return labeled

    def _to_units(self, retrieved: list[PositionAwareChunk]) -> list[ChunkId]:
        return [self._chunk_id_map.get(str(chunk.id), ChunkId(str(chunk.id))) for chunk in retrieved]


class TokenLevelEvaluation(_RetrievalEvaluation[TokenLevelGroundTruth, CharacterSpan]):
    """Scores retrieval by character-span coverage (recall/precision/IoU)."""

    mode = "token-level"

    def _default_metrics(self) -> Sequence[TokenLevelMetric]:
        return DEFAULT_TOKEN_LEVEL_METRICS

    def _validate_span(self, span: CharacterSpan) -> None:
        document = self._corpus.get_document(span.doc_id)
        if document is None:
            raise ValidationError(f"span references unknown document {span.doc_id!r}")
        if document.content[span.start : span.end] != span.text:
            raise ValidationError(
                f"span [{span.start}, {span.end}) text does not match document {span.doc_id!r}"
            )

    def _prepare(
        self, ground_truth: list[TokenLevelGroundTruth], result: EvaluationResult
    ) -> list[tuple[Query, list[CharacterSpan]]]:
        labeled: list[tuple[Query, list[CharacterSpan]]] = []
        for item in ground_truth:
            valid: list[CharacterSpan] = []
            for span in item.relevant_spans:
                try:
                    self._validate_span(span)
                except ValidationError as exc:
                    result.skipped_spans += 1
                    logger.warning("query %s: %s", item.query.id, exc)
                    continue
                valid.append(span)

            if item.relevant_spans and not valid:
                result.skipped_queries += 1
                logger.warning("skipping query %s: no relevant span could be resolved", item.query.id)
                continue
            labeled.append((item.query, valid))
        return labeled

    def _to_units(self, retrieved: list[PositionAwareChunk]) -> list[CharacterSpan]:
        return [position_aware_chunk_to_span(chunk) for chunk in retrieved]
