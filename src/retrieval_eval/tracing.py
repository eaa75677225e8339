"""OpenTelemetry tracing helpers for evaluation runs.

Every evaluation run opens an ``evaluation.run`` span with one ``retrieval``
child span per labeled query, so a slow or failing query can be located in the
observability backend.

Usage with Arize Phoenix (local backend):

    from retrieval_eval.tracing import configure_tracing, get_tracer

    configure_tracing(
        endpoint="http://localhost:6006/v1/traces",
        service_name="retrieval-eval",
    )
    result = evaluation.run(chunker=..., embedder=..., tracer=get_tracer("eval"))

Usage without a backend (development / testing):

    configure_tracing()   # uses ConsoleSpanExporter by default
"""
from __future__ import annotations

from typing import Callable

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter

from .schema import PositionAwareChunk

# ---------------------------------------------------------------------------
# Attribute names (OpenInference subset plus evaluation-specific keys)
# ---------------------------------------------------------------------------

ATTR_INPUT_VALUE = "input.value"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_EVALUATION_MODE = "evaluation.mode"
ATTR_EVALUATION_K = "evaluation.k"
ATTR_EVALUATION_CHUNK_COUNT = "evaluation.chunk_count"
ATTR_EVALUATION_QUERY_COUNT = "evaluation.query_count"
ATTR_EMBEDDING_MODEL_NAME = "embedding.model_name"

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "retrieval-eval",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL to send traces to. When *None* and no
            custom *exporter* is given, spans are printed to stdout via
            :class:`~opentelemetry.sdk.trace.export.ConsoleSpanExporter`.
        service_name: Label identifying this application in the backend.
        exporter: Already-constructed exporter, e.g. an
            ``InMemorySpanExporter`` in tests. When provided, *endpoint* is
            ignored.

    Returns:
        The configured :class:`~opentelemetry.sdk.trace.TracerProvider`.
    """
    global _provider

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint.  Install it with:\n"
                "  pip install opentelemetry-exporter-otlp-proto-http"
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    # SimpleSpanProcessor exports synchronously, so finished spans are readable
    # as soon as the traced call returns.
    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the most recently configured provider.

    Falls back to the global (no-op unless configured) provider, so tracing is
    free when :func:`configure_tracing` was never called.
    """
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


def traced_retrieval(
    retriever: Callable[..., list[PositionAwareChunk]],
    tracer: trace.Tracer,
) -> Callable[..., list[PositionAwareChunk]]:
    """Wrap a retrieval callable so every call is recorded as a ``retrieval`` span.

    The span records the query text, the number of chunks returned, and an
    OK/ERROR status. Exceptions are recorded and re-raised.
    """

    def _wrapped(query: str, *args, **kwargs) -> list[PositionAwareChunk]:
        with tracer.start_as_current_span("retrieval") as span:
            span.set_attribute(ATTR_INPUT_VALUE, query)
            try:
                results = retriever(query, *args, **kwargs)
                span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(results))
                span.set_status(trace.StatusCode.OK)
                return results
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise

    return _wrapped
