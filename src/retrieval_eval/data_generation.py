"""Synthetic ground-truth generation for both evaluation modes.

An LLM is asked for questions about each corpus document and for the passages
that answer them. Chunk-level datasets label questions with content-hash chunk
ids; token-level datasets label them with exact character spans located in the
source document.

The generator is a plain data structure holding an injected `LLMClient`; the
two strategies are a tagged union dispatched by `generate_ground_truth`.
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Literal, Protocol, Sequence, Union

from openai import OpenAI

from .chunking import Chunker
from .errors import LocationError, ValidationError
from .hashing import generate_chunk_id
from .schema import (
    CharacterSpan,
    Chunk,
    ChunkId,
    ChunkLevelGroundTruth,
    Corpus,
    Document,
    TokenLevelGroundTruth,
    create_character_span,
    create_query,
)

logger = logging.getLogger(__name__)

MAX_CHUNKS_PER_PROMPT = 20
CHUNK_PREVIEW_CHARS = 500
DOCUMENT_PROMPT_CHARS = 8000

CHUNK_LEVEL_SYSTEM_PROMPT = (
    "You are an expert at generating evaluation data for RAG systems.\n"
    "Given chunks from a document with their IDs, generate questions that can be answered using specific chunks.\n"
    "For each question, list the chunk IDs that contain the answer.\n"
    "\n"
    "Output JSON format:\n"
    '{"qa_pairs": [{"query": "What is...?", "relevant_chunk_ids": ["chunk_xxx", "chunk_yyy"]}]}'
)

QUERY_SYSTEM_PROMPT = (
    "You are an expert at generating evaluation questions.\n"
    "Given a document, generate diverse questions answerable from specific passages.\n"
    "\n"
    'Output JSON: {"questions": ["What is...?", "How does...?"]}'
)

EXCERPT_SYSTEM_PROMPT = (
    "You are an expert at identifying relevant text.\n"
    "Given a document and question, extract exact passages that answer it.\n"
    "Copy text VERBATIM - do not paraphrase. Each excerpt must appear exactly in the document.\n"
    "\n"
    'Output JSON: {"excerpts": ["exact text from document..."]}'
)


class LLMClient(Protocol):
    """Chat-completion capability returning the raw response text."""

    @property
    def name(self) -> str: ...

    def complete(self, model: str, messages: Sequence[dict[str, str]], response_format: str = "json") -> str: ...


class OpenAIChatClient:
    """`LLMClient` backed by OpenAI chat completions."""

    name = "OpenAI"

    def __init__(self, client: OpenAI):
        self._client = client

    def complete(self, model: str, messages: Sequence[dict[str, str]], response_format: str = "json") -> str:
        kwargs = {"response_format": {"type": "json_object"}} if response_format == "json" else {}
        response = self._client.chat.completions.create(model=model, messages=list(messages), **kwargs)
        return (response.choices[0].message.content or "").strip()


@dataclass(slots=True)
class SyntheticDatasetGenerator:
    """LLM handle, corpus and model shared by both generation strategies."""

    llm: LLMClient
    corpus: Corpus
    model: str = "gpt-4o"


@dataclass(frozen=True, slots=True)
class ChunkLevelStrategy:
    chunker: Chunker
    kind: Literal["chunk-level"] = "chunk-level"


@dataclass(frozen=True, slots=True)
class TokenLevelStrategy:
    kind: Literal["token-level"] = "token-level"


GenerationStrategy = Union[ChunkLevelStrategy, TokenLevelStrategy]


def _parse_json_response(raw: str) -> dict:
    """Parse an LLM JSON reply, tolerating markdown code fences."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("LLM returned non-JSON output: %r", raw[:100])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def call_llm(generator: SyntheticDatasetGenerator, system_prompt: str, user_prompt: str) -> dict:
    raw = generator.llm.complete(
        model=generator.model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format="json",
    )
    return _parse_json_response(raw)


# ---------------------------------------------------------------------------
# Chunk-level generation
# ---------------------------------------------------------------------------


def build_chunk_index(corpus: Corpus, chunker: Chunker) -> dict[ChunkId, Chunk]:
    """Chunk every document and key the pieces by content-hash id.

    Identical text in two documents maps to one entry, owned by the first
    document it appeared in.
    """
    index: dict[ChunkId, Chunk] = {}
    for document in corpus.documents:
        for text in chunker.chunk(document.content):
            chunk_id = generate_chunk_id(text)
            if chunk_id not in index:
                index[chunk_id] = Chunk(id=chunk_id, content=text, metadata={"doc_id": str(document.id)})
    return index


def _chunk_prompt(chunks: Sequence[Chunk], queries_per_doc: int) -> str:
    listing = "\n\n".join(f"[{chunk.id}]: {chunk.content[:CHUNK_PREVIEW_CHARS]}" for chunk in chunks)
    return f"Here are chunks from a document:\n\n{listing}\n\nGenerate {queries_per_doc} diverse questions."


def generate_chunk_level_ground_truth(
    generator: SyntheticDatasetGenerator,
    chunker: Chunker,
    queries_per_doc: int = 5,
) -> list[ChunkLevelGroundTruth]:
    """Generate questions labeled with the chunk ids that answer them.

    Ids the LLM invents (not present in the chunk index) are discarded; a
    question left with no valid id is dropped.
    """
    index = build_chunk_index(generator.corpus, chunker)
    ground_truth: list[ChunkLevelGroundTruth] = []

    for document in generator.corpus.documents:
        doc_chunks = [chunk for chunk in index.values() if chunk.metadata["doc_id"] == str(document.id)]
        if not doc_chunks:
            continue

        response = call_llm(
            generator,
            CHUNK_LEVEL_SYSTEM_PROMPT,
            _chunk_prompt(doc_chunks[:MAX_CHUNKS_PER_PROMPT], queries_per_doc),
        )
        for pair in response.get("qa_pairs", []):
            valid_ids = [ChunkId(chunk_id) for chunk_id in pair.get("relevant_chunk_ids", []) if chunk_id in index]
            if not valid_ids or not pair.get("query"):
                continue
            ground_truth.append(
                ChunkLevelGroundTruth(
                    query=create_query(f"q_{len(ground_truth)}", pair["query"], {"source_doc": str(document.id)}),
                    relevant_chunk_ids=tuple(valid_ids),
                )
            )

    logger.info("generated %d chunk-level queries from %d documents", len(ground_truth), len(generator.corpus.documents))
    return ground_truth


# ---------------------------------------------------------------------------
# Token-level generation
# ---------------------------------------------------------------------------


def _normalize_with_positions(text: str) -> tuple[str, list[int]]:
    """Collapse whitespace runs to one space and lowercase, keeping a map to source offsets."""
    characters: list[str] = []
    positions: list[int] = []
    for match in re.finditer(r"\s+|\S", text):
        if match.group().isspace():
            characters.append(" ")
            positions.append(match.start())
            continue
        for lowered in match.group().lower():
            characters.append(lowered)
            positions.append(match.start())
    return "".join(characters), positions


def normalized_find(text: str, excerpt: str) -> tuple[int, int]:
    """Locate `excerpt` ignoring case and whitespace differences.

    Returns:
        `(start, end)` offsets of the matching region in `text`.

    Raises:
        LocationError: If no normalized match exists.
    """
    normalized_excerpt, _ = _normalize_with_positions(excerpt.strip())
    if not normalized_excerpt:
        raise LocationError("empty excerpt")

    normalized_text, positions = _normalize_with_positions(text)
    index = normalized_text.find(normalized_excerpt)
    if index == -1:
        raise LocationError("excerpt not found after normalization")

    # The stripped excerpt starts and ends on non-space characters, which map 1:1 to source offsets.
    last = index + len(normalized_excerpt) - 1
    return positions[index], positions[last] + 1


def locate_excerpt(document: Document, excerpt: str) -> CharacterSpan:
    """Return the span of `document` matching `excerpt`, exactly or after normalization.

    Raises:
        LocationError: If the excerpt does not occur in the document.
        ValidationError: If the located region is not a valid span.
    """
    start = document.content.find(excerpt) if excerpt else -1
    if start != -1:
        end = start + len(excerpt)
    else:
        start, end = normalized_find(document.content, excerpt)
    return create_character_span(str(document.id), start, end, document.content[start:end])


def find_span_positions(document: Document, excerpts: Sequence[str]) -> tuple[list[CharacterSpan], int]:
    """Locate every excerpt in `document`.

    Returns:
        Tuple of the located spans and the number of excerpts skipped.
    """
    spans: list[CharacterSpan] = []
    skipped = 0
    for excerpt in excerpts:
        try:
            spans.append(locate_excerpt(document, excerpt))
        except (LocationError, ValidationError) as exc:
            skipped += 1
            logger.warning("could not use excerpt in document %s (%s): %r", document.id, exc, excerpt[:50])
    return spans, skipped


def generate_token_level_ground_truth(
    generator: SyntheticDatasetGenerator,
    queries_per_doc: int = 5,
) -> list[TokenLevelGroundTruth]:
    """Generate questions labeled with verbatim answer spans.

    Questions whose excerpts cannot be located in the document are dropped.
    """
    ground_truth: list[TokenLevelGroundTruth] = []
    skipped_excerpts = 0

    for document in generator.corpus.documents:
        excerpt_source = document.content[:DOCUMENT_PROMPT_CHARS]
        questions = call_llm(
            generator,
            QUERY_SYSTEM_PROMPT,
            f"Document:\n{excerpt_source}\n\nGenerate {queries_per_doc} diverse questions.",
        ).get("questions", [])

        for question in questions:
            excerpts = call_llm(
                generator,
                EXCERPT_SYSTEM_PROMPT,
                f"Document:\n{excerpt_source}\n\nQuestion: {question}\n\nExtract exact passages.",
            ).get("excerpts", [])
            spans, skipped = find_span_positions(document, excerpts)
            skipped_excerpts += skipped
            if not spans:
                continue
            ground_truth.append(
                TokenLevelGroundTruth(
                    query=create_query(f"q_{len(ground_truth)}", question, {"source_doc": str(document.id)}),
                    relevant_spans=tuple(spans),
                )
            )

    logger.info(
        "generated %d token-level queries (%d excerpts skipped)", len(ground_truth), skipped_excerpts
    )
    return ground_truth


def generate_ground_truth(
    generator: SyntheticDatasetGenerator,
    strategy: GenerationStrategy,
    queries_per_doc: int = 5,
) -> list[ChunkLevelGroundTruth] | list[TokenLevelGroundTruth]:
    if isinstance(strategy, ChunkLevelStrategy):
        return generate_chunk_level_ground_truth(generator, strategy.chunker, queries_per_doc)
    return generate_token_level_ground_truth(generator, queries_per_doc)
