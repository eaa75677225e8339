from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Literal

from .errors import LoadError, ValidationError
from .schema import (
    CharacterSpan,
    ChunkId,
    ChunkLevelGroundTruth,
    Corpus,
    TokenLevelGroundTruth,
    create_character_span,
    create_corpus,
    create_document,
    create_query,
)

GroundTruthLevel = Literal["chunk-level", "token-level"]

logger = logging.getLogger(__name__)


def _load_jsonl(path: str | Path) -> list[dict]:
    records: list[dict] = []
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                records.append(json.loads(line))
    return records


def _write_jsonl(records: Iterable[dict], path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("w", encoding="utf-8") as file_handle:
        for record in records:
            file_handle.write(json.dumps(record) + "\n")


def load_corpus(path: str | Path) -> Corpus:
    """Read documents from JSONL records shaped `{"id", "content", "metadata"?}`."""
    documents = [
        create_document(record["id"], record["content"], record.get("metadata"))
        for record in _load_jsonl(path)
    ]
    return create_corpus(documents)


def _query_record(query) -> dict[str, Any]:
    return {"id": str(query.id), "text": str(query.text), "metadata": dict(query.metadata)}


def ground_truth_to_record(item: ChunkLevelGroundTruth | TokenLevelGroundTruth) -> dict[str, Any]:
    if isinstance(item, ChunkLevelGroundTruth):
        return {
            "query": _query_record(item.query),
            "relevant_chunk_ids": [str(chunk_id) for chunk_id in item.relevant_chunk_ids],
        }
    return {
        "query": _query_record(item.query),
        "relevant_spans": [
            {"doc_id": str(span.doc_id), "start": span.start, "end": span.end, "text": span.text}
            for span in item.relevant_spans
        ],
    }


def save_ground_truth(items: Iterable[ChunkLevelGroundTruth | TokenLevelGroundTruth], path: str | Path) -> None:
    _write_jsonl((ground_truth_to_record(item) for item in items), path)


def _parse_query(record: dict):
    query = record["query"]
    return create_query(query["id"], query["text"], query.get("metadata"))


def load_chunk_level_ground_truth(path: str | Path) -> list[ChunkLevelGroundTruth]:
    return [
        ChunkLevelGroundTruth(
            query=_parse_query(record),
            relevant_chunk_ids=tuple(ChunkId(chunk_id) for chunk_id in record.get("relevant_chunk_ids", [])),
        )
        for record in _load_jsonl(path)
    ]


def _parse_spans(record: dict, query_id: str) -> tuple[list[CharacterSpan], int]:
    spans: list[CharacterSpan] = []
    skipped = 0
    for span in record.get("relevant_spans", []):
        try:
            spans.append(create_character_span(span["doc_id"], span["start"], span["end"], span["text"]))
        except ValidationError as exc:
            skipped += 1
            logger.warning("query %s: dropping malformed span: %s", query_id, exc)
    return spans, skipped


def read_token_level_ground_truth(path: str | Path) -> tuple[list[TokenLevelGroundTruth], int, int]:
    """Read token-level records, dropping spans that fail validation.

    A query whose spans were all dropped is left out entirely; a query stored
    with no spans at all is kept.

    Returns:
        Tuple of the parsed queries, the number of dropped spans and the number
        of dropped queries.
    """
    items: list[TokenLevelGroundTruth] = []
    skipped_spans = 0
    skipped_queries = 0
    for record in _load_jsonl(path):
        query = _parse_query(record)
        spans, skipped = _parse_spans(record, str(query.id))
        skipped_spans += skipped
        if skipped and not spans:
            skipped_queries += 1
            logger.warning("skipping query %s: none of its spans are valid", query.id)
            continue
        items.append(TokenLevelGroundTruth(query=query, relevant_spans=tuple(spans)))
    return items, skipped_spans, skipped_queries


def load_token_level_ground_truth(path: str | Path) -> list[TokenLevelGroundTruth]:
    items, _, _ = read_token_level_ground_truth(path)
    return items


class JsonlGroundTruthLoader:
    """Ground-truth loader reading `<directory>/<dataset_name>.jsonl` files.

    Malformed spans are dropped while loading and tallied in `skipped_spans`
    and `skipped_queries`, which accumulate across calls.
    """

    def __init__(self, directory: str | Path, level: GroundTruthLevel = "token-level"):
        self.directory = Path(directory)
        self.level = level
        self._skipped_spans = 0
        self._skipped_queries = 0

    @property
    def skipped_spans(self) -> int:
        return self._skipped_spans

    @property
    def skipped_queries(self) -> int:
        return self._skipped_queries

    def path_for(self, dataset_name: str) -> Path:
        return self.directory / f"{dataset_name}.jsonl"

    def load(self, dataset_name: str) -> list[ChunkLevelGroundTruth] | list[TokenLevelGroundTruth]:
        """Load one dataset.

        Raises:
            LoadError: If the file is missing, is not valid JSONL, or a record
                lacks a required field.
        """
        path = self.path_for(dataset_name)
        try:
            if self.level == "chunk-level":
                return load_chunk_level_ground_truth(path)
            items, skipped_spans, skipped_queries = read_token_level_ground_truth(path)
        except FileNotFoundError as exc:
            raise LoadError(f"ground truth dataset {dataset_name!r} not found at {path}") from exc
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise LoadError(f"ground truth dataset {dataset_name!r} is malformed: {exc}") from exc

        self._skipped_spans += skipped_spans
        self._skipped_queries += skipped_queries
        return items
