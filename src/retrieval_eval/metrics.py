from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from .schema import CharacterSpan, ChunkId
from .spans import calculate_overlap, total_span_length


@dataclass(frozen=True, slots=True)
class ChunkLevelMetric:
    """Named metric comparing retrieved chunk ids against labeled ids."""

    name: str
    calculate: Callable[[Sequence[ChunkId], Sequence[ChunkId]], float]


@dataclass(frozen=True, slots=True)
class TokenLevelMetric:
    """Named metric comparing retrieved character spans against labeled spans."""

    name: str
    calculate: Callable[[Sequence[CharacterSpan], Sequence[CharacterSpan]], float]


def chunk_recall(retrieved: Sequence[ChunkId], ground_truth: Sequence[ChunkId]) -> float:
    """Fraction of labeled chunk ids present among the retrieved ids.

    Returns 1.0 when nothing is labeled relevant.
    """
    if not ground_truth:
        return 1.0
    retrieved_set = set(retrieved)
    hits = [chunk_id for chunk_id in ground_truth if chunk_id in retrieved_set]
    return len(hits) / len(ground_truth)


def chunk_precision(retrieved: Sequence[ChunkId], ground_truth: Sequence[ChunkId]) -> float:
    """Fraction of retrieved ids (duplicates included) that are labeled relevant.

    Returns 0.0 when nothing was retrieved.
    """
    if not retrieved:
        return 0.0
    truth_set = set(ground_truth)
    hits = [chunk_id for chunk_id in retrieved if chunk_id in truth_set]
    return len(hits) / len(retrieved)


def chunk_f1(retrieved: Sequence[ChunkId], ground_truth: Sequence[ChunkId]) -> float:
    recall = chunk_recall(retrieved, ground_truth)
    precision = chunk_precision(retrieved, ground_truth)
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def span_recall(retrieved: Sequence[CharacterSpan], ground_truth: Sequence[CharacterSpan]) -> float:
    """Share of labeled characters covered by retrieved spans, capped at 1.0."""
    total_truth = total_span_length(ground_truth)
    if total_truth == 0:
        return 1.0
    overlap = calculate_overlap(retrieved, ground_truth)
    return min(overlap / total_truth, 1.0)


def span_precision(retrieved: Sequence[CharacterSpan], ground_truth: Sequence[CharacterSpan]) -> float:
    """Share of retrieved characters that fall inside labeled spans."""
    total_retrieved = total_span_length(retrieved)
    if total_retrieved == 0:
        return 0.0
    return calculate_overlap(retrieved, ground_truth) / total_retrieved


def span_iou(retrieved: Sequence[CharacterSpan], ground_truth: Sequence[CharacterSpan]) -> float:
    """Character-level intersection over union of the two span sets."""
    if not retrieved and not ground_truth:
        return 1.0
    if not retrieved or not ground_truth:
        return 0.0

    intersection = calculate_overlap(retrieved, ground_truth)
    union = total_span_length(retrieved) + total_span_length(ground_truth) - intersection
    return intersection / union if union > 0 else 0.0


CHUNK_RECALL = ChunkLevelMetric(name="chunk_recall", calculate=chunk_recall)
CHUNK_PRECISION = ChunkLevelMetric(name="chunk_precision", calculate=chunk_precision)
CHUNK_F1 = ChunkLevelMetric(name="chunk_f1", calculate=chunk_f1)

SPAN_RECALL = TokenLevelMetric(name="span_recall", calculate=span_recall)
SPAN_PRECISION = TokenLevelMetric(name="span_precision", calculate=span_precision)
SPAN_IOU = TokenLevelMetric(name="span_iou", calculate=span_iou)

DEFAULT_CHUNK_LEVEL_METRICS: tuple[ChunkLevelMetric, ...] = (CHUNK_RECALL, CHUNK_PRECISION, CHUNK_F1)
DEFAULT_TOKEN_LEVEL_METRICS: tuple[TokenLevelMetric, ...] = (SPAN_RECALL, SPAN_PRECISION, SPAN_IOU)


def average_scores(scores: dict[str, list[float]]) -> dict[str, float]:
    """Aggregate per-query metric scores into simple mean summary values."""
    return {name: (sum(values) / len(values) if values else 0.0) for name, values in scores.items()}
