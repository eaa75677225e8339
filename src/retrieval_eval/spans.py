"""Interval algebra over document-anchored character ranges.

Any object exposing `doc_id`, `start` and `end` (for example `CharacterSpan`
or `PositionAwareChunk`) can be passed to these helpers. Merged output is
returned as `SpanRange` tuples since a merged interval no longer corresponds to
one verbatim text excerpt.
"""
from __future__ import annotations

from typing import Iterable, NamedTuple, Protocol


class SpanLike(Protocol):
    @property
    def doc_id(self) -> str: ...

    @property
    def start(self) -> int: ...

    @property
    def end(self) -> int: ...


class SpanRange(NamedTuple):
    doc_id: str
    start: int
    end: int


def span_length(span: SpanLike) -> int:
    return span.end - span.start


def span_overlaps(a: SpanLike, b: SpanLike) -> bool:
    """Return True when both spans share a document and at least one character."""
    if a.doc_id != b.doc_id:
        return False
    return a.start < b.end and b.start < a.end


def span_overlap_chars(a: SpanLike, b: SpanLike) -> int:
    if a.doc_id != b.doc_id:
        return 0
    return max(0, min(a.end, b.end) - max(a.start, b.start))


def merge_overlapping_spans(spans: Iterable[SpanLike]) -> list[SpanRange]:
    """Coalesce overlapping or adjacent spans within each document.

    Spans are partitioned by document (in first-seen order) and sorted by
    start; any span starting at or before the current merged end is folded in.
    One pass over sorted input reaches the fixpoint, so merging is idempotent.

    Args:
        spans: Spans to merge; may mix documents.

    Returns:
        Disjoint, non-adjacent ranges ordered by document then start.
    """
    by_doc: dict[str, list[SpanRange]] = {}
    for span in spans:
        by_doc.setdefault(span.doc_id, []).append(SpanRange(span.doc_id, span.start, span.end))

    merged: list[SpanRange] = []
    for doc_id, ranges in by_doc.items():
        ranges.sort(key=lambda item: (item.start, item.end))
        current_start, current_end = ranges[0].start, ranges[0].end
        for item in ranges[1:]:
            if item.start <= current_end:
                current_end = max(current_end, item.end)
            else:
                merged.append(SpanRange(doc_id, current_start, current_end))
                current_start, current_end = item.start, item.end
        merged.append(SpanRange(doc_id, current_start, current_end))
    return merged


def total_span_length(spans: Iterable[SpanLike]) -> int:
    """Character coverage of `spans`, counting internally overlapping text once."""
    return sum(span_length(span) for span in merge_overlapping_spans(spans))


def calculate_overlap(retrieved: Iterable[SpanLike], ground_truth: Iterable[SpanLike]) -> int:
    """Number of characters covered by both span sets."""
    merged_retrieved = merge_overlapping_spans(retrieved)
    merged_truth = merge_overlapping_spans(ground_truth)

    # Both sides are disjoint after merging, so pairwise sums never double count.
    return sum(
        span_overlap_chars(left, right)
        for left in merged_retrieved
        for right in merged_truth
        if left.doc_id == right.doc_id
    )
