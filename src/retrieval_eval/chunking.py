from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from .errors import ConfigurationError, LocationError
from .hashing import generate_pa_chunk_id
from .schema import Document, PositionAwareChunk

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")

_PREVIEW_CHARS = 50

# (text, start, end) with `source[start:end] == text`
Piece = tuple[str, int, int]


@runtime_checkable
class Chunker(Protocol):
    """Splits raw text into pieces without tracking where they came from."""

    @property
    def name(self) -> str: ...

    def chunk(self, text: str) -> list[str]: ...


@runtime_checkable
class PositionAwareChunker(Protocol):
    """Splits a document into chunks carrying exact source offsets."""

    @property
    def name(self) -> str: ...

    def chunk_with_positions(self, document: Document) -> list[PositionAwareChunk]: ...


def is_position_aware_chunker(chunker: object) -> bool:
    return isinstance(chunker, PositionAwareChunker)


def as_position_aware(chunker: Chunker | PositionAwareChunker) -> PositionAwareChunker:
    """Return `chunker` itself when it tracks offsets, else wrap it in an adapter."""
    if is_position_aware_chunker(chunker):
        return chunker  # type: ignore[return-value]
    return ChunkerPositionAdapter(chunker)  # type: ignore[arg-type]


def _trimmed_piece(text: str, offset: int) -> Piece | None:
    """Strip surrounding whitespace and shift `offset` past what was removed."""
    stripped = text.strip()
    if not stripped:
        return None
    start = offset + len(text) - len(text.lstrip())
    return stripped, start, start + len(stripped)


class RecursiveCharacterChunker:
    """Separator-driven splitter that emits bounded, exactly-offset pieces.

    Separators are tried from most to least specific. Text that still exceeds
    `chunk_size` after packing is split again with the remaining separators,
    bottoming out in fixed-stride character slicing.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ):
        """Validate sizing parameters and store the separator hierarchy.

        Args:
            chunk_size: Maximum number of characters per piece.
            chunk_overlap: Maximum characters shared by adjacent pieces.
            separators: Split points ordered from most to least specific; `""`
                selects character-level slicing.

        Raises:
            ConfigurationError: If the sizes are negative or overlap is not
                strictly smaller than `chunk_size`.
        """
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ConfigurationError(f"chunk_overlap must be non-negative, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be less than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = tuple(separators)

    @property
    def name(self) -> str:
        return f"RecursiveCharacter(size={self.chunk_size}, overlap={self.chunk_overlap})"

    def chunk(self, text: str) -> list[str]:
        return [piece for piece, _, _ in self.split_with_positions(text)]

    def chunk_with_positions(self, document: Document) -> list[PositionAwareChunk]:
        return [
            PositionAwareChunk(
                id=generate_pa_chunk_id(piece),
                content=piece,
                doc_id=document.id,
                start=start,
                end=end,
            )
            for piece, start, end in self.split_with_positions(document.content)
        ]

    def split_with_positions(self, text: str) -> list[Piece]:
        return self._split(text, self.separators, 0)

    def _split(self, text: str, separators: Sequence[str], base_offset: int) -> list[Piece]:
        if not text.strip():
            return []
        if len(text) <= self.chunk_size:
            piece = _trimmed_piece(text, base_offset)
            return [piece] if piece else []

        separator, remaining = self._select_separator(text, separators)
        if separator == "":
            return self._split_characters(text, base_offset)

        fragments: list[tuple[str, int]] = []
        position = 0
        for part in text.split(separator):
            fragments.append((part, position))
            position += len(part) + len(separator)

        pieces: list[Piece] = []
        window: list[tuple[str, int]] = []
        window_len = 0

        def window_length() -> int:
            return len(separator.join(part for part, _ in window))

        def emit() -> None:
            if not window:
                return
            merged = separator.join(part for part, _ in window)
            piece = _trimmed_piece(merged, base_offset + window[0][1])
            if piece is None:
                return
            stripped, start, _ = piece
            if len(stripped) > self.chunk_size and remaining:
                pieces.extend(self._split(stripped, remaining, start))
            else:
                pieces.append(piece)

        for part, offset in fragments:
            added = len(part) if not window else len(separator) + len(part)
            if window and window_len + added > self.chunk_size:
                emit()
                if self.chunk_overlap == 0:
                    window = []
                    window_len = 0
                else:
                    while window and (
                        window_len > self.chunk_overlap
                        or window_len + len(separator) + len(part) > self.chunk_size
                    ):
                        window.pop(0)
                        window_len = window_length()
            window.append((part, offset))
            window_len = window_length()

        emit()
        return pieces

    def _select_separator(self, text: str, separators: Sequence[str]) -> tuple[str, tuple[str, ...]]:
        for index, separator in enumerate(separators):
            if separator == "":
                return "", ()
            if separator in text:
                return separator, tuple(separators[index + 1 :])
        return "", ()

    def _split_characters(self, text: str, base_offset: int) -> list[Piece]:
        stride = self.chunk_size - self.chunk_overlap
        pieces: list[Piece] = []
        for index in range(0, len(text), stride):
            piece = _trimmed_piece(text[index : index + self.chunk_size], base_offset + index)
            if piece is not None:
                pieces.append(piece)
            if index + self.chunk_size >= len(text):
                break
        return pieces


class ChunkerPositionAdapter:
    """Recover exact offsets for a chunker that only returns text pieces.

    Each piece is searched forward from the end of the previously accepted
    piece; if that fails, a search from the start of the document is accepted
    only when it does not overlap an already assigned range. Pieces that cannot
    be placed are dropped and counted in `skipped_chunks`.
    """

    def __init__(self, chunker: Chunker):
        self._chunker = chunker
        self._skipped_chunks = 0
        self.diagnostics: list[str] = []

    @property
    def name(self) -> str:
        return f"PositionAdapter({self._chunker.name})"

    @property
    def skipped_chunks(self) -> int:
        return self._skipped_chunks

    def chunk_with_positions(self, document: Document) -> list[PositionAwareChunk]:
        content = document.content
        assigned: list[tuple[int, int]] = []
        cursor = 0
        chunks: list[PositionAwareChunk] = []

        for piece in self._chunker.chunk(content):
            try:
                start = self._locate(content, piece, cursor, assigned)
            except LocationError as exc:
                self._skipped_chunks += 1
                self.diagnostics.append(f"{document.id}: {piece[:_PREVIEW_CHARS]!r}")
                logger.warning("%s; chunk preview: %r", exc, piece[:_PREVIEW_CHARS])
                continue

            end = start + len(piece)
            assigned.append((start, end))
            cursor = end
            chunks.append(
                PositionAwareChunk(
                    id=generate_pa_chunk_id(piece),
                    content=piece,
                    doc_id=document.id,
                    start=start,
                    end=end,
                )
            )

        return chunks

    @staticmethod
    def _locate(content: str, piece: str, cursor: int, assigned: list[tuple[int, int]]) -> int:
        if not piece:
            raise LocationError("empty chunk cannot be located")

        start = content.find(piece, cursor)
        if start != -1:
            return start

        start = content.find(piece)
        if start == -1:
            raise LocationError("chunk text not found in source document")
        end = start + len(piece)
        if any(start < claimed_end and end > claimed_start for claimed_start, claimed_end in assigned):
            raise LocationError("chunk text only found inside an already assigned range")
        return start


class FixedSizeChunker:
    """Split text into fixed-width character windows with no overlap."""

    def __init__(self, chunk_size: int = 260):
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    @property
    def name(self) -> str:
        return f"FixedSize(size={self.chunk_size})"

    def chunk(self, text: str) -> list[str]:
        return [text[start : start + self.chunk_size] for start in range(0, len(text), self.chunk_size)]


class SentenceChunker:
    """Group consecutive `". "`-delimited sentences into larger chunks.

    Keeps related sentences together to reduce context fragmentation in
    policy-heavy text.
    """

    def __init__(self, sentences_per_chunk: int = 2):
        if sentences_per_chunk <= 0:
            raise ConfigurationError(f"sentences_per_chunk must be positive, got {sentences_per_chunk}")
        self.sentences_per_chunk = sentences_per_chunk

    @property
    def name(self) -> str:
        return f"Sentence(group={self.sentences_per_chunk})"

    def chunk(self, text: str) -> list[str]:
        sentences = [piece.strip() for piece in text.split(". ") if piece.strip()]
        return [
            ". ".join(sentences[index : index + self.sentences_per_chunk])
            for index in range(0, len(sentences), self.sentences_per_chunk)
        ]
