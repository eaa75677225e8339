from __future__ import annotations

import hashlib

from .schema import ChunkId, PositionAwareChunkId


def _content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:12]


def generate_chunk_id(content: str) -> ChunkId:
    """Return the content-addressed id used to key chunk-level ground truth.

    Identical text always hashes to the same id, regardless of which document
    or offset it came from.
    """
    return ChunkId(f"chunk_{_content_digest(content)}")


def generate_pa_chunk_id(content: str) -> PositionAwareChunkId:
    return PositionAwareChunkId(f"pa_chunk_{_content_digest(content)}")
