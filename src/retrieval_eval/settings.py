from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .errors import ConfigurationError


@dataclass(slots=True)
class OpenAISettings:
    """Runtime model configuration for embedding and generation calls."""

    embedding_model: str = "text-embedding-3-small"
    chat_model: str = "gpt-4.1-mini"


@dataclass(slots=True)
class EvaluationSettings:
    """Default chunking, retrieval and batching parameters for a run."""

    chunk_size: int = 1000
    chunk_overlap: int = 200
    k: int = 5
    batch_size: int = 100
    rerank_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"


@dataclass(slots=True)
class Paths:
    """Common project paths used by the scripts."""

    data_dir: str = "data"
    ground_truth_dir: str = "data/ground_truth"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def load_settings() -> tuple[OpenAISettings, EvaluationSettings, Paths]:
    """Load environment-backed settings and return typed config objects.

    Returns:
        Tuple of OpenAI model settings, evaluation defaults and path settings.

    Raises:
        ConfigurationError: If a numeric variable is not an integer.
    """
    load_dotenv()
    return (
        OpenAISettings(
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini"),
        ),
        EvaluationSettings(
            chunk_size=_env_int("RAG_EVAL_CHUNK_SIZE", 1000),
            chunk_overlap=_env_int("RAG_EVAL_CHUNK_OVERLAP", 200),
            k=_env_int("RAG_EVAL_K", 5),
            batch_size=_env_int("RAG_EVAL_BATCH_SIZE", 100),
            rerank_model=os.getenv("RAG_EVAL_RERANK_MODEL", "cross-encoder/ms-marco-MiniLM-L-6-v2"),
        ),
        Paths(
            data_dir=os.getenv("RAG_EVAL_DATA_DIR", "data"),
            ground_truth_dir=os.getenv("RAG_EVAL_GROUND_TRUTH_DIR", "data/ground_truth"),
        ),
    )
