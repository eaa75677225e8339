"""Tests for settings.py — load_settings defaults and env overrides."""
from __future__ import annotations

import pytest

from retrieval_eval.errors import ConfigurationError
from retrieval_eval.settings import EvaluationSettings, OpenAISettings, Paths, load_settings

_ENV_VARS = (
    "OPENAI_EMBEDDING_MODEL",
    "OPENAI_CHAT_MODEL",
    "RAG_EVAL_CHUNK_SIZE",
    "RAG_EVAL_CHUNK_OVERLAP",
    "RAG_EVAL_K",
    "RAG_EVAL_BATCH_SIZE",
    "RAG_EVAL_RERANK_MODEL",
    "RAG_EVAL_DATA_DIR",
    "RAG_EVAL_GROUND_TRUTH_DIR",
)


@pytest.fixture()
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # a developer .env must not leak into these assertions
    monkeypatch.setattr("retrieval_eval.settings.load_dotenv", lambda *args, **kwargs: False)
    return monkeypatch


class TestDefaults:
    def test_openai_defaults(self):
        s = OpenAISettings()
        assert s.embedding_model == "text-embedding-3-small"
        assert s.chat_model == "gpt-4.1-mini"

    def test_evaluation_defaults(self):
        s = EvaluationSettings()
        assert (s.chunk_size, s.chunk_overlap, s.k, s.batch_size) == (1000, 200, 5, 100)
        assert s.rerank_model == "cross-encoder/ms-marco-MiniLM-L-6-v2"

    def test_path_defaults(self):
        p = Paths()
        assert p.data_dir == "data"
        assert p.ground_truth_dir == "data/ground_truth"


class TestLoadSettings:
    def test_returns_three_config_objects(self, clean_env):
        openai_settings, evaluation, paths = load_settings()
        assert isinstance(openai_settings, OpenAISettings)
        assert isinstance(evaluation, EvaluationSettings)
        assert isinstance(paths, Paths)

    def test_defaults_when_env_vars_absent(self, clean_env):
        _, evaluation, _ = load_settings()
        assert evaluation == EvaluationSettings()

    def test_env_vars_override_defaults(self, clean_env):
        clean_env.setenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
        clean_env.setenv("RAG_EVAL_CHUNK_SIZE", "400")
        clean_env.setenv("RAG_EVAL_CHUNK_OVERLAP", "40")
        clean_env.setenv("RAG_EVAL_K", "10")
        clean_env.setenv("RAG_EVAL_GROUND_TRUTH_DIR", "/tmp/gt")
        openai_settings, evaluation, paths = load_settings()
        assert openai_settings.embedding_model == "text-embedding-3-large"
        assert (evaluation.chunk_size, evaluation.chunk_overlap, evaluation.k) == (400, 40, 10)
        assert paths.ground_truth_dir == "/tmp/gt"

    def test_blank_numeric_falls_back_to_default(self, clean_env):
        clean_env.setenv("RAG_EVAL_BATCH_SIZE", "  ")
        _, evaluation, _ = load_settings()
        assert evaluation.batch_size == 100

    def test_non_integer_raises(self, clean_env):
        clean_env.setenv("RAG_EVAL_K", "five")
        with pytest.raises(ConfigurationError, match="RAG_EVAL_K"):
            load_settings()
