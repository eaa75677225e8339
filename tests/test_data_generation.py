"""Tests for data_generation.py — parsing, excerpt location and both generation strategies."""
from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from retrieval_eval.chunking import RecursiveCharacterChunker
from retrieval_eval.data_generation import (
    ChunkLevelStrategy,
    OpenAIChatClient,
    SyntheticDatasetGenerator,
    TokenLevelStrategy,
    _parse_json_response,
    build_chunk_index,
    find_span_positions,
    generate_chunk_level_ground_truth,
    generate_ground_truth,
    generate_token_level_ground_truth,
    locate_excerpt,
    normalized_find,
)
from retrieval_eval.errors import LocationError
from retrieval_eval.hashing import generate_chunk_id
from retrieval_eval.schema import ChunkLevelGroundTruth, TokenLevelGroundTruth, create_corpus, create_document


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _ScriptedLLM:
    """LLM stub replaying canned replies in order."""

    name = "scripted"

    def __init__(self, replies: list[str]):
        self.replies = list(replies)
        self.calls: list[dict] = []

    def complete(self, model, messages, response_format="json"):
        self.calls.append({"model": model, "messages": list(messages), "response_format": response_format})
        return self.replies.pop(0) if self.replies else "{}"


def _paragraph_chunker() -> RecursiveCharacterChunker:
    return RecursiveCharacterChunker(chunk_size=50, chunk_overlap=0)


# ---------------------------------------------------------------------------
# _parse_json_response
# ---------------------------------------------------------------------------

class TestParseJsonResponse:
    def test_plain_json(self):
        assert _parse_json_response('{"questions": ["a"]}') == {"questions": ["a"]}

    def test_strips_code_fences(self):
        raw = '```json\n{"questions": ["a"]}\n```'
        assert _parse_json_response(raw) == {"questions": ["a"]}

    def test_invalid_json_returns_empty(self):
        assert _parse_json_response("not json at all") == {}

    def test_non_object_returns_empty(self):
        assert _parse_json_response("[1, 2]") == {}


# ---------------------------------------------------------------------------
# Excerpt location
# ---------------------------------------------------------------------------

class TestLocateExcerpt:
    def test_exact_match(self, policy_document):
        span = locate_excerpt(policy_document, "VPN is required")
        assert policy_document.content[span.start:span.end] == "VPN is required"
        assert span.doc_id == "policy.md"

    def test_normalized_match_ignores_case_and_whitespace(self, policy_document):
        span = locate_excerpt(policy_document, "vpn   IS\nrequired")
        assert span.text == "VPN is required"

    def test_normalized_match_across_paragraph_break(self, policy_document):
        span = locate_excerpt(policy_document, "from home. VPN is")
        assert span.text == "from home.\n\nVPN is"

    def test_missing_excerpt_raises(self, policy_document):
        with pytest.raises(LocationError):
            locate_excerpt(policy_document, "quarterly revenue")

    def test_empty_excerpt_raises(self, policy_document):
        with pytest.raises(LocationError):
            locate_excerpt(policy_document, "   ")

    def test_normalized_find_offsets(self):
        assert normalized_find("Hello   World", "hello world") == (0, 13)

    def test_find_span_positions_counts_skips(self, policy_document):
        spans, skipped = find_span_positions(policy_document, ["VPN is required", "not here", "Lost devices"])
        assert [s.text for s in spans] == ["VPN is required", "Lost devices"]
        assert skipped == 1


# ---------------------------------------------------------------------------
# Chunk-level generation
# ---------------------------------------------------------------------------

class TestChunkLevelGeneration:
    def test_build_chunk_index_first_document_wins(self):
        corpus = create_corpus([create_document("a.md", "shared text"), create_document("b.md", "shared text")])
        index = build_chunk_index(corpus, _paragraph_chunker())
        assert len(index) == 1
        assert index[generate_chunk_id("shared text")].metadata["doc_id"] == "a.md"

    def test_keeps_only_known_chunk_ids(self, policy_document):
        vpn_id = generate_chunk_id("VPN is required for all connections.")
        reply = json.dumps(
            {
                "qa_pairs": [
                    {"query": "Is VPN required?", "relevant_chunk_ids": [vpn_id, "chunk_made_up"]},
                    {"query": "Invented?", "relevant_chunk_ids": ["chunk_made_up"]},
                    {"query": "", "relevant_chunk_ids": [vpn_id]},
                ]
            }
        )
        generator = SyntheticDatasetGenerator(llm=_ScriptedLLM([reply]), corpus=create_corpus([policy_document]))
        truth = generate_chunk_level_ground_truth(generator, _paragraph_chunker(), queries_per_doc=3)
        assert len(truth) == 1
        assert truth[0].relevant_chunk_ids == (vpn_id,)
        assert truth[0].query.id == "q_0"
        assert truth[0].query.metadata["source_doc"] == "policy.md"

    def test_prompt_lists_chunk_ids(self, policy_document):
        llm = _ScriptedLLM(["{}"])
        generator = SyntheticDatasetGenerator(llm=llm, corpus=create_corpus([policy_document]), model="gpt-test")
        generate_chunk_level_ground_truth(generator, _paragraph_chunker(), queries_per_doc=2)
        call = llm.calls[0]
        assert call["model"] == "gpt-test"
        assert call["response_format"] == "json"
        assert generate_chunk_id("VPN is required for all connections.") in call["messages"][1]["content"]


# ---------------------------------------------------------------------------
# Token-level generation
# ---------------------------------------------------------------------------

class TestTokenLevelGeneration:
    def test_questions_labeled_with_located_spans(self, policy_document):
        llm = _ScriptedLLM(
            [
                json.dumps({"questions": ["Is VPN required?", "What about revenue?"]}),
                json.dumps({"excerpts": ["VPN is required for all connections."]}),
                json.dumps({"excerpts": ["revenue grew"]}),
            ]
        )
        generator = SyntheticDatasetGenerator(llm=llm, corpus=create_corpus([policy_document]))
        truth = generate_token_level_ground_truth(generator, queries_per_doc=2)
        assert len(truth) == 1
        span = truth[0].relevant_spans[0]
        assert (span.start, span.end) == (40, 76)
        assert truth[0].query.text == "Is VPN required?"
        assert len(llm.calls) == 3

    def test_bad_json_produces_nothing(self, policy_document):
        generator = SyntheticDatasetGenerator(llm=_ScriptedLLM(["oops"]), corpus=create_corpus([policy_document]))
        assert generate_token_level_ground_truth(generator) == []


# ---------------------------------------------------------------------------
# Strategy dispatch / OpenAIChatClient
# ---------------------------------------------------------------------------

class TestGenerateGroundTruth:
    def test_dispatches_chunk_level(self, policy_document):
        vpn_id = generate_chunk_id("VPN is required for all connections.")
        reply = json.dumps({"qa_pairs": [{"query": "VPN?", "relevant_chunk_ids": [vpn_id]}]})
        generator = SyntheticDatasetGenerator(llm=_ScriptedLLM([reply]), corpus=create_corpus([policy_document]))
        truth = generate_ground_truth(generator, ChunkLevelStrategy(chunker=_paragraph_chunker()))
        assert all(isinstance(item, ChunkLevelGroundTruth) for item in truth)
        assert len(truth) == 1

    def test_dispatches_token_level(self, policy_document):
        llm = _ScriptedLLM(
            [json.dumps({"questions": ["VPN?"]}), json.dumps({"excerpts": ["VPN is required"]})]
        )
        generator = SyntheticDatasetGenerator(llm=llm, corpus=create_corpus([policy_document]))
        truth = generate_ground_truth(generator, TokenLevelStrategy())
        assert all(isinstance(item, TokenLevelGroundTruth) for item in truth)
        assert len(truth) == 1

    def test_strategy_kinds(self):
        assert ChunkLevelStrategy(chunker=_paragraph_chunker()).kind == "chunk-level"
        assert TokenLevelStrategy().kind == "token-level"


class TestOpenAIChatClient:
    def test_requests_json_object(self):
        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content='  {"a": 1}  '))]
        )
        reply = OpenAIChatClient(client).complete("gpt-4o", [{"role": "user", "content": "hi"}])
        assert reply == '{"a": 1}'
        client.chat.completions.create.assert_called_once_with(
            model="gpt-4o",
            messages=[{"role": "user", "content": "hi"}],
            response_format={"type": "json_object"},
        )

    def test_plain_text_format(self):
        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=MagicMock(content=None))])
        assert OpenAIChatClient(client).complete("gpt-4o", [], response_format="text") == ""
        assert "response_format" not in client.chat.completions.create.call_args.kwargs
