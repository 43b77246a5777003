"""Tests for judge score extraction."""

from __future__ import annotations

from anvil.adapters.base import AdapterTurnResult, TokenUsage, ToolCallResult
from anvil.evaluation.judge.extraction import (
    extract_json_from_text,
    extract_scores,
    extract_scores_from_tool_call,
)

CRITERIA = [{"name": "correctness", "description": "d", "weight": 1.0}]


def _turn(content=None, tool_calls=None) -> AdapterTurnResult:
    return AdapterTurnResult(
        content=content,
        tool_calls=tool_calls or [],
        usage=TokenUsage(),
        raw_response={},
        finish_reason="stop",
    )


class TestToolCallExtraction:
    def test_scores_are_clamped(self):
        calls = [ToolCallResult(id="1", name="score_criteria", arguments={"correctness": {"score": 1.7}})]
        assert extract_scores_from_tool_call(calls) == {"correctness": {"score": 1.0}}

    def test_other_tools_ignored(self):
        calls = [ToolCallResult(id="1", name="read_file", arguments={"path": "x"})]
        assert extract_scores_from_tool_call(calls) is None


class TestTextExtraction:
    def test_plain_json(self):
        assert extract_json_from_text('{"a": 1}') == {"a": 1}

    def test_embedded_braces(self):
        assert extract_json_from_text('Verdict: {"a": 1} done') == {"a": 1}

    def test_code_block(self):
        text = 'Scores {not json here}\n```json\n{"a": 2}\n```'
        assert extract_json_from_text(text) == {"a": 2}

    def test_garbage(self):
        assert extract_json_from_text("no json") is None
        assert extract_json_from_text("") is None


class TestExtractScores:
    def test_prefers_tool_call(self):
        turn = _turn(
            content='{"correctness": {"score": 0.1}}',
            tool_calls=[ToolCallResult(id="1", name="score_criteria", arguments={"correctness": {"score": 0.9}})],
        )
        assert extract_scores(turn, CRITERIA)["correctness"]["score"] == 0.9

    def test_text_fallback_is_clamped(self):
        turn = _turn(content='{"correctness": {"score": -2, "reasoning": "bad"}}')
        assert extract_scores(turn, CRITERIA)["correctness"]["score"] == 0.0

    def test_unrelated_keys_rejected(self):
        assert extract_scores(_turn(content='{"other": {"score": 1}}'), CRITERIA) is None
