"""Tests for JudgeEvaluator with a scripted chat backend."""

from __future__ import annotations

import asyncio

import pytest

from anvil.adapters.base import AdapterTurnResult, ChatBackend, TokenUsage, ToolCallResult
from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import EvaluationContext
from anvil.evaluation.evaluators.judge import JudgeEvaluator
from anvil.models.config import JudgeConfig
from anvil.models.run import Run, RunConfig
from anvil.models.scenario import Scenario


def _scores(correctness: float, scope: float = 1.0, quality: float = 1.0) -> AdapterTurnResult:
    arguments = {
        "correctness": {"score": correctness, "reasoning": "r"},
        "scope": {"score": scope, "reasoning": "r"},
        "quality": {"score": quality, "reasoning": "r"},
    }
    return AdapterTurnResult(
        content=None,
        tool_calls=[ToolCallResult(id="t", name="score_criteria", arguments=arguments)],
        usage=TokenUsage(input_tokens=1000, output_tokens=100, total_tokens=1100),
        raw_response={},
        finish_reason="tool_calls",
    )


class ScriptedBackend(ChatBackend):
    def __init__(self, replies: list) -> None:
        self.replies = list(replies)
        self.configs = []

    async def send_turn(self, messages, tools=None, config=None):
        self.configs.append(config)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if reply == "hang":
            await asyncio.sleep(10)
        return reply

    def provider_name(self) -> str:
        return "openai"


def _context(rubric: list | None = None) -> EvaluationContext:
    run = Run(run_id="r", config=RunConfig(scenario_id="s", tier="t", agent="a", model="m"))
    return EvaluationContext(run=run, scenario=Scenario(id="s", rubric=rubric or []), prompt="do it")


class TestJudgeEvaluator:
    @pytest.mark.asyncio
    async def test_k_votes_aggregate(self):
        backend = ScriptedBackend([_scores(1.0), _scores(0.6), _scores(0.8)])
        judge = JudgeEvaluator(JudgeConfig(enabled=True, k=3, model="gpt-4o-mini"), backend=backend)

        result = await judge.evaluate_async(_context())

        assert result.evaluator_id == "judge"
        assert result.weight == 2.0
        # correctness median 0.8 (weight 3), scope 1.0, quality 1.0
        assert result.score == pytest.approx((0.8 * 3 + 1 + 1) / 5)
        assert result.passed is True
        assert result.metadata["judge_cost_usd"] > 0
        assert backend.configs[0].extras["tool_choice"]["function"]["name"] == "score_criteria"

    @pytest.mark.asyncio
    async def test_scenario_rubric_replaces_default(self):
        rubric = [{"name": "minimal", "description": "Small diff", "weight": 1.0}]
        reply = AdapterTurnResult(
            content='{"minimal": {"score": 0.25, "reasoning": "large"}}',
            tool_calls=[],
            usage=TokenUsage(),
            raw_response={},
            finish_reason="stop",
        )
        judge = JudgeEvaluator(JudgeConfig(k=1), backend=ScriptedBackend([reply]))
        result = await judge.evaluate_async(_context(rubric))
        assert result.score == pytest.approx(0.25)
        assert result.passed is False

    @pytest.mark.asyncio
    async def test_failed_votes_are_skipped(self):
        backend = ScriptedBackend([ConnectionError("reset"), "hang", _scores(1.0)])
        judge = JudgeEvaluator(JudgeConfig(k=3, timeout_seconds=0.05), backend=backend)
        result = await judge.evaluate_async(_context())
        assert result.score == pytest.approx(1.0)
        assert len(result.metadata["failures"]) == 2
        assert "timed out" in result.metadata["failures"][1]

    @pytest.mark.asyncio
    async def test_all_votes_failed_raises(self):
        backend = ScriptedBackend([ConnectionError("a"), ConnectionError("b")])
        judge = JudgeEvaluator(JudgeConfig(k=2), backend=backend)
        with pytest.raises(EvaluatorError, match="all 2 judge calls failed"):
            await judge.evaluate_async(_context())

    @pytest.mark.asyncio
    async def test_unresolvable_backend_raises_evaluator_error(self):
        judge = JudgeEvaluator(JudgeConfig(adapter="echo", k=1))
        with pytest.raises(EvaluatorError):
            await judge.evaluate_async(_context())

    def test_sync_evaluate_outside_loop(self):
        judge = JudgeEvaluator(JudgeConfig(k=1), backend=ScriptedBackend([_scores(0.9)]))
        assert judge.evaluate(_context()).passed is True

    @pytest.mark.asyncio
    async def test_sync_evaluate_inside_loop_refused(self):
        judge = JudgeEvaluator(JudgeConfig(k=1), backend=ScriptedBackend([_scores(0.9)]))
        with pytest.raises(RuntimeError, match="evaluate_async"):
            judge.evaluate(_context())

    def test_weight_override(self):
        assert JudgeEvaluator(JudgeConfig(weight=4.0)).weight == 4.0
        assert JudgeEvaluator(JudgeConfig(weight=4.0), weight=1.5).weight == 1.5
