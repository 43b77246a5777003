"""Tests for weighted scoring and evaluator isolation."""

from __future__ import annotations

import asyncio

import pytest

from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.evaluation.scorer import compute_score, evaluate_run_async, run_evaluator
from anvil.models.result import EvaluatorResult
from anvil.models.run import Run, RunConfig
from anvil.models.scenario import Scenario


def _result(evaluator_id: str, score: float, weight: float, succeeded: bool = True) -> EvaluatorResult:
    return EvaluatorResult(evaluator_id=evaluator_id, score=score, weight=weight, succeeded=succeeded)


def _context() -> EvaluationContext:
    run = Run(run_id="r", config=RunConfig(scenario_id="s", tier="t", agent="a", model="m"))
    return EvaluationContext(run=run, scenario=Scenario(id="s"))


class _Fixed(BaseEvaluator):
    def __init__(self, evaluator_id: str, score: float, weight: float) -> None:
        super().__init__(weight)
        self.evaluator_id = evaluator_id
        self.score = score

    def evaluate(self, context):
        return self.result(self.score, self.score >= 0.5, "fixed")


class _Raising(BaseEvaluator):
    evaluator_id = "raising"

    def evaluate(self, context):
        raise EvaluatorError(self.evaluator_id, "cannot score")


class _Crashing(BaseEvaluator):
    evaluator_id = "crashing"

    def evaluate(self, context):
        return {}["missing"]


class _Slow(BaseEvaluator):
    evaluator_id = "slow"

    async def evaluate_async(self, context):
        await asyncio.sleep(10)

    def evaluate(self, context):  # pragma: no cover
        raise AssertionError


class TestComputeScore:
    def test_weighted_example(self):
        report = compute_score([_result("a", 1.0, 6), _result("b", 0.5, 4)])
        assert report.total == pytest.approx(8.0)
        assert report.weight_used == 10

    def test_failed_evaluator_excluded_from_both_sums(self):
        report = compute_score([_result("a", 1.0, 6), _result("b", 0.0, 4, succeeded=False)])
        assert report.total == pytest.approx(10.0)
        assert report.excluded == ["b"]
        assert len(report.breakdown) == 2

    def test_all_failed_is_zero(self):
        report = compute_score([_result("a", 0.0, 1, succeeded=False)])
        assert report.total == 0.0
        assert compute_score([]).total == 0.0

    def test_zero_weights_fall_back_to_zero(self):
        assert compute_score([_result("a", 1.0, 0)]).total == 0.0

    @pytest.mark.parametrize("scores", [[0.0, 0.0], [1.0, 1.0], [0.3, 0.9], [1.0, 0.0]])
    def test_total_within_bounds(self, scores):
        report = compute_score([_result(f"e{i}", s, i + 1) for i, s in enumerate(scores)])
        assert 0.0 <= report.total <= 10.0


class TestIsolation:
    @pytest.mark.asyncio
    async def test_evaluator_error_becomes_excluded_result(self):
        result = await run_evaluator(_Raising(), _context())
        assert result.succeeded is False
        assert result.error == "cannot score"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self):
        result = await run_evaluator(_Crashing(), _context())
        assert result.succeeded is False
        assert result.error.startswith("KeyError")

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await run_evaluator(_Slow(), _context(), timeout=0.05)
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_others_still_scored(self):
        report = await evaluate_run_async(
            [_Fixed("a", 1.0, 6), _Raising(), _Fixed("b", 0.5, 4), _Crashing()],
            _context(),
        )
        assert report.total == pytest.approx(8.0)
        assert sorted(report.excluded) == ["crashing", "raising"]
