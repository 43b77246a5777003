"""Weighted scorer with failed-evaluator exclusion.

Evaluators run concurrently and in isolation: one that raises or
times out becomes an unsucceeded EvaluatorResult and is left out of
both sums. The total is rescaled to 0-10 and clipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.models.result import EvaluatorResult, ScoreReport

logger = structlog.get_logger(__name__)

MAX_SCORE = 10.0


def compute_score(results: Sequence[EvaluatorResult]) -> ScoreReport:
    """Aggregate evaluator results into a 0-10 ScoreReport.

    total = sum(score * weight) / sum(weight) over succeeded evaluators,
    times 10, clipped to [0, 10]. Falls back to 0.0 when nothing
    succeeded or the succeeding weights sum to zero.
    """
    succeeded = [r for r in results if r.succeeded]
    excluded = [r.evaluator_id for r in results if not r.succeeded]

    weight_used = sum(r.weight for r in succeeded)
    if not succeeded or weight_used <= 0:
        total = 0.0
    else:
        numerator = sum(r.score * r.weight for r in succeeded)
        total = MAX_SCORE * numerator / weight_used
        total = max(0.0, min(MAX_SCORE, total))

    return ScoreReport(
        total=total,
        breakdown=list(results),
        weight_used=weight_used,
        excluded=excluded,
    )


def _failed(evaluator: BaseEvaluator, error: str) -> EvaluatorResult:
    return EvaluatorResult(
        evaluator_id=evaluator.evaluator_id,
        score=0.0,
        weight=evaluator.weight,
        succeeded=False,
        passed=False,
        error=error,
        details=f"excluded: {error}",
    )


async def run_evaluator(
    evaluator: BaseEvaluator,
    context: EvaluationContext,
    timeout: float | None = None,
) -> EvaluatorResult:
    """Run one evaluator, converting any failure into an excluded result."""
    try:
        if timeout is None:
            return await evaluator.evaluate_async(context)
        return await asyncio.wait_for(evaluator.evaluate_async(context), timeout=timeout)
    except EvaluatorError as exc:
        error = exc.reason
    except TimeoutError:
        error = f"timed out after {timeout:g}s"
    except Exception as exc:
        error = f"{type(exc).__name__}: {exc}"

    logger.warning("evaluator.failed", evaluator_id=evaluator.evaluator_id, error=error)
    return _failed(evaluator, error)


async def evaluate_run_async(
    evaluators: Sequence[BaseEvaluator],
    context: EvaluationContext,
    timeout: float | None = None,
) -> ScoreReport:
    """Run all evaluators concurrently and aggregate their results."""
    results = await asyncio.gather(
        *(run_evaluator(evaluator, context, timeout) for evaluator in evaluators)
    )
    report = compute_score(results)
    logger.info(
        "evaluation.completed",
        total=round(report.total, 3),
        excluded=report.excluded,
    )
    return report
