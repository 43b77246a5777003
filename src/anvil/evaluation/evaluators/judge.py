"""JudgeEvaluator -- LLM-as-judge evaluation with k-vote aggregation.

Orchestrates the full judge pipeline: prompt building, backend calls,
score extraction, and aggregation into a single EvaluatorResult. Each
call is bounded by the configured timeout; when no vote can be
extracted the evaluator raises EvaluatorError and is excluded from the
score rather than counted as zero.
"""

from __future__ import annotations

import asyncio

import structlog

from anvil.adapters.base import ChatBackend, Message, TurnConfig
from anvil.adapters.registry import get_chat_backend
from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.evaluation.judge.aggregation import aggregate_k_votes
from anvil.evaluation.judge.context import build_context
from anvil.evaluation.judge.extraction import extract_scores
from anvil.evaluation.judge.prompt import (
    DEFAULT_RUBRIC,
    JUDGE_USER_TEMPLATE,
    build_judge_prompt,
    build_scoring_tool,
    format_tool_choice,
)
from anvil.execution.cost import estimate_cost
from anvil.models.config import JudgeConfig
from anvil.models.result import EvaluatorResult

logger = structlog.get_logger(__name__)


class JudgeEvaluator(BaseEvaluator):
    """LLM-as-judge evaluator with k-vote aggregation.

    Runs k independent evaluations against the scenario rubric (or the
    default rubric), extracts per-criterion scores via a forced
    ``score_criteria`` tool call with text-JSON fallback, and aggregates
    with per-criterion medians and a majority verdict.
    """

    evaluator_id = "judge"
    default_weight = 2.0

    def __init__(
        self,
        config: JudgeConfig | None = None,
        backend: ChatBackend | None = None,
        weight: float | None = None,
    ) -> None:
        self.config = config or JudgeConfig()
        super().__init__(self.config.weight if weight is None else weight)
        self._backend = backend

    @property
    def backend(self) -> ChatBackend:
        if self._backend is None:
            self._backend = get_chat_backend(self.config.adapter)
        return self._backend

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        """Sync entry point -- delegates to evaluate_async.

        Raises RuntimeError if called from inside a running event loop.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            raise RuntimeError(
                "JudgeEvaluator.evaluate() called from within an async context. "
                "Use evaluate_async() instead."
            )

        return asyncio.run(self.evaluate_async(context))

    async def evaluate_async(self, context: EvaluationContext) -> EvaluatorResult:
        config = self.config
        criteria = [c.model_dump() for c in context.scenario.rubric] or DEFAULT_RUBRIC

        system_prompt = build_judge_prompt(criteria)
        user_prompt = JUDGE_USER_TEMPLATE.format(context_block=build_context(context))
        scoring_tool = build_scoring_tool(criteria)

        try:
            backend = self.backend
        except Exception as exc:
            raise EvaluatorError(self.evaluator_id, str(exc)) from exc

        turn_config = TurnConfig(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            extras=format_tool_choice(backend.provider_name(), "score_criteria"),
        )
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_prompt),
        ]

        k_results: list[dict] = []
        failures: list[str] = []
        total_judge_cost = 0.0

        for vote in range(config.k):
            try:
                result = await asyncio.wait_for(
                    backend.send_turn(messages, tools=[scoring_tool], config=turn_config),
                    timeout=config.timeout_seconds,
                )
            except TimeoutError:
                failures.append(f"vote {vote + 1}: timed out after {config.timeout_seconds:g}s")
                logger.warning("judge.vote_timed_out", vote=vote + 1)
                continue
            except Exception as exc:
                failures.append(f"vote {vote + 1}: {type(exc).__name__}: {exc}")
                logger.warning("judge.vote_failed", vote=vote + 1, error=str(exc))
                continue

            cost = estimate_cost(config.model, result.usage.input_tokens, result.usage.output_tokens)
            if cost is not None:
                total_judge_cost += cost

            scores = extract_scores(result, criteria)
            if scores is None:
                failures.append(f"vote {vote + 1}: response had no parseable scores")
                logger.warning("judge.vote_malformed", vote=vote + 1)
            else:
                k_results.append(scores)

        if not k_results:
            raise EvaluatorError(
                self.evaluator_id,
                f"all {config.k} judge calls failed: " + "; ".join(failures),
            )

        overall_score, majority_passed, per_criterion = aggregate_k_votes(
            k_results, criteria, config.threshold
        )

        criterion_summary = ", ".join(
            f"{d['name']}={d['median_score']:.2f}" for d in per_criterion
        )
        details = (
            f"judge={config.model} k={config.k} votes={len(k_results)}/{config.k} | "
            f"judge_cost=${total_judge_cost:.6f} | "
            f"{criterion_summary}"
        )

        return self.result(
            overall_score,
            majority_passed,
            details,
            metadata={
                "judge_model": config.model,
                "judge_k": config.k,
                "judge_cost_usd": total_judge_cost,
                "per_criterion": per_criterion,
                "failures": failures,
            },
        )
