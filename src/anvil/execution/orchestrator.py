"""BenchmarkOrchestrator: drives the run pipeline for one or many runs.

Per run the stages are workspace -> agent -> validation -> diff ->
evaluation, followed by local persistence and submission to the result
sink. Only workspace and configuration errors abort a run; every other
failure is recorded and the later stages still produce their artifact,
so each run ends with a ScoreReport.

Many runs execute concurrently under asyncio.TaskGroup, bounded by a
semaphore of ``max_parallel``.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from anvil import __version__
from anvil.adapters.base import AgentConfig, BaseAgentAdapter, ChatBackend
from anvil.adapters.registry import get_adapter
from anvil.errors import ConfigurationError, DuplicateWorkspaceError, PersistenceError, WorkspaceError
from anvil.evaluation.evaluators.base import EvaluationContext
from anvil.evaluation.registry import build_registry
from anvil.evaluation.scorer import compute_score, evaluate_run_async
from anvil.execution.diff import DiffBuilder, resolve_ignore_rules
from anvil.execution.extras import validate_extras
from anvil.execution.validation import ValidationRunner, pad_skipped
from anvil.execution.workspace import WorkspaceManager
from anvil.loader import LoadedScenario
from anvil.log import configure_logging
from anvil.models.config import ProjectConfig, find_project_root, load_project_config
from anvil.models.result import (
    AgentFailure,
    AgentSummary,
    DiffArtifact,
    RunRecord,
    ScoreReport,
    SyncStatus,
    ValidationResult,
)
from anvil.models.run import Run, RunConfig, StageStatus, WorkspaceHandle
from anvil.storage.json_store import RunStore
from anvil.storage.sink import ResultSink, build_sink

logger = structlog.get_logger(__name__)

# Stages that act on the outside world and are skipped once the run deadline passes.
SIDE_EFFECT_STAGES: tuple[str, ...] = ("agent", "validation")


@dataclass
class RunPlan:
    """Everything resolved for one run before any filesystem work."""

    run_config: RunConfig
    scenario: LoadedScenario
    prompt: str
    adapter: BaseAgentAdapter
    agent_config: AgentConfig


@dataclass
class StageOutputs:
    """Artifacts collected as stages finish; kept when the run is cancelled."""

    agent: AgentSummary | None = None
    validation: list[ValidationResult] = field(default_factory=list)


class BenchmarkOrchestrator:
    """Runs scenarios against agents and records the results."""

    def __init__(
        self,
        project_config: ProjectConfig | None = None,
        project_root: Path | None = None,
        *,
        workspace_manager: WorkspaceManager | None = None,
        store: RunStore | None = None,
        sink: ResultSink | None = None,
        adapter_factory: Callable[[str], BaseAgentAdapter] = get_adapter,
        judge_backend: ChatBackend | None = None,
    ) -> None:
        self.config = project_config or ProjectConfig()
        root = Path(project_root) if project_root is not None else Path.cwd()
        self.workspaces = workspace_manager or WorkspaceManager(root / self.config.workspaces_dir)
        self.store = store or RunStore(root, self.config.storage_dir)
        self.sink = sink or build_sink(self.config.sink)
        self.validation_runner = ValidationRunner(self.config.validation.max_output_chars)
        self._adapter_factory = adapter_factory
        self._judge_backend = judge_backend

    @classmethod
    def from_project(cls, project_root: Path | None = None, **kwargs: Any) -> BenchmarkOrchestrator:
        """Build an orchestrator from the project's anvil.yaml.

        Locates the project root when none is given, loads its config
        and applies the ``logging`` section before anything runs.
        """
        root = Path(project_root) if project_root is not None else find_project_root()
        config = load_project_config(root)
        configure_logging(config.logging.format, config.logging.level)
        return cls(config, root, **kwargs)

    # -- planning --

    def make_run_config(
        self,
        scenario_id: str,
        tier: str,
        agent: str | None = None,
        model: str | None = None,
        **options: Any,
    ) -> RunConfig:
        """RunConfig with the project's default adapter and model filled in."""
        settings = self.config.agent
        return RunConfig(
            scenario_id=scenario_id,
            tier=tier,
            agent=agent or settings.default_adapter,
            model=model or settings.default_model,
            **options,
        )

    def build_agent_config(self, run_config: RunConfig) -> AgentConfig:
        """Merge run selection with project agent defaults.

        Raises:
            ConfigurationError: If the extras fail validation.
        """
        settings = self.config.agent
        budget = run_config.tool_call_budget
        max_turns = run_config.max_turns
        return AgentConfig(
            model=run_config.model,
            max_turns=max_turns if max_turns is not None else settings.max_turns,
            tool_call_budget=budget if budget is not None else settings.tool_call_budget,
            timeout_seconds=settings.timeout_seconds,
            max_retries=settings.max_retries,
            extras=validate_extras(dict(run_config.extras)),
        )

    def plan(self, run_config: RunConfig, scenario: LoadedScenario) -> RunPlan:
        """Resolve prompt, adapter and agent config for one run.

        Raises:
            ConfigurationError: Scenario mismatch, unknown tier or adapter, bad extras.
        """
        if run_config.scenario_id != scenario.scenario.id:
            raise ConfigurationError(
                f"RunConfig targets scenario '{run_config.scenario_id}' "
                f"but was given scenario '{scenario.scenario.id}'."
            )
        return RunPlan(
            run_config=run_config,
            scenario=scenario,
            prompt=scenario.prompt_for(run_config.tier),
            adapter=self._adapter_factory(run_config.agent),
            agent_config=self.build_agent_config(run_config),
        )

    # -- public entry points --

    async def run(self, run_config: RunConfig, scenario: LoadedScenario) -> RunRecord:
        """Execute one run end to end and return its persisted record.

        Raises:
            ConfigurationError: Before any workspace is created (includes
                DuplicateWorkspaceError).
        """
        return await self.execute(self.plan(run_config, scenario))

    async def run_many(
        self,
        runs: Sequence[tuple[RunConfig, LoadedScenario]],
    ) -> list[RunRecord]:
        """Execute independent runs concurrently, at most ``max_parallel`` at once.

        All runs are planned first; a duplicate identity or any other
        configuration error is raised before a single workspace exists.

        Returns:
            Records in the order of *runs*.
        """
        seen: set[tuple[str, str, str, int]] = set()
        for run_config, _ in runs:
            if run_config.identity in seen:
                raise DuplicateWorkspaceError(run_config.identity)
            seen.add(run_config.identity)

        plans = [self.plan(run_config, scenario) for run_config, scenario in runs]
        semaphore = asyncio.Semaphore(self.config.max_parallel)
        records: list[RunRecord | None] = [None] * len(plans)

        async def run_one(index: int, plan: RunPlan) -> None:
            async with semaphore:
                records[index] = await self.execute(plan)

        async with asyncio.TaskGroup() as tg:
            for index, plan in enumerate(plans):
                tg.create_task(run_one(index, plan))

        return [record for record in records if record is not None]

    async def submit(self, record: RunRecord) -> RunRecord:
        """Submit a stored record to the sink and update its sync status.

        Raises:
            PersistenceError: If the sink is unreachable or rejects the
                record. The stored record is marked unsynced first.
        """
        try:
            receipt = await self.sink.submit(record)
        except PersistenceError:
            self.store.mark_sync(record.run_id, SyncStatus.unsynced)
            raise
        return self.store.mark_sync(record.run_id, SyncStatus.synced, remote_id=receipt.remote_id)

    # -- pipeline --

    async def execute(self, plan: RunPlan) -> RunRecord:
        """Run the stage pipeline for a planned run."""
        run_config = plan.run_config
        run = Run(run_id=uuid.uuid4().hex, config=run_config)

        with structlog.contextvars.bound_contextvars(
            run_id=run.run_id,
            scenario_id=run_config.scenario_id,
            tier=run_config.tier,
            agent=run_config.agent,
        ):
            run.start()
            logger.info("run.started", model=run_config.model, iteration=run_config.iteration)

            run.mark_stage("workspace", StageStatus.running)
            try:
                handle = await self.workspaces.prepare(plan.scenario, run_config, run.run_id)
            except WorkspaceError as exc:
                run.fail_stage("workspace", exc.message)
                run.skip_pending()
                run.finish()
                logger.error("run.workspace_failed", error=exc.message)
                return await self._persist(
                    RunRecord(
                        run=run,
                        scenario_id=run_config.scenario_id,
                        score=compute_score([]),
                        anvil_version=__version__,
                    )
                )
            run.workspace = handle
            run.mark_stage("workspace", StageStatus.completed)

            outputs = StageOutputs()
            try:
                record = await self._run_stages(plan, run, outputs)
            except asyncio.CancelledError:
                logger.warning("run.cancelled")
                self._dispose(handle)
                self._save_cancelled(plan, run, outputs)
                raise
            self._dispose(handle)
            return await self._persist(record)

    def _save_cancelled(self, plan: RunPlan, run: Run, outputs: StageOutputs) -> None:
        """Store what a cancelled run produced. Nothing is awaited here."""
        run.skip_pending()
        run.finish(cancelled=True)
        record = RunRecord(
            run=run,
            scenario_id=run.config.scenario_id,
            agent=outputs.agent,
            validation=pad_skipped(plan.scenario.scenario.validation, outputs.validation),
            score=compute_score([]),
            sync_status=SyncStatus.unsynced,
            sync_error="run cancelled before submission",
            anvil_version=__version__,
        )
        try:
            self.store.save_record(record)
        except OSError as exc:
            logger.error("run.cancelled_record_lost", error=str(exc))

    async def _run_stages(self, plan: RunPlan, run: Run, outputs: StageOutputs) -> RunRecord:
        scenario = plan.scenario.scenario
        handle = run.workspace
        assert handle is not None

        validation = outputs.validation
        current = "agent"

        loop = asyncio.get_running_loop()
        timeout = self.config.run_timeout_seconds
        deadline = loop.time() + timeout if timeout is not None else None

        try:
            async with asyncio.timeout_at(deadline):
                run.mark_stage("agent", StageStatus.running)
                result = await plan.adapter.run(plan.prompt, handle.path, plan.agent_config)
                run.telemetry = result.telemetry
                outputs.agent = result.to_summary(plan.adapter.name)
                if result.failure is not None:
                    run.fail_stage("agent", f"{result.failure.category}: {result.failure.message}")
                else:
                    run.mark_stage("agent", StageStatus.completed)

                current = "validation"
                run.mark_stage("validation", StageStatus.running)
                await self.validation_runner.run(
                    scenario.validation,
                    handle.path,
                    per_command_timeout=self.config.validation.timeout_seconds,
                    policy=scenario.validation_policy,
                    results=validation,
                )
                run.mark_stage("validation", StageStatus.completed)
        except TimeoutError:
            message = (
                f"run exceeded its {timeout:g}s deadline"
                if timeout is not None
                else "run deadline exceeded"
            )
            logger.warning("run.deadline_exceeded", stage=current)
            run.fail_stage(current, message)
            run.skip_pending(SIDE_EFFECT_STAGES)
            if outputs.agent is None:
                outputs.agent = AgentSummary(
                    adapter=plan.adapter.name,
                    success=False,
                    failure=AgentFailure(category="timeout", message=message),
                )

        validation = pad_skipped(scenario.validation, validation)

        run.mark_stage("diff", StageStatus.running)
        try:
            builder = DiffBuilder(resolve_ignore_rules(scenario))
            diff = await asyncio.to_thread(builder.diff, handle.path, handle.fixture)
            run.mark_stage("diff", StageStatus.completed)
        except Exception as exc:
            logger.error("diff.failed", error=str(exc))
            run.fail_stage("diff", f"{type(exc).__name__}: {exc}")
            diff = DiffArtifact(warnings=[f"diff failed: {exc}"])

        run.mark_stage("evaluation", StageStatus.running)
        context = EvaluationContext(
            run=run,
            scenario=scenario,
            validation=validation,
            diff=diff,
            oracle=plan.scenario.oracle,
            agent=outputs.agent,
            workspace=handle.path,
            prompt=plan.prompt,
        )
        try:
            evaluators = build_registry(scenario, self.config, judge_backend=self._judge_backend)
            score = await evaluate_run_async(evaluators, context)
            run.mark_stage("evaluation", StageStatus.completed)
        except Exception as exc:
            logger.error("evaluation.failed", error=str(exc))
            run.fail_stage("evaluation", f"{type(exc).__name__}: {exc}")
            score = ScoreReport(total=0.0)

        run.finish()
        logger.info(
            "run.finished",
            status=run.status.value,
            failed_stage=run.failed_stage,
            score=round(score.total, 3),
        )
        return RunRecord(
            run=run,
            scenario_id=run.config.scenario_id,
            agent=outputs.agent,
            validation=validation,
            diff=diff,
            score=score,
            anvil_version=__version__,
        )

    def _dispose(self, handle: WorkspaceHandle) -> None:
        if self.config.retain_workspaces:
            self.workspaces.release(handle)
        else:
            self.workspaces.cleanup(handle)

    async def _persist(self, record: RunRecord) -> RunRecord:
        """Store the record locally, then submit it to the sink.

        A sink failure leaves the record stored as ``unsynced`` with the
        error in ``sync_error``; it can be resubmitted later.
        """
        self.store.save_record(record)
        try:
            return await self.submit(record)
        except PersistenceError as exc:
            logger.warning("sink.rejected", run_id=record.run_id, error=exc.message)
            updated = record.model_copy(
                update={"sync_status": SyncStatus.unsynced, "sync_error": exc.message}
            )
            self.store.save_record(updated)
            return updated
