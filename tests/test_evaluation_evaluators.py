"""Tests for the heuristic evaluators."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators import EVALUATOR_REGISTRY, EvaluationContext
from anvil.evaluation.evaluators.commands import InstallEvaluator, TestEvaluator, ValidationEvaluator
from anvil.evaluation.evaluators.dependencies import (
    DependencyTargetsEvaluator,
    PackageManagerEvaluator,
    concrete_version,
    version_satisfies,
)
from anvil.evaluation.evaluators.integrity import IntegrityEvaluator, added_lines
from anvil.evaluation.evaluators.oracle import OracleEvaluator
from anvil.execution.diff import PATCH_TRUNCATED_MARKER, DiffBuilder
from anvil.models.oracle import Oracle
from anvil.models.result import (
    AgentSummary,
    ChangeStatus,
    DependencyDelta,
    DiffArtifact,
    FileChange,
    ValidationResult,
)
from anvil.models.run import Run, RunConfig, WorkspaceHandle
from anvil.models.scenario import Scenario


def _context(scenario: dict | None = None, **kwargs) -> EvaluationContext:
    config = RunConfig(scenario_id="s", tier="easy", agent="echo", model="m")
    run = Run(run_id="r1", config=config, workspace=kwargs.pop("handle", None))
    return EvaluationContext(run=run, scenario=Scenario(id="s", **(scenario or {})), **kwargs)


def _result(name: str, kind: str, exit_code: int, **kwargs) -> ValidationResult:
    return ValidationResult(name=name, kind=kind, command="x", exit_code=exit_code, **kwargs)


def _patch(*added: str) -> str:
    return "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-old\n" + "".join(f"+{line}\n" for line in added)


class TestCommandEvaluators:
    def test_install_passes_test_fails(self):
        context = _context(validation=[_result("install", "install", 0), _result("test", "test", 1)])
        install = InstallEvaluator().evaluate(context)
        test = TestEvaluator().evaluate(context)
        assert (install.score, install.passed) == (1.0, True)
        assert (test.score, test.passed) == (0.0, False)
        assert test.metadata == {"failed": ["test"]}

    def test_no_commands_of_kind_pass_vacuously(self):
        result = TestEvaluator().evaluate(_context(validation=[_result("lint", "lint", 1)]))
        assert result.passed is True
        assert "no test commands" in result.details

    def test_timeout_and_skip_count_as_failure(self):
        context = _context(
            validation=[
                _result("unit", "test", -1, timed_out=True),
                _result("e2e", "test", -2, skipped=True),
            ]
        )
        result = TestEvaluator().evaluate(context)
        assert result.passed is False
        assert "timed out" in result.details
        assert "skipped" in result.details

    def test_validation_fraction(self):
        context = _context(
            validation=[_result("a", "build", 0), _result("b", "lint", 2), _result("c", "test", 0), _result("d", "other", 0)]
        )
        result = ValidationEvaluator().evaluate(context)
        assert result.score == pytest.approx(0.75)
        assert result.passed is False

    def test_default_weights_and_override(self):
        assert InstallEvaluator().weight == 2.0
        assert TestEvaluator().weight == 3.0
        assert TestEvaluator(weight=5).weight == 5


class TestVersionHelpers:
    @pytest.mark.parametrize(
        ("declared", "expected"),
        [("^5.2.0", "5.2.0"), ("~4.1", "4.1.0"), (">=2 <3", "2.0.0"), ("18", "18.0.0")],
    )
    def test_concrete_version(self, declared, expected):
        assert str(concrete_version(declared)) == expected

    def test_no_version(self):
        assert concrete_version("latest") is None
        assert version_satisfies("workspace:*", "^1.0.0") is False

    def test_satisfies(self):
        assert version_satisfies("^18.2.0", "^18.0.0") is True
        assert version_satisfies("^17.0.2", ">=18.0.0") is False

    def test_invalid_range_raises(self):
        with pytest.raises(ValueError):
            version_satisfies("1.0.0", "not-a-range")


class TestDependencyTargets:
    def _scenario(self, version: str = "^18.0.0") -> dict:
        return {"constraints": {"targets": {"required": [{"name": "react", "version": version}]}}}

    def test_reads_workspace_manifest(self, tmp_path: Path):
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"react": "^18.2.0"}}))
        context = _context(self._scenario(), workspace=tmp_path, diff=DiffArtifact(manifest="package.json"))
        result = DependencyTargetsEvaluator().evaluate(context)
        assert result.passed is True
        assert result.metadata["targets"][0]["found"] == "^18.2.0"

    def test_falls_back_to_delta(self):
        diff = DiffArtifact(dependencies={"react": DependencyDelta(before="^17.0.2", after="17.0.2")})
        result = DependencyTargetsEvaluator().evaluate(_context(self._scenario(), diff=diff))
        assert result.score == 0.0
        assert "does not satisfy" in result.details

    def test_missing_package(self):
        result = DependencyTargetsEvaluator().evaluate(_context(self._scenario()))
        assert result.passed is False
        assert "react missing" in result.details

    def test_invalid_range_is_evaluator_error(self):
        diff = DiffArtifact(dependencies={"react": DependencyDelta(after="18.0.0")})
        with pytest.raises(EvaluatorError):
            DependencyTargetsEvaluator().evaluate(_context(self._scenario("not-a-range"), diff=diff))

    def test_no_targets(self):
        assert DependencyTargetsEvaluator().evaluate(_context()).passed is True


class TestPackageManager:
    def _handle(self, tmp_path: Path) -> WorkspaceHandle:
        fixture = tmp_path / "fixture"
        workspace = tmp_path / "workspace"
        fixture.mkdir()
        workspace.mkdir()
        (fixture / "pnpm-lock.yaml").write_text("lockfileVersion: '6.0'\n")
        (workspace / "pnpm-lock.yaml").write_text("lockfileVersion: '6.0'\n")
        return WorkspaceHandle(path=workspace, fixture=fixture, identity=("s", "easy", "echo", 0))

    def _scenario(self, **extra) -> dict:
        return {"constraints": {"managers_allowed": ["pnpm"]}, **extra}

    def test_unchanged_lockfile_is_not_evidence(self, tmp_path: Path):
        handle = self._handle(tmp_path)
        context = _context(self._scenario(), handle=handle, workspace=handle.path)
        assert PackageManagerEvaluator().evaluate(context).passed is True

    def test_new_npm_lockfile_violates(self, tmp_path: Path):
        handle = self._handle(tmp_path)
        (handle.path / "package-lock.json").write_text("{}")
        context = _context(self._scenario(), handle=handle, workspace=handle.path)
        result = PackageManagerEvaluator().evaluate(context)
        assert result.score == 0.0
        assert result.metadata == {"violations": ["npm"]}

    def test_package_manager_field(self, tmp_path: Path):
        handle = self._handle(tmp_path)
        (handle.path / "package.json").write_text(json.dumps({"packageManager": "yarn@4.1.0"}))
        context = _context(self._scenario(), handle=handle, workspace=handle.path)
        assert "yarn" in PackageManagerEvaluator().evaluate(context).details

    def test_agent_tool_calls_and_validation_commands(self):
        agent = AgentSummary(
            adapter="x",
            success=True,
            tool_calls=[{"name": "bash", "arguments": {"command": "cd app && npm install react@18"}}],
        )
        context = _context(self._scenario(validation={"install": "pnpm install", "test": "yarn test"}), agent=agent)
        result = PackageManagerEvaluator().evaluate(context)
        assert result.metadata == {"violations": ["npm"]}
        assert "agent tool call bash" in result.details

    def test_no_constraint(self):
        assert PackageManagerEvaluator().evaluate(_context()).passed is True


class TestIntegrity:
    def test_clean_diff(self):
        diff = DiffArtifact(changes=[FileChange(path="src/a.ts", status=ChangeStatus.modified, patch=_patch("ok();"))])
        assert IntegrityEvaluator().evaluate(_context(diff=diff)).score == 1.0

    def test_each_guard_costs_a_third(self):
        diff = DiffArtifact(
            changes=[
                FileChange(path="tsconfig.json", status=ChangeStatus.modified, patch=_patch('  "strict": false,')),
                FileChange(path="src/a.test.ts", status=ChangeStatus.modified, patch=_patch("it.skip('x', () => {});")),
            ]
        )
        result = IntegrityEvaluator().evaluate(_context(diff=diff))
        assert result.score == pytest.approx(1 / 3)
        assert set(result.metadata["violations"]) == {"strictness", "skipped_tests"}

    def test_ignore_file_widening(self):
        diff = DiffArtifact(
            changes=[FileChange(path=".eslintignore", status=ChangeStatus.added, patch=_patch("# note", "src/"))]
        )
        result = IntegrityEvaluator().evaluate(_context(diff=diff))
        assert result.metadata["violations"] == {"ignore_files": [".eslintignore: +src/"]}

    def test_removed_files_are_not_inspected(self):
        diff = DiffArtifact(changes=[FileChange(path="a.test.ts", status=ChangeStatus.removed, patch=_patch("it.only("))])
        assert IntegrityEvaluator().evaluate(_context(diff=diff)).passed is True

    def test_added_lines_skips_header(self):
        change = FileChange(path="f", status=ChangeStatus.modified, patch=_patch("new"))
        assert added_lines(change) == ["new"]

    def _handle(self, tmp_path: Path) -> WorkspaceHandle:
        (tmp_path / "fixture").mkdir()
        (tmp_path / "workspace").mkdir()
        return WorkspaceHandle(
            path=tmp_path / "workspace",
            fixture=tmp_path / "fixture",
            identity=("s", "easy", "echo", 0),
        )

    def test_skip_beyond_patch_cap_is_found(self, tmp_path: Path):
        handle = self._handle(tmp_path)
        cases = "".join(f"it('case {i}', () => expect({i}).toBe({i}));\n" for i in range(600))
        (handle.path / "app.test.js").write_text(cases + "it.skip('the one that fails', () => {});\n")

        diff = DiffBuilder().diff(handle.path, handle.fixture)
        assert diff.get("app.test.js").patch.endswith(PATCH_TRUNCATED_MARKER)

        result = IntegrityEvaluator().evaluate(_context(diff=diff, handle=handle, workspace=handle.path))
        assert result.passed is False
        assert list(result.metadata["violations"]) == ["skipped_tests"]

    def test_file_too_large_for_a_patch_is_read_from_disk(self, tmp_path: Path):
        handle = self._handle(tmp_path)
        body = "it.skip('legacy', () => {});\n" + "const a = 1;\n" * 100_000
        (handle.fixture / "big.test.ts").write_text(body)
        (handle.path / "big.test.ts").write_text("// @ts-nocheck\n" + body)

        diff = DiffBuilder().diff(handle.path, handle.fixture)
        assert diff.get("big.test.ts").patch is None

        result = IntegrityEvaluator().evaluate(_context(diff=diff, handle=handle, workspace=handle.path))
        assert result.metadata["violations"] == {"strictness": ["big.test.ts: // @ts-nocheck"]}


class TestOracle:
    def test_no_oracle_raises(self):
        with pytest.raises(EvaluatorError):
            OracleEvaluator().evaluate(_context())

    def test_partial_match(self):
        oracle = Oracle(
            expected_changes={"package.json": "modified", "src/old.js": "removed", "README.md": "modified"},
            expected_dependencies={"react": "^18.0.0"},
        )
        diff = DiffArtifact(
            changes=[
                FileChange(path="package.json", status=ChangeStatus.modified),
                FileChange(path="src/old.js", status=ChangeStatus.removed),
            ],
            dependencies={"react": DependencyDelta(before="^17.0.2", after="^18.2.0")},
        )
        result = OracleEvaluator().evaluate(_context(oracle=oracle, diff=diff))
        assert result.score == pytest.approx(0.75)
        assert result.metadata["misses"] == ["README.md: expected modified, got unchanged"]

    def test_unchanged_dependency_already_at_target(self, tmp_path: Path):
        (tmp_path / "package.json").write_text(
            json.dumps({"dependencies": {"react": "^18.2.0", "lodash": "4.17.21"}})
        )
        oracle = Oracle(expected_dependencies={"react": "^18.0.0", "vue": "^3.0.0"})
        diff = DiffArtifact(manifest="package.json")
        result = OracleEvaluator().evaluate(_context(oracle=oracle, diff=diff, workspace=tmp_path))
        assert result.score == pytest.approx(0.5)
        assert result.metadata["misses"] == ["vue: expected ^3.0.0, got missing"]

    def test_empty_oracle(self):
        assert OracleEvaluator().evaluate(_context(oracle=Oracle())).passed is True


class TestRegistry:
    def test_all_ids_map_to_their_class(self):
        for evaluator_id, cls in EVALUATOR_REGISTRY.items():
            assert cls.evaluator_id == evaluator_id
