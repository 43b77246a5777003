"""Loads a scenario directory into a LoadedScenario.

Layout::

    my-scenario/
        scenario.yaml        # required
        prompts/<tier>.md    # referenced from scenario.yaml, or discovered
        repo-fixture/        # golden fixture tree (name configurable)
        oracle.yaml          # optional, or oracle.json
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from anvil.errors import ConfigurationError, ScenarioLoadError
from anvil.loader.validator import ValidationErrorDetail, validate_model, validate_scenario_file
from anvil.loader.yaml_parser import YAMLParseError, parse_yaml_file
from anvil.models.oracle import Oracle
from anvil.models.scenario import Scenario

logger = structlog.get_logger(__name__)

SCENARIO_FILENAMES: tuple[str, ...] = ("scenario.yaml", "scenario.yml")
ORACLE_FILENAMES: tuple[str, ...] = ("oracle.yaml", "oracle.yml", "oracle.json")
PROMPTS_DIR = "prompts"
PROMPT_SUFFIXES: tuple[str, ...] = (".md", ".txt")


@dataclass
class LoadedScenario:
    """A validated scenario with its prompt texts and optional oracle."""

    scenario: Scenario
    root: Path
    prompts: dict[str, str] = field(default_factory=dict)
    oracle: Oracle | None = None

    @property
    def fixture_dir(self) -> Path:
        return self.root / self.scenario.fixture

    @property
    def tiers(self) -> list[str]:
        return sorted(self.prompts)

    def prompt_for(self, tier: str) -> str:
        """Prompt text for a tier.

        Raises:
            ConfigurationError: If the scenario has no prompt for *tier*.
        """
        try:
            return self.prompts[tier]
        except KeyError:
            raise ConfigurationError(
                f"Scenario '{self.scenario.id}' has no prompt for tier '{tier}'. "
                f"Available tiers: {', '.join(self.tiers) or 'none'}."
            ) from None


def _summarize(errors: list[ValidationErrorDetail], filename: str) -> str:
    shown = [e.format(filename) for e in errors[:5]]
    if len(errors) > 5:
        shown.append(f"... and {len(errors) - 5} more")
    return "invalid scenario:\n" + "\n".join(shown)


def find_scenario_file(path: Path) -> Path:
    """Resolve a scenario directory or file to its scenario.yaml."""
    if path.is_file():
        return path
    for name in SCENARIO_FILENAMES:
        candidate = path / name
        if candidate.is_file():
            return candidate
    raise ScenarioLoadError(str(path), f"no {' or '.join(SCENARIO_FILENAMES)} found")


def _load_prompts(scenario: Scenario, root: Path) -> dict[str, str]:
    prompts: dict[str, str] = {}
    declared = dict(scenario.prompts)

    if not declared:
        prompts_dir = root / PROMPTS_DIR
        if prompts_dir.is_dir():
            for entry in sorted(prompts_dir.iterdir()):
                if entry.is_file() and entry.suffix in PROMPT_SUFFIXES:
                    declared[entry.stem] = entry.relative_to(root).as_posix()

    for tier, relative in declared.items():
        prompt_path = root / relative
        try:
            prompts[tier] = prompt_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ScenarioLoadError(
                str(prompt_path), f"prompt for tier '{tier}' could not be read: {exc}"
            ) from exc
    return prompts


def load_oracle(root: Path) -> Oracle | None:
    """Load oracle.yaml / oracle.json beside a scenario, if present.

    Raises:
        ScenarioLoadError: If the oracle file exists but is invalid.
    """
    for name in ORACLE_FILENAMES:
        path = root / name
        if not path.is_file():
            continue
        try:
            if path.suffix == ".json":
                raw, line_map = json.loads(path.read_text(encoding="utf-8")), {}
            else:
                raw, line_map = parse_yaml_file(path)
        except (YAMLParseError, ValueError, OSError) as exc:
            raise ScenarioLoadError(str(path), f"oracle could not be parsed: {exc}") from exc
        if not isinstance(raw, dict):
            raise ScenarioLoadError(str(path), "oracle must be a mapping")

        oracle, errors = validate_model(Oracle, raw, line_map)
        if oracle is None:
            raise ScenarioLoadError(str(path), _summarize(errors, str(path)), errors=errors)
        return oracle
    return None


def load_scenario(path: Path | str) -> LoadedScenario:
    """Load and validate a scenario directory (or its scenario.yaml).

    Raises:
        ScenarioLoadError: On YAML syntax errors, schema errors (with
            per-field details), unreadable prompts, or an invalid oracle.
    """
    scenario_file = find_scenario_file(Path(path))
    root = scenario_file.parent

    try:
        scenario, errors = validate_scenario_file(scenario_file)
    except OSError as exc:
        raise ScenarioLoadError(str(scenario_file), f"could not be read: {exc}") from exc
    if scenario is None:
        raise ScenarioLoadError(
            str(scenario_file), _summarize(errors, str(scenario_file)), errors=errors
        )

    loaded = LoadedScenario(
        scenario=scenario,
        root=root,
        prompts=_load_prompts(scenario, root),
        oracle=load_oracle(root),
    )
    logger.debug(
        "scenario.loaded",
        scenario_id=scenario.id,
        tiers=loaded.tiers,
        oracle=loaded.oracle is not None,
    )
    return loaded


def discover_scenarios(scenarios_dir: Path) -> list[Path]:
    """Scenario directories directly under *scenarios_dir*, sorted by name."""
    if not scenarios_dir.is_dir():
        return []
    return [
        entry
        for entry in sorted(scenarios_dir.iterdir())
        if entry.is_dir() and any((entry / name).is_file() for name in SCENARIO_FILENAMES)
    ]


def load_scenarios(scenarios_dir: Path, tags: Iterable[str] | None = None) -> list[LoadedScenario]:
    """Load every scenario under *scenarios_dir*.

    With *tags*, keep only scenarios carrying at least one of them.
    """
    wanted = set(tags or ())
    loaded = [load_scenario(path) for path in discover_scenarios(scenarios_dir)]
    if not wanted:
        return loaded
    return [item for item in loaded if wanted.intersection(item.scenario.tags)]
