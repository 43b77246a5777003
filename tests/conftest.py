"""Shared fixtures: scenario directories on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from anvil.loader import LoadedScenario, load_scenario

PACKAGE_JSON = """{
  "name": "demo-app",
  "version": "1.0.0",
  "dependencies": {
    "react": "^17.0.2",
    "lodash": "4.17.21"
  },
  "devDependencies": {
    "typescript": "~4.9.5"
  }
}
"""


def write_scenario(
    root: Path,
    scenario: dict[str, Any],
    fixture_files: dict[str, str] | None = None,
    prompts: dict[str, str] | None = None,
    oracle: dict[str, Any] | None = None,
) -> Path:
    """Create a scenario directory under *root* and return its path."""
    scenario_dir = root / scenario["id"]
    fixture_dir = scenario_dir / scenario.get("fixture", "repo-fixture")
    fixture_dir.mkdir(parents=True)
    for rel, content in (fixture_files or {}).items():
        path = fixture_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    prompts_dir = scenario_dir / "prompts"
    prompts_dir.mkdir()
    for tier, text in (prompts or {"easy": "Upgrade react to 18."}).items():
        (prompts_dir / f"{tier}.md").write_text(text)

    (scenario_dir / "scenario.yaml").write_text(yaml.safe_dump(scenario, sort_keys=False))
    if oracle is not None:
        (scenario_dir / "oracle.yaml").write_text(yaml.safe_dump(oracle, sort_keys=False))
    return scenario_dir


@pytest.fixture
def scenario_factory(tmp_path: Path):
    """Build and load scenario directories inside tmp_path/scenarios."""

    def factory(**kwargs: Any) -> LoadedScenario:
        scenario = {"id": "react-upgrade", "title": "Upgrade React"}
        scenario.update(kwargs.pop("scenario", {}))
        kwargs.setdefault("fixture_files", {"package.json": PACKAGE_JSON, "src/index.js": "render();\n"})
        path = write_scenario(tmp_path / "scenarios", scenario, **kwargs)
        return load_scenario(path)

    return factory
