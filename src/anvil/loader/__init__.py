"""anvil loader - scenario YAML parsing, validation, and directory loading."""

from anvil.loader.scenario_loader import (
    LoadedScenario,
    discover_scenarios,
    load_oracle,
    load_scenario,
    load_scenarios,
)
from anvil.loader.validator import (
    ValidationErrorDetail,
    validate_scenario_file,
    validate_scenario_string,
)
from anvil.loader.yaml_parser import YAMLParseError, parse_yaml_file, parse_yaml_with_lines

__all__ = [
    "LoadedScenario",
    "ValidationErrorDetail",
    "YAMLParseError",
    "discover_scenarios",
    "load_oracle",
    "load_scenario",
    "load_scenarios",
    "parse_yaml_file",
    "parse_yaml_with_lines",
    "validate_scenario_file",
    "validate_scenario_string",
]
