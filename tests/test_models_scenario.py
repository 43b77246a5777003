"""Tests for anvil.models.scenario - Scenario and its nested models."""

import pytest
from pydantic import ValidationError

from anvil.models.scenario import Assertion, Scenario, ValidationCommand


class TestScenarioCreation:
    def test_full_scenario_from_dict(self):
        scenario = Scenario.model_validate(
            {
                "id": "react-upgrade",
                "title": "Upgrade React",
                "tags": ["js", "upgrade"],
                "prompts": {"easy": "prompts/easy.md"},
                "validation": [
                    {"name": "install", "run": "pnpm install", "kind": "install"},
                    {"name": "test", "run": "pnpm test", "kind": "test", "timeout_seconds": 120},
                ],
                "validation_policy": "stop_on_failure",
                "constraints": {
                    "managers_allowed": ["pnpm"],
                    "targets": {"required": [{"name": "react", "version": "^18.0.0"}]},
                },
                "evaluators": {"tests_pass": 4.0},
                "ignore": {"extend": ["coverage/"]},
            }
        )
        assert scenario.fixture == "repo-fixture"
        assert [c.name for c in scenario.validation] == ["install", "test"]
        assert scenario.validation[1].timeout_seconds == 120
        assert scenario.constraints.targets.required[0].version == "^18.0.0"
        assert scenario.ignore.replace is False

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError, match="extra_forbidden"):
            Scenario.model_validate({"id": "s", "validaton": []})

    def test_id_pattern(self):
        with pytest.raises(ValidationError):
            Scenario(id="../escape")

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError, match="must be >= 0"):
            Scenario(id="s", evaluators={"tests_pass": -1})

    def test_frozen(self):
        scenario = Scenario(id="s")
        with pytest.raises(ValidationError):
            scenario.title = "changed"


class TestValidationShorthand:
    def test_mapping_infers_kind_from_name(self):
        scenario = Scenario(id="s", validation={"install": "pnpm i", "smoke": "node smoke.js"})
        assert [(c.name, c.kind) for c in scenario.validation] == [
            ("install", "install"),
            ("smoke", "other"),
        ]

    def test_bare_strings_get_positional_names(self):
        scenario = Scenario(id="s", validation=["make", "make test"])
        assert [c.name for c in scenario.validation] == ["command-1", "command-2"]

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            ValidationCommand(name="a", run="b", timeout_seconds=0)


class TestAssertion:
    def test_defaults(self):
        assertion = Assertion(expression="validation[0].exit_code")
        assert assertion.operator == "exists"
        assert assertion.weight == 1.0

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            Assertion(expression="x", operator="approx")
