"""Exception hierarchy for the anvil run pipeline.

Every stage raises a subclass of AnvilError at its seam. The
orchestrator decides which categories abort a run (workspace and
configuration errors) and which are recorded and survived (agent,
command, diff, evaluator and persistence errors).
"""

from __future__ import annotations


class AnvilError(Exception):
    """Base class for all anvil errors."""

    def __init__(self, message: str, retriable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable


class ConfigurationError(AnvilError):
    """Raised for invalid run configuration (unknown tier, bad adapter, ...)."""


class DuplicateWorkspaceError(ConfigurationError):
    """Raised when two runs would resolve to the same workspace identity.

    Attributes:
        identity: The colliding (scenario_id, tier, agent, iteration) tuple.
    """

    def __init__(self, identity: tuple[str, str, str, int]) -> None:
        self.identity = identity
        scenario_id, tier, agent, iteration = identity
        super().__init__(
            f"Workspace identity already in use: scenario={scenario_id!r} "
            f"tier={tier!r} agent={agent!r} iteration={iteration}. "
            f"Concurrent runs must differ in at least one of these fields."
        )


class WorkspaceError(AnvilError):
    """Raised when a fixture tree cannot be materialized into a workspace."""


class AgentError(AnvilError):
    """Raised inside adapters when a backend call fails.

    Attributes:
        category: One of auth, network, rate_limit, malformed, timeout, process, unknown.
    """

    def __init__(self, message: str, category: str = "unknown", retriable: bool = False) -> None:
        super().__init__(message, retriable=retriable)
        self.category = category


class CommandError(AnvilError):
    """Raised when a validation command cannot be spawned."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Failed to run {command!r}: {reason}")
        self.command = command
        self.reason = reason


class DiffError(AnvilError):
    """Raised when a single path cannot be read or decoded during diffing."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class EvaluatorError(AnvilError):
    """Raised by an evaluator that cannot produce a result.

    The scorer excludes the evaluator from both weight sums.
    """

    def __init__(self, evaluator_id: str, reason: str) -> None:
        super().__init__(f"Evaluator '{evaluator_id}' failed: {reason}")
        self.evaluator_id = evaluator_id
        self.reason = reason


class PersistenceError(AnvilError):
    """Raised when the result sink is unreachable or rejects a record."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, retriable=status_code is None or status_code >= 500)
        self.status_code = status_code


class ScenarioLoadError(AnvilError):
    """Raised when a scenario directory cannot be loaded.

    Attributes:
        path: The scenario file or directory.
        errors: Per-field validation error details, if any.
    """

    def __init__(self, path: str, message: str, errors: list | None = None) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.errors = errors or []
