"""anvil execution pipeline: workspace, validation, diff, orchestration.

Submodules are imported directly (``anvil.execution.workspace`` etc.);
this package does not re-export them so that the adapter layer can use
the leaf helpers (redaction, retry, cost) without import cycles.
"""
