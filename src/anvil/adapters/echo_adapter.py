"""Local echo adapter for pipeline testing.

Records the prompt and makes no change to the workspace unless
``extras["write_file"]`` names a file, in which case the prompt is
written there. Reports no token or cost usage.
"""

from __future__ import annotations

from pathlib import Path

from anvil.adapters.base import AgentConfig, AgentProgress, BaseAgentAdapter
from anvil.adapters.tools import WorkspaceTools


class EchoAdapter(BaseAgentAdapter):
    name = "echo"

    async def _execute(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
        progress: AgentProgress,
    ) -> None:
        progress.turns = 1
        progress.tool_call_count = 0

        target = config.extras.get("write_file")
        if target:
            arguments = {"path": str(target), "content": prompt}
            output = WorkspaceTools(workspace).execute("write_file", arguments)
            progress.record_tool_call({"id": "echo-0", "name": "write_file", "arguments": arguments})
            progress.notes.append(output)

        progress.final_content = prompt
