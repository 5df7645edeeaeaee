"""Tools registry for managing assistant tools."""

from collections.abc import Iterable
from pathlib import Path

from relay.models.llm import ToolDefinition
from relay.tools.base import Tool
from relay.utils.locks import AsyncRWLock
from relay.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Name-keyed collection of tools shared between the agent and the bridge.

    Lookups take the read side of the lock and may run concurrently;
    registration takes the write side.
    """

    def __init__(self, tools: Iterable[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        self._lock = AsyncRWLock()
        for tool in tools or []:
            self._tools[tool.name] = tool

    async def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        async with self._lock.write():
            if tool.name in self._tools:
                logger.info(f"Replacing tool {tool.name}")
            self._tools[tool.name] = tool

    async def get(self, name: str) -> Tool | None:
        async with self._lock.read():
            return self._tools.get(name)

    async def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        async with self._lock.read():
            return name in self._tools

    async def list_tools(self) -> list[Tool]:
        """All registered tools, sorted by name."""
        async with self._lock.read():
            return [self._tools[name] for name in sorted(self._tools)]

    async def definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in await self.list_tools()]

    async def tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        async with self._lock.read():
            return sorted(self._tools)

    def __len__(self) -> int:
        return len(self._tools)


def create_default_registry(working_dir: Path | str | None = None) -> ToolsRegistry:
    """Create a registry holding the built-in file and shell tools."""
    from relay.tools.bash import BashTool
    from relay.tools.glob_search import GlobTool
    from relay.tools.read_file import ReadTool
    from relay.tools.write_file import WriteTool

    root = Path(working_dir) if working_dir else Path.cwd()
    return ToolsRegistry([ReadTool(root), WriteTool(root), BashTool(root), GlobTool(root)])
