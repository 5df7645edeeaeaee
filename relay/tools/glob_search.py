"""File pattern matching tool."""

import asyncio
from pathlib import Path

from pydantic import BaseModel, Field

from relay.tools.base import InvalidParametersError, ResourceNotFoundError, ToolOutput, WorkspaceTool

IGNORED_DIRS = {".git"}


class GlobInput(BaseModel):
    """Input schema for the glob tool."""

    pattern: str = Field(
        default="**/*",
        description="Glob pattern matched relative to path; ** matches any number of directories",
        examples=["**/*.py", "src/*.toml"],
    )
    path: str = Field(default=".", description="Directory to search from")


def _match(root: Path, pattern: str) -> list[str]:
    matches = []
    for match in root.glob(pattern):
        relative = match.relative_to(root)
        if IGNORED_DIRS.intersection(relative.parts):
            continue
        matches.append(relative.as_posix())
    return sorted(matches)


class GlobTool(WorkspaceTool):
    name = "glob"
    description = "Find files whose paths match a glob pattern."
    input_model = GlobInput

    async def run(self, params: GlobInput) -> ToolOutput:
        root = self.resolve(params.path)
        if not root.is_dir():
            raise ResourceNotFoundError(params.path)

        pattern = params.pattern or "**/*"
        try:
            matches = await asyncio.to_thread(_match, root, pattern)
        except (ValueError, NotImplementedError) as e:
            raise InvalidParametersError(f"bad pattern {pattern!r}: {e}") from e

        if not matches:
            return ToolOutput(content="No matching files found")
        return ToolOutput(content="\n".join(matches))
