"""File writing tool."""

import asyncio
from pathlib import Path

from pydantic import BaseModel, Field

from relay.tools.base import ExecutionFailedError, ToolOutput, WorkspaceTool


class WriteInput(BaseModel):
    """Input schema for the write tool."""

    path: str = Field(
        ...,
        min_length=1,
        description="Path of the file to write, absolute or relative to the working directory",
        examples=["notes/todo.md"],
    )
    content: str = Field(..., description="Full text to write; an existing file is overwritten")


def _write(path: Path, content: str) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8")
    path.write_bytes(data)
    return len(data)


class WriteTool(WorkspaceTool):
    name = "write"
    description = "Write text to a file, creating parent directories as needed."
    input_model = WriteInput

    async def run(self, params: WriteInput) -> ToolOutput:
        path = self.resolve(params.path)
        try:
            written = await asyncio.to_thread(_write, path, params.content)
        except OSError as e:
            raise ExecutionFailedError(f"could not write {params.path}: {e}") from e

        return ToolOutput(content=f"Wrote {written} bytes to {params.path}")
